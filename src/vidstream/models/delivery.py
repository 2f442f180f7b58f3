"""Per-request delivery models."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class ByteRange:
    """Inclusive byte span of a file, 0 <= start <= end < total."""

    start: int
    end: int
    total: int

    def __post_init__(self):
        if not 0 <= self.start <= self.end < self.total:
            raise ValueError(f"Invalid byte range {self.start}-{self.end}/{self.total}")

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    @property
    def content_range(self) -> str:
        """Value for the Content-Range response header."""
        return f"bytes {self.start}-{self.end}/{self.total}"


class StreamAction(Enum):
    """What ffmpeg does with a stream."""

    PASSTHROUGH = "passthrough"  # -c copy
    REENCODE = "reencode"
    NONE = "none"  # No such stream in the input


@dataclass(frozen=True)
class TranscodeDecision:
    """How one transcode request treats each stream."""

    audio_action: StreamAction
    audio_codec: Optional[str] = None  # Probed codec of the first audio stream
    probe_failed: bool = False
    video_action: StreamAction = StreamAction.PASSTHROUGH

    def __str__(self) -> str:
        """Human-readable representation."""
        source = "probe failed" if self.probe_failed else (self.audio_codec or "no audio")
        return f"video={self.video_action.value} audio={self.audio_action.value} ({source})"
