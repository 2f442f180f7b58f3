"""Media file and probe result models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class StreamType(Enum):
    """Stream classification reported by ffprobe."""

    VIDEO = "video"
    AUDIO = "audio"
    SUBTITLE = "subtitle"
    DATA = "data"

    @classmethod
    def from_codec_type(cls, value: Optional[str]) -> "StreamType":
        """Classify an ffprobe codec_type, falling back to DATA."""
        try:
            return cls(value)
        except ValueError:
            return cls.DATA


@dataclass
class MediaFile:
    """A recognized video file in the media directory."""

    filename: str
    size: int  # Size in bytes
    extension: str  # Lowercase, with leading dot
    created_at: datetime
    modified_at: datetime

    @property
    def path(self) -> str:
        """Path relative to the media root (the directory is flat)."""
        return self.filename


@dataclass
class StreamDescriptor:
    """A single stream inside a media container."""

    index: int
    type: StreamType
    codec_name: str = "unknown"
    codec_long_name: str = "unknown"
    profile: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    aspect_ratio: Optional[str] = None
    frame_rate: Optional[str] = None  # Rational as reported, e.g. "24000/1001"
    bit_rate: Optional[int] = None
    sample_rate: Optional[int] = None
    channels: Optional[int] = None
    channel_layout: Optional[str] = None
    language: Optional[str] = None
    title: Optional[str] = None

    @property
    def frame_rate_value(self) -> Optional[float]:
        """Frame rate as a float, or None when unknown or malformed."""
        if not self.frame_rate:
            return None
        num, _, den = self.frame_rate.partition("/")
        try:
            numerator = float(num)
            denominator = float(den) if den else 1.0
        except ValueError:
            return None
        if denominator == 0:
            return None
        return numerator / denominator


@dataclass
class ProbeResult:
    """Container and stream metadata for one file."""

    filename: str
    format_name: str = "unknown"
    duration: float = 0.0  # Seconds
    size: int = 0  # Bytes
    bit_rate: int = 0  # Bits per second
    streams: list[StreamDescriptor] = field(default_factory=list)

    def streams_of(self, stream_type: StreamType) -> list[StreamDescriptor]:
        """Streams of the given type, in container order."""
        return [s for s in self.streams if s.type is stream_type]

    @property
    def video_stream(self) -> Optional[StreamDescriptor]:
        """First video stream with known dimensions."""
        return next(
            (s for s in self.streams_of(StreamType.VIDEO) if s.width and s.height),
            None,
        )

    @property
    def audio_streams(self) -> list[StreamDescriptor]:
        return self.streams_of(StreamType.AUDIO)

    @property
    def subtitle_streams(self) -> list[StreamDescriptor]:
        return self.streams_of(StreamType.SUBTITLE)

    @property
    def first_audio_codec(self) -> Optional[str]:
        """Codec name of the first audio stream, if any."""
        audio = self.audio_streams
        return audio[0].codec_name if audio else None

    @property
    def has_multichannel_audio(self) -> bool:
        """True if any audio stream carries 6 or more channels (5.1+)."""
        return any((s.channels or 0) >= 6 for s in self.audio_streams)
