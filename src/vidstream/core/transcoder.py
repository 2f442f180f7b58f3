"""On-the-fly remux with selective audio re-encoding using ffmpeg."""

import asyncio
from pathlib import Path
from typing import Optional

from vidstream.config import Config
from vidstream.core.errors import ProbeFailure, ServiceBusy, StreamFailure
from vidstream.core.probe import MetadataProbe
from vidstream.core.streams import ProcessStream
from vidstream.models.delivery import StreamAction, TranscodeDecision
from vidstream.utils.logger import get_logger

logger = get_logger(__name__)

# Audio codecs that browsers can't play natively. AAC (including 5.1/7.1) is fine.
INCOMPATIBLE_AUDIO_CODECS = frozenset({"ac3", "eac3", "dts", "truehd", "flac", "pcm_s16le"})

# Fragmented MP4 that can be played while it is still being written.
STREAMABLE_MOVFLAGS = "frag_keyframe+empty_moov+faststart"


def audio_action_for(codec: Optional[str]) -> StreamAction:
    """Decide what to do with an audio stream of the given codec.

    Args:
        codec: ffprobe codec_name, or None if the file has no audio

    Returns:
        REENCODE for incompatible codecs, PASSTHROUGH otherwise, NONE without audio
    """
    if codec is None:
        return StreamAction.NONE
    if codec.lower() in INCOMPATIBLE_AUDIO_CODECS:
        return StreamAction.REENCODE
    return StreamAction.PASSTHROUGH


class TranscodeLimiter:
    """Non-blocking admission counter for concurrent transcodes."""

    def __init__(self, limit: Optional[int]):
        """Initialize limiter.

        Args:
            limit: Maximum concurrent transcodes, or None for no limit
        """
        self.limit = limit
        self.active = 0

    def acquire(self) -> None:
        """Claim a slot.

        Raises:
            ServiceBusy: If every slot is taken
        """
        if self.limit is not None and self.active >= self.limit:
            raise ServiceBusy()
        self.active += 1

    def release(self) -> None:
        self.active = max(0, self.active - 1)


class TranscodePipeline:
    """Probe a file, pick the audio action and stream ffmpeg's output."""

    def __init__(
        self,
        config: Config,
        probe: Optional[MetadataProbe] = None,
        limiter: Optional[TranscodeLimiter] = None,
    ):
        """Initialize transcode pipeline.

        Args:
            config: Application configuration
            probe: Metadata probe (built from config if omitted)
            limiter: Admission limiter shared by all requests (unlimited if omitted)
        """
        self.config = config
        self.settings = config.transcode
        self.probe = probe or MetadataProbe(config.transcode)
        self.limiter = limiter or TranscodeLimiter(None)

    async def decide(self, file_path: Path) -> TranscodeDecision:
        """Probe the file and decide the audio action.

        An inconclusive probe is handled per ``transcode.on_probe_failure``:
        ``reencode`` assumes the audio may be unplayable, ``fail`` re-raises.

        Raises:
            ProbeFailure: If the probe fails and the policy is ``fail``
        """
        try:
            result = await self.probe.probe(file_path)
        except ProbeFailure as e:
            if self.settings.on_probe_failure == "fail":
                raise
            logger.warning(
                "Probe failed, re-encoding audio to be safe",
                file=str(file_path),
                reason=e.reason,
            )
            return TranscodeDecision(audio_action=StreamAction.REENCODE, probe_failed=True)

        codec = result.first_audio_codec
        return TranscodeDecision(audio_action=audio_action_for(codec), audio_codec=codec)

    def build_command(
        self, file_path: Path, decision: TranscodeDecision, start_time: float = 0.0
    ) -> list[str]:
        """Build the ffmpeg argument list.

        Input options (-hwaccel, -ss) precede -i so seeking happens before decoding.
        """
        cmd = [self.settings.ffmpeg_bin, "-hide_banner", "-loglevel", "error"]

        if self.config.hwaccel:
            cmd.extend(["-hwaccel", self.config.hwaccel])

        if start_time > 0:
            cmd.extend(["-ss", str(start_time)])

        cmd.extend(["-i", str(file_path)])
        cmd.extend(["-movflags", STREAMABLE_MOVFLAGS])
        cmd.extend(["-c:v", "copy"])

        if decision.audio_action is StreamAction.REENCODE:
            cmd.extend(
                [
                    "-c:a",
                    self.settings.audio_codec,
                    "-ac",
                    str(self.settings.audio_channels),
                    "-b:a",
                    self.settings.audio_bitrate,
                ]
            )
        elif decision.audio_action is StreamAction.PASSTHROUGH:
            cmd.extend(["-c:a", "copy"])

        cmd.extend(["-f", "mp4", "pipe:1"])
        return cmd

    async def open(self, file_path: Path, start_time: float = 0.0) -> ProcessStream:
        """Start a transcode and wait for its first output.

        The caller owns the returned stream and must close it.

        Args:
            file_path: Resolved file to transcode
            start_time: Seek offset in seconds

        Returns:
            Started process stream

        Raises:
            ServiceBusy: If the admission limit is exhausted
            ProbeFailure: If probing fails and the policy is ``fail``
            StreamFailure: If ffmpeg can't start or exits before producing output
        """
        self.limiter.acquire()
        stream = None
        try:
            decision = await self.decide(file_path)
            cmd = self.build_command(file_path, decision, start_time)

            logger.info(
                "Starting transcode",
                file=str(file_path),
                decision=str(decision),
                start_time=start_time,
                command=cmd,
            )

            stream = ProcessStream(
                cmd,
                chunk_size=self.settings.chunk_size,
                kill_grace_seconds=self.settings.kill_grace_seconds,
                on_close=self.limiter.release,
            )

            try:
                first_chunk = await stream.start()
            except OSError as e:
                logger.error("ffmpeg launch failed", file=str(file_path), error=str(e))
                raise StreamFailure(f"Could not launch {self.settings.ffmpeg_bin}") from e

            if not first_chunk and stream.returncode != 0:
                logger.error(
                    "ffmpeg exited before producing output",
                    file=str(file_path),
                    returncode=stream.returncode,
                    stderr=stream.stderr_tail,
                )
                raise StreamFailure("Transcoder exited before producing output", stream.stderr_tail)

            return stream

        except BaseException:
            if stream is not None:
                await asyncio.shield(stream.close())
            else:
                self.limiter.release()
            raise
