"""Container and stream introspection using ffprobe."""

import asyncio
import json
import math
from pathlib import Path
from typing import Any, Optional

from vidstream.config import TranscodeConfig
from vidstream.core.errors import ProbeFailure
from vidstream.models.media import ProbeResult, StreamDescriptor, StreamType
from vidstream.utils.logger import get_logger

logger = get_logger(__name__)


class MetadataProbe:
    """Run ffprobe against a file and parse its JSON report."""

    def __init__(self, config: TranscodeConfig):
        """Initialize probe.

        Args:
            config: Transcode configuration (binary path, optional timeout)
        """
        self.ffprobe_bin = config.ffprobe_bin
        self.timeout = config.probe_timeout_seconds

    def build_command(self, file_path: Path) -> list[str]:
        return [
            self.ffprobe_bin,
            "-v",
            "quiet",
            "-print_format",
            "json",
            "-show_format",
            "-show_streams",
            str(file_path),
        ]

    async def probe(self, file_path: Path) -> ProbeResult:
        """Probe a resolved media file.

        Spawns exactly one ffprobe process and waits for it to exit.

        Args:
            file_path: Absolute path inside the media root

        Returns:
            Parsed probe result

        Raises:
            ProbeFailure: If ffprobe cannot run, exits non-zero, or prints invalid JSON
        """
        cmd = self.build_command(file_path)
        logger.debug("Probing file", file=str(file_path))

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error("ffprobe launch failed", file=str(file_path), error=str(e))
            raise ProbeFailure(f"could not launch {self.ffprobe_bin}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            logger.error("ffprobe timeout", file=str(file_path), timeout=self.timeout)
            raise ProbeFailure(f"timed out after {self.timeout}s")
        except asyncio.CancelledError:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            raise

        stderr_text = (stderr or b"").decode("utf-8", errors="replace").strip()

        if proc.returncode != 0:
            logger.error(
                "ffprobe failed",
                file=str(file_path),
                returncode=proc.returncode,
                stderr=stderr_text,
            )
            raise ProbeFailure(
                f"ffprobe exited with code {proc.returncode}",
                returncode=proc.returncode,
                stderr=stderr_text,
            )

        try:
            data = json.loads(stdout or b"{}")
        except json.JSONDecodeError as e:
            logger.error("Failed to parse ffprobe output", file=str(file_path), error=str(e))
            raise ProbeFailure("ffprobe produced invalid JSON") from e

        if not isinstance(data, dict):
            raise ProbeFailure("ffprobe output is not a JSON object")

        result = parse_probe_output(file_path.name, data)

        logger.debug(
            "File probed",
            file=str(file_path),
            format=result.format_name,
            stream_count=len(result.streams),
            audio_codecs=[s.codec_name for s in result.audio_streams],
        )

        return result


def parse_probe_output(filename: str, data: dict) -> ProbeResult:
    """Convert ffprobe's JSON report into a ProbeResult.

    Missing or malformed fields fall back to defaults instead of raising.

    Args:
        filename: Name reported back to clients
        data: Decoded ``-show_format -show_streams`` JSON

    Returns:
        ProbeResult with streams in report order
    """
    fmt = data.get("format") or {}
    raw_streams = data.get("streams") or []

    streams = [
        _parse_stream(position, stream)
        for position, stream in enumerate(raw_streams)
        if isinstance(stream, dict)
    ]

    return ProbeResult(
        filename=filename,
        format_name=fmt.get("format_name") or "unknown",
        duration=_parse_float(fmt.get("duration")) or 0.0,
        size=_parse_int(fmt.get("size")) or 0,
        bit_rate=_parse_int(fmt.get("bit_rate")) or 0,
        streams=streams,
    )


def _parse_stream(position: int, stream: dict) -> StreamDescriptor:
    tags = stream.get("tags")
    if not isinstance(tags, dict):
        tags = {}

    profile = stream.get("profile")
    index = _parse_int(stream.get("index"))

    return StreamDescriptor(
        index=index if index is not None else position,
        type=StreamType.from_codec_type(stream.get("codec_type")),
        codec_name=stream.get("codec_name") or "unknown",
        codec_long_name=stream.get("codec_long_name") or "unknown",
        profile=str(profile) if profile is not None else None,
        width=_parse_int(stream.get("width")),
        height=_parse_int(stream.get("height")),
        aspect_ratio=stream.get("display_aspect_ratio"),
        frame_rate=stream.get("r_frame_rate"),
        bit_rate=_parse_int(stream.get("bit_rate")),
        sample_rate=_parse_int(stream.get("sample_rate")),
        channels=_parse_int(stream.get("channels")),
        channel_layout=stream.get("channel_layout"),
        language=tags.get("language"),
        title=tags.get("title"),
    )


def _parse_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    return parsed if math.isfinite(parsed) else None


def _parse_int(value: Any) -> Optional[int]:
    parsed = _parse_float(value)
    return int(parsed) if parsed is not None else None
