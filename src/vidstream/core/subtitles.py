"""Sidecar subtitle lookup with SRT to WebVTT conversion."""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import aiofiles

from vidstream.core.errors import InvalidName, NotFound
from vidstream.utils.logger import get_logger
from vidstream.utils.paths import PathResolver

logger = get_logger(__name__)

SRT_TIMESTAMP = re.compile(r"(\d{2}):(\d{2}):(\d{2}),(\d{3})")


def srt_to_vtt(srt: str) -> str:
    """Convert SubRip text to WebVTT.

    Only the header and the millisecond separator differ between the two.
    """
    body = srt.lstrip("\ufeff").replace("\r\n", "\n")
    return "WEBVTT\n\n" + SRT_TIMESTAMP.sub(r"\1:\2:\3.\4", body)


@dataclass
class Subtitle:
    """Subtitle text ready to serve."""

    path: Path
    content: str
    converted: bool = False  # True if converted from SRT


class SubtitleLocator:
    """Find the .vtt or .srt file that sits next to a video."""

    def __init__(self, resolver: PathResolver):
        self.resolver = resolver

    def _existing(self, filename: str) -> Optional[Path]:
        try:
            path = self.resolver.resolve(filename)
        except InvalidName:
            return None
        return path if path.is_file() else None

    async def load(self, video_filename: str) -> Subtitle:
        """Load subtitles for a video, preferring WebVTT over SRT.

        Args:
            video_filename: Filename of the video (extension is ignored)

        Returns:
            Subtitle in WebVTT format

        Raises:
            InvalidName: If the video filename is unsafe
            NotFound: If no sidecar subtitle exists
        """
        self.resolver.resolve(video_filename)
        base = Path(video_filename).stem

        vtt_path = self._existing(f"{base}.vtt")
        if vtt_path is not None:
            async with aiofiles.open(vtt_path, encoding="utf-8", errors="replace") as f:
                return Subtitle(path=vtt_path, content=await f.read())

        srt_path = self._existing(f"{base}.srt")
        if srt_path is not None:
            async with aiofiles.open(srt_path, encoding="utf-8", errors="replace") as f:
                content = srt_to_vtt(await f.read())
            logger.debug("Converted SRT subtitles", file=str(srt_path))
            return Subtitle(path=srt_path, content=content, converted=True)

        raise NotFound("Subtitles not found")
