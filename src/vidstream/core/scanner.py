"""Media directory listing."""

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import List

from vidstream.models.media import MediaFile
from vidstream.utils.logger import get_logger

logger = get_logger(__name__)

SUPPORTED_VIDEO_EXTENSIONS = frozenset(
    {
        ".mp4",
        ".mkv",
        ".avi",
        ".mov",
        ".wmv",
        ".webm",
        ".flv",
        ".m4v",
        ".ts",
        ".mts",
        ".m2ts",
    }
)


def is_supported_video(filename: str) -> bool:
    return Path(filename).suffix.lower() in SUPPORTED_VIDEO_EXTENSIONS


class MediaScanner:
    """List recognized video files in a flat media directory."""

    def __init__(self, media_dir: Path):
        """Initialize scanner.

        Args:
            media_dir: Directory to list (not recursed into)
        """
        self.media_dir = Path(media_dir)

    def scan(self) -> List[MediaFile]:
        """List video files in the media directory.

        Entries with unsupported extensions, non-regular files and entries
        that can't be stat'ed are skipped.

        Returns:
            MediaFile list sorted by filename

        Raises:
            FileNotFoundError: If the media directory doesn't exist
            NotADirectoryError: If the media path isn't a directory
        """
        files = []

        with os.scandir(self.media_dir) as entries:
            for entry in entries:
                if not is_supported_video(entry.name):
                    continue

                try:
                    if not entry.is_file():
                        continue
                    st = entry.stat()
                except OSError as e:
                    logger.debug("Skipping unreadable entry", file=entry.name, error=str(e))
                    continue

                files.append(
                    MediaFile(
                        filename=entry.name,
                        size=st.st_size,
                        extension=Path(entry.name).suffix.lower(),
                        created_at=_timestamp(getattr(st, "st_birthtime", st.st_ctime)),
                        modified_at=_timestamp(st.st_mtime),
                    )
                )

        files.sort(key=lambda f: f.filename)

        logger.info(
            "Media directory scanned",
            directory=str(self.media_dir),
            total_files=len(files),
        )

        return files


def _timestamp(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)
