"""Safe resolution of client-supplied filenames inside the media root."""

from pathlib import Path

from vidstream.core.errors import InvalidName
from vidstream.utils.logger import get_logger

logger = get_logger(__name__)

FORBIDDEN_TOKENS = ("/", "\\", "..", "\0")


class PathResolver:
    """Map untrusted filenames to absolute paths inside a fixed root."""

    def __init__(self, root: str | Path):
        """Initialize path resolver.

        Args:
            root: Media root directory
        """
        self.root = Path(root).resolve()

    def resolve(self, filename: str) -> Path:
        """Resolve a filename to an absolute path inside the root.

        The raw string is checked for separators, parent references and NUL
        bytes before any path arithmetic happens. The canonical result must
        then sit strictly below the root.

        Args:
            filename: Untrusted filename from the request

        Returns:
            Canonical absolute path

        Raises:
            InvalidName: If the filename is empty or escapes the root
        """
        if not filename:
            raise InvalidName("Filename is required")

        if any(token in filename for token in FORBIDDEN_TOKENS):
            logger.warning("Rejected unsafe filename", filename=repr(filename))
            raise InvalidName()

        candidate = (self.root / filename).resolve()

        if candidate == self.root or self.root not in candidate.parents:
            logger.warning(
                "Filename resolves outside media root",
                filename=filename,
                resolved=str(candidate),
                root=str(self.root),
            )
            raise InvalidName()

        return candidate
