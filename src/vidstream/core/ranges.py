"""HTTP Range header parsing for single byte ranges."""

import re

from vidstream.core.errors import Unsatisfiable
from vidstream.models.delivery import ByteRange

# Exactly one range; multi-range requests do not match.
RANGE_PATTERN = re.compile(r"^bytes=(\d*)-(\d*)$")


def parse_range(range_header: str, file_size: int) -> ByteRange:
    """Resolve a Range header against a file size.

    Supports ``bytes=A-B``, ``bytes=A-`` (to end of file) and ``bytes=-N``
    (last N bytes, clamped to the start of the file). The end offset is
    always clamped to the last byte.

    Args:
        range_header: Raw Range header value
        file_size: Size of the file in bytes

    Returns:
        Concrete byte range

    Raises:
        Unsatisfiable: For unsupported syntax or a range outside the file
    """
    match = RANGE_PATTERN.match(range_header.strip())
    if match is None:
        raise Unsatisfiable(file_size, f"Unsupported range: {range_header}")

    start_str, end_str = match.groups()

    if file_size <= 0:
        raise Unsatisfiable(file_size, "Empty file has no satisfiable range")

    if start_str == "":
        if end_str == "":
            raise Unsatisfiable(file_size, "Range has neither start nor end")
        suffix_length = int(end_str)
        if suffix_length == 0:
            raise Unsatisfiable(file_size, "Zero-length suffix range")
        start = max(0, file_size - suffix_length)
        return ByteRange(start=start, end=file_size - 1, total=file_size)

    start = int(start_str)
    end = int(end_str) if end_str != "" else file_size - 1

    if start > end or start >= file_size:
        raise Unsatisfiable(file_size, f"Range {start}-{end} outside file of {file_size} bytes")

    return ByteRange(start=start, end=min(end, file_size - 1), total=file_size)
