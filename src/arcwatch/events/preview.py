"""Trailing-lines preview of changed files."""

from pathlib import Path

import structlog

logger = structlog.get_logger()

BINARY_SNIFF_BYTES = 512
BINARY_SENTINEL = "[binary file]"
ELLIPSIS = "..."
DEFAULT_MAX_LINES = 3
DEFAULT_WIDTH = 60


def is_binary(data: bytes) -> bool:
    """Check if data looks binary by searching its head for a NUL byte."""
    return b"\x00" in data[:BINARY_SNIFF_BYTES]


def truncate(line: str, width: int) -> str:
    """Shorten a line to width characters, marking the cut with an ellipsis."""
    if len(line) <= width:
        return line
    return line[: max(width - len(ELLIPSIS), 0)] + ELLIPSIS


def extract_preview(
    path: str | Path,
    max_lines: int = DEFAULT_MAX_LINES,
    width: int = DEFAULT_WIDTH,
) -> list[str] | None:
    """Read the last non-blank lines of a file.

    Best effort: an unreadable file yields no preview rather than an error.

    Args:
        path: File to read.
        max_lines: Maximum number of lines returned.
        width: Maximum line width, longer lines end in an ellipsis.

    Returns:
        Stripped lines in file order, a single sentinel line for binary
        content, or None if the file cannot be read or has no text.
    """
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        logger.debug("preview_unreadable", path=str(path), error=str(e))
        return None

    if is_binary(data):
        return [BINARY_SENTINEL]

    preview: list[str] = []
    for raw_line in reversed(data.decode("utf-8", errors="replace").split("\n")):
        if len(preview) >= max_lines:
            break
        line = raw_line.strip()
        if line:
            preview.append(truncate(line, width))

    if not preview:
        return None
    preview.reverse()
    return preview
