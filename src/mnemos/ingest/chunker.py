"""Fixed-window character chunker with overlap.

Windows start every ``max_len - overlap`` characters and the last window is
the first one that reaches the end of the text. Text is never stripped or
normalised, so concatenating each window minus its leading overlap
reproduces the input exactly.
"""

from __future__ import annotations


def clamp_overlap(max_len: int, overlap: int) -> int:
    """Clamp *overlap* into ``[0, max_len // 2]``."""
    return max(0, min(overlap, max_len // 2))


def chunk(text: str, max_len: int, overlap: int) -> list[tuple[int, str]]:
    """Split *text* into overlapping ``(offset, text)`` windows.

    Args:
        text: Source text. Empty text yields no windows.
        max_len: Maximum window length in characters (must be >= 1).
        overlap: Characters shared by consecutive windows. Values outside
            ``[0, max_len // 2]`` are clamped.

    Returns:
        Ordered list of ``(offset, window_text)`` tuples.

    Raises:
        ValueError: If *max_len* is less than 1.
    """
    if max_len < 1:
        raise ValueError(f"max_len must be >= 1, got {max_len}")
    if not text:
        return []

    length = len(text)
    if length <= max_len:
        return [(0, text)]

    step = max_len - clamp_overlap(max_len, overlap)
    windows: list[tuple[int, str]] = []
    pos = 0
    while True:
        end = min(pos + max_len, length)
        windows.append((pos, text[pos:end]))
        if end >= length:
            break
        pos += step
    return windows


def expected_count(length: int, max_len: int, overlap: int) -> int:
    """Number of windows ``chunk()`` produces for a text of *length* chars."""
    if length == 0:
        return 0
    if length <= max_len:
        return 1
    step = max_len - clamp_overlap(max_len, overlap)
    return -(-(length - (max_len - step)) // step)
