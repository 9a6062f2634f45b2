"""Markdown helpers shared by the converters: pipe tables, escaping and display width."""

import unicodedata
from typing import List, Sequence

# Zero width space, zero width non-joiner, zero width joiner, BOM
ZERO_WIDTH_CHARS = {0x200B, 0x200C, 0x200D, 0xFEFF}

# Explicitly narrow: halfwidth part of the Halfwidth and Fullwidth Forms block
HALF_WIDTH_RANGES = [
    (0xFF61, 0xFFDC),
]

WIDE_RANGES = [
    (0x1F300, 0x1F5FF),  # Miscellaneous Symbols and Pictographs
    (0x1F600, 0x1F64F),  # Emoticons
    (0x1F680, 0x1F6FF),  # Transport and Map Symbols
    (0x1F700, 0x1F77F),  # Alchemical Symbols
    (0x1F780, 0x1F7FF),  # Geometric Shapes Extended
    (0x1F800, 0x1F8FF),  # Supplemental Arrows-C
    (0x1F900, 0x1F9FF),  # Supplemental Symbols and Pictographs
    (0x20000, 0x2A6DF),  # CJK Extension B
    (0x3000, 0x303F),    # CJK Symbols and Punctuation
    (0x3040, 0x309F),    # Hiragana
    (0x30A0, 0x30FF),    # Katakana
    (0x3400, 0x4DBF),    # CJK Extension A
    (0x4E00, 0x9FFF),    # CJK Unified Ideographs
    (0xAC00, 0xD7AF),    # Hangul Syllables
    (0xFF01, 0xFF60),    # Fullwidth ASCII variants
    (0xFFE0, 0xFFE6),    # Fullwidth symbols
]


def _in_ranges(code: int, ranges) -> bool:
    return any(start <= code <= end for start, end in ranges)


def rune_width(ch: str) -> int:
    """Return the display width of a single character.

    Control characters, zero-width characters and combining marks are 0,
    CJK ideographs, kana, Hangul, fullwidth forms and emoji are 2, and
    everything else is 1.

    Example:
        >>> rune_width("A"), rune_width("中"), rune_width("\\u0301")
        (1, 2, 0)
    """
    code = ord(ch)
    if code < 32 or code == 127:
        return 0
    if code < 127:
        return 1
    if code in ZERO_WIDTH_CHARS:
        return 0
    if unicodedata.category(ch) in ("Mn", "Me", "Mc"):
        return 0
    if _in_ranges(code, HALF_WIDTH_RANGES):
        return 1
    if _in_ranges(code, WIDE_RANGES):
        return 2
    return 1


def string_width(text: str) -> int:
    """Return the display width of a string, summing ``rune_width`` per character."""
    return sum(rune_width(ch) for ch in text)


def escape(text: str, chars: str) -> str:
    """Backslash-escape every character of ``chars`` found in ``text``."""
    return "".join("\\" + ch if ch in chars else ch for ch in text)


def _table_cell(cell: str) -> str:
    return cell.strip().replace("|", "\\|")


def to_markdown_table(rows: Sequence[Sequence[str]]) -> str:
    """Render rows of string cells as a Markdown pipe table.

    The first row is the header and fixes the column count: shorter rows are
    padded with blank cells and extra cells are dropped. Cells are trimmed,
    ``|`` is escaped and embedded newlines are kept as they are.

    Args:
        rows: Table rows, header first

    Returns:
        The table with every line newline-terminated, or "" when there are no
        rows or the header has no columns.

    Example:
        >>> print(to_markdown_table([["Name", "Age"], ["John", "30"]]), end="")
        | Name | Age |
        | --- | --- |
        | John | 30 |
    """
    if not rows or not rows[0]:
        return ""

    header = rows[0]
    column_count = len(header)
    lines: List[str] = []

    lines.append("|" + "".join(f" {_table_cell(cell)} |" for cell in header))
    lines.append("|" + " --- |" * column_count)

    for row in rows[1:]:
        cells = [_table_cell(row[i]) if i < len(row) else "" for i in range(column_count)]
        lines.append("|" + "".join(f" {cell} |" for cell in cells))

    return "\n".join(lines) + "\n"
