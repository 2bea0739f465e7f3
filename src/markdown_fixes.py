# File: markdown_fixes.py
# Small markdown repairs for model output that CommonMark would otherwise
# render literally.

import logging
import unicodedata
from typing import Tuple

from scanner import iter_segments, scan_protected_ranges

logger = logging.getLogger(__name__)


def _is_punct_or_symbol(ch: str) -> bool:
    if not ch:
        return False
    return unicodedata.category(ch)[0] in ("P", "S")


def _fix_bold_in_segment(segment: str, bold_open: bool) -> Tuple[str, int, bool]:
    out = []
    fixed = 0
    pos = 0
    length = len(segment)
    while pos < length:
        if segment[pos] != "*":
            out.append(segment[pos])
            pos += 1
            continue

        end = pos
        while end < length and segment[end] == "*":
            end += 1
        run = segment[pos:end]
        out.append(run)

        if len(run) == 2:
            if bold_open:
                prev_ch = segment[pos - 1] if pos > 0 else ""
                next_ch = segment[end] if end < length else ""
                if (
                    _is_punct_or_symbol(prev_ch)
                    and next_ch
                    and not next_ch.isspace()
                    and not _is_punct_or_symbol(next_ch)
                ):
                    out.append(" ")
                    fixed += 1
            bold_open = not bold_open
        pos = end
    return "".join(out), fixed, bold_open


def fix_markdown_bold_with_count(text: str) -> Tuple[str, int]:
    if not text or "**" not in text:
        return text, 0
    ranges = scan_protected_ranges(text, include_math=False)
    parts = []
    total = 0
    bold_open = False
    for start, end, protected in iter_segments(text, ranges):
        segment = text[start:end]
        if protected is None:
            segment, fixed, bold_open = _fix_bold_in_segment(segment, bold_open)
            total += fixed
        parts.append(segment)
    return "".join(parts), total


def fix_markdown_bold(text: str) -> str:
    """
    Add a space after a closing ``**`` that follows punctuation and touches a
    word, e.g. ``**注意：**内容`` → ``**注意：** 内容``. Code spans are skipped.
    """
    fixed, _ = fix_markdown_bold_with_count(text)
    return fixed
