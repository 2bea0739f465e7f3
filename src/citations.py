# File: citations.py
# Rewrites numeric citation markers like "[3]" into link references that the
# renderer turns into footnote links.

import logging
import re
from typing import Optional, Tuple

from scanner import rewrite_unprotected

logger = logging.getLogger(__name__)

_RE_CITATION_MARKER = re.compile(r"\[(\d+)\]")


def citation_link(index: int) -> str:
    return f"[#citation-{index}](citation-{index})"


def transform_citations_with_count(
    text: str, citations_length: Optional[int] = 0
) -> Tuple[str, int]:
    if not text or not citations_length or citations_length <= 0:
        return text, 0

    max_digits = len(str(citations_length))

    def _rewrite(segment: str) -> Tuple[str, int]:
        replaced = 0

        def _replace(m: re.Match) -> str:
            nonlocal replaced
            digits = m.group(1).lstrip("0")
            # longer markers are out of range, and int() refuses very long digit strings
            if not digits or len(digits) > max_digits:
                return m.group(0)
            index = int(digits)
            if index <= citations_length:
                replaced += 1
                return citation_link(index)
            return m.group(0)

        return _RE_CITATION_MARKER.sub(_replace, segment), replaced

    transformed, count = rewrite_unprotected(text, _rewrite, include_brackets=True)
    logger.debug("Transformed %d citation marker(s) (citations_length=%d).", count, citations_length)
    return transformed, count


def transform_citations(text: str, citations_length: Optional[int] = 0) -> str:
    """
    Replace ``[n]`` with ``[#citation-n](citation-n)`` for ``1 <= n <= citations_length``.

    Markers inside code or math, and out-of-range markers, stay as they are.
    Without a positive ``citations_length`` the text is returned unscanned.
    """
    transformed, _ = transform_citations_with_count(text, citations_length)
    return transformed
