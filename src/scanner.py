# File: scanner.py
# Single-pass scanner that finds the spans of markdown content that must not be
# rewritten: fenced code, inline code, and already-delimited math.

import logging
import re
from bisect import bisect_left
from typing import Callable, Dict, Iterator, List, NamedTuple, Optional, Tuple

logger = logging.getLogger(__name__)

FENCE = "fence"
INLINE_CODE = "inline_code"
MATH_INLINE = "math_inline"
MATH_DISPLAY = "math_display"
MATH_PAREN = "math_paren"
MATH_BRACKET = "math_bracket"

MATH_KINDS = frozenset({MATH_INLINE, MATH_DISPLAY, MATH_PAREN, MATH_BRACKET})

# Scanner states
_PLAIN = "plain"
_IN_FENCE = "in_fence"
_IN_INLINE_CODE = "in_inline_code"
_IN_MATH_SINGLE = "in_math_single"
_IN_MATH_DOUBLE = "in_math_double"

_RE_FENCE_OPENER = re.compile(r"[ ]{0,3}(`{3,}|~{3,})([^\n]*)")
_RE_BACKTICK_RUN = re.compile(r"`+")


class ProtectedRange(NamedTuple):
    """Half-open ``[start, end)`` span of content that rewriting must skip."""

    start: int
    end: int
    kind: str

    @property
    def is_math(self) -> bool:
        return self.kind in MATH_KINDS


class _BacktickRuns:
    """Start offsets of every maximal backtick run, grouped by run length."""

    def __init__(self, text: str):
        self._starts: Dict[int, List[int]] = {}
        for match in _RE_BACKTICK_RUN.finditer(text):
            self._starts.setdefault(match.end() - match.start(), []).append(match.start())

    def find(self, run_length: int, start: int, stop: int) -> int:
        starts = self._starts.get(run_length, [])
        i = bisect_left(starts, start)
        if i < len(starts) and starts[i] < stop:
            return starts[i]
        return -1


def _line_end(text: str, pos: int) -> int:
    end = text.find("\n", pos)
    return len(text) if end == -1 else end


def _run_length(text: str, pos: int, char: str) -> int:
    end = pos
    while end < len(text) and text[end] == char:
        end += 1
    return end - pos


def _match_fence_opener(text: str, pos: int) -> Optional[str]:
    match = _RE_FENCE_OPENER.match(text, pos)
    if match is None:
        return None
    marker, info = match.group(1), match.group(2)
    # A backtick fence cannot carry backticks in its info string; "```x```" is inline code.
    if marker[0] == "`" and "`" in info:
        return None
    return marker


def _is_fence_closer(text: str, pos: int, marker: str) -> bool:
    line = text[pos:_line_end(text, pos)]
    stripped = line.lstrip(" ")
    if len(line) - len(stripped) > 3:
        return False
    stripped = stripped.rstrip(" \t")
    if len(stripped) < len(marker):
        return False
    return stripped == marker[0] * len(stripped)


def _can_open_inline_math(text: str, pos: int) -> bool:
    if pos + 1 >= len(text):
        return False
    nxt = text[pos + 1]
    return not (nxt.isspace() or nxt.isdigit() or nxt == "$")


def scan_protected_ranges(
    text: str, include_math: bool = True, include_brackets: bool = False
) -> List[ProtectedRange]:
    """
    Walk ``text`` once and return the ordered, non-overlapping protected ranges.

    Unclosed inline code and unclosed math openers are rolled back to literal
    text and scanning resumes right after the opener. An unclosed fence
    protects everything up to the end of the content.

    With ``include_brackets`` the ``\\(...\\)`` (single line) and ``\\[...\\]``
    spans are reported as math too, bounded the same way the delimiter
    converter matches them.

    Running time is linear in ``len(text)`` apart from a log factor for
    backtick lookups: once an opener fails, later openers of the same kind
    before the point where it failed are known to fail as well and are taken
    as literal text without another scan.
    """
    ranges: List[ProtectedRange] = []
    if not text:
        return ranges

    length = len(text)
    brackets = include_math and include_brackets
    backtick_runs = _BacktickRuns(text) if "`" in text else None
    state = _PLAIN
    pos = 0
    open_pos = 0
    marker = ""
    code_stop = 0

    # plain-state positions only move forward, so one cached line end serves a whole line
    line_end = -1
    # openers before these offsets have no closer
    single_dead_until = -1
    paren_dead_until = -1
    display_dead = False
    bracket_dead = False

    while True:
        if pos >= length:
            if state == _IN_FENCE:
                ranges.append(ProtectedRange(open_pos, length, FENCE))
                break
            if state == _PLAIN:
                break
            if state == _IN_MATH_SINGLE:
                single_dead_until = length
            elif state == _IN_MATH_DOUBLE:
                display_dead = True
            state, pos = _PLAIN, open_pos + len(marker)
            continue

        ch = text[pos]

        if state == _PLAIN:
            if pos > line_end:
                line_end = _line_end(text, pos)
            if pos == 0 or text[pos - 1] == "\n":
                fence = _match_fence_opener(text, pos)
                if fence:
                    state, open_pos, marker = _IN_FENCE, pos, fence
                    pos = line_end
                    continue
            if ch == "\\":
                nxt = text[pos + 1:pos + 2]
                if brackets and nxt == "(" and pos >= paren_dead_until:
                    close = text.find("\\)", pos + 2, line_end)
                    if close == -1:
                        paren_dead_until = line_end
                        pos += 2
                    else:
                        ranges.append(ProtectedRange(pos, close + 2, MATH_PAREN))
                        pos = close + 2
                elif brackets and nxt == "[" and not bracket_dead:
                    close = text.find("\\]", pos + 2)
                    if close == -1:
                        bracket_dead = True
                        pos += 2
                    else:
                        ranges.append(ProtectedRange(pos, close + 2, MATH_BRACKET))
                        pos = close + 2
                else:
                    pos += 2
            elif ch == "`":
                marker = "`" * _run_length(text, pos, "`")
                state, open_pos, code_stop = _IN_INLINE_CODE, pos, line_end
                pos += len(marker)
            elif ch == "$" and include_math and text.startswith("$$", pos):
                if display_dead:
                    pos += 2
                else:
                    state, open_pos, marker = _IN_MATH_DOUBLE, pos, "$$"
                    pos += 2
            elif (
                ch == "$"
                and include_math
                and pos >= single_dead_until
                and _can_open_inline_math(text, pos)
            ):
                state, open_pos, marker = _IN_MATH_SINGLE, pos, "$"
                pos += 1
            else:
                pos += 1

        elif state == _IN_FENCE:
            # pos sits on the newline ending a line inside the fence
            line_start = pos + 1
            if line_start < length and _is_fence_closer(text, line_start, marker):
                end = _line_end(text, line_start)
                ranges.append(ProtectedRange(open_pos, end, FENCE))
                state, pos = _PLAIN, end
            else:
                pos = _line_end(text, line_start) if line_start < length else length

        elif state == _IN_INLINE_CODE:
            run_length = len(marker)
            close = backtick_runs.find(run_length, pos, code_stop)
            if close == -1:
                pos = open_pos + run_length
            else:
                ranges.append(ProtectedRange(open_pos, close + run_length, INLINE_CODE))
                pos = close + run_length
            state = _PLAIN

        elif state == _IN_MATH_SINGLE:
            if ch == "\n":
                single_dead_until = pos
                state, pos = _PLAIN, open_pos + 1
            elif ch == "\\":
                pos += 1 if text.startswith("\n", pos + 1) else 2
            elif ch == "$" and not text[pos - 1].isspace():
                ranges.append(ProtectedRange(open_pos, pos + 1, MATH_INLINE))
                state = _PLAIN
                pos += 1
            else:
                pos += 1

        else:  # _IN_MATH_DOUBLE
            if ch == "\\":
                pos += 2
            elif text.startswith("$$", pos):
                ranges.append(ProtectedRange(open_pos, pos + 2, MATH_DISPLAY))
                state = _PLAIN
                pos += 2
            else:
                pos += 1

    logger.debug("Scanned %d chars, found %d protected range(s).", length, len(ranges))
    return ranges


def iter_segments(
    text: str, ranges: List[ProtectedRange]
) -> Iterator[Tuple[int, int, Optional[ProtectedRange]]]:
    """Yield ``(start, end, range_or_None)`` covering ``text`` end to end."""
    cursor = 0
    for protected in ranges:
        if protected.start > cursor:
            yield cursor, protected.start, None
        yield protected.start, protected.end, protected
        cursor = protected.end
    if cursor < len(text):
        yield cursor, len(text), None


def rewrite_unprotected(
    text: str,
    rewrite: Callable[[str], Tuple[str, int]],
    include_math: bool = True,
    include_brackets: bool = False,
) -> Tuple[str, int]:
    """
    Apply ``rewrite`` to every gap between protected ranges.
    Returns (new_text, total_count) where counts come from ``rewrite``.
    """
    if not text:
        return text, 0
    ranges = scan_protected_ranges(
        text, include_math=include_math, include_brackets=include_brackets
    )
    parts: List[str] = []
    total = 0
    for start, end, protected in iter_segments(text, ranges):
        segment = text[start:end]
        if protected is None:
            segment, count = rewrite(segment)
            total += count
        parts.append(segment)
    return "".join(parts), total


def _split_math_delimiters(segment: str, kind: str) -> Tuple[str, str, str]:
    width = 1 if kind == MATH_INLINE else 2
    return segment[:width], segment[width:-width], segment[-width:]


def rewrite_math(
    text: str,
    rewrite: Callable[[str], Tuple[str, int]],
    line_filter: Optional[Callable[[str, int], bool]] = None,
    include_brackets: bool = False,
) -> Tuple[str, int]:
    """
    Apply ``rewrite`` to the body of every math range, delimiters excluded.
    ``line_filter(text, start)`` can veto ranges by their position.
    """
    if not text:
        return text, 0
    ranges = scan_protected_ranges(text, include_brackets=include_brackets)
    parts: List[str] = []
    total = 0
    for start, end, protected in iter_segments(text, ranges):
        segment = text[start:end]
        if protected is not None and protected.is_math:
            if line_filter is None or line_filter(text, start):
                opener, body, closer = _split_math_delimiters(segment, protected.kind)
                body, count = rewrite(body)
                total += count
                segment = opener + body + closer
        parts.append(segment)
    return "".join(parts), total
