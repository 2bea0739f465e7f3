"""
latex.py
LaTeX-aware rewriting for chat markdown: delimiter normalization, mhchem
escaping, currency dollar escaping, table pipe escaping, and detection of a
dangling (still streaming) display formula.
"""

import logging
import re
from typing import Callable, List, Tuple

from latex2mathml import exceptions as latex2mathml_exceptions
from latex2mathml.converter import convert as latex2mathml_convert

from scanner import (
    MATH_BRACKET,
    MATH_PAREN,
    iter_segments,
    rewrite_math,
    rewrite_unprotected,
    scan_protected_ranges,
)

logger = logging.getLogger(__name__)

DISPLAY_DELIMITER = "$$"

_RE_MHCHEM_COMMAND = re.compile(r"(?<!\\)\\(?:ce|pu)\{")
_RE_CURRENCY_DOLLAR = re.compile(r"(?<![\\$])\$(?=\d)")
_RE_UNESCAPED_PIPE = re.compile(r"(?<!\\)\|")
_RE_TABLE_ROW_START = re.compile(r"\s*\|")

# Replacement delimiters for the bracket-style math spans found by the scanner.
_DOLLAR_DELIMITERS = {MATH_PAREN: "$", MATH_BRACKET: "$$"}

# latex2mathml errors share no base class, and a trailing \left surfaces as
# StopIteration from its token walker.
_RENDER_ERRORS = tuple(
    error
    for error in vars(latex2mathml_exceptions).values()
    if isinstance(error, type) and issubclass(error, Exception)
) + (StopIteration, RecursionError)


def convert_latex_delimiters_with_count(text: str) -> Tuple[str, int]:
    if not text:
        return text, 0
    ranges = scan_protected_ranges(text, include_brackets=True)
    parts: List[str] = []
    converted = 0
    for start, end, protected in iter_segments(text, ranges):
        segment = text[start:end]
        if protected is not None and protected.kind in _DOLLAR_DELIMITERS:
            dollars = _DOLLAR_DELIMITERS[protected.kind]
            segment = f"{dollars}{segment[2:-2]}{dollars}"
            converted += 1
        parts.append(segment)
    return "".join(parts), converted


def convert_latex_delimiters(text: str) -> str:
    """
    Rewrite ``\\[...\\]`` to ``$$...$$`` and ``\\(...\\)`` to ``$...$``.

    ``\\(`` must close on the same line, ``\\[`` may span lines. Spans inside
    code or existing ``$``/``$$`` math are left verbatim, as is a doubled
    backslash such as the ``\\\\[2pt]`` line break. The formula body is never
    touched.
    """
    converted, _ = convert_latex_delimiters_with_count(text)
    return converted


def escape_mhchem_commands_with_count(text: str) -> Tuple[str, int]:
    return rewrite_math(
        text,
        lambda body: _RE_MHCHEM_COMMAND.subn(lambda m: "\\" + m.group(0), body),
        include_brackets=True,
    )


def escape_mhchem_commands(text: str) -> str:
    """Double the backslash of ``\\ce{`` and ``\\pu{`` inside math spans."""
    escaped, _ = escape_mhchem_commands_with_count(text)
    return escaped


def escape_currency_dollars_with_count(text: str) -> Tuple[str, int]:
    return rewrite_unprotected(
        text,
        lambda segment: _RE_CURRENCY_DOLLAR.subn(r"\\$", segment),
        include_brackets=True,
    )


def escape_currency_dollars(text: str) -> str:
    """Escape ``$`` directly followed by a digit outside code and math (``$100`` → ``\\$100``)."""
    escaped, _ = escape_currency_dollars_with_count(text)
    return escaped


def _table_row_filter() -> Callable[[str, int], bool]:
    """
    Build a ``line_filter`` telling whether a math range sits on a GFM table
    row. Ranges arrive in order, so each line is located and tested once.
    """
    searched_to = 0
    line_start = 0
    on_row = None

    def _on_table_row(text: str, index: int) -> bool:
        nonlocal searched_to, line_start, on_row
        newline = text.rfind("\n", searched_to, index)
        searched_to = index
        if newline != -1 or on_row is None:
            line_start = newline + 1 if newline != -1 else line_start
            on_row = _RE_TABLE_ROW_START.match(text, line_start) is not None
        return on_row

    return _on_table_row


def escape_latex_pipes_with_count(text: str) -> Tuple[str, int]:
    if not text or "|" not in text:
        return text, 0
    return rewrite_math(
        text,
        lambda body: _RE_UNESCAPED_PIPE.subn(r"\\|", body),
        line_filter=_table_row_filter(),
        include_brackets=True,
    )


def escape_latex_pipes(text: str) -> str:
    """
    Escape ``|`` inside math that sits on a GFM table row, so the pipe is not
    read as a cell separator. Math elsewhere is unchanged.
    """
    escaped, _ = escape_latex_pipes_with_count(text)
    return escaped


def preprocess_latex(text: str) -> str:
    """
    Run every LaTeX rewrite. Delimiters are converted last: ``\\(2x\\)`` is
    math to the scanner, while ``$2x$`` reads as a currency amount.
    """
    if not text:
        return ""
    text = escape_mhchem_commands(text)
    text = escape_currency_dollars(text)
    text = escape_latex_pipes(text)
    return convert_latex_delimiters(text)


def extract_incomplete_formula(text: str) -> str:
    """
    Return the dangling display formula of streaming content, or "" if every
    ``$$`` is paired.

    With an odd number of ``$$`` the formula runs from just after the first
    ``$$`` to the end of the content:

        "$$complete$$ $$incomplete" → "complete$$ $$incomplete"
        "$$incomplete"              → "incomplete"
        "$$"                        → ""
    """
    if not text:
        return ""
    if text.count(DISPLAY_DELIMITER) % 2 == 0:
        return ""
    first = text.find(DISPLAY_DELIMITER)
    return text[first + len(DISPLAY_DELIMITER):]


def is_last_formula_renderable(text: str) -> bool:
    formula = extract_incomplete_formula(text)
    if not formula:
        return True
    try:
        latex2mathml_convert(formula)
    except _RENDER_ERRORS as exc:
        logger.debug("Trailing formula is not renderable yet: %s", exc)
        return False
    return True
