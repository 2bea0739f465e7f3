"""
pipeline.py
Composes the preprocessing stages for chat markdown according to a
MarkdownOptions record, with optional memoization in a BoundedCache.
"""

import logging
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from cache import BoundedCache
from citations import transform_citations_with_count
from latex import (
    convert_latex_delimiters_with_count,
    escape_currency_dollars_with_count,
    escape_latex_pipes_with_count,
    escape_mhchem_commands_with_count,
)
from markdown_fixes import fix_markdown_bold_with_count
from models import MarkdownOptions
from utils import content_cache_key

logger = logging.getLogger(__name__)

OptionsLike = Union[MarkdownOptions, Mapping[str, Any], None]


def coerce_options(options: OptionsLike) -> MarkdownOptions:
    if options is None:
        return MarkdownOptions()
    if isinstance(options, MarkdownOptions):
        return options
    return MarkdownOptions.model_validate(dict(options))


class MarkdownPreprocessor:
    """
    Configurable preprocessing pipeline.

    Usage:
        pp = MarkdownPreprocessor(enable_latex=True, enable_custom_footnotes=True, citations_length=2)
        pp(r"Energy \\(E=mc^2\\) costs $5 [1]")
        # → "Energy $E=mc^2$ costs \\$5 [#citation-1](citation-1)"

    Stages run in a fixed order: the LaTeX escapes (mhchem, currency dollars,
    table pipes), citations, LaTeX delimiter conversion, then the bold fix.
    Every pass before the conversion sees \\(...\\) and \\[...\\] as math. A
    disabled stage leaves the content untouched.
    """

    def __init__(
        self,
        options: OptionsLike = None,
        cache: Optional[BoundedCache] = None,
        **option_fields: Any,
    ):
        base = coerce_options(options).model_dump()
        base.update(option_fields)
        self.options = MarkdownOptions.model_validate(base)
        self.cache = cache

    @property
    def config(self) -> Dict[str, Any]:
        return self.options.model_dump()

    def __call__(self, content: Optional[str], cache_key: Optional[str] = None) -> str:
        return self.process(content, cache_key=cache_key)

    def process(self, content: Optional[str], cache_key: Optional[str] = None) -> str:
        processed, _ = self.process_with_metadata(content, cache_key=cache_key)
        return processed

    def _cache_key(self, text: str, cache_key: Optional[str]) -> str:
        """
        Key over content and options. A caller key such as a message id only
        namespaces the entry, so a growing streamed message never reuses the
        output of an earlier chunk.
        """
        key_material = self.config
        if cache_key:
            key_material = {**key_material, "cache_key": cache_key}
        return content_cache_key(text, key_material)

    def process_with_metadata(
        self, content: Optional[str], cache_key: Optional[str] = None
    ) -> Tuple[str, Dict[str, Any]]:
        text = content or ""
        metadata: Dict[str, Any] = {
            "input_length": len(text),
            "output_length": 0,
            "cache_hit": False,
            "delimiters_converted": 0,
            "mhchem_escaped": 0,
            "dollars_escaped": 0,
            "pipes_escaped": 0,
            "citations_transformed": 0,
            "bold_fixed": 0,
        }
        if not text:
            return "", metadata

        key = None
        if self.cache is not None:
            key = self._cache_key(text, cache_key)
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("Cache hit for key '%s' (caller key %r).", key, cache_key)
                metadata["cache_hit"] = True
                metadata["output_length"] = len(cached)
                return cached, metadata

        opts = self.options

        if opts.enable_latex:
            text, metadata["mhchem_escaped"] = escape_mhchem_commands_with_count(text)
            text, metadata["dollars_escaped"] = escape_currency_dollars_with_count(text)
            text, metadata["pipes_escaped"] = escape_latex_pipes_with_count(text)
        if opts.enable_custom_footnotes:
            text, metadata["citations_transformed"] = transform_citations_with_count(
                text, opts.citations_length
            )
        # $2x$ no longer scans as math, so \(2x\) is converted after the scanning passes
        if opts.enable_latex:
            text, metadata["delimiters_converted"] = convert_latex_delimiters_with_count(text)
        if opts.fix_markdown_bold:
            text, metadata["bold_fixed"] = fix_markdown_bold_with_count(text)

        if key is not None:
            self.cache.add(key, text)

        metadata["output_length"] = len(text)
        return text, metadata


def preprocess_content(
    content: Optional[str],
    options: OptionsLike = None,
    *,
    cache: Optional[BoundedCache] = None,
    cache_key: Optional[str] = None,
) -> str:
    """
    Run the stages enabled in ``options`` over ``content``.

    ``preprocess_content(x)`` returns ``x`` unchanged; empty content always
    yields "". When ``cache`` is given, output is memoized under ``cache_key``
    (or a key derived from the content and options).
    """
    preprocessor = MarkdownPreprocessor(options, cache=cache)
    return preprocessor.process(content, cache_key=cache_key)
