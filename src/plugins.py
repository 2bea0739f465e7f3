# File: plugins.py
# Maps option flags to the ordered remark/rehype plugin lists requested from
# the external markdown renderer. Pure configuration, no content is touched.

import logging
from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Tuple, Union

from models import MarkdownOptions
from pipeline import OptionsLike, coerce_options

logger = logging.getLogger(__name__)

# A descriptor is a bare plugin name or a (name, config) pair.
PluginDescriptor = Union[str, Tuple[str, Dict[str, Any]]]

REMARK_GFM: PluginDescriptor = ("remark-gfm", {"singleTilde": False})

_REMARK_PLUGINS_BY_FLAG: List[Tuple[str, PluginDescriptor]] = [
    ("enable_custom_footnotes", "remark-custom-footnotes"),
    ("enable_latex", "remark-math"),
    ("is_chat_mode", "remark-breaks"),
]

_REHYPE_PLUGINS_BY_FLAG: List[Tuple[str, PluginDescriptor]] = [
    ("allow_html", "rehype-raw"),
    ("enable_latex", "rehype-katex"),
    ("enable_custom_footnotes", "rehype-footnote-links"),
    ("animated", "rehype-stream-animated"),
    (
        "is_chat_mode",
        ("rehype-external-links", {"target": "_blank", "rel": ["noopener", "noreferrer"]}),
    ),
]


class PluginLists(NamedTuple):
    remark_plugins_list: List[PluginDescriptor]
    rehype_plugins_list: List[PluginDescriptor]


def _select(options: MarkdownOptions, table: List[Tuple[str, PluginDescriptor]]) -> List[PluginDescriptor]:
    return [descriptor for flag, descriptor in table if getattr(options, flag)]


def create_plugins(
    options: OptionsLike = None,
    remark_plugins: Optional[Sequence[PluginDescriptor]] = None,
    rehype_plugins: Optional[Sequence[PluginDescriptor]] = None,
) -> PluginLists:
    """
    Assemble the plugin chains for ``options``. Caller-supplied plugins are
    appended after the built-in ones, in the order given.
    """
    opts = coerce_options(options)
    remark_list = [REMARK_GFM] + _select(opts, _REMARK_PLUGINS_BY_FLAG) + list(remark_plugins or [])
    rehype_list = _select(opts, _REHYPE_PLUGINS_BY_FLAG) + list(rehype_plugins or [])
    logger.debug(
        "Assembled %d remark and %d rehype plugin(s).", len(remark_list), len(rehype_list)
    )
    return PluginLists(remark_list, rehype_list)
