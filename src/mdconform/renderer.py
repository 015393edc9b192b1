"""Default renderer under test, built on markdown-it-py.

Any callable matching `Renderer` can be passed to the comparison engine
instead; this module only provides the stock CommonMark pipeline and a
`module:attr` loader for third-party renderers.
"""

from __future__ import annotations

import functools
import importlib
import re
from typing import Any, Protocol

from markdown_it import MarkdownIt

from mdconform.errors import ConfigError
from mdconform.extensions import RendererConfig

# GFM disallowed raw HTML tags.
_TAGFILTER_RE = re.compile(
    r"<(?=/?(?:title|textarea|style|xmp|iframe|noembed|noframes|script|plaintext)(?:[\s/>]|$))",
    re.IGNORECASE,
)


class Renderer(Protocol):
    def __call__(self, markdown: str, config: RendererConfig) -> str: ...


def filter_tags(html: str) -> str:
    """Escape the opening `<` of tags the GFM tagfilter disallows."""
    return _TAGFILTER_RE.sub("&lt;", html)


def _render_filtered(self: Any, tokens: Any, idx: int, options: Any, env: Any) -> str:
    return filter_tags(tokens[idx].content)


@functools.lru_cache(maxsize=32)
def _parser(config: RendererConfig) -> MarkdownIt:
    rules = [*config.inline_syntaxes, *config.block_syntaxes]
    options = {"linkify": True} if "linkify" in rules else None
    md = MarkdownIt("commonmark", options)
    if rules:
        md.enable(rules)
    if config.tagfilter:
        md.add_render_rule("html_block", _render_filtered)
        md.add_render_rule("html_inline", _render_filtered)
    return md


def render_markdown(markdown: str, config: RendererConfig) -> str:
    return _parser(config).render(markdown)


def load_renderer(spec: str | None) -> Renderer:
    """Resolve a `module:attr` reference to a renderer callable.

    `None` selects the default markdown-it renderer.
    """

    if not spec:
        return render_markdown
    module_name, sep, attr = spec.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigError(f"Invalid renderer reference {spec!r} (expected MODULE:ATTR).")
    try:
        module = importlib.import_module(module_name)
    except Exception as e:  # noqa: BLE001 - any import-time fault is a bad reference
        raise ConfigError(
            f"Failed importing renderer module {module_name!r}: {type(e).__name__}: {e}"
        ) from e
    fn = getattr(module, attr, None)
    if not callable(fn):
        raise ConfigError(f"Renderer {spec!r} is not callable.")
    return fn
