"""Map corpus extension names onto renderer syntax rules."""

from __future__ import annotations

import enum
from collections.abc import Iterable
from dataclasses import dataclass

from mdconform.errors import UnsupportedExtensionError


class Extension(enum.Enum):
    AUTOLINK = "autolink"
    STRIKETHROUGH = "strikethrough"
    TABLE = "table"
    TAGFILTER = "tagfilter"

    @classmethod
    def parse(cls, name: str) -> Extension:
        try:
            return cls(name)
        except ValueError:
            raise UnsupportedExtensionError(name) from None


@dataclass(frozen=True)
class RendererConfig:
    """Syntax rules and flags handed to the renderer under test.

    Rule names are markdown-it rule names (see `mdconform.renderer`).
    """

    inline_syntaxes: tuple[str, ...] = ()
    block_syntaxes: tuple[str, ...] = ()
    tagfilter: bool = False


def resolve(names: Iterable[str]) -> RendererConfig:
    """Build a RendererConfig for the given extension names.

    Raises UnsupportedExtensionError on the first unknown name.
    """

    inline: list[str] = []
    block: list[str] = []
    tagfilter = False

    for name in sorted(set(names)):
        ext = Extension.parse(name)
        if ext is Extension.AUTOLINK:
            inline.append("linkify")
        elif ext is Extension.STRIKETHROUGH:
            inline.append("strikethrough")
        elif ext is Extension.TABLE:
            block.append("table")
        elif ext is Extension.TAGFILTER:
            tagfilter = True

    return RendererConfig(
        inline_syntaxes=tuple(inline),
        block_syntaxes=tuple(block),
        tagfilter=tagfilter,
    )
