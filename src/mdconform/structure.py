"""Structural (DOM-tree) equality between two HTML fragments.

Only tree shape, tag names and attributes are compared. Text content
(`.text`/`.tail` in ElementTree terms) and comments are ignored, which is
what lets renderers differ in insignificant whitespace and still match
loosely.
"""

from __future__ import annotations

from collections.abc import Sequence
from xml.etree.ElementTree import Element

import html5lib


def _elements(nodes: Sequence[Element] | Element) -> list[Element]:
    # Comments carry the ElementTree.Comment factory as their tag.
    return [n for n in nodes if isinstance(n.tag, str)]


def parse_fragment(html: str) -> list[Element]:
    """Parse `html` as a body fragment and return its top-level elements."""
    fragment = html5lib.parseFragment(html, treebuilder="etree", namespaceHTMLElements=False)
    return _elements(fragment)


def structurally_equal(expected: Sequence[Element], actual: Sequence[Element]) -> bool:
    """Compare two element sequences for loose equivalence.

    Child order matters; attribute order does not.
    """
    if len(expected) != len(actual):
        return False

    for exp, act in zip(expected, actual):
        if exp.tag != act.tag:
            return False

        if dict(exp.attrib) != dict(act.attrib):
            return False

        if not structurally_equal(_elements(exp), _elements(act)):
            return False

    return True
