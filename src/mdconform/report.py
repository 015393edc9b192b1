"""Human-readable diagnostics for non-strict results."""

from __future__ import annotations

import sys
from typing import TextIO

from mdconform.corpus import TestCase

_YELLOW = "\033[33m"
_RESET = "\033[0m"

SEPARATOR = "-----------------------"


def whitespace_color(text: str, *, color: bool = False) -> str:
    """Make spaces and tabs visible."""
    space, tab = "·", "→"
    if color:
        space = f"{_YELLOW}{space}{_RESET}"
        tab = f"{_YELLOW}{tab}{_RESET}"
    return text.replace(" ", space).replace("\t", tab)


def indent(text: str, *, color: bool = False) -> str:
    return "\n".join(f"    {whitespace_color(line, color=color)}" for line in text.split("\n"))


def format_verbose_failure(
    base_url: str,
    label: str,
    test_case: TestCase,
    actual: str,
    *,
    color: bool = False,
) -> str:
    lines = [
        f"{label}: {base_url}#example-{test_case.example} @ {test_case.section}",
        "input:",
        indent(test_case.markdown, color=color),
        "expected:",
        indent(test_case.html, color=color),
        "actual:",
        indent(actual, color=color),
        SEPARATOR,
    ]
    return "\n".join(lines) + "\n"


def print_verbose_failure(
    base_url: str,
    label: str,
    test_case: TestCase,
    actual: str,
    *,
    stream: TextIO | None = None,
    color: bool = False,
) -> None:
    out = stream if stream is not None else sys.stdout
    out.write(format_verbose_failure(base_url, label, test_case, actual, color=color))
