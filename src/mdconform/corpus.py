"""Conformance corpus model and loading.

A corpus is a JSON array of example records stored as
`<corpus_dir>/<prefix>_tests.json`. Loading groups the records by section,
keeping file order within each section.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

from mdconform.errors import ConfigError, CorpusLoadError

logger = logging.getLogger("mdconform.corpus")


@dataclass(frozen=True)
class Config:
    """A named corpus: file-name stem plus the spec URL used in diagnostics."""

    prefix: str
    base_url: str


COMMON_MARK_CONFIG = Config("common_mark", "http://spec.commonmark.org/0.28/")
GFM_CONFIG = Config("gfm", "https://github.github.com/gfm/")

CORPORA: Mapping[str, Config] = MappingProxyType(
    {c.prefix: c for c in (COMMON_MARK_CONFIG, GFM_CONFIG)}
)


def with_corpora(
    extra: Mapping[str, Config], *, base: Mapping[str, Config] = CORPORA
) -> Mapping[str, Config]:
    """Return a new read-only registry holding `base` plus `extra`."""

    merged = dict(base)
    for name, cfg in extra.items():
        if name in merged:
            raise ConfigError(f"Corpus {name!r} is already registered.")
        merged[name] = cfg
    return MappingProxyType(merged)


@dataclass(frozen=True)
class TestCase:
    """One conformance example."""

    __test__ = False  # not a pytest class

    example: int
    section: str
    start_line: int
    end_line: int
    markdown: str
    html: str = ""
    extensions: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> TestCase:
        example = _required(data, "example", int)
        section = _required(data, "section", str)
        markdown = _required(data, "markdown", str)
        start_line = _optional(data, "start_line", int, 0)
        end_line = _optional(data, "end_line", int, 0)
        html = _optional(data, "html", str, "")

        raw_ext = data.get("extensions")
        if raw_ext is None:
            extensions: frozenset[str] = frozenset()
        elif isinstance(raw_ext, list) and all(isinstance(x, str) for x in raw_ext):
            extensions = frozenset(raw_ext)
        else:
            raise CorpusLoadError(
                f"Example {example}: expected `extensions` to be a list of strings."
            )

        return cls(
            example=example,
            section=section,
            start_line=start_line,
            end_line=end_line,
            markdown=markdown,
            html=html,
            extensions=extensions,
        )

    def __str__(self) -> str:
        return f"{self.section} - {self.example}"


def _check_type(value: Any, key: str, typ: type) -> Any:
    # bool is an int subclass; corpus ids and line numbers never are.
    if not isinstance(value, typ) or (typ is int and isinstance(value, bool)):
        raise CorpusLoadError(f"Expected `{key}` to be of type {typ.__name__}, got {value!r}.")
    return value


def _required(data: Mapping[str, Any], key: str, typ: type) -> Any:
    if data.get(key) is None:
        raise CorpusLoadError(f"Record is missing required field `{key}`.")
    return _check_type(data[key], key, typ)


def _optional(data: Mapping[str, Any], key: str, typ: type, default: Any) -> Any:
    value = data.get(key)
    if value is None:
        return default
    return _check_type(value, key, typ)


def corpus_path(prefix: str, corpus_dir: Path) -> Path:
    return Path(corpus_dir) / f"{prefix}_tests.json"


def stats_path(prefix: str, corpus_dir: Path, suffix: str = ".json") -> Path:
    return Path(corpus_dir) / f"{prefix}_stats{suffix}"


def load_sections(prefix: str, corpus_dir: Path) -> dict[str, list[TestCase]]:
    """Load `<prefix>_tests.json` from `corpus_dir`, grouped by section.

    Raises CorpusLoadError for unreadable files, invalid JSON, or invalid
    records (including duplicate example ids).
    """

    path = corpus_path(prefix, corpus_dir)
    try:
        raw = path.read_bytes()
    except FileNotFoundError as e:
        raise CorpusLoadError(f"Missing corpus file: {path}") from e
    except OSError as e:
        raise CorpusLoadError(f"Failed reading corpus file: {path}") from e

    try:
        records = json.loads(raw.decode("utf-8"))
    except UnicodeDecodeError as e:
        raise CorpusLoadError(f"Corpus is not valid UTF-8: {path}") from e
    except json.JSONDecodeError as e:
        raise CorpusLoadError(f"Invalid JSON in {path}: {e}") from e

    if not isinstance(records, list):
        raise CorpusLoadError(f"Expected a JSON array at the top level of {path}.")

    sections: dict[str, list[TestCase]] = {}
    seen: set[int] = set()
    for i, record in enumerate(records):
        if not isinstance(record, dict):
            raise CorpusLoadError(f"{path}: record #{i} is not an object.")
        try:
            case = TestCase.from_json(record)
        except CorpusLoadError as e:
            raise CorpusLoadError(f"{path}: record #{i}: {e}") from e
        if case.example in seen:
            raise CorpusLoadError(f"{path}: duplicate example id {case.example}.")
        seen.add(case.example)
        sections.setdefault(case.section, []).append(case)

    logger.debug("Loaded %d examples in %d sections from %s", len(seen), len(sections), path)
    return sections
