"""Run a whole corpus and summarize the results per section."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO

from mdconform.compare import CompareLevel, compare_result
from mdconform.corpus import Config, TestCase, stats_path
from mdconform.errors import ConfigError
from mdconform.progress import ProgressBar
from mdconform.renderer import Renderer, render_markdown

logger = logging.getLogger("mdconform.stats")

SectionScores = dict[str, dict[int, CompareLevel]]


@dataclass(frozen=True, slots=True)
class Summary:
    strict: int
    loose: int
    fail: int
    error: int

    @property
    def total(self) -> int:
        return self.strict + self.loose + self.fail + self.error

    @property
    def passed(self) -> int:
        return self.strict + self.loose


def collect_scores(
    config: Config,
    sections: Mapping[str, Sequence[TestCase]],
    *,
    section: str | None = None,
    example: int | None = None,
    renderer: Renderer = render_markdown,
    extensions: Iterable[str] = frozenset(),
    throw_on_error: bool = False,
    verbose_fail: bool = False,
    verbose_loose_match: bool = False,
    stream: TextIO | None = None,
    color: bool = False,
    progress: ProgressBar | None = None,
) -> SectionScores:
    """Classify every selected example, keyed by section then example id."""

    if section is not None and section not in sections:
        raise ConfigError(f"Unknown section {section!r} in corpus {config.prefix!r}.")

    default_extensions = frozenset(extensions)
    scores: SectionScores = {}
    for name in sorted(sections, key=str.lower):
        if section is not None and name != section:
            continue
        units: dict[int, CompareLevel] = {}
        for case in sections[name]:
            if example is not None and case.example != example:
                continue
            result = compare_result(
                config,
                case,
                renderer=renderer,
                throw_on_error=throw_on_error,
                verbose_fail=verbose_fail,
                verbose_loose_match=verbose_loose_match,
                extensions=default_extensions,
                stream=stream,
                color=color,
            )
            units[case.example] = result.compare_level
            if progress is not None:
                progress.advance(case, level=result.compare_level)
        if units:
            scores[name] = dict(sorted(units.items()))

    if progress is not None:
        progress.finish()

    if not scores:
        if example is not None:
            raise ConfigError(f"No example {example} in corpus {config.prefix!r}.")
        logger.warning("%s: corpus has no examples", config.prefix)

    logger.debug("%s: scored %d sections", config.prefix, len(scores))
    return scores


def summarize(scores: SectionScores) -> Summary:
    counts = {level: 0 for level in CompareLevel}
    for units in scores.values():
        for level in units.values():
            counts[level] += 1
    return Summary(
        strict=counts[CompareLevel.STRICT],
        loose=counts[CompareLevel.LOOSE],
        fail=counts[CompareLevel.FAIL],
        error=counts[CompareLevel.ERROR],
    )


def raw_scores(scores: SectionScores) -> dict[str, dict[str, str]]:
    return {
        section: {str(example): level.value for example, level in units.items()}
        for section, units in scores.items()
    }


def format_raw(scores: SectionScores) -> str:
    return json.dumps(raw_scores(scores), indent=2) + "\n"


def _line(passed: int, total: int, label: str) -> str:
    pct = (100.0 * passed / total) if total else 0.0
    return f"{passed:4} of {total:4} – {pct:5.1f}%  {label}"


def format_friendly(scores: SectionScores) -> str:
    """Per-section pass rates, then overall and strict-only totals."""

    lines = []
    for section, units in scores.items():
        s = summarize({section: units})
        lines.append(_line(s.passed, s.total, section))

    total = summarize(scores)
    lines.append(_line(total.passed, total.total, "TOTAL"))
    lines.append(_line(total.strict, total.passed, "TOTAL Strict"))
    return "\n".join(lines) + "\n"


def write_stats_files(config: Config, scores: SectionScores, corpus_dir: Path) -> list[Path]:
    json_path = stats_path(config.prefix, corpus_dir, ".json")
    txt_path = stats_path(config.prefix, corpus_dir, ".txt")
    json_path.write_text(format_raw(scores), encoding="utf-8")
    txt_path.write_text(format_friendly(scores), encoding="utf-8")
    return [json_path, txt_path]
