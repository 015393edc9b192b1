"""Watch mode: rerun the corpus stats when a corpus file changes.

Each rerun is compared with the previous one so a renderer author sees which
examples started or stopped passing, not just the new totals.
"""

from __future__ import annotations

import time
from collections.abc import AsyncIterator, Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from mdconform.compare import CompareLevel
from mdconform.stats import SectionScores

_PASSING = frozenset({CompareLevel.STRICT, CompareLevel.LOOSE})


@dataclass(frozen=True, slots=True)
class WatchEvent:
    """A batch of relevant file changes."""

    changed_paths: frozenset[Path]
    timestamp: float


@dataclass(frozen=True, slots=True)
class ScoreChange:
    """One example whose pass/fail state flipped between two runs."""

    corpus: str
    section: str
    example: int
    before: CompareLevel | None
    after: CompareLevel

    @property
    def improved(self) -> bool:
        return self.after in _PASSING

    def __str__(self) -> str:
        before = self.before.value if self.before is not None else "new"
        return f"{self.corpus} {self.section} #{self.example}: {before} -> {self.after.value}"


@dataclass(frozen=True, slots=True)
class WatchCycleResult:
    """Result of a single stats rerun."""

    exit_code: int
    duration_s: float
    changed_paths: frozenset[Path]
    changes: tuple[ScoreChange, ...] = ()

    @property
    def improved(self) -> tuple[ScoreChange, ...]:
        return tuple(c for c in self.changes if c.improved)

    @property
    def regressed(self) -> tuple[ScoreChange, ...]:
        return tuple(c for c in self.changes if not c.improved)


def check_watchfiles_available() -> None:
    """Raise ImportError with a helpful message if watchfiles is not installed."""
    import importlib

    try:
        importlib.import_module("watchfiles")
    except ImportError:
        raise ImportError(
            "watchfiles is required for watch mode. Install it with: pip install mdconform[watch]"
        ) from None


def filter_corpus_files(changed_paths: frozenset[Path], *, corpus_dir: Path) -> frozenset[Path]:
    """Keep only `*_tests.json` files directly inside `corpus_dir`."""
    return frozenset(
        p for p in changed_paths if p.parent == corpus_dir and p.name.endswith("_tests.json")
    )


def diff_scores(
    previous: Mapping[str, SectionScores], current: Mapping[str, SectionScores]
) -> tuple[ScoreChange, ...]:
    """List examples that crossed the pass line between `previous` and `current`.

    Moving between STRICT and LOOSE, or between FAIL and ERROR, is not a
    change. An example absent from `previous` counts only if it now passes.
    Examples removed from the corpus are not reported.
    """
    out: list[ScoreChange] = []
    for corpus, sections in sorted(current.items()):
        old_sections = previous.get(corpus, {})
        for section, units in sorted(sections.items(), key=lambda kv: kv[0].lower()):
            old_units = old_sections.get(section, {})
            for example, after in sorted(units.items()):
                before = old_units.get(example)
                was_passing = before in _PASSING
                if was_passing == (after in _PASSING):
                    continue
                out.append(ScoreChange(corpus, section, example, before, after))
    return tuple(out)


def format_cycle_changes(result: WatchCycleResult) -> list[str]:
    """Human-readable lines describing a cycle's pass/fail flips."""
    lines: list[str] = []
    if result.changes:
        lines.append(
            f"[watch] {len(result.improved)} newly passing, {len(result.regressed)} regressed"
        )
    lines.extend(f"[watch]   regressed {c}" for c in result.regressed)
    lines.extend(f"[watch]   fixed {c}" for c in result.improved)
    return lines


async def run_watch_loop(
    *,
    changes_iter: AsyncIterator[set[tuple[Any, str]]],
    run_cycle: Callable[[WatchEvent], WatchCycleResult],
    on_event: Callable[[str], None],
    on_cycle_result: Callable[[WatchCycleResult], None],
    on_error: Callable[[BaseException], None],
    corpus_dir: Path,
) -> None:
    """Main watch loop. Consumes changes_iter, filters, and calls run_cycle."""
    async for raw_changes in changes_iter:
        paths = frozenset(Path(p) for _, p in raw_changes)
        relevant = filter_corpus_files(paths, corpus_dir=corpus_dir)
        if not relevant:
            continue

        event = WatchEvent(changed_paths=relevant, timestamp=time.monotonic())

        names = ", ".join(p.name for p in sorted(relevant))
        on_event(f"[watch] corpus changed: {names}")

        try:
            result = run_cycle(event)
        except Exception as exc:
            on_error(exc)
            continue

        on_event(f"[watch] done ({result.duration_s:.1f}s)")
        for line in format_cycle_changes(result):
            on_event(line)
        on_cycle_result(result)


def format_watch_cycle_json(result: WatchCycleResult) -> dict[str, object]:
    """Format a cycle result as a JSON-serializable dict."""
    return {
        "command": "watch",
        "ok": result.exit_code == 0,
        "exit_code": result.exit_code,
        "duration_s": round(result.duration_s, 2),
        "changed_paths": sorted(str(p) for p in result.changed_paths),
        "improved": [str(c) for c in result.improved],
        "regressed": [str(c) for c in result.regressed],
    }


def build_cycle_runner(args: Any) -> Callable[[WatchEvent], WatchCycleResult]:
    """Create a cycle runner that calls run_stats() and diffs against the last run.

    The first call establishes the baseline and reports no changes. A run that
    produced no scores (config or corpus error) leaves the baseline untouched.
    """
    from mdconform.cli import run_stats

    baseline: dict[str, SectionScores] | None = None

    def runner(event: WatchEvent) -> WatchCycleResult:
        nonlocal baseline
        t0 = time.monotonic()
        rc, scores = run_stats(args)
        changes: tuple[ScoreChange, ...] = ()
        if scores:
            if baseline is not None:
                changes = diff_scores(baseline, scores)
            baseline = {**(baseline or {}), **scores}
        return WatchCycleResult(
            exit_code=rc,
            duration_s=time.monotonic() - t0,
            changed_paths=event.changed_paths,
            changes=changes,
        )

    return runner


def make_watchfiles_iter(watch_paths: list[Path]) -> AsyncIterator[set[tuple[Any, str]]]:
    """Create an async iterator using watchfiles.awatch()."""
    import watchfiles  # type: ignore[import-untyped]

    return watchfiles.awatch(*watch_paths, debounce=200)
