from __future__ import annotations

import sys
import time
from collections import Counter
from dataclasses import dataclass
from shutil import get_terminal_size
from typing import TextIO

from mdconform.compare import CompareLevel
from mdconform.corpus import TestCase

_PASSING = (CompareLevel.STRICT, CompareLevel.LOOSE)


@dataclass
class ProgressBar:
    """Single-line corpus progress: bar, running pass rate and current section."""

    label: str
    total: int
    enabled: bool = True
    stream: TextIO = sys.stderr
    width: int = 28
    min_interval_s: float = 0.08

    def __post_init__(self) -> None:
        self._levels: Counter[CompareLevel] = Counter()
        self._section = ""
        self._last_render = 0.0
        self._finished = False
        self._render(force=True)

    @property
    def done(self) -> int:
        return sum(self._levels.values())

    @property
    def passed(self) -> int:
        return sum(self._levels[level] for level in _PASSING)

    def advance(self, case: TestCase, *, level: CompareLevel) -> None:
        if self._finished:
            return
        self._levels[level] += 1
        # Section boundaries always repaint so the label never lags behind.
        changed = case.section != self._section
        self._section = case.section
        self._render(force=changed)

    def finish(self) -> None:
        if self._finished:
            return
        self._finished = True
        self._section = "done"
        self._render(force=True)
        self._write("\n")

    def _write(self, s: str) -> None:
        if not self.enabled:
            return
        try:
            self.stream.write(s)
            self.stream.flush()
        except Exception:
            # Progress is best-effort; never fail the run because of rendering.
            self.enabled = False

    def _line(self) -> str:
        total = max(0, self.total)
        done = min(self.done, total) if total else self.done
        fill = round(self.width * done / total) if total else self.width
        bar = "#" * fill + "-" * (self.width - fill)

        rate = f"{100 * self.passed / done:5.1f}%" if done else "  -  %"
        tally = " ".join(f"{level.value}={self._levels[level]}" for level in CompareLevel)
        msg = f"{self.label} [{bar}] {done}/{total} {rate} pass ({tally})"
        if self._section:
            msg += f"  {self._section}"
        return msg

    def _render(self, *, force: bool = False) -> None:
        if not self.enabled:
            return

        now = time.monotonic()
        if not force and (now - self._last_render) < self.min_interval_s:
            return
        self._last_render = now

        cols = get_terminal_size(fallback=(80, 20)).columns
        self._write("\r" + self._line()[: max(0, cols - 1)])
