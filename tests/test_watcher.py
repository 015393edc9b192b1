"""Tests for mdconform.watcher module."""

from __future__ import annotations

import asyncio
import json
import sys
import types
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

import pytest

import mdconform.cli
import mdconform.watcher
from mdconform.compare import CompareLevel
from mdconform.watcher import (
    ScoreChange,
    WatchCycleResult,
    WatchEvent,
    build_cycle_runner,
    diff_scores,
    filter_corpus_files,
    format_cycle_changes,
    format_watch_cycle_json,
    run_watch_loop,
)

CORPUS = Path("/project/tool")

# ---------------------------------------------------------------------------
# Optional dependency check
# ---------------------------------------------------------------------------


def test_check_watchfiles_available_raises_when_missing(monkeypatch) -> None:
    monkeypatch.setitem(sys.modules, "watchfiles", None)

    from mdconform.watcher import check_watchfiles_available

    with pytest.raises(ImportError, match="pip install mdconform\\[watch\\]"):
        check_watchfiles_available()


def test_check_watchfiles_available_succeeds_when_installed(monkeypatch) -> None:
    fake = types.ModuleType("watchfiles")
    monkeypatch.setitem(sys.modules, "watchfiles", fake)

    from mdconform.watcher import check_watchfiles_available

    check_watchfiles_available()  # no exception


def test_cmd_watch_reports_missing_watchfiles(monkeypatch, capsys) -> None:
    monkeypatch.setitem(sys.modules, "watchfiles", None)
    assert mdconform.cli.main(["watch"]) == mdconform.cli.EXIT_CONFIG_OR_CORPUS
    assert "pip install mdconform[watch]" in capsys.readouterr().err


# ---------------------------------------------------------------------------
# File filtering
# ---------------------------------------------------------------------------


def test_filter_keeps_corpus_files() -> None:
    changed = frozenset({CORPUS / "gfm_tests.json", CORPUS / "common_mark_tests.json"})
    assert filter_corpus_files(changed, corpus_dir=CORPUS) == changed


def test_filter_ignores_stats_files() -> None:
    changed = frozenset({CORPUS / "gfm_stats.json", CORPUS / "gfm_stats.txt"})
    assert filter_corpus_files(changed, corpus_dir=CORPUS) == frozenset()


def test_filter_ignores_nested_and_outside_files() -> None:
    changed = frozenset({CORPUS / "old" / "gfm_tests.json", Path("/other/gfm_tests.json")})
    assert filter_corpus_files(changed, corpus_dir=CORPUS) == frozenset()


# ---------------------------------------------------------------------------
# Watch loop orchestration
# ---------------------------------------------------------------------------


async def _fake_changes(
    batches: list[set[tuple[Any, str]]],
) -> AsyncIterator[set[tuple[Any, str]]]:
    for batch in batches:
        yield batch


def _ok(event: WatchEvent) -> WatchCycleResult:
    return WatchCycleResult(exit_code=0, duration_s=0.5, changed_paths=event.changed_paths)


def _run_loop(batches: list[set[tuple[Any, str]]], run_cycle, **callbacks) -> None:
    async def run() -> None:
        await run_watch_loop(
            changes_iter=_fake_changes(batches),
            run_cycle=run_cycle,
            on_event=callbacks.get("on_event", lambda msg: None),
            on_cycle_result=callbacks.get("on_cycle_result", lambda r: None),
            on_error=callbacks.get("on_error", lambda e: None),
            corpus_dir=CORPUS,
        )

    asyncio.run(run())


def test_watch_loop_calls_run_cycle_on_change() -> None:
    cycles: list[WatchEvent] = []

    def run_cycle(event: WatchEvent) -> WatchCycleResult:
        cycles.append(event)
        return _ok(event)

    _run_loop([{(1, "/project/tool/gfm_tests.json")}], run_cycle)
    assert len(cycles) == 1
    assert CORPUS / "gfm_tests.json" in cycles[0].changed_paths


def test_watch_loop_skips_irrelevant_changes() -> None:
    cycles: list[WatchEvent] = []

    def run_cycle(event: WatchEvent) -> WatchCycleResult:
        cycles.append(event)
        return _ok(event)

    _run_loop([{(1, "/project/tool/gfm_stats.json")}], run_cycle)
    assert cycles == []


def test_watch_loop_emits_messages() -> None:
    messages: list[str] = []
    results: list[WatchCycleResult] = []

    _run_loop(
        [{(2, "/project/tool/gfm_tests.json")}],
        _ok,
        on_event=messages.append,
        on_cycle_result=results.append,
    )
    assert any("corpus changed: gfm_tests.json" in m for m in messages)
    assert any("done (0.5s)" in m for m in messages)
    assert len(results) == 1


def test_watch_loop_continues_after_exception() -> None:
    errors: list[BaseException] = []
    calls = 0

    def run_cycle(event: WatchEvent) -> WatchCycleResult:
        nonlocal calls
        calls += 1
        if calls == 1:
            raise RuntimeError("boom")
        return _ok(event)

    _run_loop(
        [{(1, "/project/tool/gfm_tests.json")}, {(1, "/project/tool/common_mark_tests.json")}],
        run_cycle,
        on_error=errors.append,
    )
    assert calls == 2
    assert len(errors) == 1
    assert str(errors[0]) == "boom"


# ---------------------------------------------------------------------------
# Cycle runner and JSON formatting
# ---------------------------------------------------------------------------


def test_build_cycle_runner_calls_run_stats(monkeypatch) -> None:
    seen: list[object] = []

    def fake_run_stats(args: object) -> tuple[int, dict]:
        seen.append(args)
        return 4, {}

    monkeypatch.setattr(mdconform.cli, "run_stats", fake_run_stats)
    args = types.SimpleNamespace(flavor=["gfm"])
    runner = build_cycle_runner(args)

    event = WatchEvent(changed_paths=frozenset({CORPUS / "gfm_tests.json"}), timestamp=0.0)
    result = runner(event)

    assert seen == [args]
    assert result.exit_code == 4
    assert result.changed_paths == event.changed_paths
    assert result.duration_s >= 0


def test_format_watch_cycle_json() -> None:
    result = WatchCycleResult(
        exit_code=0,
        duration_s=1.23456,
        changed_paths=frozenset({CORPUS / "gfm_tests.json", CORPUS / "common_mark_tests.json"}),
    )
    assert format_watch_cycle_json(result) == {
        "command": "watch",
        "ok": True,
        "exit_code": 0,
        "duration_s": 1.23,
        "changed_paths": [
            "/project/tool/common_mark_tests.json",
            "/project/tool/gfm_tests.json",
        ],
        "improved": [],
        "regressed": [],
    }


def test_format_watch_cycle_json_not_ok() -> None:
    result = WatchCycleResult(exit_code=4, duration_s=0.1, changed_paths=frozenset())
    assert format_watch_cycle_json(result)["ok"] is False


# ---------------------------------------------------------------------------
# Score diffing between cycles
# ---------------------------------------------------------------------------

S, L, F, E = CompareLevel.STRICT, CompareLevel.LOOSE, CompareLevel.FAIL, CompareLevel.ERROR


def test_diff_scores_reports_pass_line_crossings() -> None:
    before = {"gfm": {"Tabs": {1: S, 2: F, 3: L, 4: F}}}
    after = {"gfm": {"Tabs": {1: F, 2: L, 3: S, 4: E}}}
    assert diff_scores(before, after) == (
        ScoreChange("gfm", "Tabs", 1, S, F),
        ScoreChange("gfm", "Tabs", 2, F, L),
    )


def test_diff_scores_new_examples_count_only_when_passing() -> None:
    after = {"gfm": {"Links": {7: S, 8: F}}}
    changes = diff_scores({}, after)
    assert changes == (ScoreChange("gfm", "Links", 7, None, S),)
    assert changes[0].improved
    assert str(changes[0]) == "gfm Links #7: new -> strict"


def test_diff_scores_ignores_removed_examples() -> None:
    assert diff_scores({"gfm": {"Tabs": {1: S}}}, {"gfm": {"Tabs": {}}}) == ()


def test_format_cycle_changes() -> None:
    result = WatchCycleResult(
        exit_code=0,
        duration_s=0.1,
        changed_paths=frozenset(),
        changes=(ScoreChange("gfm", "Tabs", 1, S, F), ScoreChange("gfm", "Tabs", 2, F, L)),
    )
    assert format_cycle_changes(result) == [
        "[watch] 1 newly passing, 1 regressed",
        "[watch]   regressed gfm Tabs #1: strict -> fail",
        "[watch]   fixed gfm Tabs #2: fail -> loose",
    ]
    assert format_watch_cycle_json(result)["regressed"] == ["gfm Tabs #1: strict -> fail"]
    assert format_watch_cycle_json(result)["improved"] == ["gfm Tabs #2: fail -> loose"]


def test_format_cycle_changes_empty() -> None:
    result = WatchCycleResult(exit_code=0, duration_s=0.1, changed_paths=frozenset())
    assert format_cycle_changes(result) == []


def test_watch_loop_emits_change_lines() -> None:
    messages: list[str] = []

    def run_cycle(event: WatchEvent) -> WatchCycleResult:
        return WatchCycleResult(
            exit_code=0,
            duration_s=0.2,
            changed_paths=event.changed_paths,
            changes=(ScoreChange("gfm", "Tabs", 3, F, S),),
        )

    _run_loop([{(1, "/project/tool/gfm_tests.json")}], run_cycle, on_event=messages.append)
    assert "[watch]   fixed gfm Tabs #3: fail -> strict" in messages


def test_cycle_runner_diffs_against_previous_run(monkeypatch) -> None:
    runs = iter(
        [
            (0, {"gfm": {"Tabs": {1: S, 2: F}}}),
            (2, {}),
            (0, {"gfm": {"Tabs": {1: F, 2: F}}}),
        ]
    )
    monkeypatch.setattr(mdconform.cli, "run_stats", lambda args: next(runs))
    runner = build_cycle_runner(types.SimpleNamespace())
    event = WatchEvent(changed_paths=frozenset(), timestamp=0.0)

    assert runner(event).changes == ()
    # A failed run keeps the previous baseline.
    assert runner(event).changes == ()
    assert runner(event).regressed == (ScoreChange("gfm", "Tabs", 1, S, F),)


# ---------------------------------------------------------------------------
# cmd_watch
# ---------------------------------------------------------------------------


async def _no_changes() -> AsyncIterator[set[tuple[Any, str]]]:
    for batch in ():
        yield batch


def test_cmd_watch_reports_initial_cycle_as_json(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("MDCONFORM_CORPUS_DIR", raising=False)
    (tmp_path / "mdconform.toml").write_text("version = 1\n", encoding="utf-8")
    (tmp_path / "tool").mkdir()

    monkeypatch.setattr(mdconform.watcher, "check_watchfiles_available", lambda: None)
    monkeypatch.setattr(mdconform.watcher, "make_watchfiles_iter", lambda paths: _no_changes())
    monkeypatch.setattr(mdconform.cli, "run_stats", lambda args: (4, {"gfm": {"Tabs": {1: F}}}))

    assert mdconform.cli.main(["watch", "--json"]) == mdconform.cli.EXIT_OK

    captured = capsys.readouterr()
    lines = [json.loads(line) for line in captured.out.splitlines()]
    assert lines == [
        {
            "command": "watch",
            "ok": False,
            "exit_code": 4,
            "duration_s": lines[0]["duration_s"],
            "changed_paths": [],
            "improved": [],
            "regressed": [],
        }
    ]
    assert "[watch] watching" in captured.err


def test_cmd_watch_reports_initial_failure_code(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("MDCONFORM_CORPUS_DIR", raising=False)
    (tmp_path / "mdconform.toml").write_text("version = 1\n", encoding="utf-8")
    (tmp_path / "tool").mkdir()

    monkeypatch.setattr(mdconform.watcher, "check_watchfiles_available", lambda: None)
    monkeypatch.setattr(mdconform.watcher, "make_watchfiles_iter", lambda paths: _no_changes())
    monkeypatch.setattr(mdconform.cli, "run_stats", lambda args: (2, {}))

    assert mdconform.cli.main(["watch"]) == mdconform.cli.EXIT_OK
    assert "[watch] stats exited with code 2" in capsys.readouterr().err
