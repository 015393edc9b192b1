from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import traceback
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import TYPE_CHECKING

from mdconform import __version__
from mdconform.corpus import Config
from mdconform.diagnostics import format_error_with_hint
from mdconform.errors import ConfigError, MdConformError
from mdconform.progress import ProgressBar

if TYPE_CHECKING:
    from mdconform.stats import SectionScores

EXIT_OK = 0
EXIT_CONFIG_OR_CORPUS = 2
EXIT_RENDER_FAULT = 3
EXIT_CHECK_FAILED = 4

_LOG_LEVELS = ("debug", "info", "warning", "error")


def _add_common_flags(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--root",
        type=str,
        default=None,
        help="Project root (defaults to searching upward from cwd for mdconform.toml).",
    )
    p.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to mdconform.toml (defaults to <root>/mdconform.toml).",
    )
    p.add_argument(
        "--corpus-dir",
        type=str,
        default=None,
        help="Directory holding <prefix>_tests.json (overrides MDCONFORM_CORPUS_DIR).",
    )
    p.add_argument(
        "--flavor",
        action="append",
        default=[],
        help="Corpus prefix to run, e.g. common_mark or gfm (repeatable; default: all).",
    )
    p.add_argument("--section", type=str, default=None, help="Restrict to one section.")
    p.add_argument("example", type=int, nargs="?", default=None, help="Run a single example.")
    p.add_argument(
        "--extension",
        action="append",
        default=[],
        help="Extension enabled for every example (repeatable).",
    )
    p.add_argument(
        "--renderer",
        type=str,
        default=None,
        help="Renderer under test as MODULE:ATTR (default: markdown-it-py).",
    )
    p.add_argument("--raw", action="store_true", help="Print raw JSON scores.")
    p.add_argument(
        "--update-files",
        action="store_true",
        help="Write <prefix>_stats.json and <prefix>_stats.txt into the corpus dir.",
    )
    p.add_argument("--verbose", action="store_true", help="Print details for failures.")
    p.add_argument(
        "--verbose-loose", action="store_true", help="Print details for loose matches."
    )
    p.add_argument(
        "--throw", action="store_true", help="Stop at the first render fault and show it."
    )
    p.add_argument(
        "--check",
        action="store_true",
        help="Exit non-zero unless every selected example passes.",
    )
    p.add_argument("--no-progress", action="store_true", help="Disable progress bars.")
    p.add_argument("--no-color", action="store_true", help="Disable ANSI colors.")
    p.add_argument("--log-level", choices=_LOG_LEVELS, default="warning")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mdconform")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    stats_p = subparsers.add_parser("stats", help="Run conformance corpora and report scores.")
    _add_common_flags(stats_p)

    watch_p = subparsers.add_parser("watch", help="Rerun `stats` when a corpus file changes.")
    _add_common_flags(watch_p)
    watch_p.add_argument(
        "--json",
        dest="json_output",
        action="store_true",
        help="Print one JSON object per rerun to stdout.",
    )

    return parser


def parse_args(argv: list[str]) -> argparse.Namespace:
    return _build_parser().parse_args(argv)


def _eprint(msg: str) -> None:
    print(msg, file=sys.stderr)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(levelname)s %(name)s: %(message)s",
    )


def _load_config(args: argparse.Namespace):
    from mdconform.config import load_config

    root = Path(args.root).resolve() if args.root else None
    config_path = Path(args.config).resolve() if args.config else None
    return load_config(root=root, config_path=config_path)


def _select_corpora(registry: Mapping[str, Config], flavors: Sequence[str]) -> list[Config]:
    corpora = dict(registry)
    if not flavors:
        return list(corpora.values())
    out: list[Config] = []
    for name in flavors:
        if name not in corpora:
            known = ", ".join(sorted(corpora))
            raise ConfigError(f"Unknown corpus {name!r} (known: {known}).")
        out.append(corpora[name])
    return out


def run_stats(args: argparse.Namespace) -> tuple[int, dict[str, SectionScores]]:
    """Run the selected corpora; return the exit code and scores keyed by corpus prefix."""

    from mdconform.corpus import load_sections
    from mdconform.extensions import resolve
    from mdconform.renderer import load_renderer
    from mdconform.stats import (
        collect_scores,
        format_friendly,
        format_raw,
        summarize,
        write_stats_files,
    )

    try:
        cfg = _load_config(args)
        corpus_dir = cfg.corpus_dir(override=args.corpus_dir)
        configs = _select_corpora(cfg.corpora, args.flavor)
        renderer = load_renderer(args.renderer)

        if args.update_files and (args.section is not None or args.example is not None):
            raise ConfigError("--update-files cannot be combined with --section or an example.")

        extensions = frozenset([*cfg.corpus.default_extensions, *args.extension])
        # Fail on unknown names before rendering anything.
        resolve(extensions)

        verbose = bool(args.verbose) or cfg.run.verbose
        verbose_loose = bool(args.verbose_loose) or cfg.run.verbose_loose
        throw = bool(args.throw) or cfg.run.throw_on_error
        color = sys.stdout.isatty() and not bool(args.no_color)
        show_progress = (
            not bool(args.no_progress)
            and not bool(args.raw)
            and not (verbose or verbose_loose)
            and sys.stderr.isatty()
        )

        all_passed = True
        results: dict[str, SectionScores] = {}
        for config in configs:
            sections = load_sections(config.prefix, corpus_dir)

            progress = None
            if show_progress:
                total = sum(
                    len(cases)
                    for name, cases in sections.items()
                    if args.section is None or name == args.section
                )
                if args.example is not None:
                    total = min(total, 1)
                progress = ProgressBar(label=config.prefix, total=total, stream=sys.stderr)

            try:
                scores = collect_scores(
                    config,
                    sections,
                    section=args.section,
                    example=args.example,
                    renderer=renderer,
                    extensions=extensions,
                    throw_on_error=throw,
                    verbose_fail=verbose,
                    verbose_loose_match=verbose_loose,
                    color=color,
                    progress=progress,
                )
            except MdConformError:
                raise
            except Exception as e:  # noqa: BLE001 - only reachable in fail-fast mode
                if progress is not None:
                    progress.finish()
                _eprint(f"error: render fault in {config.prefix}: {type(e).__name__}: {e}")
                traceback.print_exc(file=sys.stderr)
                return EXIT_RENDER_FAULT, results

            results[config.prefix] = scores
            summary = summarize(scores)
            if summary.passed != summary.total:
                all_passed = False

            if args.update_files:
                for path in write_stats_files(config, scores, corpus_dir):
                    _eprint(f"wrote {path}")
            elif args.raw:
                sys.stdout.write(format_raw(scores))
            else:
                if len(configs) > 1:
                    print(f"== {config.prefix} ==")
                sys.stdout.write(format_friendly(scores))

        if args.check and not all_passed:
            return EXIT_CHECK_FAILED, results
        return EXIT_OK, results
    except MdConformError as e:
        _eprint(format_error_with_hint(e))
        return EXIT_CONFIG_OR_CORPUS, {}


def cmd_stats(args: argparse.Namespace) -> int:
    code, _ = run_stats(args)
    return code


def cmd_watch(args: argparse.Namespace) -> int:
    from mdconform import watcher

    try:
        watcher.check_watchfiles_available()
        cfg = _load_config(args)
        corpus_dir = cfg.corpus_dir(override=args.corpus_dir)
    except ImportError as e:
        _eprint(f"error: {e}")
        return EXIT_CONFIG_OR_CORPUS
    except MdConformError as e:
        _eprint(format_error_with_hint(e))
        return EXIT_CONFIG_OR_CORPUS

    if not corpus_dir.is_dir():
        _eprint(f"error: corpus directory does not exist: {corpus_dir}")
        return EXIT_CONFIG_OR_CORPUS

    def on_error(exc: BaseException) -> None:
        _eprint(format_error_with_hint(exc))

    def on_cycle_result(result: watcher.WatchCycleResult) -> None:
        if args.json_output:
            print(json.dumps(watcher.format_watch_cycle_json(result)), flush=True)
        elif result.exit_code != EXIT_OK:
            _eprint(f"[watch] stats exited with code {result.exit_code}")

    run_cycle = watcher.build_cycle_runner(args)
    # The initial run sets the baseline that later cycles are diffed against.
    on_cycle_result(run_cycle(watcher.WatchEvent(changed_paths=frozenset(), timestamp=0.0)))
    _eprint(f"[watch] watching {corpus_dir}")

    try:
        asyncio.run(
            watcher.run_watch_loop(
                changes_iter=watcher.make_watchfiles_iter([corpus_dir]),
                run_cycle=run_cycle,
                on_event=_eprint,
                on_cycle_result=on_cycle_result,
                on_error=on_error,
                corpus_dir=corpus_dir,
            )
        )
    except KeyboardInterrupt:
        pass
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    try:
        args = parse_args(list(sys.argv[1:] if argv is None else argv))
    except SystemExit as e:
        # argparse uses SystemExit for --help/--version and parse errors.
        code = e.code
        return int(code) if isinstance(code, int) else EXIT_CONFIG_OR_CORPUS

    _configure_logging(args.log_level)

    if args.command == "stats":
        return cmd_stats(args)
    if args.command == "watch":
        return cmd_watch(args)

    return EXIT_CONFIG_OR_CORPUS


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
