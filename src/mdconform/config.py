"""Project configuration loading for mdconform.

This module is intentionally small and deterministic: it only reads
`mdconform.toml` and performs light validation. The file is optional; when
none is found every setting takes its default.
"""

from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from mdconform.corpus import CORPORA, Config, with_corpora
from mdconform.errors import ConfigError

CONFIG_FILENAME = "mdconform.toml"
CORPUS_DIR_ENV = "MDCONFORM_CORPUS_DIR"


@dataclass(frozen=True)
class CorpusSettings:
    dir: str
    default_extensions: list[str]


@dataclass(frozen=True)
class RunSettings:
    throw_on_error: bool
    verbose: bool
    verbose_loose: bool


@dataclass(frozen=True)
class HarnessConfig:
    version: int
    root: Path
    corpus: CorpusSettings
    run: RunSettings
    corpora: Mapping[str, Config] = field(default_factory=lambda: CORPORA)

    def corpus_dir(
        self,
        *,
        env: Mapping[str, str] | None = None,
        override: str | None = None,
    ) -> Path:
        """Resolve the corpus directory: override, then env var, then config."""

        env = os.environ if env is None else env
        raw = override or env.get(CORPUS_DIR_ENV) or self.corpus.dir
        path = Path(raw)
        if not path.is_absolute():
            path = self.root / path
        return path.resolve()


def find_project_root(start: Path) -> Path | None:
    """Walk upward from `start` (file or directory) looking for `mdconform.toml`."""

    cur = start
    try:
        if cur.is_file():
            cur = cur.parent
    except OSError:
        cur = cur.parent

    cur = cur.resolve()
    while True:
        if (cur / CONFIG_FILENAME).is_file():
            return cur
        if cur.parent == cur:
            return None
        cur = cur.parent


def _as_table(value: Any, *, name: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"Expected [{name}] to be a table.")
    return value


def _as_str_list(value: Any, *, name: str) -> list[str]:
    if not isinstance(value, list) or any(not isinstance(x, str) for x in value):
        raise ConfigError(f"Expected {name} to be a list of strings.")
    return list(value)


def _as_bool(value: Any, *, name: str) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(f"Expected {name} to be a boolean.")
    return value


def _as_int(value: Any, *, name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ConfigError(f"Expected {name} to be an integer.")
    return value


def _as_str(value: Any, *, name: str) -> str:
    if not isinstance(value, str):
        raise ConfigError(f"Expected {name} to be a string.")
    return value


def _parse_corpora(tbl: dict[str, Any]) -> dict[str, Config]:
    out: dict[str, Config] = {}
    for name, raw in tbl.items():
        entry = _as_table(raw, name=f"corpora.{name}")
        if "base_url" not in entry:
            raise ConfigError(f"Missing corpora.{name}.base_url.")
        base_url = _as_str(entry["base_url"], name=f"corpora.{name}.base_url")
        prefix = _as_str(entry.get("prefix", name), name=f"corpora.{name}.prefix")
        out[name] = Config(prefix=prefix, base_url=base_url)
    return out


def default_config(root: Path) -> HarnessConfig:
    return HarnessConfig(
        version=1,
        root=root,
        corpus=CorpusSettings(dir="tool", default_extensions=[]),
        run=RunSettings(throw_on_error=False, verbose=False, verbose_loose=False),
    )


def load_config(*, root: Path | None = None, config_path: Path | None = None) -> HarnessConfig:
    """Load and validate `mdconform.toml`.

    An explicit `config_path` must exist. Otherwise the file is looked up
    under `root` (or by walking upward from the cwd) and defaults apply when
    it is absent.
    """

    if config_path is None:
        if root is None:
            root = find_project_root(Path.cwd())
            if root is None:
                return default_config(Path.cwd().resolve())
        config_path = root / CONFIG_FILENAME
        if not config_path.is_file():
            return default_config(root.resolve())
    elif root is None:
        root = config_path.parent

    try:
        raw = config_path.read_bytes()
    except FileNotFoundError as e:
        raise ConfigError(f"Missing {CONFIG_FILENAME} at: {config_path}") from e
    except OSError as e:
        raise ConfigError(f"Failed reading config file: {config_path}") from e

    try:
        data = tomllib.loads(raw.decode("utf-8"))
    except UnicodeDecodeError as e:
        raise ConfigError(f"Config is not valid UTF-8: {config_path}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e

    version = data.get("version", None)
    if version is None:
        raise ConfigError(f"Missing required `version = 1` in {CONFIG_FILENAME}.")
    version_i = _as_int(version, name="version")
    if version_i != 1:
        raise ConfigError(f"Unsupported config version: {version_i} (expected 1).")

    corpus_tbl = _as_table(data.get("corpus"), name="corpus")
    run_tbl = _as_table(data.get("run"), name="run")
    corpora_tbl = _as_table(data.get("corpora"), name="corpora")

    corpus_dir = _as_str(corpus_tbl.get("dir", "tool"), name="corpus.dir")
    if "default_extensions" in corpus_tbl:
        default_extensions = _as_str_list(
            corpus_tbl["default_extensions"], name="corpus.default_extensions"
        )
    else:
        default_extensions = []

    throw_on_error = _as_bool(run_tbl.get("throw_on_error", False), name="run.throw_on_error")
    verbose = _as_bool(run_tbl.get("verbose", False), name="run.verbose")
    verbose_loose = _as_bool(run_tbl.get("verbose_loose", False), name="run.verbose_loose")

    # Validation
    if not corpus_dir:
        raise ConfigError("Invalid config: corpus.dir must not be empty.")

    return HarnessConfig(
        version=version_i,
        root=root.resolve(),
        corpus=CorpusSettings(dir=corpus_dir, default_extensions=default_extensions),
        run=RunSettings(
            throw_on_error=throw_on_error,
            verbose=verbose,
            verbose_loose=verbose_loose,
        ),
        corpora=with_corpora(_parse_corpora(corpora_tbl)),
    )
