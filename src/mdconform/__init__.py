from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

from mdconform.compare import CompareLevel, CompareResult, compare_result
from mdconform.corpus import (
    COMMON_MARK_CONFIG,
    CORPORA,
    GFM_CONFIG,
    Config,
    TestCase,
    load_sections,
)
from mdconform.errors import (
    ConfigError,
    CorpusLoadError,
    MdConformError,
    UnsupportedExtensionError,
)
from mdconform.extensions import Extension, RendererConfig, resolve
from mdconform.structure import parse_fragment, structurally_equal


def _package_version() -> str:
    try:
        return version("mdconform")
    except PackageNotFoundError:
        # Running from a source checkout, or otherwise not installed.
        return "0.0.0"


__version__ = _package_version()

__all__ = [
    "COMMON_MARK_CONFIG",
    "CORPORA",
    "CompareLevel",
    "CompareResult",
    "Config",
    "ConfigError",
    "CorpusLoadError",
    "Extension",
    "GFM_CONFIG",
    "MdConformError",
    "RendererConfig",
    "TestCase",
    "UnsupportedExtensionError",
    "__version__",
    "compare_result",
    "load_sections",
    "parse_fragment",
    "resolve",
    "structurally_equal",
]
