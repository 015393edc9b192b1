"""Error formatting and actionable hints for mdconform CLI output.

Keep this module small and dependency-light: it is imported by the CLI layer
and only depends on the error hierarchy.
"""

from __future__ import annotations

from mdconform.errors import ConfigError, CorpusLoadError, UnsupportedExtensionError


def format_hint(exc: BaseException) -> str | None:
    """Return an actionable hint for a known error, or None."""
    msg = str(exc)

    if isinstance(exc, CorpusLoadError):
        if "Missing corpus file" in msg:
            return "pass --corpus-dir or set MDCONFORM_CORPUS_DIR to the directory holding <prefix>_tests.json"
        return "regenerate the corpus JSON from the CommonMark or GFM source text"

    if isinstance(exc, UnsupportedExtensionError):
        return "supported extensions are: autolink, strikethrough, table, tagfilter"

    if isinstance(exc, ConfigError):
        if "Unknown section" in msg:
            return "section names are case-sensitive; run without --section to list them"
        if "Unknown corpus" in msg:
            return "add a [corpora.<name>] table to mdconform.toml to register it"
        return None

    return None


def format_error_with_hint(exc: BaseException) -> str:
    """Format error message + optional hint for stderr output."""
    msg = (str(exc) or repr(exc)).strip()
    result = f"error: {msg}"
    hint = format_hint(exc)
    if hint:
        result += f"\nhint: {hint}"
    return result
