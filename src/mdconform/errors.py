"""mdconform exception hierarchy.

Keep this module small and dependency-free: it is imported broadly across the
project and by tests.
"""


class MdConformError(Exception):
    """Base exception for all mdconform errors."""


class ConfigError(MdConformError):
    """Raised for invalid user configuration or corpus selection."""


class CorpusLoadError(MdConformError):
    """Raised when a corpus file is missing, malformed, or has an invalid record."""


class UnsupportedExtensionError(MdConformError):
    """Raised when a test case asks for an extension with no known mapping."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unsupported extension {name!r}")
        self.name = name
