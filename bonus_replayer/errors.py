"""
Error taxonomy for the replay pipeline.

Every fatal condition derives from ReplayerError so the CLI can map it
to a non-zero exit code in one place. HTTP status codes are never errors.
"""

from typing import Optional


class ReplayerError(Exception):
    """Base class for fatal replay pipeline errors."""


class ConfigResolutionError(ReplayerError):
    """Storage account, container or credentials could not be resolved."""


class ListingError(ReplayerError):
    """Enumeration of remote objects failed."""

    def __init__(self, prefix: str, message: str):
        super().__init__(f"Listing objects under '{prefix}' failed: {message}")
        self.prefix = prefix


class DownloadError(ReplayerError):
    """A single remote object could not be materialized locally."""

    def __init__(self, object_name: str, message: str):
        super().__init__(f"Download of '{object_name}' failed: {message}")
        self.object_name = object_name
        self.reason = message


class StagedFileReadError(ReplayerError):
    """A staged file could not be read back as text."""

    def __init__(self, path: str, message: str):
        super().__init__(f"Reading staged file '{path}' failed: {message}")
        self.path = path


class TransportError(ReplayerError):
    """The replay HTTP call did not complete (no response was received)."""

    def __init__(self, source_file: str, message: str, url: Optional[str] = None):
        super().__init__(f"Replay of '{source_file}' failed: {message}")
        self.source_file = source_file
        self.url = url


class StagingError(ReplayerError):
    """The local staging directory could not be prepared."""

    def __init__(self, path: str, message: str):
        super().__init__(f"Preparing staging directory '{path}' failed: {message}")
        self.path = path
