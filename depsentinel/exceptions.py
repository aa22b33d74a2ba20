"""Custom exceptions for depsentinel."""


class DiscoveryError(Exception):
    """Base exception for all dependency discovery errors."""


class ArchiveNotFoundError(DiscoveryError):
    """Raised when an archive path is missing or is not a regular file."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Archive not found or not a regular file: {path}")


class MalformedSourceError(DiscoveryError):
    """Raised when a manifest, coordinate descriptor or archive URL cannot be read."""


class UnsupportedArchiveUrlError(MalformedSourceError):
    """Raised when an archive URL uses a scheme the enumerator cannot resolve."""

    def __init__(self, url: str):
        self.url = url
        super().__init__(f"Unsupported archive URL scheme: {url}")


class EncodingFailure(DiscoveryError):
    """Raised when an identifier component cannot be percent-encoded."""


class SinkNotReadyError(DiscoveryError):
    """Raised when a discovery campaign runs before a sink has been bound."""
