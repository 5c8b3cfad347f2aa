"""Domain-specific exceptions for the services layer."""


class MediaFetchError(Exception):
    """Base exception for media fetch errors."""

    def __init__(self, message: str, code: str) -> None:
        """Initialize the error.

        Args:
            message: Human-readable error message
            code: Stable error code for API responses
        """
        self.message = message
        self.code = code
        super().__init__(message)


class InvalidInputError(MediaFetchError):
    """Raised when the target URL is malformed, uses a disallowed scheme or is blocked."""

    def __init__(self, message: str = "Invalid URL.") -> None:
        super().__init__(message, "INVALID_INPUT")


class SpawnFailureError(MediaFetchError):
    """Raised when the download tool cannot be launched at all."""

    def __init__(self, message: str = "Failed to start the download tool") -> None:
        super().__init__(message, "SPAWN_FAILED")


class DownloadNotFoundError(MediaFetchError):
    """Raised when a requested download is missing or outside the output directory."""

    def __init__(self, message: str = "File not found") -> None:
        super().__init__(message, "NOT_FOUND")
