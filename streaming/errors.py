class StreamingError(Exception):
    """Base class for every failure raised by the streaming core."""


class NotFound(StreamingError):
    """Missing object, job or episode reference."""


class InvalidRange(StreamingError):
    """The requested byte window cannot be satisfied."""

    def __init__(self, message: str = "Invalid range", *, total: int | None = None):
        super().__init__(message)
        self.total = total


class EmptyObject(StreamingError):
    """The object exists but holds zero bytes."""

    def __init__(self, message: str = "Empty file", *, total: int = 0):
        super().__init__(message)
        self.total = total


class StoreFailure(StreamingError):
    """Upload, download or delete against the object store failed."""


class EncodeFailure(StreamingError):
    """The external encoder exited with an error or could not be started."""


class UnknownQuality(StreamingError):
    """A quality label outside the fixed ladder."""
