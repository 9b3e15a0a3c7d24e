class SaveError(Exception):
    """Base class for save related failures."""


class DecodeError(SaveError):
    """Raised when encoded save text cannot be decoded."""


class ValidationError(SaveError):
    """Raised when a decoded save fails the structural/NaN checks."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class ComparisonError(SaveError):
    """Raised when cloud and local saves cannot be compared."""


class SlotBusyError(SaveError):
    """Raised when a slot is locked by an in-flight cloud operation."""


class CloudError(SaveError):
    """Raised when the remote store cannot be reached or answers badly."""
