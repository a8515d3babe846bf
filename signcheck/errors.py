"""Exception hierarchy shared by the format locators and the prober."""


class SignCheckError(Exception):
    """Base exception for signature detection errors."""
    pass

class FormatMismatchError(SignCheckError):
    """Exception raised when a file does not carry the magic of a format."""
    pass

class MalformedContainerError(SignCheckError):
    """Exception raised when the magic matches but the structure is broken."""
    pass

class LimitExceededError(MalformedContainerError):
    """Exception raised when safety limits are exceeded."""
    pass

class UnsupportedFormatError(SignCheckError):
    """Exception raised when no supported container format matches."""

    def __init__(self, message="unsupported file format"):
        super().__init__(message)
