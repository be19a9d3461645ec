"""Exceptions raised by the library and the sync engine."""


class CrateError(Exception):
    """Base exception for library operations."""

    pass


class ScanIOError(CrateError):
    """Raised when a file or directory cannot be read during a scan."""

    def __init__(self, path, message: str = None):
        self.path = path
        super().__init__(message or f"Unable to read {path}")


class DecodeError(CrateError):
    """Raised when the decoder cannot extract tags from an audio file."""

    def __init__(self, path, message: str = None):
        self.path = path
        super().__init__(message or f"Unable to decode {path}")


class ConstraintViolation(CrateError):
    """Raised when the store rejects a write."""

    pass


class LibraryNotOpen(CrateError):
    """Raised when an operation needs an open library and none is open."""

    def __init__(self, message: str = None):
        super().__init__(message or "No library is currently open")


class PermissionDenied(CrateError):
    """Raised when the library directory cannot be accessed."""

    def __init__(self, path, message: str = None):
        self.path = path
        super().__init__(message or f"Permission denied for {path}")


class DirectoryNotFound(CrateError):
    """Raised when the library directory does not exist."""

    def __init__(self, path):
        self.path = path
        super().__init__(f"The selected directory does not exist: {path}")


class DatabaseNotFound(CrateError):
    """Raised when a crate directory exists but holds no database."""

    def __init__(self, path):
        self.path = path
        super().__init__(f"Library database not found at {path}")


class ScanInProgress(CrateError):
    """Raised when a scan is requested while another one is running."""

    def __init__(self, library_path):
        self.library_path = library_path
        super().__init__(f"A scan is already running for {library_path}")


class ScanCancelled(CrateError):
    """Raised inside a scan when cancellation was requested mid-processing."""

    def __init__(self, processed: int):
        self.processed = processed
        super().__init__(f"Scan cancelled after {processed} files")
