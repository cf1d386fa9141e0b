"""
Custom exceptions for the usage importer with structured error context.

Every exception carries a human-readable message, a context dictionary
and, where one was caught, the original exception. Callers distinguish
the expected signals (NotFoundError, NoFileToTransform) from real
failures by type.

Exception Hierarchy:
    UsageImportError (base)
    ├── NotFoundError              no matching row (expected on lookups)
    ├── NoFileToTransform          nothing eligible in the input folder (benign)
    ├── InvalidStepTypeError       step type belongs to another source
    ├── EmptyFailureReasonError    a step cannot fail without a reason
    ├── StorageError               database/transport failures
    ├── ValidationError            malformed construction parameters
    ├── DataFormatError            input records that cannot be mapped
    ├── ConfigurationError         unreadable or invalid vendor mapping
    └── FileAccessError
        ├── InvalidFolderError
        ├── InvalidFilePathError
        └── ReadWritePermissionError
"""

from typing import Optional, Dict, Any
from datetime import datetime


class UsageImportError(Exception):
    """
    Base exception for all usage importer errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (ids, paths, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[BaseException] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.utcnow()

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


def error_message(error: BaseException) -> str:
    """Short message for an error, without the context suffix."""
    if isinstance(error, UsageImportError):
        return error.message
    return str(error) or type(error).__name__


def failure_reason(error: BaseException) -> str:
    """Message of an error followed by the message of its original cause, if any."""
    message = error_message(error)
    cause = getattr(error, "original_exception", None)
    if message and cause is not None:
        return f"{message}: {error_message(cause)}"
    return message


# ============================================================================
# Lookup signals
# ============================================================================

class NotFoundError(UsageImportError):
    """
    Raised when no row matches a lookup.

    This is the normal outcome of the dedup check (no file with the
    checksum yet) and of the resume check (no unfinished step), so
    callers must catch it explicitly instead of treating it as a failure.

    Context should include:
        - table_name: Table that was queried
        - the lookup keys
    """
    pass


class NoFileToTransform(UsageImportError):
    """No file in the input folder is eligible for the current step type."""

    def __init__(self, input_folder: str, step_type_id: Optional[int] = None):
        super().__init__(
            "There is no file available for Import Step",
            context={"input_folder": input_folder, "step_type_id": step_type_id}
        )


# ============================================================================
# Pipeline errors
# ============================================================================

class InvalidStepTypeError(UsageImportError):
    """
    Raised when the configured step type belongs to a different source.

    Context should include:
        - step_type_id: Configured step type
        - expected_source_id: Configured source
        - actual_source_id: Source that owns the step type
    """
    pass


class EmptyFailureReasonError(UsageImportError):
    """Raised when a step is marked as failed without an error to record."""

    def __init__(self, step_id: Optional[int] = None):
        super().__init__(
            "Invalid error to update Step. Must be not empty",
            context={"step_id": step_id}
        )


class StorageError(UsageImportError):
    """
    Raised when database operations fail.

    Context should include:
        - operation: Type of database operation (SELECT, INSERT, UPDATE, COMMIT)
        - table_name: Name of the table (if applicable)
    """
    pass


class ValidationError(UsageImportError):
    """
    Raised when a service is constructed with invalid parameters.

    Context should include:
        - field_name: Name of the invalid option or collaborator
    """
    pass


class DataFormatError(UsageImportError):
    """
    Raised when an input record cannot be mapped to the destination table.

    Context should include (as applicable):
        - records_read: Records parsed before the failure
        - csv_index: Input field the mapping pointed at
        - row_index: Row of a bulk insert whose width is wrong
    """
    pass


class ConfigurationError(UsageImportError):
    """
    Raised when the vendor mapping file is missing or malformed.

    Always fatal at startup.
    """
    pass


# ============================================================================
# File access errors
# ============================================================================

class FileAccessError(UsageImportError):
    """Base exception for file utility failures."""
    pass


class InvalidFolderError(FileAccessError):
    """The given path does not exist or is not a folder."""
    pass


class InvalidFilePathError(FileAccessError):
    """The given file path does not exist."""
    pass


class ReadWritePermissionError(FileAccessError):
    """The user has no permission to read/write files in the given folder."""
    pass
