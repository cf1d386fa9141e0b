"""
Core utilities and configuration for the usage importer.

Modules:
    config: Application configuration and environment variable management
    database: Async engine and session factory for the billing database
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration
    metrics: In-process counters exposed on /metrics

Usage:
    from core.config import settings
    from core.database import async_session_maker
    from core.exceptions import NotFoundError, StorageError
    from core.logging import setup_logging

Example:
    # Initialize logging
    setup_logging()

    # Read from the billing database
    async with async_session_maker() as session:
        # Perform database operations
        pass
"""

__all__ = [
    "settings",
    "async_session_maker",
    "setup_logging",
    # Exceptions
    "UsageImportError",
    "NotFoundError",
    "NoFileToTransform",
    "InvalidStepTypeError",
    "EmptyFailureReasonError",
    "StorageError",
    "ValidationError",
    "DataFormatError",
    "ConfigurationError",
    "FileAccessError",
    "InvalidFolderError",
    "InvalidFilePathError",
    "ReadWritePermissionError",
]
