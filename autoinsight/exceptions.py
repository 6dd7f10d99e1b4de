"""Custom exceptions for the AutoInsight CSV analysis system."""

from typing import Optional


class AutoInsightError(Exception):
    """Base exception for all AutoInsight operations."""
    pass


class FileHandlingError(AutoInsightError):
    """Exception raised for file handling operations."""

    def __init__(self, message: str, file_path: Optional[str] = None):
        self.file_path = file_path
        if file_path:
            message = f"{message} (File: {file_path})"
        super().__init__(message)


class UnsupportedFileFormatError(FileHandlingError):
    """Exception raised when file format is not supported."""
    pass


class FileSizeError(FileHandlingError):
    """Exception raised when file size exceeds limits."""
    pass


class FileReadError(FileHandlingError):
    """Exception raised when a file cannot be read or decoded."""
    pass


class ExportError(FileHandlingError):
    """Exception raised when writing an export fails."""
    pass


class InsufficientMemoryError(AutoInsightError):
    """Exception raised when system doesn't have enough memory."""
    pass


class CsvAnalysisError(AutoInsightError):
    """
    User-facing failure for the file boundary.

    The message shown to users is always the plain-language ``user_message``;
    the underlying file error is kept as ``__cause__`` for the logs.
    """

    user_message = "CSV analysis failed, check format and try again"

    def __init__(self, file_path: Optional[str] = None):
        self.file_path = file_path
        super().__init__(self.user_message)
