"""Exceptions raised by ChatLab.

Every error the package raises on purpose derives from ChatLabError so that
callers at an outer boundary (CLI, merge entry points) can turn it into a
readable message. Record-level defects inside an export never raise; they
are dropped by the parsers.
"""

from typing import List, Optional


class ChatLabError(Exception):
    """Base exception for ChatLab errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class UnrecognizedFormatError(ChatLabError):
    """Raised when no registered format matches a file.

    Attributes:
        path: The file that could not be classified
        available_formats: Names of the formats that ARE registered
    """

    def __init__(
        self,
        path: str,
        available_formats: Optional[List[str]] = None,
        message: Optional[str] = None,
    ):
        self.path = path
        self.available_formats = available_formats or []

        if message is None:
            formats_str = (
                ", ".join(self.available_formats)
                if self.available_formats
                else "no formats registered"
            )
            message = (
                f"Could not detect file format: {path}. "
                f"Supported formats: {formats_str}."
            )
        super().__init__(message)


class FormatMismatchError(ChatLabError):
    """Raised when files that must share a format sniff to different ones.

    Attributes:
        formats: The distinct format names found, in input order
    """

    def __init__(self, formats: List[str], message: Optional[str] = None):
        self.formats = formats

        if message is None:
            message = (
                "Cannot merge chat histories exported in different formats. "
                f"Detected formats: {', '.join(formats)}. "
                "Make sure every file comes from the same export tool and version."
            )
        super().__init__(message)


class MalformedSourceError(ChatLabError):
    """Raised when a file's top-level structure does not fit its format.

    Attributes:
        format_name: The format the file was parsed as
        path: The file being parsed
        original_error: The underlying exception, if any
    """

    def __init__(
        self,
        format_name: str,
        path: str,
        message: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.format_name = format_name
        self.path = path
        self.original_error = original_error

        if message is None:
            message = f"Failed to parse {path} as {format_name}"
            if original_error:
                message += f": {original_error}"
        super().__init__(message)


class SessionNotFoundError(ChatLabError):
    """Raised when a session id has no stored database."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"No session found with id '{session_id}'")


def get_user_friendly_error_message(error: Exception) -> str:
    """Convert any exception into a message suitable for display.

    Args:
        error: An exception raised while importing, merging or analyzing

    Returns:
        A single user-facing message
    """
    if isinstance(error, ChatLabError):
        return error.message
    if isinstance(error, OSError):
        target = f": {error.filename}" if error.filename else ""
        return f"File operation failed ({error.strerror or error}){target}"
    return f"Operation failed: {error}"
