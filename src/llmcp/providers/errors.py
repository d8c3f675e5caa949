"""Errors raised by capability providers.

The orchestrator catches every :class:`ProviderError` per directive and shows
its message to the model verbatim, so messages are written for the model:
they say what went wrong and, where possible, what to do instead.
"""

from __future__ import annotations


class ProviderError(Exception):
    """Base class for failures of a single directive."""


class DirectiveValidationError(ProviderError):
    """The directive's parameters did not match the shape of its kind."""


class ProviderUnavailableError(ProviderError):
    """No provider is configured for the requested directive kind."""


class FileOperationError(ProviderError):
    """An underlying filesystem call failed."""


class PathContainmentError(FileOperationError):
    """A bare name resolved outside the workspace root."""


class ResourceNotFoundError(FileOperationError):
    """The target path does not exist."""


class FileConflictError(FileOperationError):
    """The target exists with the wrong type or would be clobbered."""


class NoMatchError(FileOperationError):
    """The text to replace does not appear in the file."""


class AmbiguousMatchError(FileOperationError):
    """The text to replace appears more than once."""

    def __init__(self, message: str, line_numbers: list[int]) -> None:
        super().__init__(message)
        self.line_numbers = line_numbers


class LineRangeError(FileOperationError):
    """A line number or range falls outside the file."""


class NoEditHistoryError(FileOperationError):
    """Undo was requested for a path without a stored snapshot."""


class CommandExecutionError(ProviderError):
    """A shell command timed out, was blocked, or could not start."""


class BrowserError(ProviderError):
    """A browser automation step failed."""
