"""Capability providers that carry out directives on the local machine."""

from .errors import (
    AmbiguousMatchError,
    BrowserError,
    CommandExecutionError,
    DirectiveValidationError,
    FileConflictError,
    FileOperationError,
    LineRangeError,
    NoEditHistoryError,
    NoMatchError,
    PathContainmentError,
    ProviderError,
    ProviderUnavailableError,
    ResourceNotFoundError,
)
from .filesystem import EditHistory, FilesystemEngine
from .terminal import TerminalRunner

__all__ = [
    "AmbiguousMatchError",
    "BrowserError",
    "CommandExecutionError",
    "DirectiveValidationError",
    "EditHistory",
    "FileConflictError",
    "FileOperationError",
    "FilesystemEngine",
    "LineRangeError",
    "NoEditHistoryError",
    "NoMatchError",
    "PathContainmentError",
    "ProviderError",
    "ProviderUnavailableError",
    "ResourceNotFoundError",
    "TerminalRunner",
]
