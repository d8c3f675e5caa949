"""Directive grammar, extraction, and result formatting."""

from .formatter import ERROR_TAG, RESULT_TAG, format_error, format_result
from .models import Directive, DirectiveKind, PermissionLevel
from .parser import build_directive, extract

__all__ = [
    "ERROR_TAG",
    "RESULT_TAG",
    "Directive",
    "DirectiveKind",
    "PermissionLevel",
    "build_directive",
    "extract",
    "format_error",
    "format_result",
]
