"""Render provider outcomes as tagged messages for the conversation."""

from __future__ import annotations

import json

from .models import Directive, DirectiveKind

RESULT_TAG = "[MCP_RESULT]"
ERROR_TAG = "[MCP_ERROR]"


def format_result(kind: DirectiveKind, parameters: str, result: object) -> str:
    body = normalize_output(_render(result))
    return (
        f'{RESULT_TAG} The {kind.value.lower()} action with parameters "{parameters}" returned:\n'
        f"{body}"
    )


def format_error(kind: DirectiveKind, parameters: str, error: BaseException | str) -> str:
    message = error if isinstance(error, str) else _error_message(error)
    return (
        f'{ERROR_TAG} The {kind.value.lower()} action with parameters "{parameters}" '
        f"failed with error:\n{message}"
    )


def format_directive_result(directive: Directive, result: object) -> str:
    return format_result(directive.kind, directive.raw_parameters, result)


def format_directive_error(directive: Directive, error: BaseException | str) -> str:
    return format_error(directive.kind, directive.raw_parameters, error)


def normalize_output(output: str) -> str:
    """Turn literal ``\\n`` and ``\\t`` escape sequences into real whitespace."""
    return output.replace("\\n", "\n").replace("\\t", "\t")


def _render(result: object) -> str:
    if result is None:
        return ""
    if isinstance(result, str):
        return result
    try:
        return json.dumps(result, indent=2, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(result)


def _error_message(error: BaseException) -> str:
    message = str(error).strip()
    return message or error.__class__.__name__
