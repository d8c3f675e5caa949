from __future__ import annotations

from llmcp.directives import DirectiveKind, build_directive, format_error, format_result
from llmcp.directives.formatter import format_directive_error, format_directive_result
from llmcp.providers.errors import NoMatchError


def test_format_result_header_and_body() -> None:
    message = format_result(DirectiveKind.READ, "notes.txt", "hello")

    assert message == '[MCP_RESULT] The read action with parameters "notes.txt" returned:\nhello'


def test_format_result_normalizes_escaped_whitespace() -> None:
    message = format_result(DirectiveKind.EXECUTE, "echo", "a\\nb\\tc")

    assert message.endswith("a\nb\tc")


def test_format_result_renders_structures_as_json() -> None:
    message = format_result(DirectiveKind.INFO, "f.txt", {"size": 3, "is_file": True})

    assert '"size": 3' in message
    assert '"is_file": true' in message


def test_format_result_with_none_has_empty_body() -> None:
    message = format_result(DirectiveKind.SCREENSHOT, "", None)

    assert message.endswith("returned:\n")


def test_format_error_uses_exception_message() -> None:
    message = format_error(DirectiveKind.REPLACE, "f.txt, a, b", NoMatchError("not found"))

    assert message == (
        '[MCP_ERROR] The replace action with parameters "f.txt, a, b" failed with error:\n'
        "not found"
    )


def test_format_error_falls_back_to_exception_name() -> None:
    message = format_error(DirectiveKind.READ, "x", RuntimeError())

    assert message.endswith("failed with error:\nRuntimeError")


def test_directive_helpers_use_raw_parameters() -> None:
    directive = build_directive(DirectiveKind.MKDIR, "build/out")

    assert 'parameters "build/out"' in format_directive_result(directive, "ok")
    assert format_directive_error(directive, "boom").startswith("[MCP_ERROR] The mkdir action")
