from __future__ import annotations

import logging

import pytest

from llmcp.directives import DirectiveKind, build_directive, extract
from llmcp.directives.models import (
    InsertArgs,
    PathArgs,
    RemoveDirArgs,
    ReplaceArgs,
    ScrollArgs,
    TabArgs,
    TypeTextArgs,
    ViewArgs,
    WriteArgs,
)


def test_extract_returns_directives_in_order() -> None:
    text = "First [[READ: a.txt]] then [[EXECUTE: ls -la]] and finally [[VIEW: b.py]]."

    directives = extract(text)

    assert [directive.kind for directive in directives] == [
        DirectiveKind.READ,
        DirectiveKind.EXECUTE,
        DirectiveKind.VIEW,
    ]
    assert directives[0].arguments == PathArgs(path="a.txt")
    assert directives[1].raw_parameters == "ls -la"
    assert directives[0].source_span == "[[READ: a.txt]]"


def test_extract_without_markers_returns_empty_list() -> None:
    assert extract("Nothing to do here.") == []
    assert extract("") == []


def test_unknown_type_is_dropped_and_logged(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="llmcp.directives.parser"):
        directives = extract("[[FOO: bar]] [[READ: x]]")

    assert [directive.kind for directive in directives] == [DirectiveKind.READ]
    assert any(record.msg == "directive_unsupported" for record in caplog.records)


def test_only_unsupported_types_yields_nothing() -> None:
    assert extract("[[FOO: bar]] [[note: something]]") == []


def test_type_is_case_insensitive_and_whitespace_tolerant() -> None:
    directives = extract("[[ read : notes.md ]]")

    assert len(directives) == 1
    assert directives[0].kind is DirectiveKind.READ
    assert directives[0].raw_parameters == "notes.md"


@pytest.mark.parametrize(
    "text",
    [
        "[[[READ: a]]",
        "[[note [[READ: a]]",
        "[[ no colon here [[READ: a]]",
    ],
)
def test_malformed_opening_does_not_hide_following_directive(text: str) -> None:
    directives = extract(text)

    assert [directive.raw_parameters for directive in directives] == ["a"]


def test_parameters_span_newlines_up_to_first_closing_marker() -> None:
    text = "[[WRITE: notes.txt,\nline one\nline two]] trailing ]]"

    (directive,) = extract(text)

    assert directive.arguments == WriteArgs(path="notes.txt", content="line one\nline two")


def test_unterminated_directive_is_ignored() -> None:
    assert extract("[[READ: a.txt and no end") == []


def test_write_preserves_commas_in_content() -> None:
    (directive,) = extract("[[WRITE: /tmp/f.txt,hello, world]]")

    assert directive.arguments == WriteArgs(path="/tmp/f.txt", content="hello, world")
    assert directive.validation_error is None


def test_write_keeps_indentation_after_newline() -> None:
    (directive,) = extract("[[WRITE: main.py,\n    return 1\n]]")

    assert isinstance(directive.arguments, WriteArgs)
    assert directive.arguments.content == "    return 1"


def test_write_without_comma_has_validation_error() -> None:
    (directive,) = extract("[[WRITE: just-a-path]]")

    assert directive.arguments is None
    assert "Invalid format for WRITE" in (directive.validation_error or "")


def test_replace_old_is_everything_between_first_and_last_comma() -> None:
    (directive,) = extract("[[REPLACE: f.txt, a, b, c]]")

    assert directive.arguments == ReplaceArgs(path="f.txt", old="a, b", new="c")


def test_multiline_replace_trims_line_breaks_around_separators() -> None:
    (directive,) = extract("[[REPLACE: f.py,\n    x = 1\n,\n    x = 2\n]]")

    assert directive.arguments == ReplaceArgs(path="f.py", old="    x = 1", new="    x = 2")


def test_replace_needs_three_segments() -> None:
    (directive,) = extract("[[REPLACE: f.txt, a]]")

    assert directive.arguments is None
    assert "Expected: REPLACE: file_path, old_string, new_string" in (
        directive.validation_error or ""
    )


def test_insert_content_keeps_commas() -> None:
    (directive,) = extract("[[INSERT: f.txt, 3, x = f(a, b)]]")

    assert directive.arguments == InsertArgs(path="f.txt", line=3, content="x = f(a, b)")


def test_insert_requires_integer_line() -> None:
    (directive,) = extract("[[INSERT: f.txt, three, x]]")

    assert directive.arguments is None
    assert "Invalid line number" in (directive.validation_error or "")


@pytest.mark.parametrize(
    ("parameters", "expected"),
    [
        ("a.py", ViewArgs(path="a.py")),
        ("a.py, [2, 5]", ViewArgs(path="a.py", start=2, end=5)),
        ("a.py, 3-10", ViewArgs(path="a.py", start=3, end=10)),
        ("a.py, 3--1", ViewArgs(path="a.py", start=3, end=-1)),
    ],
)
def test_view_ranges(parameters: str, expected: ViewArgs) -> None:
    directive = build_directive(DirectiveKind.VIEW, parameters)

    assert directive.validation_error is None
    assert directive.arguments == expected


def test_view_with_bad_range_keeps_path_and_reports_error() -> None:
    directive = build_directive(DirectiveKind.VIEW, "a.py, lines two to five")

    assert directive.arguments == ViewArgs(path="a.py")
    assert (directive.validation_error or "").startswith("Invalid line range format for VIEW.")


@pytest.mark.parametrize(
    "kind",
    [
        DirectiveKind.READ,
        DirectiveKind.DELETE,
        DirectiveKind.EXECUTE,
        DirectiveKind.MKDIR,
        DirectiveKind.RMDIR,
        DirectiveKind.INFO,
        DirectiveKind.UNDO,
        DirectiveKind.EXISTS,
    ],
)
def test_path_like_kinds_reject_empty_parameters(kind: DirectiveKind) -> None:
    directive = build_directive(kind, "")

    assert directive.validation_error == f"Empty parameters for {kind.value} action"


def test_rmdir_recursive_flag() -> None:
    assert build_directive(DirectiveKind.RMDIR, "build, recursive").arguments == RemoveDirArgs(
        path="build", recursive=True
    )
    assert build_directive(DirectiveKind.RMDIR, "build").arguments == RemoveDirArgs(path="build")


def test_browser_argument_shapes() -> None:
    assert build_directive(DirectiveKind.TYPE, "#q, hello, world").arguments == TypeTextArgs(
        selector="#q", text="hello, world"
    )
    assert build_directive(DirectiveKind.SCROLL, "up, 500").arguments == ScrollArgs("up", 500)
    assert build_directive(DirectiveKind.SCROLL, "").arguments == ScrollArgs()
    assert build_directive(DirectiveKind.SWITCH_TAB, "2").arguments == TabArgs(tab_id=2)
    assert build_directive(DirectiveKind.CLOSE_TAB, "").arguments == TabArgs()
    assert build_directive(DirectiveKind.NEW_TAB, "example.com").arguments == TabArgs(
        url="example.com"
    )


@pytest.mark.parametrize(
    ("kind", "parameters"),
    [
        (DirectiveKind.TYPE, "#q"),
        (DirectiveKind.SWITCH_TAB, "first"),
        (DirectiveKind.SWITCH_TAB, ""),
        (DirectiveKind.SCROLL, "sideways, lots"),
        (DirectiveKind.BROWSE, ""),
    ],
)
def test_browser_shape_errors(kind: DirectiveKind, parameters: str) -> None:
    directive = build_directive(kind, parameters)

    assert directive.arguments is None
    assert directive.validation_error


def test_kinds_without_arguments_parse_cleanly() -> None:
    (directive,) = extract("[[SCREENSHOT: ]]")

    assert directive.kind is DirectiveKind.SCREENSHOT
    assert directive.arguments is None
    assert directive.is_valid
