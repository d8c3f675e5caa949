from __future__ import annotations

import pytest

from llmcp.directives import DirectiveKind, PermissionLevel, build_directive, extract
from llmcp.session.permissions import (
    build_permission_request,
    classify_batch,
    classify_directive,
    is_read_only_command,
)


def test_read_and_benign_execute_is_read_level() -> None:
    assert classify_batch(extract("[[READ: a]] [[EXECUTE: ls]]")) is PermissionLevel.READ


def test_adding_a_write_raises_the_batch_to_write() -> None:
    batch = extract("[[READ: a]] [[EXECUTE: ls]] [[WRITE: b, x]]")

    assert classify_batch(batch) is PermissionLevel.WRITE


def test_destructive_execute_raises_the_batch_to_execute() -> None:
    batch = extract("[[READ: a]] [[EXECUTE: ls]] [[WRITE: b, x]] [[EXECUTE: rm -rf /]]")

    assert classify_batch(batch) is PermissionLevel.EXECUTE


def test_empty_batch_is_read_level() -> None:
    assert classify_batch([]) is PermissionLevel.READ


@pytest.mark.parametrize(
    "kind",
    [
        DirectiveKind.WRITE,
        DirectiveKind.APPEND,
        DirectiveKind.DELETE,
        DirectiveKind.REPLACE,
        DirectiveKind.INSERT,
        DirectiveKind.UNDO,
        DirectiveKind.MKDIR,
        DirectiveKind.RMDIR,
        DirectiveKind.CLICK,
        DirectiveKind.TYPE,
    ],
)
def test_write_class_kinds(kind: DirectiveKind) -> None:
    assert classify_directive(build_directive(kind, "x, y, z")) is PermissionLevel.WRITE


@pytest.mark.parametrize(
    "kind",
    [
        DirectiveKind.READ,
        DirectiveKind.VIEW,
        DirectiveKind.INFO,
        DirectiveKind.EXISTS,
        DirectiveKind.BROWSE,
        DirectiveKind.EXTRACT,
        DirectiveKind.SCREENSHOT,
        DirectiveKind.LIST_TABS,
    ],
)
def test_read_class_kinds(kind: DirectiveKind) -> None:
    assert classify_directive(build_directive(kind, "x")) is PermissionLevel.READ


@pytest.mark.parametrize(
    ("command", "expected"),
    [
        ("ls -la", True),
        ("pwd", True),
        ("cat README.md", True),
        ("git status", True),
        ("git log --oneline", True),
        ("git push", False),
        ("git", False),
        ("ls > out.txt", False),
        ("cat a; rm b", False),
        ("echo $(whoami)", False),
        ("ls | sh", False),
        ("python script.py", False),
        ("", False),
        ("echo 'unterminated", False),
    ],
)
def test_is_read_only_command(command: str, expected: bool) -> None:
    assert is_read_only_command(command) is expected


def test_permission_request_prompt_lists_directives_and_flags_destructive_commands() -> None:
    request = build_permission_request(extract("[[WRITE: a, x]] [[EXECUTE: rm -rf build]]"))

    assert request.level is PermissionLevel.EXECUTE
    assert request.destructive is True
    assert "execute-level" in request.prompt
    assert "  - WRITE: a, x" in request.prompt
    assert "  - EXECUTE: rm -rf build" in request.prompt
    assert "destructive" in request.prompt


def test_permission_request_without_destructive_commands() -> None:
    request = build_permission_request(extract("[[READ: a]]"))

    assert request.destructive is False
    assert "destructive" not in request.prompt
