"""Classify directive batches by the most sensitive capability they need."""

from __future__ import annotations

import re
import shlex
from collections.abc import Sequence
from dataclasses import dataclass

from llmcp.directives.models import (
    CommandArgs,
    Directive,
    DirectiveKind,
    PermissionLevel,
)
from llmcp.shell import is_destructive_command

WRITE_KINDS = frozenset(
    {
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
    }
)

READ_ONLY_COMMANDS = frozenset(
    {
        "ls",
        "dir",
        "pwd",
        "cat",
        "head",
        "tail",
        "less",
        "wc",
        "echo",
        "whoami",
        "date",
        "uname",
        "hostname",
        "which",
        "file",
        "stat",
        "du",
        "df",
        "tree",
        "grep",
        "env",
        "printenv",
    }
)

READ_ONLY_GIT_SUBCOMMANDS = frozenset({"status", "log", "diff", "show", "branch", "remote"})

# Any of these turns a harmless command into one that can write or chain.
_SHELL_CONTROL = re.compile(r"[;&|<>`]|\$\(")


@dataclass(frozen=True, slots=True)
class PermissionRequest:
    """What the user is asked to approve for one batch."""

    level: PermissionLevel
    directives: tuple[Directive, ...]
    destructive: bool = False

    @property
    def prompt(self) -> str:
        lines = [f"The assistant wants to perform {self.level.label}-level actions:"]
        lines.extend(f"  - {directive.describe()}" for directive in self.directives)
        if self.destructive:
            lines.append("Warning: at least one command looks destructive.")
        lines.append(
            f"Allow {self.level.label}-level actions for the rest of this session?"
        )
        return "\n".join(lines)


def classify_directive(directive: Directive) -> PermissionLevel:
    if directive.kind in WRITE_KINDS:
        return PermissionLevel.WRITE
    if directive.kind is DirectiveKind.EXECUTE:
        command = (
            directive.arguments.command
            if isinstance(directive.arguments, CommandArgs)
            else directive.raw_parameters
        )
        return PermissionLevel.READ if is_read_only_command(command) else PermissionLevel.EXECUTE
    return PermissionLevel.READ


def classify_batch(directives: Sequence[Directive]) -> PermissionLevel:
    return max(
        (classify_directive(directive) for directive in directives),
        default=PermissionLevel.READ,
    )


def build_permission_request(directives: Sequence[Directive]) -> PermissionRequest:
    return PermissionRequest(
        level=classify_batch(directives),
        directives=tuple(directives),
        destructive=any(
            directive.kind is DirectiveKind.EXECUTE
            and is_destructive_command(directive.raw_parameters)
            for directive in directives
        ),
    )


def is_read_only_command(command: str) -> bool:
    """True for a single inspection command with no redirection or chaining."""
    if not command.strip() or _SHELL_CONTROL.search(command):
        return False
    try:
        tokens = shlex.split(command)
    except ValueError:
        return False
    if not tokens:
        return False
    program = tokens[0]
    if program == "git":
        return len(tokens) > 1 and tokens[1] in READ_ONLY_GIT_SUBCOMMANDS
    return program in READ_ONLY_COMMANDS
