"""Data models for directives extracted from model replies."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum


class DirectiveKind(str, Enum):
    """Closed set of action types a model may request."""

    READ = "READ"
    WRITE = "WRITE"
    APPEND = "APPEND"
    DELETE = "DELETE"
    VIEW = "VIEW"
    REPLACE = "REPLACE"
    INSERT = "INSERT"
    UNDO = "UNDO"
    INFO = "INFO"
    EXISTS = "EXISTS"
    MKDIR = "MKDIR"
    RMDIR = "RMDIR"
    EXECUTE = "EXECUTE"
    BROWSE = "BROWSE"
    CLICK = "CLICK"
    TYPE = "TYPE"
    EXTRACT = "EXTRACT"
    SCREENSHOT = "SCREENSHOT"
    SCROLL = "SCROLL"
    ELEMENTS = "ELEMENTS"
    TABS = "TABS"
    NEW_TAB = "NEW_TAB"
    CLOSE_TAB = "CLOSE_TAB"
    SWITCH_TAB = "SWITCH_TAB"
    LIST_TABS = "LIST_TABS"

    @classmethod
    def lookup(cls, token: str) -> DirectiveKind | None:
        try:
            return cls(token.strip().upper())
        except ValueError:
            return None


class PermissionLevel(IntEnum):
    """Sensitivity of a directive batch, ordered from least to most sensitive."""

    READ = 1
    WRITE = 2
    EXECUTE = 3

    @property
    def label(self) -> str:
        return self.name.lower()


@dataclass(frozen=True, slots=True)
class PathArgs:
    path: str


@dataclass(frozen=True, slots=True)
class WriteArgs:
    path: str
    content: str


@dataclass(frozen=True, slots=True)
class ReplaceArgs:
    path: str
    old: str
    new: str


@dataclass(frozen=True, slots=True)
class InsertArgs:
    path: str
    line: int
    content: str


@dataclass(frozen=True, slots=True)
class ViewArgs:
    path: str
    start: int | None = None
    end: int | None = None

    @property
    def view_range(self) -> tuple[int, int] | None:
        if self.start is None or self.end is None:
            return None
        return self.start, self.end


@dataclass(frozen=True, slots=True)
class RemoveDirArgs:
    path: str
    recursive: bool = False


@dataclass(frozen=True, slots=True)
class CommandArgs:
    command: str


@dataclass(frozen=True, slots=True)
class TargetArgs:
    """Single free-form argument: a URL, a selector, or an extraction goal."""

    target: str


@dataclass(frozen=True, slots=True)
class TypeTextArgs:
    selector: str
    text: str


@dataclass(frozen=True, slots=True)
class ScrollArgs:
    direction: str = "down"
    amount: int = 300


@dataclass(frozen=True, slots=True)
class TabArgs:
    tab_id: int | None = None
    url: str | None = None


DirectiveArguments = (
    PathArgs
    | WriteArgs
    | ReplaceArgs
    | InsertArgs
    | ViewArgs
    | RemoveDirArgs
    | CommandArgs
    | TargetArgs
    | TypeTextArgs
    | ScrollArgs
    | TabArgs
)


@dataclass(frozen=True, slots=True)
class Directive:
    """A single action request found in model text.

    ``arguments`` is absent when the parameters could not be split into the
    kind's shape; ``validation_error`` then explains what was wrong. Such a
    directive is still returned by the extractor so the model can be told
    about the mistake.
    """

    kind: DirectiveKind
    raw_parameters: str
    source_span: str
    arguments: DirectiveArguments | None = None
    validation_error: str | None = None

    @property
    def is_valid(self) -> bool:
        return self.validation_error is None

    def describe(self) -> str:
        return f"{self.kind.value}: {self.raw_parameters}"
