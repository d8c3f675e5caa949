"""Scanner that extracts ``[[TYPE: parameters]]`` directives from model text.

Extraction is deliberately permissive. A bracketed span whose type is not in
:class:`DirectiveKind` is logged and skipped, and a directive whose
parameters do not fit its kind is still returned with ``validation_error``
set. One bad span never hides the directives around it; the model reads the
validation error back and corrects itself on the next turn.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable

from .models import (
    CommandArgs,
    Directive,
    DirectiveArguments,
    DirectiveKind,
    InsertArgs,
    PathArgs,
    RemoveDirArgs,
    ReplaceArgs,
    ScrollArgs,
    TabArgs,
    TargetArgs,
    TypeTextArgs,
    ViewArgs,
    WriteArgs,
)

LOGGER = logging.getLogger(__name__)

OPEN_MARKER = "[["
CLOSE_MARKER = "]]"

_DASH_RANGE = re.compile(r"^(\d+)\s*-\s*(-1|\d+)$")
_RECURSIVE_FLAGS = {"recursive", "true", "yes", "-r", "1"}
_SCROLL_DIRECTIONS = {"up", "down"}

ParseResult = tuple[DirectiveArguments | None, str | None]


def extract(text: str) -> list[Directive]:
    """Return the directives found in ``text`` in order of appearance."""
    if not isinstance(text, str) or OPEN_MARKER not in text:
        return []

    directives: list[Directive] = []
    position = 0
    while True:
        start = text.find(OPEN_MARKER, position)
        if start < 0:
            break
        header = _scan_header(text, start + len(OPEN_MARKER))
        if header is None:
            position = start + 1
            continue
        type_token, parameters_start = header
        end = text.find(CLOSE_MARKER, parameters_start)
        if end < 0:
            break
        position = end + len(CLOSE_MARKER)

        kind = DirectiveKind.lookup(type_token)
        if kind is None:
            LOGGER.warning("directive_unsupported", extra={"directive_type": type_token.upper()})
            continue

        directive = build_directive(
            kind,
            text[parameters_start:end].strip(),
            source_span=text[start:position],
        )
        LOGGER.debug(
            "directive_extracted",
            extra={
                "directive_type": kind.value,
                "parameters_length": len(directive.raw_parameters),
                "validation_error": directive.validation_error,
            },
        )
        directives.append(directive)

    return directives


def build_directive(kind: DirectiveKind, parameters: str, *, source_span: str = "") -> Directive:
    """Split ``parameters`` into the typed arguments of ``kind``."""
    parser = _PARSERS.get(kind, _parse_no_arguments)
    arguments, error = parser(kind, parameters)
    return Directive(
        kind=kind,
        raw_parameters=parameters,
        source_span=source_span or f"[[{kind.value}: {parameters}]]",
        arguments=arguments,
        validation_error=error,
    )


def _scan_header(text: str, index: int) -> tuple[str, int] | None:
    """Match ``TYPE :`` at ``index``; return the token and the offset after the colon."""
    length = len(text)
    while index < length and text[index].isspace():
        index += 1
    token_start = index
    while index < length and _is_word_char(text[index]):
        index += 1
    if index == token_start:
        return None
    token = text[token_start:index]
    while index < length and text[index].isspace():
        index += 1
    if index >= length or text[index] != ":":
        return None
    return token, index + 1


def _is_word_char(char: str) -> bool:
    return char == "_" or (char.isascii() and char.isalnum())


def _payload(segment: str) -> str:
    """Drop the separator after a comma but keep any indentation that follows."""
    if segment.startswith(" "):
        segment = segment[1:]
    stripped = segment.lstrip(" \t")
    if stripped.startswith("\r\n"):
        return stripped[2:]
    if stripped.startswith("\n"):
        return stripped[1:]
    return segment


def _payload_before_separator(segment: str) -> str:
    """Like :func:`_payload`, and also drop a line break that only leads up to the next comma."""
    segment = _payload(segment)
    stripped = segment.rstrip(" \t")
    if stripped.endswith("\r\n"):
        return stripped[:-2]
    if stripped.endswith("\n"):
        return stripped[:-1]
    return segment


def _empty_error(kind: DirectiveKind) -> str:
    return f"Empty parameters for {kind.value} action"


def _parse_path(kind: DirectiveKind, parameters: str) -> ParseResult:
    if not parameters:
        return None, _empty_error(kind)
    return PathArgs(path=parameters), None


def _parse_command(kind: DirectiveKind, parameters: str) -> ParseResult:
    if not parameters:
        return None, _empty_error(kind)
    return CommandArgs(command=parameters), None


def _parse_write(kind: DirectiveKind, parameters: str) -> ParseResult:
    if "," not in parameters:
        return None, f"Invalid format for {kind.value}. Expected: {kind.value}: file_path, content"
    path, content = parameters.split(",", 1)
    path = path.strip()
    if not path:
        return None, f"Missing file path for {kind.value}"
    return WriteArgs(path=path, content=_payload(content)), None


def _parse_replace(kind: DirectiveKind, parameters: str) -> ParseResult:
    segments = parameters.split(",")
    if len(segments) < 3:
        return None, (
            f"Invalid format for {kind.value}. "
            f"Expected: {kind.value}: file_path, old_string, new_string"
        )
    path = segments[0].strip()
    if not path:
        return None, f"Missing file path for {kind.value}"
    old = ",".join(segments[1:-1])
    return (
        ReplaceArgs(path=path, old=_payload_before_separator(old), new=_payload(segments[-1])),
        None,
    )


def _parse_insert(kind: DirectiveKind, parameters: str) -> ParseResult:
    segments = parameters.split(",", 2)
    if len(segments) < 3:
        return None, (
            f"Invalid format for {kind.value}. "
            f"Expected: {kind.value}: file_path, line_number, content"
        )
    path = segments[0].strip()
    if not path:
        return None, f"Missing file path for {kind.value}"
    try:
        line = int(segments[1].strip())
    except ValueError:
        return None, f"Invalid line number for {kind.value}. Expected a number."
    return InsertArgs(path=path, line=line, content=_payload(segments[2])), None


def _parse_view(kind: DirectiveKind, parameters: str) -> ParseResult:
    path, _, range_text = parameters.partition(",")
    path = path.strip()
    if not path:
        return None, _empty_error(kind)
    range_text = range_text.strip()
    if not range_text:
        return ViewArgs(path=path), None

    parsed = _parse_range(range_text)
    if isinstance(parsed, str):
        return ViewArgs(path=path), f"Invalid line range format for {kind.value}. {parsed}"
    start, end = parsed
    return ViewArgs(path=path, start=start, end=end), None


def _parse_range(range_text: str) -> tuple[int, int] | str:
    if range_text.startswith("["):
        try:
            value = json.loads(range_text)
        except json.JSONDecodeError as exc:
            return f"Expected: [start, end] ({exc.msg})"
        if (
            not isinstance(value, list)
            or len(value) != 2
            or not all(isinstance(item, int) and not isinstance(item, bool) for item in value)
        ):
            return "Expected: [start, end]"
        return value[0], value[1]

    match = _DASH_RANGE.match(range_text)
    if match is None:
        return "Expected: [start, end] or start-end"
    return int(match.group(1)), int(match.group(2))


def _parse_rmdir(kind: DirectiveKind, parameters: str) -> ParseResult:
    if not parameters:
        return None, _empty_error(kind)
    path, _, flag = parameters.partition(",")
    path = path.strip()
    if not path:
        return None, _empty_error(kind)
    return RemoveDirArgs(path=path, recursive=flag.strip().lower() in _RECURSIVE_FLAGS), None


def _parse_target(kind: DirectiveKind, parameters: str) -> ParseResult:
    if not parameters:
        return None, _empty_error(kind)
    return TargetArgs(target=parameters), None


def _parse_optional_target(_kind: DirectiveKind, parameters: str) -> ParseResult:
    return TargetArgs(target=parameters), None


def _parse_type_text(kind: DirectiveKind, parameters: str) -> ParseResult:
    if "," not in parameters:
        return None, f"Invalid format for {kind.value}. Expected: {kind.value}: selector, text"
    selector, text = parameters.split(",", 1)
    selector = selector.strip()
    if not selector:
        return None, f"Missing selector for {kind.value}"
    return TypeTextArgs(selector=selector, text=_payload(text)), None


def _parse_scroll(kind: DirectiveKind, parameters: str) -> ParseResult:
    direction = "down"
    amount = 300
    segments = [segment.strip() for segment in parameters.split(",") if segment.strip()]
    if segments and segments[0].lower() in _SCROLL_DIRECTIONS:
        direction = segments.pop(0).lower()
    if segments:
        try:
            amount = int(segments.pop(0))
        except ValueError:
            return None, f"Invalid scroll amount for {kind.value}. Expected: up|down, pixels"
    if segments or amount <= 0:
        return None, f"Invalid format for {kind.value}. Expected: up|down, pixels"
    return ScrollArgs(direction=direction, amount=amount), None


def _parse_new_tab(_kind: DirectiveKind, parameters: str) -> ParseResult:
    return TabArgs(url=parameters or None), None


def _parse_tab_id(kind: DirectiveKind, parameters: str, *, required: bool) -> ParseResult:
    if not parameters:
        if required:
            return None, _empty_error(kind)
        return TabArgs(), None
    try:
        return TabArgs(tab_id=int(parameters)), None
    except ValueError:
        return None, f"Invalid tab id for {kind.value}. Expected a number."


def _parse_switch_tab(kind: DirectiveKind, parameters: str) -> ParseResult:
    return _parse_tab_id(kind, parameters, required=True)


def _parse_close_tab(kind: DirectiveKind, parameters: str) -> ParseResult:
    return _parse_tab_id(kind, parameters, required=False)


def _parse_no_arguments(_kind: DirectiveKind, _parameters: str) -> ParseResult:
    return None, None


_PARSERS: dict[DirectiveKind, Callable[[DirectiveKind, str], ParseResult]] = {
    DirectiveKind.READ: _parse_path,
    DirectiveKind.DELETE: _parse_path,
    DirectiveKind.MKDIR: _parse_path,
    DirectiveKind.INFO: _parse_path,
    DirectiveKind.UNDO: _parse_path,
    DirectiveKind.EXISTS: _parse_path,
    DirectiveKind.RMDIR: _parse_rmdir,
    DirectiveKind.EXECUTE: _parse_command,
    DirectiveKind.WRITE: _parse_write,
    DirectiveKind.APPEND: _parse_write,
    DirectiveKind.REPLACE: _parse_replace,
    DirectiveKind.INSERT: _parse_insert,
    DirectiveKind.VIEW: _parse_view,
    DirectiveKind.BROWSE: _parse_target,
    DirectiveKind.CLICK: _parse_target,
    DirectiveKind.EXTRACT: _parse_optional_target,
    DirectiveKind.TYPE: _parse_type_text,
    DirectiveKind.SCROLL: _parse_scroll,
    DirectiveKind.NEW_TAB: _parse_new_tab,
    DirectiveKind.SWITCH_TAB: _parse_switch_tab,
    DirectiveKind.CLOSE_TAB: _parse_close_tab,
}
