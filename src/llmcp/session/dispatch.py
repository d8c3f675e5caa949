"""Route each directive kind to its capability provider."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Protocol, TypeVar

from llmcp.directives.models import (
    CommandArgs,
    Directive,
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
from llmcp.providers.errors import DirectiveValidationError, ProviderUnavailableError

if TYPE_CHECKING:
    from llmcp.providers.browser import BrowserProvider
    from llmcp.providers.filesystem import FilesystemEngine

LOGGER = logging.getLogger(__name__)

ArgsT = TypeVar("ArgsT")
Handler = Callable[[Directive], Awaitable[object]]


class CommandRunner(Protocol):
    async def execute(self, command: str) -> str: ...


class DirectiveDispatcher:
    """Lookup table from :class:`DirectiveKind` to a provider call.

    Every kind has an entry; constructing a dispatcher fails loudly if one is
    missing so new kinds cannot be added without a route.
    """

    def __init__(
        self,
        *,
        filesystem: FilesystemEngine,
        terminal: CommandRunner | None = None,
        browser: BrowserProvider | None = None,
    ) -> None:
        self.filesystem = filesystem
        self.terminal = terminal
        self.browser = browser
        self._handlers: dict[DirectiveKind, Handler] = {
            DirectiveKind.READ: self._read,
            DirectiveKind.VIEW: self._view,
            DirectiveKind.WRITE: self._write,
            DirectiveKind.APPEND: self._append,
            DirectiveKind.DELETE: self._delete,
            DirectiveKind.REPLACE: self._replace,
            DirectiveKind.INSERT: self._insert,
            DirectiveKind.UNDO: self._undo,
            DirectiveKind.INFO: self._info,
            DirectiveKind.EXISTS: self._exists,
            DirectiveKind.MKDIR: self._mkdir,
            DirectiveKind.RMDIR: self._rmdir,
            DirectiveKind.EXECUTE: self._execute,
            DirectiveKind.BROWSE: self._browse,
            DirectiveKind.CLICK: self._click,
            DirectiveKind.TYPE: self._type,
            DirectiveKind.EXTRACT: self._extract,
            DirectiveKind.SCREENSHOT: self._screenshot,
            DirectiveKind.SCROLL: self._scroll,
            DirectiveKind.ELEMENTS: self._elements,
            DirectiveKind.TABS: self._list_tabs,
            DirectiveKind.LIST_TABS: self._list_tabs,
            DirectiveKind.NEW_TAB: self._new_tab,
            DirectiveKind.CLOSE_TAB: self._close_tab,
            DirectiveKind.SWITCH_TAB: self._switch_tab,
        }
        missing = set(DirectiveKind) - set(self._handlers)
        if missing:
            names = ", ".join(sorted(kind.value for kind in missing))
            raise RuntimeError(f"No dispatch route for directive kinds: {names}")

    async def dispatch(self, directive: Directive) -> object:
        if directive.validation_error:
            raise DirectiveValidationError(directive.validation_error)
        LOGGER.debug("directive_dispatch", extra={"directive_type": directive.kind.value})
        return await self._handlers[directive.kind](directive)

    async def _read(self, directive: Directive) -> object:
        args = _arguments(directive, PathArgs)
        return await self.filesystem.read(args.path)

    async def _view(self, directive: Directive) -> object:
        args = _arguments(directive, ViewArgs)
        return await self.filesystem.read(
            args.path, view_range=args.view_range, with_line_numbers=True
        )

    async def _write(self, directive: Directive) -> object:
        args = _arguments(directive, WriteArgs)
        return await self.filesystem.write(args.path, args.content)

    async def _append(self, directive: Directive) -> object:
        args = _arguments(directive, WriteArgs)
        return await self.filesystem.append(args.path, args.content)

    async def _delete(self, directive: Directive) -> object:
        args = _arguments(directive, PathArgs)
        return await self.filesystem.delete(args.path)

    async def _replace(self, directive: Directive) -> object:
        args = _arguments(directive, ReplaceArgs)
        return await self.filesystem.replace(args.path, args.old, args.new)

    async def _insert(self, directive: Directive) -> object:
        args = _arguments(directive, InsertArgs)
        return await self.filesystem.insert_at_line(args.path, args.line, args.content)

    async def _undo(self, directive: Directive) -> object:
        args = _arguments(directive, PathArgs)
        return await self.filesystem.undo(args.path)

    async def _info(self, directive: Directive) -> object:
        args = _arguments(directive, PathArgs)
        return await self.filesystem.info(args.path)

    async def _exists(self, directive: Directive) -> object:
        args = _arguments(directive, PathArgs)
        return await self.filesystem.exists(args.path)

    async def _mkdir(self, directive: Directive) -> object:
        args = _arguments(directive, PathArgs)
        return await self.filesystem.make_directory(args.path)

    async def _rmdir(self, directive: Directive) -> object:
        args = _arguments(directive, RemoveDirArgs)
        return await self.filesystem.remove_directory(args.path, recursive=args.recursive)

    async def _execute(self, directive: Directive) -> object:
        args = _arguments(directive, CommandArgs)
        if self.terminal is None:
            raise ProviderUnavailableError("Command execution is not configured.")
        return await self.terminal.execute(args.command)

    async def _browse(self, directive: Directive) -> object:
        args = _arguments(directive, TargetArgs)
        return await self._browser(directive).navigate(args.target)

    async def _click(self, directive: Directive) -> object:
        args = _arguments(directive, TargetArgs)
        return await self._browser(directive).click(args.target)

    async def _type(self, directive: Directive) -> object:
        args = _arguments(directive, TypeTextArgs)
        return await self._browser(directive).type_text(args.selector, args.text)

    async def _extract(self, directive: Directive) -> object:
        args = _arguments(directive, TargetArgs)
        return await self._browser(directive).extract(args.target)

    async def _screenshot(self, directive: Directive) -> object:
        return await self._browser(directive).screenshot()

    async def _scroll(self, directive: Directive) -> object:
        args = _arguments(directive, ScrollArgs)
        return await self._browser(directive).scroll(args.direction, args.amount)

    async def _elements(self, directive: Directive) -> object:
        return await self._browser(directive).interactive_elements()

    async def _list_tabs(self, directive: Directive) -> object:
        return await self._browser(directive).list_tabs()

    async def _new_tab(self, directive: Directive) -> object:
        args = _arguments(directive, TabArgs)
        return await self._browser(directive).new_tab(args.url)

    async def _close_tab(self, directive: Directive) -> object:
        args = _arguments(directive, TabArgs)
        return await self._browser(directive).close_tab(args.tab_id)

    async def _switch_tab(self, directive: Directive) -> object:
        args = _arguments(directive, TabArgs)
        if args.tab_id is None:
            raise DirectiveValidationError("SWITCH_TAB requires a tab id.")
        return await self._browser(directive).switch_tab(args.tab_id)

    def _browser(self, directive: Directive) -> BrowserProvider:
        if self.browser is None:
            raise ProviderUnavailableError(
                f"Browser automation is not enabled, so {directive.kind.value} cannot run."
            )
        return self.browser


def _arguments(directive: Directive, expected: type[ArgsT]) -> ArgsT:
    if not isinstance(directive.arguments, expected):
        raise DirectiveValidationError(
            f"Parameters for {directive.kind.value} could not be parsed: "
            f"{directive.raw_parameters!r}"
        )
    return directive.arguments
