"""Command-line interface for llmcp."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import platform
from pathlib import Path
from typing import TYPE_CHECKING, cast

from .config import AppConfig
from .llm.client import DEFAULT_SYSTEM_PROMPT, ModelClient
from .providers.filesystem import FilesystemEngine
from .providers.terminal import TerminalRunner
from .session.dispatch import DirectiveDispatcher
from .session.manager import SessionManager, SessionNotFoundError
from .session.models import Message, Session
from .session.orchestrator import SessionOrchestrator
from .session.permissions import PermissionRequest
from .session.store import JsonFileSessionStore
from .shell import ShellAdapter, create_shell_adapter

if TYPE_CHECKING:
    from .providers.browser import BrowserProvider

LOGGER = logging.getLogger(__name__)

QUIT_COMMANDS = {"/quit", "/exit"}


class CLIArgs(argparse.Namespace):
    message: str | None
    session_id: str | None
    new_session: bool
    list_sessions: bool
    workspace: str | None


def build_runtime_context(shell_name: str, workspace_root: str) -> str:
    """Describe this machine so the model can pick sensible paths and commands."""
    return "\n".join(
        [
            "Runtime environment context:",
            f"- operating_system: {platform.system()} {platform.release()}",
            f"- architecture: {platform.machine()}",
            f"- os_name: {os.name}",
            f"- shell: {shell_name}",
            f"- workspace_root: {workspace_root}",
            "Bare file names are created inside workspace_root.",
        ]
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="llmcp", description="Chat with a model that can act on this machine"
    )
    selection = parser.add_mutually_exclusive_group()
    selection.add_argument("--session", dest="session_id", help="Resume the session with this id")
    selection.add_argument(
        "--new", dest="new_session", action="store_true", help="Always start a new session"
    )
    parser.add_argument(
        "--list", dest="list_sessions", action="store_true", help="List saved sessions and exit"
    )
    parser.add_argument(
        "--workspace",
        help=(
            "Directory where bare file names are resolved and commands run. "
            "Takes precedence over config/env workspace values."
        ),
    )
    parser.add_argument("message", nargs="?", help="First message to send")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = cast(CLIArgs, parser.parse_args(argv))
    config = AppConfig.from_env()
    logging.basicConfig(level=getattr(logging, config.log_level, logging.WARNING))

    sessions = SessionManager(JsonFileSessionStore(config.sessions_file))
    if args.list_sessions:
        print(_render_session_list(sessions.list_sessions()))
        return 0

    workspace = Path(args.workspace or config.workspace_root).expanduser().resolve()
    if not workspace.exists() or not workspace.is_dir():
        print(f"Invalid workspace directory: {workspace}")
        return 1

    try:
        adapter = create_shell_adapter(
            config.shell, denylist=config.command_denylist, allowlist=config.command_allowlist
        )
    except ValueError as exc:
        print(f"Invalid shell configuration: {exc}")
        return 1

    try:
        session = _select_session(sessions, args)
    except SessionNotFoundError as exc:
        print(str(exc))
        return 1

    return asyncio.run(
        _run_chat(config, sessions, session, adapter, str(workspace), args.message)
    )


def _select_session(sessions: SessionManager, args: CLIArgs) -> Session:
    if args.session_id:
        return sessions.get(args.session_id)
    if not args.new_session:
        existing = sessions.list_sessions()
        if existing:
            return existing[0]
    return sessions.create_session()


async def _run_chat(
    config: AppConfig,
    sessions: SessionManager,
    session: Session,
    adapter: ShellAdapter,
    workspace: str,
    first_message: str | None,
) -> int:
    LOGGER.debug("shell_adapter_selected", extra={"shell": adapter.name})
    browser = _build_browser(config)
    client = ModelClient(
        api_key=config.api_key,
        model=config.model,
        provider=config.provider,
        api_url=config.api_url,
        temperature=config.temperature,
        timeout=config.request_timeout,
        system_prompt="\n\n".join(
            [
                config.system_prompt or DEFAULT_SYSTEM_PROMPT,
                build_runtime_context(adapter.name, workspace),
            ]
        ),
    )
    dispatcher = DirectiveDispatcher(
        filesystem=FilesystemEngine(
            workspace,
            max_file_bytes=config.max_file_bytes,
            preview_bytes=config.preview_bytes,
        ),
        terminal=TerminalRunner(
            adapter,
            working_directory=workspace,
            timeout=config.command_timeout,
            max_output_chars=config.max_output_chars,
        ),
        browser=browser,
    )
    orchestrator = SessionOrchestrator(
        client=client,
        sessions=sessions,
        dispatcher=dispatcher,
        log_dir=config.log_dir,
        request_permission=_request_permission,
        max_iterations=config.max_iterations,
    )

    print(f"=== {session.title} ({session.id}) ===")
    for message in session.messages:
        print(_render_message(message))

    message = first_message
    try:
        while True:
            if message is None:
                message = (await asyncio.to_thread(input, "you> ")).strip()
            if not message or message in QUIT_COMMANDS:
                break
            seen = len(sessions.get(session.id).messages)
            outcome = await orchestrator.send_message(session.id, message)
            for new_message in outcome.session.messages[seen:]:
                if new_message.role == "user" and not new_message.is_system_origin:
                    continue
                print(_render_message(new_message))
            LOGGER.debug(
                "turn_rendered",
                extra={"stop_reason": outcome.stop_reason.value, "iterations": outcome.iterations},
            )
            message = None
    except (EOFError, KeyboardInterrupt):
        print()
    finally:
        if browser is not None:
            await browser.close()
    return 0


def _build_browser(config: AppConfig) -> BrowserProvider | None:
    if not config.browser_enabled:
        return None
    from .providers.browser import BrowserProvider

    return BrowserProvider(headless=config.browser_headless, screenshot_dir=config.screenshot_dir)


async def _request_permission(request: PermissionRequest) -> bool:
    print("\n=== PERMISSION REQUIRED ===")
    print(request.prompt)
    print("===========================")
    choice = await asyncio.to_thread(input, f"Allow {request.level.label} access? [y/N]: ")
    return choice.strip().lower() in {"y", "yes"}


def _render_message(message: Message) -> str:
    label = "system" if message.is_system_origin else message.role
    return f"[{label}]\n{message.content.rstrip()}"


def _render_session_list(sessions: list[Session]) -> str:
    if not sessions:
        return "No saved sessions."
    lines = []
    for session in sessions:
        permission = session.permission
        status = permission.decision.value
        if permission.level is not None:
            status = f"{status} ({permission.level.label})"
        lines.append(
            f"{session.id}  {session.title}  messages={len(session.messages)}  "
            f"permission={status}"
        )
    return "\n".join(lines)


if __name__ == "__main__":
    raise SystemExit(main())
