"""Shell adapter implementations."""

from collections.abc import Sequence

from .base import CommandResult, ShellAdapter, is_destructive_command, pattern_hook
from .bash_adapter import BashAdapter
from .powershell_adapter import PowerShellAdapter


def create_shell_adapter(
    shell_name: str,
    *,
    denylist: Sequence[str] = (),
    allowlist: Sequence[str] = (),
) -> ShellAdapter:
    """Build the adapter for ``shell_name`` with optional command pattern policies.

    A command matching any ``denylist`` pattern is never run. When
    ``allowlist`` is non-empty, a command must match one of its patterns.
    """
    hooks = {"denylist_hook": pattern_hook(denylist), "allowlist_hook": pattern_hook(allowlist)}
    normalized = shell_name.strip().lower()
    if normalized in {"bash", "sh", "shell"}:
        return BashAdapter(executable="sh" if normalized == "sh" else None, **hooks)
    if normalized in {"powershell", "pwsh"}:
        return PowerShellAdapter(**hooks)
    msg = f"Unsupported shell adapter: {shell_name}"
    raise ValueError(msg)


__all__ = [
    "BashAdapter",
    "CommandResult",
    "PowerShellAdapter",
    "ShellAdapter",
    "create_shell_adapter",
    "is_destructive_command",
    "pattern_hook",
]
