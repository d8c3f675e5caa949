"""Terminal capability provider backed by a shell adapter."""

from __future__ import annotations

import asyncio
import logging

from llmcp.shell import CommandResult, ShellAdapter

from .errors import CommandExecutionError

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_OUTPUT_CHARS = 100_000
DEFAULT_CAUTION_OUTPUT_CHARS = 50_000
DEFAULT_PREVIEW_CHARS = 10_000


class TerminalRunner:
    """Runs one command per EXECUTE directive and shapes its output for the model."""

    def __init__(
        self,
        shell: ShellAdapter,
        *,
        working_directory: str | None = None,
        timeout: float | None = 120.0,
        max_output_chars: int = DEFAULT_MAX_OUTPUT_CHARS,
        caution_output_chars: int = DEFAULT_CAUTION_OUTPUT_CHARS,
        preview_chars: int = DEFAULT_PREVIEW_CHARS,
    ) -> None:
        self.shell = shell
        self.working_directory = working_directory
        self.timeout = timeout
        self.max_output_chars = max_output_chars
        self.caution_output_chars = caution_output_chars
        self.preview_chars = preview_chars

    async def execute(self, command: str) -> str:
        result = await asyncio.to_thread(
            self.shell.execute,
            command,
            cwd=self.working_directory,
            timeout=self.timeout,
        )
        if result.blocked:
            raise CommandExecutionError(f"Command was not run: {result.block_reason}")
        if result.timed_out:
            raise CommandExecutionError(
                f"Command timed out after {result.duration_seconds:.0f}s. "
                f"Partial output:\n{self._shape(_combined_output(result))}"
            )
        if not result.executed:
            raise CommandExecutionError(result.stderr or "Command could not be started.")

        output = self._shape(_combined_output(result))
        if result.returncode != 0:
            LOGGER.info(
                "command_nonzero_exit",
                extra={"shell": result.shell, "returncode": result.returncode},
            )
            footer = f"[exit code {result.returncode}]"
            return f"{output}\n{footer}" if output else footer
        return output

    def _shape(self, output: str) -> str:
        if len(output) > self.max_output_chars:
            return (
                "[WARNING] Command produced very large output. The result has been "
                "truncated as it is too large to process effectively. Here is the "
                f"beginning:\n\n{output[: self.preview_chars]}\n\n"
                "[...Output truncated. Try using a more specific command or add filters "
                'like "| head -n 50" or "| grep pattern" to reduce output size.]'
            )
        if len(output) > self.caution_output_chars:
            return (
                "[CAUTION] Command produced large output that may be difficult to process. "
                f"Consider using more specific commands in the future.\n\n{output}"
            )
        return output


def _combined_output(result: CommandResult) -> str:
    if result.returncode == 0 or not result.stderr:
        return result.stdout
    if not result.stdout:
        return result.stderr
    return f"{result.stdout}\n{result.stderr}"
