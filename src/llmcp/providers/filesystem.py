"""Filesystem capability provider with workspace containment and single-level undo."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import stat
from datetime import datetime, timezone
from pathlib import Path

from .errors import (
    AmbiguousMatchError,
    FileConflictError,
    FileOperationError,
    LineRangeError,
    NoEditHistoryError,
    NoMatchError,
    PathContainmentError,
    ResourceNotFoundError,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_FILE_BYTES = 500 * 1024
DEFAULT_PREVIEW_BYTES = 10 * 1024
SNIPPET_CONTEXT_LINES = 4
LINE_NUMBER_WIDTH = 6

TEXT_PREVIEW_EXTENSIONS = frozenset(
    {
        ".txt",
        ".md",
        ".js",
        ".ts",
        ".py",
        ".html",
        ".css",
        ".json",
        ".yaml",
        ".yml",
        ".toml",
        ".csv",
        ".log",
        ".xml",
        ".sh",
    }
)

# surrogateescape + newline="" round-trips arbitrary bytes, so undo is exact.
_ENCODING = "utf-8"
_ENCODING_ERRORS = "surrogateescape"


class EditHistory:
    """At most one prior state per resolved path.

    Recording overwrites the slot instead of stacking, so after two edits of
    the same file only the second one can be undone. A recorded ``None`` means
    the file did not exist before the edit.
    """

    def __init__(self) -> None:
        self._snapshots: dict[str, str | None] = {}

    def record(self, key: str, content: str | None) -> None:
        self._snapshots[key] = content

    def pop(self, key: str) -> str | None:
        """Remove and return the slot for ``key``; raises ``KeyError`` when empty."""
        return self._snapshots.pop(key)

    def has(self, key: str) -> bool:
        return key in self._snapshots

    def __len__(self) -> int:
        return len(self._snapshots)


class FilesystemEngine:
    """File and directory operations addressed by model-supplied paths.

    Absolute paths and paths containing a separator are used as given. Bare
    names land in ``workspace_root`` and may not escape it.
    """

    def __init__(
        self,
        workspace_root: str | Path,
        *,
        max_file_bytes: int = DEFAULT_MAX_FILE_BYTES,
        preview_bytes: int = DEFAULT_PREVIEW_BYTES,
        snippet_context: int = SNIPPET_CONTEXT_LINES,
    ) -> None:
        self.workspace_root = Path(workspace_root).expanduser()
        self.max_file_bytes = max_file_bytes
        self.preview_bytes = preview_bytes
        self.snippet_context = snippet_context
        self.history = EditHistory()

    def resolve_path(self, raw_path: str) -> Path:
        candidate = raw_path.strip()
        if not candidate:
            raise FileOperationError("A file path is required.")
        if _is_explicit_path(candidate):
            return Path(candidate).expanduser()

        root = self.workspace_root.resolve()
        target = (root / candidate).resolve()
        if target != root and root not in target.parents:
            raise PathContainmentError(
                f"Path {candidate!r} resolves outside the workspace {root}. "
                "Use an absolute path to address files elsewhere."
            )
        return target

    async def read(
        self,
        path: str,
        *,
        view_range: tuple[int, int] | None = None,
        with_line_numbers: bool = False,
    ) -> str:
        return await asyncio.to_thread(self._read, path, view_range, with_line_numbers)

    async def write(self, path: str, content: str, *, overwrite: bool = False) -> str:
        return await asyncio.to_thread(self._write, path, content, overwrite)

    async def append(self, path: str, content: str) -> str:
        return await asyncio.to_thread(self._append, path, content)

    async def delete(self, path: str) -> str:
        return await asyncio.to_thread(self._delete, path)

    async def replace(self, path: str, old: str, new: str) -> str:
        return await asyncio.to_thread(self._replace, path, old, new)

    async def insert_at_line(self, path: str, index: int, text: str) -> str:
        return await asyncio.to_thread(self._insert_at_line, path, index, text)

    async def undo(self, path: str) -> str:
        return await asyncio.to_thread(self._undo, path)

    async def list_directory(self, path: str) -> str:
        return await asyncio.to_thread(self._list_directory_at, path)

    async def make_directory(self, path: str) -> str:
        return await asyncio.to_thread(self._make_directory, path)

    async def remove_directory(self, path: str, *, recursive: bool = False) -> str:
        return await asyncio.to_thread(self._remove_directory, path, recursive)

    async def exists(self, path: str) -> str:
        return await asyncio.to_thread(self._exists, path)

    async def info(self, path: str) -> dict[str, object]:
        return await asyncio.to_thread(self._info, path)

    def has_history(self, path: str) -> bool:
        return self.history.has(self._history_key(self.resolve_path(path)))

    def _read(
        self,
        raw_path: str,
        view_range: tuple[int, int] | None,
        with_line_numbers: bool,
    ) -> str:
        target = self.resolve_path(raw_path)
        if target.is_dir():
            return self._list_directory(target)

        size = self._stat(target, "read").st_size
        if size > self.max_file_bytes and view_range is not None:
            return self._read_large_range(target, view_range, with_line_numbers)
        if size > self.max_file_bytes:
            LOGGER.info(
                "file_read_truncated",
                extra={"path": str(target), "size": size, "limit": self.max_file_bytes},
            )
            return self._oversized_preview(target, size)

        content = self._read_text(target, "read")
        if view_range is None and not with_line_numbers:
            return content

        lines = content.splitlines()
        first_line = 1
        if view_range is not None:
            lines, first_line = _slice_lines(lines, view_range)
        if with_line_numbers:
            return _number_lines(lines, first_line)
        return "\n".join(lines)

    def _write(self, raw_path: str, content: str, overwrite: bool) -> str:
        target = self.resolve_path(raw_path)
        if target.is_dir():
            raise FileConflictError(f"Cannot write to {target}: it is a directory.")
        existed = target.exists()
        if existed and not overwrite:
            raise FileConflictError(
                f"File {target} already exists. Use REPLACE or INSERT to edit it, "
                "APPEND to add to it, or DELETE it first."
            )

        self._ensure_parent(target)
        self._snapshot(target)
        self._write_text(target, content, "write to")
        self._log_mutation("write", target)
        return f"Successfully wrote to {target}"

    def _append(self, raw_path: str, content: str) -> str:
        target = self.resolve_path(raw_path)
        if target.is_dir():
            raise FileConflictError(f"Cannot append to {target}: it is a directory.")

        self._ensure_parent(target)
        self._snapshot(target)
        try:
            with target.open(
                "a", encoding=_ENCODING, errors=_ENCODING_ERRORS, newline=""
            ) as handle:
                handle.write(content)
        except OSError as exc:
            raise _os_error("append to", target, exc) from exc
        self._log_mutation("append", target)
        return f"Successfully appended to {target}"

    def _delete(self, raw_path: str) -> str:
        target = self.resolve_path(raw_path)
        if target.is_dir():
            raise FileConflictError(
                f"Cannot delete {target}: it is a directory. Use RMDIR to remove directories."
            )
        if not target.exists():
            raise ResourceNotFoundError(f"Failed to delete {target}: no such file.")

        self._snapshot(target)
        try:
            target.unlink()
        except OSError as exc:
            raise _os_error("delete", target, exc) from exc
        self._log_mutation("delete", target)
        return f"Successfully deleted {target}"

    def _replace(self, raw_path: str, old: str, new: str) -> str:
        target = self.resolve_path(raw_path)
        if not old:
            raise FileOperationError("The string to replace must not be empty.")
        content = self._read_text(target, "read")

        occurrences = content.count(old)
        if occurrences == 0:
            raise NoMatchError(
                "No replacement was performed: the string to replace did not appear "
                f"verbatim in {target}."
            )
        if occurrences > 1:
            line_numbers = _match_line_numbers(content, old)
            raise AmbiguousMatchError(
                "No replacement was performed: multiple occurrences of the string to "
                f"replace were found in lines {', '.join(map(str, line_numbers))}. "
                "Include more surrounding text so that it is unique.",
                line_numbers,
            )

        index = content.index(old)
        updated = content[:index] + new + content[index + len(old) :]
        self.history.record(self._history_key(target), content)
        self._write_text(target, updated, "write to")
        self._log_mutation("replace", target)

        start_line = content.count("\n", 0, index) + 1
        end_line = start_line + new.count("\n")
        snippet = self._snippet(updated, start_line, end_line)
        return (
            f"Successfully replaced text in {target}. Here is a snippet of the edited file:\n"
            f"{snippet}\n"
            "Review the changes and make sure they are as expected."
        )

    def _insert_at_line(self, raw_path: str, index: int, text: str) -> str:
        target = self.resolve_path(raw_path)
        content = self._read_text(target, "read")
        lines = content.splitlines(keepends=True)
        total = len(lines)
        if index < 0 or index > total:
            raise LineRangeError(
                f"Invalid line number {index}. It should be within the range of lines "
                f"of the file: [0, {total}]."
            )

        newline = "\r\n" if "\r\n" in content else "\n"
        inserted = text if text.endswith("\n") else text + newline
        if index == total and lines and not lines[-1].endswith("\n"):
            lines[-1] += newline
            inserted = text
        updated = "".join([*lines[:index], inserted, *lines[index:]])

        self.history.record(self._history_key(target), content)
        self._write_text(target, updated, "write to")
        self._log_mutation("insert", target)

        inserted_count = max(1, len(text.splitlines()))
        snippet = self._snippet(updated, index + 1, index + inserted_count)
        return (
            f"Successfully inserted text at line {index} of {target}. "
            f"Here is a snippet of the edited file:\n{snippet}"
        )

    def _undo(self, raw_path: str) -> str:
        target = self.resolve_path(raw_path)
        key = self._history_key(target)
        try:
            previous = self.history.pop(key)
        except KeyError:
            raise NoEditHistoryError(f"No edit history found for {target}.") from None

        try:
            if previous is None:
                self._remove_created_file(target)
            else:
                self._ensure_parent(target)
                self._write_text(target, previous, "restore")
        except FileOperationError:
            self.history.record(key, previous)
            raise
        self._log_mutation("undo", target)
        if previous is None:
            return f"Successfully removed {target}, which the last edit created."
        return f"Successfully restored {target} to its state before the last edit."

    @staticmethod
    def _remove_created_file(target: Path) -> None:
        if target.is_dir():
            raise FileConflictError(
                f"Cannot undo the creation of {target}: it is now a directory."
            )
        try:
            target.unlink(missing_ok=True)
        except OSError as exc:
            raise _os_error("remove", target, exc) from exc

    def _list_directory_at(self, raw_path: str) -> str:
        return self._list_directory(self.resolve_path(raw_path))

    def _list_directory(self, target: Path) -> str:
        if not target.exists():
            raise ResourceNotFoundError(f"Failed to list {target}: no such directory.")
        if not target.is_dir():
            raise FileConflictError(f"Cannot list {target}: it is not a directory.")
        try:
            entries = [entry for entry in target.iterdir() if not entry.name.startswith(".")]
        except OSError as exc:
            raise _os_error("list", target, exc) from exc

        entries.sort(key=lambda entry: (not entry.is_dir(), entry.name.lower()))
        lines = [f"Contents of {target}:"]
        for entry in entries:
            if entry.is_dir():
                lines.append(f"[DIR]  {entry.name}/")
            else:
                lines.append(f"[FILE] {entry.name} ({_safe_size(entry)} bytes)")
        if not entries:
            lines.append("(empty directory)")
        return "\n".join(lines)

    def _make_directory(self, raw_path: str) -> str:
        target = self.resolve_path(raw_path)
        if target.exists() and not target.is_dir():
            raise FileConflictError(f"Cannot create directory {target}: a file exists there.")
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise _os_error("create directory", target, exc) from exc
        self._log_mutation("mkdir", target)
        return f"Successfully created directory {target}"

    def _remove_directory(self, raw_path: str, recursive: bool) -> str:
        target = self.resolve_path(raw_path)
        if not target.exists():
            raise ResourceNotFoundError(f"Failed to remove directory {target}: no such directory.")
        if not target.is_dir():
            raise FileConflictError(
                f"Cannot remove {target}: it is not a directory. Use DELETE to remove files."
            )
        try:
            if recursive:
                shutil.rmtree(target)
            else:
                target.rmdir()
        except OSError as exc:
            raise _os_error("remove directory", target, exc) from exc
        self._log_mutation("rmdir", target)
        return f"Successfully removed directory {target}"

    def _exists(self, raw_path: str) -> str:
        target = self.resolve_path(raw_path)
        if target.is_dir():
            return f"{target} exists and is a directory"
        if target.exists():
            return f"{target} exists and is a file"
        return f"{target} does not exist"

    def _info(self, raw_path: str) -> dict[str, object]:
        target = self.resolve_path(raw_path)
        details = self._stat(target, "inspect")
        created = getattr(details, "st_birthtime", details.st_ctime)
        return {
            "path": str(target),
            "size": details.st_size,
            "is_directory": stat.S_ISDIR(details.st_mode),
            "is_file": stat.S_ISREG(details.st_mode),
            "created": _timestamp(created),
            "modified": _timestamp(details.st_mtime),
            "accessed": _timestamp(details.st_atime),
            "permissions": oct(stat.S_IMODE(details.st_mode)),
        }

    def _read_large_range(
        self, target: Path, view_range: tuple[int, int], with_line_numbers: bool
    ) -> str:
        """Stream only the requested lines, keeping at most ``max_file_bytes`` of them."""
        start, end = view_range
        selected: list[str] = []
        budget = self.max_file_bytes
        cut_at: int | None = None
        total = 0
        try:
            with target.open(
                "r", encoding=_ENCODING, errors=_ENCODING_ERRORS, newline=""
            ) as handle:
                for total, line in enumerate(handle, start=1):
                    if total < start or (end != -1 and total > end) or cut_at is not None:
                        continue
                    budget -= len(line)
                    if budget < 0:
                        cut_at = total
                        continue
                    selected.append(line.rstrip("\r\n"))
        except OSError as exc:
            raise _os_error("read", target, exc) from exc

        _check_range(view_range, total)
        LOGGER.info(
            "file_read_range_streamed",
            extra={"path": str(target), "start": start, "end": end, "lines": len(selected)},
        )
        output = _number_lines(selected, start) if with_line_numbers else "\n".join(selected)
        if cut_at is not None:
            output += (
                f"\n\n[WARNING] The requested range is larger than {self.max_file_bytes} bytes "
                f"and was cut before line {cut_at}. Request a smaller range to continue."
            )
        return output

    def _oversized_preview(self, target: Path, size: int) -> str:
        size_mb = size / (1024 * 1024)
        if target.suffix.lower() not in TEXT_PREVIEW_EXTENSIONS:
            return (
                f"[WARNING] File is too large ({size_mb:.2f}MB) for complete processing. "
                "This file is likely binary or not suitable for direct text analysis. "
                "Try using system commands to examine it instead."
            )
        try:
            with target.open("rb") as handle:
                head = handle.read(self.preview_bytes).decode(_ENCODING, errors="replace")
        except OSError as exc:
            raise _os_error("read", target, exc) from exc
        return (
            f"[WARNING] File is too large ({size_mb:.2f}MB) for complete processing. "
            f"Here's the beginning of the file:\n\n{head}\n\n"
            f"[...file truncated. Size: {size_mb:.2f}MB. "
            "Use VIEW with a line range to read a smaller portion of the file.]"
        )

    def _snippet(self, content: str, start_line: int, end_line: int) -> str:
        lines = content.splitlines()
        first = max(1, start_line - self.snippet_context)
        last = min(len(lines), end_line + self.snippet_context)
        return _number_lines(lines[first - 1 : last], first)

    def _snapshot(self, target: Path) -> None:
        previous = self._read_text(target, "snapshot") if target.exists() else None
        self.history.record(self._history_key(target), previous)

    @staticmethod
    def _history_key(target: Path) -> str:
        return str(target.resolve())

    @staticmethod
    def _stat(target: Path, action: str) -> os.stat_result:
        try:
            return target.stat()
        except OSError as exc:
            raise _os_error(action, target, exc) from exc

    @staticmethod
    def _read_text(target: Path, action: str) -> str:
        if target.is_dir():
            raise FileConflictError(f"Cannot {action} {target}: it is a directory.")
        try:
            with target.open("r", encoding=_ENCODING, errors=_ENCODING_ERRORS, newline="") as handle:
                return handle.read()
        except OSError as exc:
            raise _os_error(action, target, exc) from exc

    @staticmethod
    def _write_text(target: Path, content: str, action: str) -> None:
        try:
            with target.open("w", encoding=_ENCODING, errors=_ENCODING_ERRORS, newline="") as handle:
                handle.write(content)
        except OSError as exc:
            raise _os_error(action, target, exc) from exc

    @staticmethod
    def _ensure_parent(target: Path) -> None:
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise _os_error("create directory", target.parent, exc) from exc

    def _log_mutation(self, operation: str, target: Path) -> None:
        LOGGER.info(
            "file_mutation",
            extra={
                "operation": operation,
                "path": str(target),
                "history_entries": len(self.history),
            },
        )


def _is_explicit_path(candidate: str) -> bool:
    if os.path.isabs(candidate) or candidate.startswith("~"):
        return True
    separators = {"/", os.sep}
    if os.altsep:
        separators.add(os.altsep)
    return any(separator in candidate for separator in separators)


def _slice_lines(lines: list[str], view_range: tuple[int, int]) -> tuple[list[str], int]:
    start = view_range[0]
    end = _check_range(view_range, len(lines))
    return lines[start - 1 : end], start


def _check_range(view_range: tuple[int, int], total: int) -> int:
    """Validate ``view_range`` against a file of ``total`` lines; return the inclusive end."""
    start, end = view_range
    if start < 1 or start > total:
        raise LineRangeError(
            f"Invalid start line {start}. It should be within the range of lines "
            f"of the file: [1, {total}]."
        )
    if end == -1:
        end = total
    elif end < start or end > total:
        raise LineRangeError(
            f"Invalid end line {end}. It should be -1 or within [{start}, {total}]."
        )
    return end


def _number_lines(lines: list[str], first_line: int) -> str:
    return "\n".join(
        f"{number:>{LINE_NUMBER_WIDTH}}\t{line}"
        for number, line in enumerate(lines, start=first_line)
    )


def _match_line_numbers(content: str, needle: str) -> list[int]:
    line_numbers: list[int] = []
    position = content.find(needle)
    while position >= 0:
        line_number = content.count("\n", 0, position) + 1
        if line_number not in line_numbers:
            line_numbers.append(line_number)
        position = content.find(needle, position + len(needle))
    return line_numbers


def _safe_size(entry: Path) -> int | str:
    try:
        return entry.stat().st_size
    except OSError:
        return "?"


def _timestamp(value: float) -> str:
    return datetime.fromtimestamp(value, tz=timezone.utc).isoformat()


def _os_error(action: str, target: Path, exc: OSError) -> FileOperationError:
    reason = exc.strerror or str(exc)
    if isinstance(exc, FileNotFoundError):
        return ResourceNotFoundError(f"Failed to {action} {target}: {reason}")
    return FileOperationError(f"Failed to {action} {target}: {reason}")
