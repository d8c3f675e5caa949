"""Environment-backed application configuration."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

from llmcp.llm.client import DEFAULT_API_URLS
from llmcp.providers.filesystem import DEFAULT_MAX_FILE_BYTES, DEFAULT_PREVIEW_BYTES

DEFAULT_MODELS = {
    "openai": "gpt-4o",
    "anthropic": "claude-3-5-sonnet-latest",
}


def _to_bool(value: str | None, default: bool = False) -> bool:
    """Convert common env var truthy/falsy values into booleans."""
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _file_bool(value: object, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return _to_bool(value, default)
    return default


@dataclass(slots=True)
class AppConfig:
    """Runtime settings loaded from environment variables and config files."""

    api_key: str | None
    provider: str
    model: str
    api_url: str
    temperature: float | None
    request_timeout: float
    system_prompt: str | None
    log_dir: str
    log_level: str
    sessions_file: str
    workspace_root: str
    max_file_bytes: int
    preview_bytes: int
    shell: str
    command_timeout: float
    max_output_chars: int
    max_iterations: int | None
    command_denylist: tuple[str, ...]
    command_allowlist: tuple[str, ...]
    browser_enabled: bool
    browser_headless: bool
    screenshot_dir: str | None

    @classmethod
    def from_env(cls) -> AppConfig:
        file_config = _load_preferred_file_config()
        providers_from_file = file_config.get("providers")
        providers_config = providers_from_file if isinstance(providers_from_file, dict) else {}

        provider = _provider_value(
            os.getenv("LLMCP_PROVIDER") or _to_optional_string(file_config.get("provider"))
        )
        provider_entry = providers_config.get(provider)
        provider_config = provider_entry if isinstance(provider_entry, dict) else {}

        return cls(
            api_key=(
                os.getenv("LLMCP_API_KEY")
                or _to_optional_string(provider_config.get("api_key"))
                or _to_optional_string(file_config.get("api_key"))
            ),
            provider=provider,
            model=(
                os.getenv("LLMCP_MODEL")
                or _to_optional_string(provider_config.get("model"))
                or _to_optional_string(file_config.get("model"))
                or DEFAULT_MODELS[provider]
            ),
            api_url=(
                os.getenv("LLMCP_API_URL")
                or _to_optional_string(provider_config.get("api_url"))
                or DEFAULT_API_URLS[provider]
            ),
            temperature=_to_optional_float(
                os.getenv("LLMCP_TEMPERATURE") or file_config.get("temperature")
            ),
            request_timeout=_to_positive_float(
                os.getenv("LLMCP_REQUEST_TIMEOUT") or file_config.get("request_timeout"),
                default=60.0,
            ),
            system_prompt=(
                os.getenv("LLMCP_SYSTEM_PROMPT")
                or _to_optional_string(file_config.get("system_prompt"))
            ),
            log_dir=(
                os.getenv("LLMCP_LOG_DIR")
                or _to_optional_string(file_config.get("log_dir"))
                or "logs"
            ),
            log_level=(
                os.getenv("LLMCP_LOG_LEVEL")
                or _to_optional_string(file_config.get("log_level"))
                or "WARNING"
            ).upper(),
            sessions_file=(
                os.getenv("LLMCP_SESSIONS_FILE")
                or _to_optional_string(file_config.get("sessions_file"))
                or str(Path("~/.llmcp/sessions.json"))
            ),
            workspace_root=(
                os.getenv("LLMCP_WORKSPACE")
                or _to_optional_string(file_config.get("workspace_root"))
                or os.getcwd()
            ),
            max_file_bytes=_to_positive_int(
                os.getenv("LLMCP_MAX_FILE_BYTES") or file_config.get("max_file_bytes"),
                default=DEFAULT_MAX_FILE_BYTES,
            ),
            preview_bytes=_to_positive_int(
                os.getenv("LLMCP_PREVIEW_BYTES") or file_config.get("preview_bytes"),
                default=DEFAULT_PREVIEW_BYTES,
            ),
            shell=_resolve_shell(
                os.getenv("LLMCP_SHELL") or _to_optional_string(file_config.get("shell"))
            ),
            command_timeout=_to_positive_float(
                os.getenv("LLMCP_COMMAND_TIMEOUT") or file_config.get("command_timeout"),
                default=120.0,
            ),
            max_output_chars=_to_positive_int(
                os.getenv("LLMCP_MAX_OUTPUT_CHARS") or file_config.get("max_output_chars"),
                default=100_000,
            ),
            max_iterations=_to_optional_positive_int(
                os.getenv("LLMCP_MAX_ITERATIONS") or file_config.get("max_iterations")
            ),
            command_denylist=_to_pattern_list(
                os.getenv("LLMCP_COMMAND_DENYLIST") or file_config.get("command_denylist")
            ),
            command_allowlist=_to_pattern_list(
                os.getenv("LLMCP_COMMAND_ALLOWLIST") or file_config.get("command_allowlist")
            ),
            browser_enabled=_to_bool(
                os.getenv("LLMCP_BROWSER_ENABLED"),
                default=_file_bool(file_config.get("browser_enabled"), False),
            ),
            browser_headless=_to_bool(
                os.getenv("LLMCP_BROWSER_HEADLESS"),
                default=_file_bool(file_config.get("browser_headless"), True),
            ),
            screenshot_dir=(
                os.getenv("LLMCP_SCREENSHOT_DIR")
                or _to_optional_string(file_config.get("screenshot_dir"))
            ),
        )


def _to_optional_string(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _to_pattern_list(value: object) -> tuple[str, ...]:
    """Accept a JSON list of patterns or a comma-separated env value."""
    if isinstance(value, str):
        items: list[object] = value.split(",")
    elif isinstance(value, list):
        items = value
    else:
        return ()
    return tuple(item.strip() for item in items if isinstance(item, str) and item.strip())


def _load_file_config(path_value: str) -> dict[str, object]:
    path = Path(path_value)
    if not path.exists() or not path.is_file():
        return {}
    try:
        with path.open("r", encoding="utf-8") as fh:
            parsed = json.load(fh)
    except (OSError, json.JSONDecodeError):
        return {}
    if isinstance(parsed, dict):
        return parsed
    return {}


def _load_preferred_file_config() -> dict[str, object]:
    explicit_path = os.getenv("LLMCP_CONFIG_FILE")
    if explicit_path:
        return _load_file_config(explicit_path)

    shared_config = _load_file_config("llmcp.config.json")
    local_override = _load_file_config("llmcp.config.local.json")
    return _merge_dicts(shared_config, local_override)


def _merge_dicts(base: dict[str, object], override: dict[str, object]) -> dict[str, object]:
    merged: dict[str, object] = dict(base)
    for key, value in override.items():
        base_value = merged.get(key)
        if isinstance(base_value, dict) and isinstance(value, dict):
            merged[key] = _merge_dicts(base_value, value)
        else:
            merged[key] = value
    return merged


def _provider_value(value: str | None) -> str:
    if value is None:
        return "openai"
    normalized = value.strip().lower()
    aliases = {"openai": "openai", "anthropic": "anthropic", "claude": "anthropic"}
    return aliases.get(normalized, "openai")


def _default_shell_for_platform(os_name: str | None = None) -> str:
    platform_name = os.name if os_name is None else os_name
    return "powershell" if platform_name == "nt" else "bash"


def _resolve_shell(value: str | None) -> str:
    if value is None:
        return _default_shell_for_platform()
    normalized = value.strip().lower()
    aliases = {
        "powershell": "powershell",
        "pwsh": "powershell",
        "bash": "bash",
        "sh": "bash",
        "shell": "bash",
    }
    return aliases.get(normalized, _default_shell_for_platform())


def _to_positive_int(value: object, *, default: int) -> int:
    parsed = _to_optional_positive_int(value)
    return default if parsed is None else parsed


def _to_optional_positive_int(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str):
        try:
            parsed = int(value.strip())
        except ValueError:
            return None
        return parsed if parsed > 0 else None
    return None


def _to_optional_float(value: object) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _to_positive_float(value: object, *, default: float) -> float:
    parsed = _to_optional_float(value)
    return parsed if parsed is not None and parsed > 0 else default
