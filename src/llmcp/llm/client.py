"""Thin model client that returns the next assistant reply."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Sequence
from urllib import request
from urllib.error import HTTPError, URLError

LOGGER = logging.getLogger(__name__)

DEFAULT_API_URLS = {
    "openai": "https://api.openai.com/v1/chat/completions",
    "anthropic": "https://api.anthropic.com/v1/messages",
}
ANTHROPIC_VERSION = "2023-06-01"
ANTHROPIC_MAX_TOKENS = 4096

SYSTEM_PROMPT_PARTS = [
    "You are an assistant that can act on the user's machine.",
    (
        "To request an action, write a directive of the form [[TYPE: parameters]]"
        " anywhere in your reply. The host runs every directive in order and sends"
        " the results back as [MCP_RESULT] or [MCP_ERROR] messages."
    ),
    (
        "File directives: [[READ: path]], [[VIEW: path, [start, end]]],"
        " [[WRITE: path, content]] (new files only), [[APPEND: path, content]],"
        " [[REPLACE: path, old text, new text]] (old text must appear exactly once),"
        " [[INSERT: path, line, content]] (0 inserts at the top), [[UNDO: path]],"
        " [[DELETE: path]], [[INFO: path]], [[EXISTS: path]], [[MKDIR: path]],"
        " [[RMDIR: path, recursive]]."
    ),
    "Shell directive: [[EXECUTE: command]].",
    (
        "Browser directives: [[BROWSE: url]], [[CLICK: selector or text]],"
        " [[TYPE: selector, text]], [[EXTRACT: selector or goal]], [[SCREENSHOT: ]],"
        " [[SCROLL: down, 300]], [[ELEMENTS: ]], [[LIST_TABS: ]], [[NEW_TAB: url]],"
        " [[SWITCH_TAB: id]], [[CLOSE_TAB: id]]."
    ),
    (
        "The user approves actions once per session. When the task is done, reply"
        " without any directive."
    ),
]
DEFAULT_SYSTEM_PROMPT = " ".join(SYSTEM_PROMPT_PARTS)

ModelMessage = dict[str, str]


class ModelClientError(Exception):
    """Base class for failures that abort the current turn."""


class AuthError(ModelClientError):
    """Missing or rejected credentials."""


class NetworkError(ModelClientError):
    """The provider could not be reached or did not answer in time."""


class ModelProviderError(ModelClientError):
    """The provider answered with an error or an unusable body."""


class ModelClient:
    """Small HTTP client for chat-style model calls.

    Supports the OpenAI chat completions and Anthropic messages APIs. The
    blocking ``urllib`` call runs in a worker thread so the event loop stays
    free while the request is in flight.
    """

    def __init__(
        self,
        *,
        api_key: str | None,
        model: str,
        provider: str = "openai",
        api_url: str | None = None,
        temperature: float | None = None,
        timeout: float = 60.0,
        system_prompt: str | None = None,
    ) -> None:
        if provider not in DEFAULT_API_URLS:
            raise ValueError(f"Unsupported model provider: {provider}")
        self.api_key = api_key
        self.model = model
        self.provider = provider
        self.api_url = api_url or DEFAULT_API_URLS[provider]
        self.temperature = temperature
        self.timeout = timeout
        self.system_prompt = system_prompt or DEFAULT_SYSTEM_PROMPT

    async def complete(self, messages: Sequence[ModelMessage]) -> str:
        return await asyncio.to_thread(self._complete, list(messages))

    def _complete(self, messages: list[ModelMessage]) -> str:
        if not self.api_key:
            raise AuthError(f"No API key configured for provider {self.provider}.")

        payload = self._build_payload(messages)
        body = json.dumps(payload).encode("utf-8")
        headers = self._build_headers()

        LOGGER.debug(
            "llm_request_prepared",
            extra={
                "api_url": self.api_url,
                "provider": self.provider,
                "model": self.model,
                "payload_bytes": len(body),
                "message_count": len(messages),
            },
        )

        req = request.Request(self.api_url, data=body, headers=headers, method="POST")
        try:
            with request.urlopen(req, timeout=self.timeout) as resp:  # noqa: S310
                raw_response = json.loads(resp.read().decode("utf-8"))
        except HTTPError as exc:
            body_excerpt = self._read_error_body_excerpt(exc)
            LOGGER.error(
                "llm_request_http_error",
                extra={
                    "api_url": self.api_url,
                    "model": self.model,
                    "http_status": exc.code,
                    "reason": exc.reason,
                    "response_excerpt": body_excerpt,
                },
            )
            details = f"Model request failed with HTTP {exc.code}: {exc.reason}"
            if body_excerpt:
                details = f"{details}. Response body: {body_excerpt}"
            if exc.code in (401, 403):
                raise AuthError(details) from exc
            raise ModelProviderError(details) from exc
        except URLError as exc:
            LOGGER.error(
                "llm_request_transport_error",
                extra={
                    "api_url": self.api_url,
                    "model": self.model,
                    "reason": str(exc.reason),
                },
            )
            raise NetworkError(f"Model request transport error: {exc.reason}") from exc
        except TimeoutError as exc:
            LOGGER.error(
                "llm_request_timeout",
                extra={
                    "api_url": self.api_url,
                    "model": self.model,
                    "timeout_seconds": self.timeout,
                },
            )
            raise NetworkError(f"Model request timed out after {self.timeout:.1f}s") from exc
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            LOGGER.error(
                "llm_response_parse_error",
                extra={"api_url": self.api_url, "model": self.model, "error": str(exc)},
            )
            raise ModelProviderError(f"Model response parsing error: {exc}") from exc

        if not isinstance(raw_response, dict):
            raise ModelProviderError("Model response parsing error: expected top-level object")
        return self._extract_text(raw_response)

    def _build_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.provider == "anthropic":
            headers["x-api-key"] = str(self.api_key)
            headers["anthropic-version"] = ANTHROPIC_VERSION
        else:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _build_payload(self, messages: list[ModelMessage]) -> dict[str, object]:
        conversation = [
            {"role": message["role"], "content": message["content"]} for message in messages
        ]
        payload: dict[str, object] = {"model": self.model}
        if self.provider == "anthropic":
            payload["system"] = self.system_prompt
            payload["messages"] = conversation
            payload["max_tokens"] = ANTHROPIC_MAX_TOKENS
        else:
            payload["messages"] = [
                {"role": "system", "content": self.system_prompt},
                *conversation,
            ]
        if self.temperature is not None:
            payload["temperature"] = self.temperature
        return payload

    def _extract_text(self, payload: dict[str, object]) -> str:
        if self.provider == "anthropic":
            blocks = payload.get("content")
            if isinstance(blocks, list):
                texts = [
                    block["text"]
                    for block in blocks
                    if isinstance(block, dict)
                    and block.get("type") == "text"
                    and isinstance(block.get("text"), str)
                ]
                if texts:
                    return "".join(texts)
        else:
            choices = payload.get("choices")
            if isinstance(choices, list) and choices and isinstance(choices[0], dict):
                message = choices[0].get("message")
                if isinstance(message, dict) and isinstance(message.get("content"), str):
                    return message["content"]
        LOGGER.error(
            "llm_response_missing_text",
            extra={"api_url": self.api_url, "model": self.model, "provider": self.provider},
        )
        raise ModelProviderError("Model response did not contain any text output")

    @staticmethod
    def _read_error_body_excerpt(exc: HTTPError, *, max_chars: int = 500) -> str | None:
        if exc.fp is None:
            return None
        try:
            raw = exc.read()
        except OSError:
            return None

        if not raw:
            return None

        excerpt = raw.decode("utf-8", errors="replace").replace("\n", " ").strip()
        if len(excerpt) > max_chars:
            return f"{excerpt[:max_chars]}..."
        return excerpt
