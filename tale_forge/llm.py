"""Text-completion client used by the story writer.

The writer injects an LLM callable matching the protocol:

    async def __call__(self, stage: str, prompt: str) -> str: ...

`stage` names the writing step ("segment", "choices", "ending"); HttpLLM uses
it to pick a token limit and to tag its log lines.

Wire formats, selected by provider_format:

    koboldcpp     /api/v1/generate       results[0].text
    openai        /v1/completions        choices[0].text
    openai_chat   /v1/chat/completions   choices[0].message.content
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Literal, Protocol

import httpx

from tale_forge.prompts import SYSTEM_PROMPT

logger = logging.getLogger(__name__)

ProviderFormat = Literal["koboldcpp", "openai", "openai_chat"]

STAGE_MAX_TOKENS = {"segment": 800, "ending": 800, "choices": 150}
DEFAULT_MAX_TOKENS = 500


class LLM(Protocol):
    async def __call__(self, stage: str, prompt: str) -> str: ...


class LLMError(RuntimeError):
    """Raised when the text backend cannot be reached or returns an error."""


# ── Wire formats ─────────────────────────────────────────

@dataclass(frozen=True)
class _Wire:
    label: str
    path: str
    extract: Callable[[dict], Any]
    sends_model: bool = True


def _kobold_text(data: dict) -> Any:
    return data["results"][0]["text"]


def _completion_text(data: dict) -> Any:
    return data["choices"][0]["text"]


def _chat_text(data: dict) -> Any:
    return data["choices"][0]["message"]["content"]


_WIRES: dict[str, _Wire] = {
    "koboldcpp": _Wire("KoboldCpp", "/api/v1/generate", _kobold_text, sends_model=False),
    "openai": _Wire("OpenAI-compatible", "/v1/completions", _completion_text),
    "openai_chat": _Wire("chat", "/v1/chat/completions", _chat_text),
}


class HttpLLM:
    """Async HTTP client for text-completion backends.

    Args:
        provider_url:    Base URL of the backend, e.g. "http://localhost:5001".
        api_key:         Bearer token; empty when the backend is open.
        provider_format: One of the wire formats above.
        model:           Sent by the openai formats when set.
        system_prompt:   First message in the chat format.
        timeout:         Seconds per request.
    """

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        provider_format: ProviderFormat = "koboldcpp",
        model: str = "",
        system_prompt: str = SYSTEM_PROMPT,
        timeout: float = 120.0,
    ) -> None:
        if provider_format not in _WIRES:
            raise ValueError(f"Unknown provider format {provider_format!r}")
        self._root = provider_url.rstrip("/")
        self._wire = _WIRES[provider_format]
        self._chat = provider_format == "openai_chat"
        self._api_key = api_key
        self._model = model
        self._system_prompt = system_prompt
        self._timeout = timeout

    @property
    def url(self) -> str:
        return self._root + self._wire.path

    def _body(self, stage: str, prompt: str) -> dict[str, Any]:
        limit = STAGE_MAX_TOKENS.get(stage, DEFAULT_MAX_TOKENS)
        if not self._wire.sends_model:
            return {"prompt": prompt, "max_length": limit}

        body: dict[str, Any] = {"max_tokens": limit}
        if self._chat:
            body["messages"] = [
                {"role": "system", "content": self._system_prompt},
                {"role": "user", "content": prompt},
            ]
        else:
            body["prompt"] = prompt
        if self._model:
            body["model"] = self._model
        return body

    async def _post(self, body: dict[str, Any]) -> dict:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(self.url, json=body, headers=headers)
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise LLMError(f"Cannot connect to text backend at {self._root}") from e
        except httpx.HTTPStatusError as e:
            raise LLMError(f"Text backend returned HTTP {e.response.status_code}") from e
        except httpx.TimeoutException as e:
            raise LLMError(f"Text backend timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            raise LLMError(f"Text backend request failed: {e}") from e

        try:
            return resp.json()
        except ValueError as e:
            raise LLMError("Text backend returned invalid JSON") from e

    async def __call__(self, stage: str, prompt: str) -> str:
        logger.debug("llm call stage=%s url=%s prompt_len=%d", stage, self.url, len(prompt))
        data = await self._post(self._body(stage, prompt))

        try:
            text = self._wire.extract(data)
        except (KeyError, IndexError, TypeError):
            raise LLMError(f"Unexpected response format from {self._wire.label} backend") from None
        if not isinstance(text, str) or not text.strip():
            raise LLMError(f"Text backend returned an empty completion for stage {stage!r}")

        logger.debug("llm response stage=%s len=%d", stage, len(text))
        return text.strip()
