"""
Ollama translation engine.

Uses a local Ollama server's /api/chat endpoint. No credential is needed.
"""

from __future__ import annotations

import time
from typing import Any

import httpx

from autodocs.engines.base import EngineResponse, TranslationEngine
from autodocs.errors import EngineError, EngineErrorKind


class OllamaEngine(TranslationEngine):
    """Engine for a local Ollama server."""

    DEFAULT_URL = "http://localhost:11434"
    DEFAULT_MODEL = "qwen2.5:7b"

    def __init__(
        self,
        model: str = "",
        base_url: str = "",
        timeout: float = 120.0,
        num_ctx: int = 8192,
        **kwargs: Any,
    ):
        """
        Initialize engine.

        Args:
            model: Ollama model tag.
            base_url: Server URL.
            timeout: Request timeout in seconds.
            num_ctx: Context window passed to the model.
            **kwargs: Shared options for TranslationEngine.
        """
        super().__init__(**kwargs)
        self._model_name = model or self.DEFAULT_MODEL
        self._num_ctx = num_ctx
        self._client = httpx.AsyncClient(
            base_url=(base_url or self.DEFAULT_URL).rstrip("/"),
            timeout=timeout,
        )

    @property
    def name(self) -> str:
        """Provider name."""
        return "ollama"

    @property
    def model(self) -> str:
        """Current model name."""
        return self._model_name

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def complete(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float = 0.3,
        max_tokens: int = 4096,
    ) -> EngineResponse:
        """Generate a completion via /api/chat."""
        payload = {
            "model": self._model_name,
            "messages": messages,
            "stream": False,
            "options": {
                "temperature": temperature,
                "num_predict": max_tokens,
                "num_ctx": self._num_ctx,
            },
        }

        start_time = time.perf_counter()
        try:
            response = await self._client.post("/api/chat", json=payload)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise EngineError(EngineErrorKind.TIMEOUT, f"request timed out: {e}", self.name) from e
        except httpx.HTTPStatusError as e:
            raise self._classify_status(e.response) from e
        except httpx.TransportError as e:
            raise EngineError(
                EngineErrorKind.TIMEOUT, f"server unreachable: {e}", self.name
            ) from e

        try:
            data = response.json()
            content = data["message"]["content"]
        except (ValueError, KeyError, TypeError) as e:
            raise EngineError(
                EngineErrorKind.MALFORMED_RESPONSE, f"unexpected response body: {e}", self.name
            ) from e

        if not isinstance(content, str):
            raise EngineError(
                EngineErrorKind.MALFORMED_RESPONSE, "message content is not text", self.name
            )

        return EngineResponse(
            content=content.strip(),
            input_tokens=data.get("prompt_eval_count", 0) or 0,
            output_tokens=data.get("eval_count", 0) or 0,
            model=self._model_name,
            latency_ms=(time.perf_counter() - start_time) * 1000,
            metadata={"provider": self.name, "done_reason": data.get("done_reason")},
        )

    def _classify_status(self, response: httpx.Response) -> EngineError:
        """Map an HTTP error status onto the engine error taxonomy."""
        status = response.status_code
        try:
            message = response.json().get("error", response.text)
        except ValueError:
            message = response.text
        message = f"HTTP {status}: {message}"

        if status == 429:
            return EngineError(EngineErrorKind.RATE_LIMITED, message, self.name)
        if status in (401, 403):
            return EngineError(EngineErrorKind.AUTH_FAILED, message, self.name)
        if status >= 500:
            return EngineError(EngineErrorKind.TIMEOUT, message, self.name)
        return EngineError(EngineErrorKind.MALFORMED_RESPONSE, message, self.name)
