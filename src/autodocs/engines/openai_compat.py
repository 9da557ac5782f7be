"""
OpenAI-compatible translation engine.

Talks to any chat-completions endpoint that follows the OpenAI API
(OpenAI itself, vLLM, DeepSeek, Moonshot, ...). OpenRouter is a thin
variant with its own defaults.
"""

from __future__ import annotations

import time
from typing import Any

import openai
from openai import AsyncOpenAI

from autodocs.engines.base import EngineResponse, TranslationEngine
from autodocs.errors import EngineError, EngineErrorKind


def classify_openai_error(error: openai.OpenAIError, provider: str) -> EngineError:
    """Map an openai client exception onto the engine error taxonomy."""
    if isinstance(error, openai.RateLimitError):
        kind = EngineErrorKind.RATE_LIMITED
    elif isinstance(error, (openai.AuthenticationError, openai.PermissionDeniedError)):
        kind = EngineErrorKind.AUTH_FAILED
    elif isinstance(error, (openai.APITimeoutError, openai.APIConnectionError)):
        kind = EngineErrorKind.TIMEOUT
    elif isinstance(error, openai.InternalServerError):
        # 5xx: the backend is overloaded or restarting
        kind = EngineErrorKind.TIMEOUT
    else:
        kind = EngineErrorKind.MALFORMED_RESPONSE
    return EngineError(kind, str(error), provider=provider)


class OpenAIEngine(TranslationEngine):
    """
    Engine for OpenAI-compatible chat completion APIs.

    Authenticates with a bearer API key. Client-side retries are disabled;
    the retry policy lives in TranslationEngine.translate().
    """

    DEFAULT_URL = "https://api.openai.com/v1"
    DEFAULT_MODEL = "gpt-4o-mini"

    def __init__(
        self,
        api_key: str,
        model: str = "",
        base_url: str = "",
        timeout: float = 120.0,
        default_headers: dict[str, str] | None = None,
        **kwargs: Any,
    ):
        """
        Initialize engine.

        Args:
            api_key: API key.
            model: Model name; the class default when empty.
            base_url: API base URL; the class default when empty.
            timeout: Request timeout in seconds.
            default_headers: Extra headers sent with every request.
            **kwargs: Shared options for TranslationEngine.
        """
        super().__init__(**kwargs)
        self._model_name = model or self.DEFAULT_MODEL
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url or self.DEFAULT_URL,
            timeout=timeout,
            max_retries=0,
            default_headers=default_headers,
        )

    @property
    def name(self) -> str:
        """Provider name."""
        return "openai"

    @property
    def model(self) -> str:
        """Current model name."""
        return self._model_name

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self._client.close()

    async def complete(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float = 0.3,
        max_tokens: int = 4096,
    ) -> EngineResponse:
        """
        Generate a completion via the chat completions endpoint.

        Args:
            messages: List of message dicts.
            temperature: Sampling temperature.
            max_tokens: Maximum output tokens.

        Returns:
            EngineResponse with content and usage stats.
        """
        start_time = time.perf_counter()
        try:
            response = await self._client.chat.completions.create(
                model=self._model_name,
                messages=messages,  # type: ignore[arg-type]
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except openai.OpenAIError as e:
            raise classify_openai_error(e, self.name) from e

        if not response.choices:
            raise EngineError(
                EngineErrorKind.MALFORMED_RESPONSE, "response has no choices", provider=self.name
            )

        choice = response.choices[0]
        content = choice.message.content if choice.message else None
        if content is None:
            raise EngineError(
                EngineErrorKind.MALFORMED_RESPONSE, "response has no content", provider=self.name
            )

        usage = response.usage
        return EngineResponse(
            content=content.strip(),
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            model=self._model_name,
            latency_ms=(time.perf_counter() - start_time) * 1000,
            metadata={"provider": self.name, "finish_reason": choice.finish_reason},
        )


class OpenRouterEngine(OpenAIEngine):
    """
    OpenRouter engine.

    Same wire format as OpenAI, with OpenRouter's endpoint, model aliases and
    attribution headers.
    """

    DEFAULT_URL = "https://openrouter.ai/api/v1"
    DEFAULT_MODEL = "anthropic/claude-sonnet-4.5"

    # Model aliases for convenience
    MODELS = {
        "default": "anthropic/claude-sonnet-4.5",
        "fast": "anthropic/claude-3-haiku",
        "deepseek": "deepseek/deepseek-chat",
        "gemini": "google/gemini-pro-1.5",
    }

    def __init__(self, api_key: str, model: str = "", **kwargs: Any):
        headers = {"X-Title": "autodocs"}
        super().__init__(
            api_key,
            model=self.MODELS.get(model, model),
            default_headers=headers,
            **kwargs,
        )

    @property
    def name(self) -> str:
        """Provider name."""
        return "openrouter"
