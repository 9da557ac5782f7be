"""
Base classes for translation engines.

Defines the abstract interface that all engine providers implement and the
shared translate() entry point with its retry policy.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from autodocs.errors import EngineError, EngineErrorKind
from autodocs.translation.masking import find_tokens

if TYPE_CHECKING:
    from autodocs.translation.chunker import TranslationUnit

LANGUAGE_NAMES = {
    "en": "English",
    "zh": "Chinese",
    "zh-cn": "Simplified Chinese",
    "zh-tw": "Traditional Chinese",
    "ja": "Japanese",
    "ko": "Korean",
    "fr": "French",
    "de": "German",
    "es": "Spanish",
    "ru": "Russian",
    "ar": "Arabic",
}


def language_name(code: str) -> str:
    """Human-readable name for a language code."""
    return LANGUAGE_NAMES.get(code.lower(), code)


@dataclass
class EngineResponse:
    """Response from an engine provider."""

    content: str
    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""
    latency_ms: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)


class TranslationEngine(ABC):
    """
    Abstract base class for translation engines.

    Providers implement complete(); translate() adds prompting, placeholder
    validation and the retry policy:

    - RATE_LIMITED and TIMEOUT are retried with exponential backoff, up to
      max_attempts attempts in total.
    - MALFORMED_RESPONSE is retried once.
    - AUTH_FAILED is raised immediately.
    """

    def __init__(
        self,
        *,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
        max_retry_delay: float = 30.0,
        temperature: float = 0.3,
        max_tokens: int = 4096,
    ):
        """
        Initialize shared engine options.

        Args:
            max_attempts: Attempts per unit for transient failures.
            retry_delay: Base backoff delay in seconds.
            max_retry_delay: Upper bound for a single backoff delay.
            temperature: Sampling temperature.
            max_tokens: Maximum tokens to generate.
        """
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self.max_retry_delay = max_retry_delay
        self.temperature = temperature
        self.max_tokens = max_tokens

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name for logging and identification."""
        ...

    @property
    @abstractmethod
    def model(self) -> str:
        """Current model name."""
        ...

    @abstractmethod
    async def complete(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float = 0.3,
        max_tokens: int = 4096,
    ) -> EngineResponse:
        """
        Generate a completion.

        Args:
            messages: List of message dicts with 'role' and 'content' keys.
            temperature: Sampling temperature.
            max_tokens: Maximum tokens to generate.

        Returns:
            EngineResponse with the generated content.

        Raises:
            EngineError: Classified provider failure.
        """
        ...

    async def aclose(self) -> None:
        """Release network resources."""

    async def chat(self, system_prompt: str, user_prompt: str) -> EngineResponse:
        """Convenience method for a system + user prompt exchange."""
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        return await self.complete(
            messages, temperature=self.temperature, max_tokens=self.max_tokens
        )

    def backoff(self, attempt: int) -> float:
        """Delay before retry number `attempt` (0-based)."""
        return min(self.retry_delay * (2**attempt), self.max_retry_delay)

    async def translate(
        self,
        unit: TranslationUnit,
        source_lang: str,
        target_lang: str,
        context: str | None = None,
    ) -> str:
        """
        Translate one unit, keeping its placeholder tokens intact.

        Args:
            unit: Unit to translate.
            source_lang: Source language code.
            target_lang: Target language code.
            context: Optional hint, e.g. the file the unit belongs to.

        Returns:
            Translated text containing exactly the unit's placeholders.

        Raises:
            EngineError: After the retry policy is exhausted.
        """
        if not unit.translatable:
            return unit.text

        system_prompt = self.system_prompt(source_lang, target_lang, unit.keyword)
        user_prompt = self.user_prompt(unit.text, source_lang, target_lang, context)

        failures = 0
        malformed_retried = False
        while True:
            try:
                response = await self.chat(system_prompt, user_prompt)
                return self.validate(unit, response.content)
            except EngineError as e:
                if e.kind == EngineErrorKind.MALFORMED_RESPONSE and not malformed_retried:
                    malformed_retried = True
                    continue
                if not e.transient:
                    raise
                failures += 1
                if failures >= self.max_attempts:
                    raise
                await asyncio.sleep(self.backoff(failures - 1))

    def validate(self, unit: TranslationUnit, content: str) -> str:
        """
        Check a reply before it is accepted.

        Raises:
            EngineError: MALFORMED_RESPONSE if the reply is empty or the
                placeholder tokens differ from the unit's.
        """
        text = strip_wrapping_fence(content).strip()
        if not text:
            raise EngineError(
                EngineErrorKind.MALFORMED_RESPONSE, "empty translation", provider=self.name
            )

        expected = sorted(unit.placeholders)
        found = sorted(find_tokens(text, unit.keyword))
        if found != expected:
            missing = set(expected) - set(found)
            extra = [t for t in found if t not in unit.placeholders or found.count(t) > 1]
            raise EngineError(
                EngineErrorKind.MALFORMED_RESPONSE,
                f"placeholders altered (missing={sorted(missing)}, unexpected={sorted(set(extra))})",
                provider=self.name,
            )
        indent = unit.text[: len(unit.text) - len(unit.text.lstrip())]
        return indent + text

    def system_prompt(self, source_lang: str, target_lang: str, keyword: str = "id") -> str:
        """System prompt for documentation translation."""
        source_name = language_name(source_lang)
        target_name = language_name(target_lang)
        return f"""You are an expert translator of technical documentation.
Translate the user's text from {source_name} to {target_name} while:

1. Preserving all markdown formatting exactly (headers, lists, emphasis, tables)
2. Keeping every placeholder such as [{keyword}0] or [{keyword}12] exactly as written, in place
3. Keeping file paths, identifiers and product names unchanged
4. Maintaining the technical accuracy and meaning of the original

Reply with the translated text only, without explanations or notes."""

    def user_prompt(
        self,
        text: str,
        source_lang: str,
        target_lang: str,
        context: str | None = None,
    ) -> str:
        """User prompt carrying the text to translate."""
        header = f"Translate the following content to {language_name(target_lang)}."
        if context:
            header += f" It is part of the document {context}."
        return f"{header}\n\n{text}"


def strip_wrapping_fence(content: str) -> str:
    """Remove a ``` fence the model wrapped around its whole reply."""
    stripped = content.strip()
    if stripped.startswith("```") and stripped.endswith("```") and stripped.count("```") == 2:
        first_newline = stripped.find("\n")
        if first_newline != -1:
            return stripped[first_newline + 1 : -3]
    return content
