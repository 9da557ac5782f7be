"""
Offline debug engine.

Echoes the masked text back, so a full pipeline pass can run without a
network or credential. Useful for dry runs of a new filter configuration.
"""

from __future__ import annotations

from typing import Any

from autodocs.engines.base import EngineResponse, TranslationEngine


class DebugEngine(TranslationEngine):
    """Engine that returns the text it was asked to translate."""

    def __init__(self, model: str = "", **kwargs: Any):
        super().__init__(**kwargs)
        self._model_name = model or "echo"
        self.calls = 0

    @property
    def name(self) -> str:
        return "debug"

    @property
    def model(self) -> str:
        return self._model_name

    async def complete(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float = 0.3,
        max_tokens: int = 4096,
    ) -> EngineResponse:
        self.calls += 1
        prompt = messages[-1]["content"]
        # user_prompt() puts the text after the first blank line
        _, _, text = prompt.partition("\n\n")
        return EngineResponse(content=text, model=self._model_name)
