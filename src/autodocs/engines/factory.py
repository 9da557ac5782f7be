"""
Translation engine factory.

Maps the configured engine name to an implementation. Resolved once at the
start of a run.
"""

from __future__ import annotations

from typing import Any

from autodocs.config import EngineConfig, EngineName, ProcessingConfig, TranslationConfig
from autodocs.engines.base import TranslationEngine


def create_engine(
    engine_config: EngineConfig,
    *,
    translation: TranslationConfig | None = None,
    processing: ProcessingConfig | None = None,
    **kwargs: Any,
) -> TranslationEngine:
    """
    Create a translation engine instance.

    Args:
        engine_config: Validated engine section (credential resolved).
        translation: Translation options (temperature).
        processing: Retry and timeout options.
        **kwargs: Additional provider-specific options.

    Returns:
        TranslationEngine instance.

    Raises:
        ValueError: If the provider needs a credential and none was resolved.

    Examples:
        engine = create_engine(config.engine, processing=config.processing)
    """
    translation = translation or TranslationConfig()
    processing = processing or ProcessingConfig()
    shared: dict[str, Any] = {
        "max_attempts": processing.max_attempts,
        "retry_delay": processing.retry_delay,
        "max_retry_delay": processing.max_retry_delay,
        "temperature": translation.temperature,
        **kwargs,
    }

    name = engine_config.name
    api_key = engine_config.api_key.get_secret_value()

    if engine_config.requires_api_key and not api_key:
        raise ValueError(f"{name.value} engine requires an API key")

    if name == EngineName.OPENAI:
        from autodocs.engines.openai_compat import OpenAIEngine

        return OpenAIEngine(
            api_key,
            model=engine_config.model,
            base_url=engine_config.url,
            timeout=processing.request_timeout,
            **shared,
        )

    elif name == EngineName.OPENROUTER:
        from autodocs.engines.openai_compat import OpenRouterEngine

        return OpenRouterEngine(
            api_key,
            model=engine_config.model,
            base_url=engine_config.url,
            timeout=processing.request_timeout,
            **shared,
        )

    elif name == EngineName.OLLAMA:
        from autodocs.engines.ollama import OllamaEngine

        return OllamaEngine(
            model=engine_config.model,
            base_url=engine_config.url,
            timeout=processing.request_timeout,
            **shared,
        )

    elif name == EngineName.DEBUG:
        from autodocs.engines.debug import DebugEngine

        return DebugEngine(model=engine_config.model, **shared)

    else:
        raise ValueError(f"Unknown engine: {name}")
