"""
Translation engine abstraction layer.

Supports multiple backends:
- openai: any OpenAI-compatible chat completions endpoint
- openrouter: OpenRouter's unified API
- ollama: a local Ollama server
- debug: offline echo engine for dry runs
"""

from autodocs.engines.base import EngineResponse, TranslationEngine
from autodocs.engines.factory import create_engine

__all__ = [
    "EngineResponse",
    "TranslationEngine",
    "create_engine",
]
