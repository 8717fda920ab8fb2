"""LLM provider registry with lazy loading.

Usage:
    from src.classifier import get_provider

    provider = get_provider("deepseek")
    raw = provider.complete("Job Title: Backend Engineer", system=RELEVANCE_PROMPT)
"""

from __future__ import annotations

import importlib

from src.classifier.base import LLMProvider, parse_json_response

__all__ = ["LLMProvider", "available_providers", "get_provider", "parse_json_response"]

# Lazy registry: maps provider name -> (module_path, class_name)
_REGISTRY: dict[str, tuple[str, str]] = {
    "anthropic": ("src.classifier.anthropic", "AnthropicProvider"),
    "deepseek": ("src.classifier.deepseek", "DeepSeekProvider"),
    "gemini": ("src.classifier.gemini", "GeminiProvider"),
    "ollama": ("src.classifier.ollama", "OllamaProvider"),
    "openai": ("src.classifier.openai", "OpenAIProvider"),
    "zai": ("src.classifier.zai", "ZaiProvider"),
}


def get_provider(name: str) -> LLMProvider:
    """Instantiate and return an LLM provider by name.

    Args:
        name: Provider identifier (anthropic, deepseek, gemini, ollama, openai, zai).

    Returns:
        An LLMProvider instance.

    Raises:
        ValueError: If the provider name is unknown.
    """
    if name not in _REGISTRY:
        valid = ", ".join(sorted(_REGISTRY))
        msg = f"Unknown LLM provider '{name}'. Available: {valid}"
        raise ValueError(msg)

    module_path, class_name = _REGISTRY[name]
    module = importlib.import_module(module_path)
    cls = getattr(module, class_name)
    return cls()  # type: ignore[no-any-return]


def available_providers() -> list[str]:
    """Return sorted list of registered provider names."""
    return sorted(_REGISTRY)
