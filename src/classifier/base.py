"""Abstract base class for LLM providers and shared response parsing."""

import json
import re
from abc import ABC, abstractmethod
from typing import Any


class UsageStats:
    """Running call and token counters for one provider instance."""

    def __init__(self) -> None:
        self.calls = 0
        self.input_tokens = 0
        self.output_tokens = 0

    def record(self, input_tokens: int | None, output_tokens: int | None) -> None:
        self.calls += 1
        self.input_tokens += input_tokens or 0
        self.output_tokens += output_tokens or 0

    def reset(self) -> None:
        self.calls = 0
        self.input_tokens = 0
        self.output_tokens = 0


def parse_json_response(raw_text: str | None) -> dict[str, Any]:
    """Parse an LLM response into a JSON object.

    Handles markdown-wrapped JSON (```json ... ```) and plain JSON.
    Raises ValueError if the text is empty, not JSON, or not an object.
    """
    if not raw_text or not raw_text.strip():
        msg = "LLM response is empty"
        raise ValueError(msg)

    cleaned = re.sub(r"^```(?:json)?\s*\n?", "", raw_text.strip())
    cleaned = re.sub(r"\n?```\s*$", "", cleaned)

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        msg = f"Failed to parse LLM response as JSON: {e}"
        raise ValueError(msg) from e

    if not isinstance(data, dict):
        msg = f"Expected a JSON object, got {type(data).__name__}"
        raise ValueError(msg)
    return data


class LLMProvider(ABC):
    """Base class that every LLM provider must implement."""

    def __init__(self) -> None:
        self.usage = UsageStats()

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """Unique identifier for this provider (e.g. 'deepseek')."""

    @property
    @abstractmethod
    def default_model(self) -> str:
        """The default model ID used when no override is specified."""

    @property
    @abstractmethod
    def env_var(self) -> str | None:
        """Environment variable name for the API key, or None if not needed."""

    @abstractmethod
    def complete(
        self,
        user_text: str,
        model: str | None = None,
        *,
        system: str,
        max_tokens: int = 1024,
        json_mode: bool = False,
    ) -> str:
        """Send one system + user exchange and return the raw response text.

        Args:
            user_text: The structured user message (job title, skills, post text).
            model: Override the provider's default model. None uses default.
            system: The stage-specific instruction prompt.
            max_tokens: Upper bound on the response length.
            json_mode: Ask the provider for a JSON object response where supported.

        Returns:
            Raw text response from the LLM. May be empty.
        """
