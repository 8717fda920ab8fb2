"""Anthropic Claude LLM provider."""

import logging
import os

from src.classifier.base import LLMProvider

logger = logging.getLogger(__name__)


class AnthropicProvider(LLMProvider):
    """LLM provider using the Anthropic Claude API."""

    @property
    def provider_id(self) -> str:
        return "anthropic"

    @property
    def default_model(self) -> str:
        return "claude-3-5-haiku-latest"

    @property
    def env_var(self) -> str:
        return "ANTHROPIC_API_KEY"

    def complete(
        self,
        user_text: str,
        model: str | None = None,
        *,
        system: str,
        max_tokens: int = 1024,
        json_mode: bool = False,
    ) -> str:
        api_key = os.environ.get("ANTHROPIC_API_KEY")
        if not api_key:
            msg = "ANTHROPIC_API_KEY environment variable is required"
            raise ValueError(msg)

        try:
            import anthropic
        except ImportError:
            msg = (
                "anthropic is required for this provider. "
                "Install with: pip install 'jobs-ingest-pipeline[anthropic]'"
            )
            raise ImportError(msg) from None

        client = anthropic.Anthropic(api_key=api_key)
        use_model = model or self.default_model

        # No native JSON mode; the stage prompts already demand bare JSON.
        logger.debug("Calling Anthropic API (%s)", use_model)
        message = client.messages.create(
            model=use_model,
            max_tokens=max_tokens,
            temperature=0,
            system=system,
            messages=[{"role": "user", "content": user_text}],
        )

        self.usage.record(message.usage.input_tokens, message.usage.output_tokens)
        if not message.content:
            return ""
        return message.content[0].text  # type: ignore[union-attr]
