"""OpenAI LLM provider, also the base for OpenAI-compatible endpoints."""

import logging
import os

from src.classifier.base import LLMProvider

logger = logging.getLogger(__name__)


class OpenAIProvider(LLMProvider):
    """LLM provider using the OpenAI chat completions API.

    Subclasses point ``base_url`` at another OpenAI-compatible service.
    """

    base_url: str | None = None
    timeout_seconds: float = 30.0
    max_sdk_retries: int = 2

    @property
    def provider_id(self) -> str:
        return "openai"

    @property
    def default_model(self) -> str:
        return "gpt-4o-mini"

    @property
    def env_var(self) -> str | None:
        return "OPENAI_API_KEY"

    def _api_key(self) -> str:
        env_var = self.env_var
        if env_var is None:
            return self.provider_id
        api_key = os.environ.get(env_var)
        if not api_key:
            msg = f"{env_var} environment variable is required"
            raise ValueError(msg)
        return api_key

    def complete(
        self,
        user_text: str,
        model: str | None = None,
        *,
        system: str,
        max_tokens: int = 1024,
        json_mode: bool = False,
    ) -> str:
        api_key = self._api_key()

        try:
            import openai
        except ImportError:
            msg = (
                "openai is required for OpenAI-compatible providers. "
                "Install with: pip install openai"
            )
            raise ImportError(msg) from None

        client = openai.OpenAI(
            api_key=api_key,
            base_url=self.base_url,
            timeout=self.timeout_seconds,
            max_retries=self.max_sdk_retries,
        )
        use_model = model or self.default_model

        kwargs = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        logger.debug("Calling %s (%s)", self.provider_id, use_model)
        response = client.chat.completions.create(
            model=use_model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user_text},
            ],
            temperature=0,
            max_tokens=max_tokens,
            **kwargs,
        )

        usage = response.usage
        self.usage.record(
            usage.prompt_tokens if usage else None,
            usage.completion_tokens if usage else None,
        )
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""
