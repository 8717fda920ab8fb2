"""DeepSeek provider (OpenAI-compatible API)."""

from src.classifier.openai import OpenAIProvider


class DeepSeekProvider(OpenAIProvider):
    """LLM provider using the DeepSeek chat API."""

    base_url = "https://api.deepseek.com/v1"

    @property
    def provider_id(self) -> str:
        return "deepseek"

    @property
    def default_model(self) -> str:
        return "deepseek-chat"

    @property
    def env_var(self) -> str:
        return "DEEPSEEK_API_KEY"
