"""Z.ai GLM provider (OpenAI-compatible API)."""

from src.classifier.openai import OpenAIProvider


class ZaiProvider(OpenAIProvider):
    """LLM provider using the Z.ai PaaS endpoint. Cheaper, slower than DeepSeek."""

    base_url = "https://api.z.ai/api/paas/v4"

    @property
    def provider_id(self) -> str:
        return "zai"

    @property
    def default_model(self) -> str:
        return "glm-4-32b-0414-128k"

    @property
    def env_var(self) -> str:
        return "ZAI_API_KEY"
