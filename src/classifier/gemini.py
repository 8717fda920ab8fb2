"""Google Gemini LLM provider (google-genai SDK)."""

import logging
import os

from src.classifier.base import LLMProvider

logger = logging.getLogger(__name__)


class GeminiProvider(LLMProvider):
    """LLM provider using the Google Gemini API (google-genai SDK)."""

    @property
    def provider_id(self) -> str:
        return "gemini"

    @property
    def default_model(self) -> str:
        return "gemini-2.5-flash"

    @property
    def env_var(self) -> str:
        return "GOOGLE_API_KEY"

    def complete(
        self,
        user_text: str,
        model: str | None = None,
        *,
        system: str,
        max_tokens: int = 1024,
        json_mode: bool = False,
    ) -> str:
        api_key = os.environ.get("GOOGLE_API_KEY")
        if not api_key:
            msg = "GOOGLE_API_KEY environment variable is required"
            raise ValueError(msg)

        try:
            from google import genai
            from google.genai import types as genai_types
        except ImportError:
            msg = (
                "google-genai is required for this provider. "
                "Install with: pip install 'jobs-ingest-pipeline[gemini]'"
            )
            raise ImportError(msg) from None

        use_model = model or self.default_model

        logger.debug("Calling Gemini API (%s)", use_model)
        client = genai.Client(api_key=api_key)
        response = client.models.generate_content(
            model=use_model,
            contents=user_text,
            config=genai_types.GenerateContentConfig(
                system_instruction=system,
                temperature=0,
                max_output_tokens=max_tokens,
                response_mime_type="application/json" if json_mode else None,
            ),
        )

        meta = response.usage_metadata
        self.usage.record(
            meta.prompt_token_count if meta else None,
            meta.candidates_token_count if meta else None,
        )
        return response.text or ""
