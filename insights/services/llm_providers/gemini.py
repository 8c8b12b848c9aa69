"""
Gemini LLM Provider
===================

Google Gemini implementation of BaseLLMProvider using the google-genai SDK.
"""

import logging
from typing import Any, Dict, Optional

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from insights.config import settings
from insights.models.analysis import TokenUsage
from .base import (
    AuthenticationError,
    BaseLLMProvider,
    Completion,
    InvalidRequestError,
    LLMProviderError,
    ProviderServerError,
    RateLimitError,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.0-flash"


class GeminiProvider(BaseLLMProvider):
    """Gemini generate_content provider."""

    name = "gemini"

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        api_key = api_key or settings.gemini_api_key
        if not api_key:
            raise AuthenticationError(
                "Gemini API key not found. Set INSIGHTS_GEMINI_API_KEY in environment.",
                provider="gemini",
            )

        self.client = genai.Client(api_key=api_key)
        self.model_name = model or settings.llm_model or DEFAULT_MODEL

    async def complete(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: int = 1024,
        temperature: float = 0.2,
    ) -> Completion:
        config = types.GenerateContentConfig(
            temperature=temperature,
            max_output_tokens=max_tokens,
            system_instruction=system_prompt,
        )
        try:
            response = await self.client.aio.models.generate_content(
                model=self.model_name,
                contents=prompt,
                config=config,
            )
        except genai_errors.APIError as e:
            self._raise_mapped(e)

        if not response.candidates:
            raise InvalidRequestError(
                "Generation blocked by safety filters or no candidates returned.",
                provider="gemini",
            )

        meta = response.usage_metadata
        return Completion(
            text=response.text or "",
            usage=TokenUsage(
                prompt_tokens=(meta.prompt_token_count or 0) if meta else 0,
                completion_tokens=(meta.candidates_token_count or 0) if meta else 0,
            ),
        )

    def _raise_mapped(self, e: "genai_errors.APIError"):
        """Map SDK errors to standard provider errors."""
        code = getattr(e, "code", None) or 0
        if code == 429:
            raise RateLimitError(f"Gemini quota exceeded: {e}", provider="gemini", original_error=e)
        if code in (401, 403):
            raise AuthenticationError(f"Gemini authentication failed: {e}", provider="gemini", original_error=e)
        if isinstance(e, genai_errors.ServerError) or code >= 500:
            raise ProviderServerError(f"Gemini server error: {e}", provider="gemini", original_error=e)
        if isinstance(e, genai_errors.ClientError):
            raise InvalidRequestError(f"Gemini rejected the request: {e}", provider="gemini", original_error=e)
        raise LLMProviderError(f"Gemini provider error: {e}", provider="gemini", original_error=e)

    def get_model_info(self) -> Dict[str, Any]:
        return {
            "provider": "gemini",
            "model": self.model_name,
            "max_context_window": 1_000_000,
        }
