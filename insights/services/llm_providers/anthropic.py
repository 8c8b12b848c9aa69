"""
Anthropic Claude LLM Provider
==============================

Anthropic implementation of BaseLLMProvider using the official async SDK.
The system prompt goes in the Messages API ``system`` parameter.
"""

from typing import Any, Dict, Optional

import anthropic
from anthropic import AsyncAnthropic

from insights.config import settings
from insights.models.analysis import TokenUsage
from .base import (
    AuthenticationError,
    BaseLLMProvider,
    Completion,
    InvalidRequestError,
    LLMProviderError,
    ProviderConnectionError,
    ProviderServerError,
    ProviderTimeoutError,
    RateLimitError,
)

DEFAULT_MODEL = "claude-sonnet-4-20250514"


class AnthropicProvider(BaseLLMProvider):
    """Anthropic Messages API provider."""

    name = "anthropic"

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        api_key = api_key or settings.anthropic_api_key
        if not api_key:
            raise AuthenticationError(
                "Anthropic API key not found. Set INSIGHTS_ANTHROPIC_API_KEY in environment.",
                provider="anthropic",
            )

        self.client = AsyncAnthropic(api_key=api_key, max_retries=0)
        self.model_name = model or settings.llm_model or DEFAULT_MODEL

    async def complete(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: int = 1024,
        temperature: float = 0.2,
    ) -> Completion:
        kwargs: dict = {
            "model": self.model_name,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            kwargs["system"] = system_prompt

        try:
            response = await self.client.messages.create(**kwargs)
        except anthropic.APITimeoutError as e:
            raise ProviderTimeoutError("Anthropic request timed out.", provider="anthropic", original_error=e)
        except anthropic.APIConnectionError as e:
            raise ProviderConnectionError(
                f"Could not reach Anthropic: {e}", provider="anthropic", original_error=e
            )
        except anthropic.RateLimitError as e:
            raise RateLimitError(
                "Anthropic API rate limit exceeded. Please try again later.",
                provider="anthropic",
                original_error=e,
            )
        except (anthropic.AuthenticationError, anthropic.PermissionDeniedError) as e:
            raise AuthenticationError("Anthropic API key is invalid.", provider="anthropic", original_error=e)
        except (anthropic.BadRequestError, anthropic.NotFoundError, anthropic.UnprocessableEntityError) as e:
            raise InvalidRequestError(
                f"Anthropic rejected the request: {e}", provider="anthropic", original_error=e
            )
        except anthropic.APIStatusError as e:
            if e.status_code >= 500:
                raise ProviderServerError(
                    f"Anthropic server error ({e.status_code})", provider="anthropic", original_error=e
                )
            raise InvalidRequestError(
                f"Anthropic API error ({e.status_code}): {e}", provider="anthropic", original_error=e
            )
        except anthropic.APIError as e:
            raise LLMProviderError(f"Anthropic API error: {e}", provider="anthropic", original_error=e)

        return Completion(
            text=self._extract_text(response),
            usage=TokenUsage(
                prompt_tokens=response.usage.input_tokens,
                completion_tokens=response.usage.output_tokens,
            ),
        )

    @staticmethod
    def _extract_text(response) -> str:
        """Extract concatenated text from Anthropic Messages response."""
        return "".join(block.text for block in response.content if hasattr(block, "text"))

    def get_model_info(self) -> Dict[str, Any]:
        return {
            "provider": "anthropic",
            "model": self.model_name,
            "max_context_window": 200_000,
        }
