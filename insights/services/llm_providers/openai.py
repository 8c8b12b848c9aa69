"""
OpenAI LLM Provider
===================

OpenAI implementation of BaseLLMProvider using the official async SDK.
``openai_base_url`` points the client at Azure or another compatible gateway.
"""

from typing import Any, Dict, Optional

import openai
from openai import AsyncOpenAI

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

DEFAULT_MODEL = "gpt-4o-mini"


class OpenAIProvider(BaseLLMProvider):
    """OpenAI chat-completions provider."""

    name = "openai"

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        api_key = api_key or settings.openai_api_key
        if not api_key:
            raise AuthenticationError(
                "OpenAI API key not found. Set INSIGHTS_OPENAI_API_KEY in environment.",
                provider="openai",
            )

        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=settings.openai_base_url,
            max_retries=0,  # retries are owned by the analysis gateway
        )
        self.model_name = model or settings.llm_model or DEFAULT_MODEL

    async def complete(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: int = 1024,
        temperature: float = 0.2,
    ) -> Completion:
        try:
            response = await self.client.chat.completions.create(
                model=self.model_name,
                messages=self._build_messages(prompt, system_prompt),
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except openai.APITimeoutError as e:
            raise ProviderTimeoutError("OpenAI request timed out.", provider="openai", original_error=e)
        except openai.APIConnectionError as e:
            raise ProviderConnectionError(
                f"Could not reach OpenAI: {e}", provider="openai", original_error=e
            )
        except openai.RateLimitError as e:
            raise RateLimitError(
                "OpenAI API rate limit exceeded. Please try again later.",
                provider="openai",
                original_error=e,
            )
        except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
            raise AuthenticationError("OpenAI API key is invalid.", provider="openai", original_error=e)
        except (openai.BadRequestError, openai.NotFoundError, openai.UnprocessableEntityError) as e:
            raise InvalidRequestError(
                f"OpenAI rejected the request: {e}", provider="openai", original_error=e
            )
        except openai.APIStatusError as e:
            if e.status_code >= 500:
                raise ProviderServerError(
                    f"OpenAI server error ({e.status_code})", provider="openai", original_error=e
                )
            raise InvalidRequestError(
                f"OpenAI API error ({e.status_code}): {e}", provider="openai", original_error=e
            )
        except openai.APIError as e:
            raise LLMProviderError(f"OpenAI API error: {e}", provider="openai", original_error=e)

        text = response.choices[0].message.content if response.choices else None
        usage = response.usage
        return Completion(
            text=text or "",
            usage=TokenUsage(
                prompt_tokens=usage.prompt_tokens if usage else 0,
                completion_tokens=usage.completion_tokens if usage else 0,
            ),
        )

    def _build_messages(self, prompt: str, system_prompt: Optional[str]) -> list:
        """Build chat messages list with optional system prompt."""
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        return messages

    def get_model_info(self) -> Dict[str, Any]:
        context_windows = {
            "gpt-4o": 128_000,
            "gpt-4o-mini": 128_000,
            "gpt-4-turbo": 128_000,
            "gpt-4": 8_192,
        }
        return {
            "provider": "openai",
            "model": self.model_name,
            "max_context_window": context_windows.get(self.model_name, 128_000),
        }
