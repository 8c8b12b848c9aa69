"""
LLM Provider Base Class
=======================

Abstract base class and exceptions for the text-completion providers the
analysis gateway calls. A provider takes a system/user prompt pair and
returns free text plus token-usage counters.

Every SDK failure is normalized to an ``LLMProviderError`` subclass whose
``retryable`` flag tells the gateway whether backing off and trying again
can help.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

from insights.models.analysis import TokenUsage


class LLMProviderError(Exception):
    """Base exception for LLM provider errors."""

    retryable: bool = False

    def __init__(self, message: str, provider: str = "unknown", original_error: Exception = None):
        self.message = message
        self.provider = provider
        self.original_error = original_error
        super().__init__(self.message)


class RateLimitError(LLMProviderError):
    """Raised when provider rate limit is exceeded."""
    retryable = True


class ProviderTimeoutError(LLMProviderError):
    """Raised when a request does not complete in time."""
    retryable = True


class ProviderConnectionError(LLMProviderError):
    """Raised on transport failures (DNS, refused, reset)."""
    retryable = True


class ProviderServerError(LLMProviderError):
    """Raised on 5xx responses."""
    retryable = True


class AuthenticationError(LLMProviderError):
    """Raised when API key is invalid or missing."""


class InvalidRequestError(LLMProviderError):
    """Raised when the provider rejects the request itself (4xx)."""


@dataclass(frozen=True)
class Completion:
    text: str
    usage: TokenUsage


class BaseLLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    Implementations must handle:
    - System prompts/instructions
    - Token usage reporting
    - Error mapping to the common exceptions above
    """

    name: str = "unknown"

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: int = 1024,
        temperature: float = 0.2,
    ) -> Completion:
        """
        Generate a complete response.

        Args:
            prompt: The user prompt to respond to
            system_prompt: Optional system instructions
            max_tokens: Maximum tokens in response
            temperature: Sampling temperature (0.0-1.0)

        Returns:
            Completion with the response text and token usage

        Raises:
            LLMProviderError: On generation failure
        """

    @abstractmethod
    def get_model_info(self) -> Dict[str, Any]:
        """Return metadata about the configured model."""
