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

__all__ = [
    "AuthenticationError",
    "BaseLLMProvider",
    "Completion",
    "InvalidRequestError",
    "LLMProviderError",
    "ProviderConnectionError",
    "ProviderServerError",
    "ProviderTimeoutError",
    "RateLimitError",
]
