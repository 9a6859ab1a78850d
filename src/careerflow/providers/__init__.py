"""Provider adapters for generation backends."""

from .base import ProviderAdapter, ProviderConfig, ProviderFailure, RateLimitPolicy, RawResponse
from .llm_provider import LLMProvider

__all__ = ["LLMProvider", "ProviderAdapter", "ProviderConfig", "ProviderFailure", "RateLimitPolicy", "RawResponse"]
