from app.services.llm.base import LLMAuthError, LLMError, LLMProvider, LLMResponse, UnknownProviderError
from app.services.llm.openai_provider import OpenAICompatibleProvider

__all__ = [
    "LLMProvider",
    "LLMResponse",
    "LLMError",
    "LLMAuthError",
    "UnknownProviderError",
    "OpenAICompatibleProvider",
]
