from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class LLMResponse:
    content: str
    model: str
    usage: Optional[dict] = None

    @property
    def total_tokens(self) -> Optional[int]:
        if not self.usage:
            return None
        total = self.usage.get("total_tokens")
        return total if isinstance(total, int) else None


class LLMError(Exception):
    """Upstream call failed; worth retrying."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class LLMAuthError(LLMError):
    """The provider rejected the credentials. Retrying will not help."""


class UnknownProviderError(Exception):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown AI provider: {name}")


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    name: str = "base"

    @abstractmethod
    async def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        """Generate response from LLM."""
        pass
