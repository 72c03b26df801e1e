from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")

# Failure codes shared by the AI and search services.
NO_KEYS = "no_keys"
KEYS_EXHAUSTED = "keys_exhausted"
SEARCH_ERROR = "search_error"
EMPTY_ANSWER = "empty_answer"
UNKNOWN_PROVIDER = "unknown_provider"
AUTH_ERROR = "auth_error"
RETRIES_EXHAUSTED = "retries_exhausted"


@dataclass
class Result(Generic[T]):
    """Outcome of an upstream call that is expected to fail sometimes."""

    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @staticmethod
    def success(value: T) -> "Result[T]":
        return Result(ok=True, value=value)

    @staticmethod
    def failure(error: str, code: str) -> "Result[T]":
        return Result(ok=False, error=error, error_code=code)

    def failed_with(self, *codes: str) -> bool:
        return not self.ok and self.error_code in codes
