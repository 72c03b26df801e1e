import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Mapping, Optional

from app.config import AIProviderConfig
from app.logging_config import get_logger
from app.services.history_service import ConversationHistoryStore
from app.services.llm import LLMAuthError, LLMProvider, OpenAICompatibleProvider, UnknownProviderError
from app.services.result import AUTH_ERROR, RETRIES_EXHAUSTED, UNKNOWN_PROVIDER, Result
from app.services.stats_service import UsageStats

logger = get_logger("ai_service")

MAX_RETRIES = 3
INITIAL_BACKOFF_SECONDS = 1.0

FAILURE_RESPONSE = "متاسفانه در حال حاضر نمیتونم به این سوال جواب بدم. شاید بعدا بتونم."
TECHNICAL_ERROR_RESPONSE = "یک مشکل فنی در بخش هوش مصنوعی بوجود آمده است."

# Configuration faults get the technical message, everything else the apology.
TECHNICAL_ERROR_CODES = (UNKNOWN_PROVIDER, AUTH_ERROR)


@dataclass
class GenerateOptions:
    provider: Optional[str] = None
    model: Optional[str] = None
    history: list[dict] = field(default_factory=list)
    persona_summary: Optional[str] = None


def build_providers(
    table: Mapping[str, AIProviderConfig],
    timeout_seconds: float = 60.0,
) -> dict[str, LLMProvider]:
    return {
        name: OpenAICompatibleProvider(
            name=name,
            base_url=config.base_url,
            api_key=config.api_key,
            default_model=config.default_model,
            timeout_seconds=timeout_seconds,
        )
        for name, config in table.items()
    }


def compose_messages(
    user_message: str,
    persona: str,
    history: Optional[list[dict]] = None,
    persona_summary: Optional[str] = None,
) -> list[dict]:
    """New conversations get the full persona; continuing ones a short summary plus the replayed turns."""
    if history:
        messages = [{"role": "system", "content": persona_summary or persona}]
        messages.extend({"role": turn["role"], "content": turn["content"]} for turn in history)
    else:
        messages = [{"role": "system", "content": persona}]
    messages.append({"role": "user", "content": user_message})
    return messages


class AIOrchestrator:
    """Provider-agnostic AI calls with retries, backoff and usage accounting."""

    def __init__(
        self,
        providers: Mapping[str, LLMProvider],
        stats: UsageStats,
        default_provider: str = "openrouter",
        persona_summary: Optional[str] = None,
        history_store: Optional[ConversationHistoryStore] = None,
        max_retries: int = MAX_RETRIES,
        initial_backoff_seconds: float = INITIAL_BACKOFF_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.providers = dict(providers)
        self.stats = stats
        self.default_provider = default_provider
        self.persona_summary = persona_summary
        self.history_store = history_store
        self.max_retries = max_retries
        self.initial_backoff_seconds = initial_backoff_seconds
        self._sleep = sleep

    def get_provider(self, name: Optional[str] = None) -> LLMProvider:
        provider_name = name or self.default_provider
        provider = self.providers.get(provider_name)
        if provider is None:
            raise UnknownProviderError(provider_name)
        return provider

    async def _call_with_retries(self, provider: LLMProvider, messages: list[dict], model: Optional[str]) -> Optional[str]:
        """Return the generated text, or None once every attempt failed. LLMAuthError propagates."""
        backoff = self.initial_backoff_seconds
        for attempt in range(1, self.max_retries + 1):
            try:
                logger.info(f"AI attempt {attempt} via {provider.name}")
                response = await provider.generate(messages, model=model)
                self.stats.add_tokens(response.total_tokens)
                return response.content
            except LLMAuthError:
                raise
            except Exception as exc:
                logger.error(
                    "AI request failed",
                    extra={
                        "context": {
                            "service": provider.name,
                            "model": model,
                            "attempt": attempt,
                            "max_retries": self.max_retries,
                            "error": str(exc),
                        }
                    },
                )
                if attempt < self.max_retries:
                    await self._sleep(backoff)
                    backoff *= 2
        return None

    async def generate_result(
        self,
        user_message: str,
        persona: str,
        options: Optional[GenerateOptions] = None,
    ) -> Result[str]:
        options = options or GenerateOptions()
        try:
            provider = self.get_provider(options.provider)
        except UnknownProviderError as exc:
            logger.error(str(exc))
            return Result.failure(str(exc), UNKNOWN_PROVIDER)

        messages = compose_messages(
            user_message,
            persona,
            history=options.history,
            persona_summary=options.persona_summary or self.persona_summary,
        )

        try:
            text = await self._call_with_retries(provider, messages, options.model)
        except LLMAuthError as exc:
            logger.critical(f"AI API key is invalid or unauthorized: {exc}")
            return Result.failure(str(exc), AUTH_ERROR)

        if text is None:
            logger.error("All AI attempts failed after reaching max retries")
            self.stats.incr_ai_failures()
            return Result.failure("All AI attempts failed", RETRIES_EXHAUSTED)
        return Result.success(text)

    async def generate(
        self,
        user_message: str,
        persona: str,
        options: Optional[GenerateOptions] = None,
    ) -> str:
        """Never raises: returns the generated reply or a canned failure message."""
        result = await self.generate_result(user_message, persona, options)
        return reply_text(result)

    async def reply_with_history(
        self,
        user_id: int,
        user_message: str,
        persona: str,
        options: Optional[GenerateOptions] = None,
    ) -> str:
        """Private-chat call: replay the stored turns and remember this one on success."""
        options = options or GenerateOptions()
        if self.history_store is None:
            return await self.generate(user_message, persona, options)

        options.history = await self.history_store.load(user_id)
        result = await self.generate_result(user_message, persona, options)
        if result.ok:
            await self.history_store.append_turn(user_id, user_message, result.value)
        return reply_text(result)


def reply_text(result: Result[str]) -> str:
    if result.ok:
        return result.value
    if result.failed_with(*TECHNICAL_ERROR_CODES):
        return TECHNICAL_ERROR_RESPONSE
    return FAILURE_RESPONSE
