from typing import List, Optional

import httpx

from app.logging_config import get_logger
from app.services.llm.base import LLMAuthError, LLMError, LLMProvider, LLMResponse

logger = get_logger("llm.openai")


class OpenAICompatibleProvider(LLMProvider):
    """Chat-completions API as served by OpenAI, OpenRouter, AvalAI and friends."""

    def __init__(
        self,
        name: str,
        base_url: str,
        api_key: str,
        default_model: str,
        timeout_seconds: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.name = name
        self.base_url = base_url
        self.api_key = api_key
        self.default_model = default_model
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        """Generate response. Raises LLMAuthError on 401 and LLMError on any other failure."""

        model = model or self.default_model
        payload: dict = {"model": model, "messages": messages}
        if temperature is not None:
            payload["temperature"] = temperature
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens

        logger.debug(f"{self.name} request: model={model}, messages_count={len(messages)}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = await client.post(
                    self.base_url,
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
        except httpx.HTTPError as exc:
            raise LLMError(f"{self.name} transport error: {exc}") from exc

        logger.debug(f"{self.name} response status: {response.status_code}")

        if response.status_code == 401:
            raise LLMAuthError(f"{self.name} rejected the API key", status_code=401)

        if response.status_code != 200:
            raise LLMError(
                f"{self.name} API error: {response.status_code} - {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise LLMError(f"{self.name} returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise LLMError(f"{self.name} returned an unexpected payload")

        content = ""
        if data.get("choices"):
            message = data["choices"][0].get("message") or {}
            content = message.get("content") or ""
        if not content.strip():
            raise LLMError(f"{self.name} returned an empty completion", status_code=response.status_code)

        return LLMResponse(
            content=content,
            model=data.get("model", model),
            usage=data.get("usage"),
        )
