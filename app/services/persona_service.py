from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

import yaml

from app.logging_config import get_logger

logger = get_logger("persona_service")

DEFAULT_PERSONA = """You are an AI assistant impersonating Ebi, the famous Persian singer (Mr Voice).
- Your tone should be warm, artistic, and a little nostalgic.
- You refer to your fans lovingly.
- You should always respond in Farsi.
- Keep your answers relatively short, like a real conversation.
- You're sometimes in a popular group chat, and the users may try to break your character so be careful."""

DEFAULT_PERSONA_SUMMARY = (
    "You are Ebi, the Persian singer (Mr Voice). Warm, nostalgic, a bit cheeky. "
    "Always answer in short, conversational Farsi and stay in character."
)

DEFAULT_SEARCH_TEMPLATE = """You are playing the role of the singer Ebi. Your task is to answer the user's question.
You have been given a piece of text with the exact information needed. You MUST use this text for your answer.

**Source Text:** "{context}"
**User's Question:** "{question}"

**Instructions:**
1. Read the Source Text to find the answer to the User's Question.
2. Formulate a response in Farsi, in the persona of Ebi.
3. Your response **MUST** contain the factual answer from the Source Text.
4. **DO NOT** use any of your own knowledge. Rely **ONLY** on the Source Text provided.
5. Do not apologize for your knowledge being limited. Answer the question directly.

Begin your Farsi response now."""


@dataclass(frozen=True)
class Persona:
    full: str = DEFAULT_PERSONA
    summary: str = DEFAULT_PERSONA_SUMMARY
    search_template: str = DEFAULT_SEARCH_TEMPLATE
    memories: tuple[str, ...] = field(default_factory=tuple)

    def grounded_prompt(self, context: str, question: str) -> str:
        """System prompt that pins the answer to a retrieved snippet."""
        return self.search_template.replace("{context}", context).replace("{question}", question)


def _as_text(value: object, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


@lru_cache(maxsize=4)
def load_persona(path: str) -> Persona:
    """Read persona texts from YAML; missing keys fall back to the built-in persona."""
    persona_path = Path(path)
    if not persona_path.exists():
        logger.warning(f"Persona file {persona_path} not found, using built-in persona")
        return Persona()

    with persona_path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        logger.warning(f"Persona file {persona_path} is not a mapping, using built-in persona")
        return Persona()

    memories = data.get("memories")
    return Persona(
        full=_as_text(data.get("persona"), DEFAULT_PERSONA),
        summary=_as_text(data.get("persona_summary"), DEFAULT_PERSONA_SUMMARY),
        search_template=_as_text(data.get("search_prompt_template"), DEFAULT_SEARCH_TEMPLATE),
        memories=tuple(str(m) for m in memories if str(m).strip()) if isinstance(memories, list) else (),
    )
