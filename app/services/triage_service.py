import asyncio
import json
from pathlib import Path
from typing import Optional

from app.logging_config import get_logger
from app.schemas.message import InboundMessage
from app.services.normalizer import normalize_text

logger = get_logger("triage_service")

UNANSWERED_FULL_FILE = "unanswered_questions_full.jsonl"
UNANSWERED_TEXT_FILE = "unanswered_questions_text.txt"
IGNORED_FILE = "ignored_questions.txt"
FALSE_POSITIVES_FILE = "potential_false_positives.jsonl"


def _append_line(path: Path, line: str) -> None:
    with path.open("a", encoding="utf-8") as handle:
        handle.write(line + "\n")
        handle.flush()


def _read_lines(path: Path) -> list[str]:
    if not path.exists():
        return []
    with path.open("r", encoding="utf-8") as handle:
        return [line.rstrip("\n") for line in handle if line.strip()]


class TriageLog:
    """Append-only logs for offline review of questions the catalog could not answer."""

    def __init__(self, directory: str | Path = "."):
        self.directory = Path(directory)
        self.full_path = self.directory / UNANSWERED_FULL_FILE
        self.text_path = self.directory / UNANSWERED_TEXT_FILE
        self.ignored_path = self.directory / IGNORED_FILE
        self.false_positives_path = self.directory / FALSE_POSITIVES_FILE

    async def _append(self, path: Path, line: str) -> None:
        await asyncio.to_thread(_append_line, path, line)

    async def ignored(self) -> set[str]:
        lines = await asyncio.to_thread(_read_lines, self.ignored_path)
        return {normalize_text(line) for line in lines}

    async def record_unanswered(self, message: InboundMessage) -> bool:
        """Append the question unless it was dismissed before. Returns True if written."""
        if normalize_text(message.text) in await self.ignored():
            logger.debug(f"Skipping ignored question from user {message.user_id}")
            return False

        await self._append(self.full_path, message.model_dump_json())
        # one question per line in the text log
        await self._append(self.text_path, " ".join(message.text.splitlines()))
        return True

    async def record_false_positive(self, entry: dict) -> None:
        try:
            await self._append(self.false_positives_path, json.dumps(entry, ensure_ascii=False, default=str))
        except OSError as exc:
            logger.error(f"Failed to log potential false positive: {exc}")

    async def ignore(self, text: str) -> None:
        cleaned = " ".join(text.split())
        if cleaned:
            await self._append(self.ignored_path, cleaned)

    async def pending_questions(self, limit: Optional[int] = None) -> list[str]:
        """Unanswered question texts, deduplicated, minus the ignored ones."""
        ignored = await self.ignored()
        lines = await asyncio.to_thread(_read_lines, self.text_path)
        seen: set[str] = set()
        pending: list[str] = []
        for line in lines:
            key = normalize_text(line)
            if not key or key in ignored or key in seen:
                continue
            seen.add(key)
            pending.append(line)
        return pending[:limit] if limit else pending
