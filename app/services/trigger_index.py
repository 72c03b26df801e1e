"""Curated trigger catalog: exact lookup, scored smart matching and contextual matching.

The non-contextual part of the catalog is held in an immutable snapshot.
``load()`` builds a fresh snapshot from the database and swaps the reference
in one assignment, so a reader always sees either the old or the new catalog
and never a half-built one.
"""

import random
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.logging_config import get_logger
from app.models import ResponseRule
from app.services.normalizer import normalize_text, split_words

logger = get_logger("trigger_index")

MATCH_EXACT = "exact"
MATCH_SMART = "smart"
MATCH_CONTEXTUAL = "contextual"
MATCH_WILDCARD = "wildcard"

WILDCARD_TRIGGER = "*"


def _as_list(value) -> list:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


@dataclass(frozen=True)
class Rule:
    id: int
    triggers: tuple[str, ...]
    responses: tuple[str, ...]
    match_type: str = MATCH_SMART
    required_context: Optional[str] = None
    sets_context: Optional[str] = None
    exclude_words: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def from_model(cls, row: ResponseRule) -> "Rule":
        return cls(
            id=row.id,
            triggers=tuple(str(t) for t in _as_list(row.trigger)),
            responses=tuple(str(r) for r in _as_list(row.response)),
            match_type=row.match_type or MATCH_SMART,
            required_context=row.context_required or None,
            sets_context=row.sets_state or None,
            exclude_words=frozenset(
                normalized for normalized in (normalize_text(w) for w in _as_list(row.exclude_words)) if normalized
            ),
        )

    def pick_response(self) -> str:
        return random.choice(self.responses)

    def is_excluded(self, normalized_message: str, message_words: set[str]) -> bool:
        for word in self.exclude_words:
            if " " in word:
                if word in normalized_message:
                    return True
            elif word in message_words:
                return True
        return False


@dataclass(frozen=True)
class CatalogSnapshot:
    exact: Mapping[str, Rule]
    smart: tuple[Rule, ...]


@dataclass
class MatchResult:
    rule: Rule
    trigger: str
    kind: str
    score: float = 1.0
    raw_score: float = 1.0
    extra_words: list[str] = field(default_factory=list)

    @property
    def is_perfect(self) -> bool:
        return self.raw_score >= 1.0


EMPTY_SNAPSHOT = CatalogSnapshot(exact=MappingProxyType({}), smart=())


def build_snapshot(rules: Iterable[Rule]) -> CatalogSnapshot:
    """Index non-contextual rules. Later rules overwrite earlier ones on the same exact key."""
    exact: dict[str, Rule] = {}
    smart: list[Rule] = []
    for rule in rules:
        if rule.required_context:
            continue
        if rule.match_type == MATCH_EXACT:
            for trigger in rule.triggers:
                key = normalize_text(trigger)
                # punctuation-only triggers would match every empty message
                if key:
                    exact[key] = rule
        else:
            smart.append(rule)
    return CatalogSnapshot(exact=MappingProxyType(exact), smart=tuple(smart))


def score_trigger(trigger: str, message_words: set[str]) -> Optional[float]:
    """Share of the trigger's words present in the message; None for an empty trigger."""
    trigger_words = split_words(trigger)
    if not trigger_words:
        return None
    matches = sum(1 for word in trigger_words if word in message_words)
    return matches / len(trigger_words)


def match_contextual(text: str, rules: Iterable[Rule]) -> Optional[MatchResult]:
    """Substring match among rules waiting on one context; '*' is the last resort."""
    normalized_message = normalize_text(text)
    wildcard: Optional[Rule] = None

    for rule in rules:
        for trigger in rule.triggers:
            if trigger.strip() == WILDCARD_TRIGGER:
                if wildcard is None:
                    wildcard = rule
                continue
            normalized_trigger = normalize_text(trigger)
            if normalized_trigger and normalized_trigger in normalized_message:
                return MatchResult(rule=rule, trigger=trigger, kind=MATCH_CONTEXTUAL)

    if wildcard is not None:
        return MatchResult(rule=wildcard, trigger=WILDCARD_TRIGGER, kind=MATCH_WILDCARD)
    return None


class TriggerIndex:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        score_threshold: float = 0.75,
        state_priority_boost: float = 0.1,
    ):
        self._session_factory = session_factory
        self.score_threshold = score_threshold
        self.state_priority_boost = state_priority_boost
        self._snapshot: CatalogSnapshot = EMPTY_SNAPSHOT

    @property
    def snapshot(self) -> CatalogSnapshot:
        return self._snapshot

    def replace(self, rules: Iterable[Rule]) -> CatalogSnapshot:
        snapshot = build_snapshot(rules)
        self._snapshot = snapshot
        return snapshot

    async def load(self) -> CatalogSnapshot:
        """Rebuild the non-contextual catalog from storage and swap it in."""
        async with self._session_factory() as db:
            result = await db.execute(
                select(ResponseRule)
                .where(or_(ResponseRule.context_required.is_(None), ResponseRule.context_required == ""))
                .order_by(ResponseRule.id)
            )
            rules = [Rule.from_model(row) for row in result.scalars().all()]

        snapshot = self.replace(rules)
        logger.info(
            "Catalog loaded",
            extra={"context": {"smart": len(snapshot.smart), "exact": len(snapshot.exact)}},
        )
        return snapshot

    reload = load

    async def rules_for_context(self, context: str) -> list[Rule]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(ResponseRule).where(ResponseRule.context_required == context).order_by(ResponseRule.id)
            )
            return [Rule.from_model(row) for row in result.scalars().all()]

    def match_exact(self, text: str) -> Optional[MatchResult]:
        normalized = normalize_text(text)
        rule = self._snapshot.exact.get(normalized)
        if rule is None:
            return None
        return MatchResult(rule=rule, trigger=", ".join(rule.triggers), kind=MATCH_EXACT)

    def match_smart(self, text: str) -> Optional[MatchResult]:
        normalized_message = normalize_text(text)
        message_words = set(split_words(text))
        best: Optional[MatchResult] = None

        for rule in self._snapshot.smart:
            if rule.is_excluded(normalized_message, message_words):
                continue
            for trigger in rule.triggers:
                raw_score = score_trigger(trigger, message_words)
                if raw_score is None:
                    continue
                score = raw_score + self.state_priority_boost if rule.sets_context else raw_score
                if score > (best.score if best else 0):
                    best = MatchResult(rule=rule, trigger=trigger, kind=MATCH_SMART, score=score, raw_score=raw_score)

        if best is None or best.score < self.score_threshold:
            return None

        trigger_words = set(split_words(best.trigger))
        best.extra_words = [word for word in split_words(text) if word not in trigger_words]
        return best

    def match(self, text: str) -> Optional[MatchResult]:
        """Exact lookup first, then smart scoring."""
        return self.match_exact(text) or self.match_smart(text)

    async def match_context(self, context: str, text: str) -> Optional[MatchResult]:
        rules = await self.rules_for_context(context)
        return match_contextual(text, rules)
