"""
Relevance Scoring — deciding which memories earn a place in the prompt.

Every candidate gets a weighted score:

    score = w_time × exp(-age / one_day)
          + w_importance × importance
          + w_keyword × keyword_overlap
          + w_layer × tier_bonus
          + w_pinned (if pinned) + w_user_edited (if user edited)
          + 0.1 × activity

Keyword overlap is the Jaccard similarity between the entry's keywords and
the context keywords, plus 0.2 for every context keyword that literally
appears in the entry's content, capped at 1.0.

Weights are late-bound: the engine keeps a reference to the live
``ScoringConfig`` and re-reads it on every call, so a host that edits the
weights at runtime sees the effect on the very next prompt.

Knowledge entries use the same shape with their own formula (no tiers, no
age), plus a tag bonus when the tag and a context keyword contain one another.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Iterable, Optional, Sequence, TypeVar

import structlog

from pawnmem.clock import TICKS_PER_DAY
from pawnmem.config import ScoringConfig
from pawnmem.memory._utils import extract_keywords, jaccard
from pawnmem.memory.entry import MemoryEntry
from pawnmem.types import MemoryLayer

if TYPE_CHECKING:
    from pawnmem.memory.knowledge import KnowledgeEntry
    from pawnmem.memory.tiers import TieredMemory

logger = structlog.get_logger(__name__)

T = TypeVar("T")

CONTEXT_KEYWORD_LIMIT = 20
CONTENT_MATCH_BONUS = 0.2
ACTIVITY_WEIGHT = 0.1
HALF_LIFE_TICKS = TICKS_PER_DAY

LAYER_BONUS = {
    MemoryLayer.ACTIVE: 1.0,
    MemoryLayer.SITUATIONAL: 0.7,
    MemoryLayer.EVENT_LOG: 0.4,
    MemoryLayer.ARCHIVE: 0.2,
}

# Archive memories are only considered when the context looks backwards.
RETROSPECTIVE_TRIGGERS = (
    "past", "before", "remember", "used to", "back then", "history",
    "过去", "以前", "曾经", "记得", "回忆", "历史", "当时", "那时候",
)
ARCHIVE_CANDIDATE_LIMIT = 20

KNOWLEDGE_MIN_SCORE = 0.1
KNOWLEDGE_JACCARD_WEIGHT = 0.7
KNOWLEDGE_TAG_BONUS = 0.3
KNOWLEDGE_BASE_FACTOR = 0.3


@dataclass(frozen=True)
class ScoreBreakdown:
    """Per-term contributions of one memory's score (weights applied)."""

    time: float
    importance: float
    keyword: float
    bonus: float

    @property
    def total(self) -> float:
        return self.time + self.importance + self.keyword + self.bonus


class ScoringEngine:
    """Scores memories and knowledge against a prompt context."""

    def __init__(self, config: ScoringConfig, clock: Callable[[], int]):
        self._config = config
        self._clock = clock

    # ------------------------------------------------------------------
    # Terms
    # ------------------------------------------------------------------

    def time_term(self, entry: MemoryEntry) -> float:
        age = max(0, self._clock() - entry.timestamp)
        return math.exp(-age / HALF_LIFE_TICKS)

    @staticmethod
    def keyword_term(entry: MemoryEntry, context_keywords: Iterable[str]) -> float:
        context = list(dict.fromkeys(context_keywords))
        if not context or not entry.keywords:
            return 0.0
        similarity = jaccard(entry.keywords, context)
        content_hits = sum(CONTENT_MATCH_BONUS for kw in context if kw in entry.content)
        return min(1.0, max(0.0, similarity + content_hits))

    @staticmethod
    def layer_bonus(layer: MemoryLayer) -> float:
        return LAYER_BONUS.get(layer, 0.0)

    # ------------------------------------------------------------------
    # Memory scoring
    # ------------------------------------------------------------------

    def explain(self, entry: MemoryEntry, context_keywords: Iterable[str] = ()) -> ScoreBreakdown:
        w = self._config
        bonus = self.layer_bonus(entry.layer) * w.weight_layer
        if entry.is_pinned:
            bonus += w.weight_pinned
        if entry.is_user_edited:
            bonus += w.weight_user_edited
        bonus += ACTIVITY_WEIGHT * entry.activity
        return ScoreBreakdown(
            time=self.time_term(entry) * w.weight_time,
            importance=entry.importance * w.weight_importance,
            keyword=self.keyword_term(entry, context_keywords) * w.weight_keyword,
            bonus=bonus,
        )

    def score(self, entry: MemoryEntry, context_keywords: Iterable[str] = ()) -> float:
        return self.explain(entry, context_keywords).total

    # ------------------------------------------------------------------
    # Knowledge scoring
    # ------------------------------------------------------------------

    @staticmethod
    def score_knowledge(entry: "KnowledgeEntry", context_keywords: Iterable[str] = ()) -> float:
        if not entry.enabled:
            return 0.0
        context = list(dict.fromkeys(context_keywords))
        if not context or not entry.keywords:
            return entry.importance * KNOWLEDGE_BASE_FACTOR

        similarity = jaccard(entry.keywords, context)
        tag_bonus = 0.0
        if entry.tag:
            for kw in context:
                if kw in entry.tag or entry.tag in kw:
                    tag_bonus = KNOWLEDGE_TAG_BONUS
                    break
        return (similarity * KNOWLEDGE_JACCARD_WEIGHT + tag_bonus) * entry.importance

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    @staticmethod
    def extract_keywords(text: Optional[str]) -> list[str]:
        return extract_keywords(text, limit=CONTEXT_KEYWORD_LIMIT)

    @staticmethod
    def select_top_n(
        candidates: Iterable[T],
        scorer: Callable[[T], float],
        n: int,
        min_score: Optional[float] = None,
    ) -> list[tuple[T, float]]:
        """Score every candidate, sort descending (stable), keep the best ``n``."""
        if n <= 0:
            return []
        scored = [(c, scorer(c)) for c in candidates]
        if min_score is not None:
            scored = [pair for pair in scored if pair[1] > min_score]
        scored.sort(key=lambda pair: pair[1], reverse=True)
        return scored[:n]

    @staticmethod
    def wants_archive(context: Optional[str]) -> bool:
        if not context:
            return False
        lowered = context.lower()
        return any(trigger in lowered for trigger in RETROSPECTIVE_TRIGGERS)

    def select_memories(
        self,
        memory: "TieredMemory",
        context: Optional[str],
        n: int,
    ) -> list[tuple[MemoryEntry, float]]:
        keywords = self.extract_keywords(context)
        candidates: list[MemoryEntry] = [
            *memory.active,
            *memory.situational,
            *memory.event_log,
        ]
        if self.wants_archive(context):
            candidates.extend(memory.archive[:ARCHIVE_CANDIDATE_LIMIT])
        selected = self.select_top_n(candidates, lambda e: self.score(e, keywords), n)
        logger.debug(
            "scoring.memories_selected",
            agent_id=memory.agent_id,
            candidates=len(candidates),
            selected=len(selected),
        )
        return selected

    def select_knowledge(
        self,
        entries: Sequence["KnowledgeEntry"],
        context: Optional[str],
        n: int,
    ) -> list[tuple["KnowledgeEntry", float]]:
        keywords = self.extract_keywords(context)
        enabled = [e for e in entries if e.enabled]
        return self.select_top_n(
            enabled,
            lambda e: self.score_knowledge(e, keywords),
            n,
            min_score=KNOWLEDGE_MIN_SCORE,
        )
