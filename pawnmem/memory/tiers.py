"""
Tiered Memory — one pawn's four-layer recollection.

Memories enter at the top and drift downward as they age:

    Active       a handful of the freshest facts, always injected
    Situational  recent context, overflow from Active
    EventLog     daily summaries of Situational, demoted oldest-first
    Archive      long-term record, trimmed by importance when it grows too large

Movement is capacity-driven, not timer-driven. Adding to a full Active tier
pushes its oldest entry into Situational. Once per in-game day the host calls
``compress_situational()``, which folds Situational into one summary per
memory type and pushes EventLog overflow into Archive. Each tier is a
newest-first list; an entry lives in exactly one of them and never moves back
up.

Summaries are written deterministically first so the record is never empty.
If an external summarizer is configured the pipeline's result replaces the
placeholder later, delivered through the host loop's callback drain.
"""

from __future__ import annotations

from statistics import fmean
from typing import TYPE_CHECKING, Any, Callable, Iterator, Optional

import structlog

from pawnmem.config import DecayRates, MemoryConfig
from pawnmem.memory.entry import MemoryEntry, MemoryQuery
from pawnmem.memory.summary import build_simple_summary
from pawnmem.types import MemoryLayer, MemoryType, SummaryTemplate

if TYPE_CHECKING:
    from pawnmem.api.summarizer import SummarizationPipeline
    from pawnmem.memory.scoring import ScoringEngine

logger = structlog.get_logger(__name__)

DUPLICATE_WINDOW = 5
SITUATIONAL_RETRIEVE_LIMIT = 5
ARCHIVE_RETRIEVE_LIMIT = 3
SITUATIONAL_OVERFLOW_FACTOR = 1.5
SUMMARY_IMPORTANCE_BOOST = 0.2
ARCHIVE_IMPORTANCE_BOOST = 0.3

SIMPLE_SUMMARY_TAG = "simple-summary"
AI_SUMMARY_TAG = "ai-summary"
PENDING_AI_TAG = "pending-ai"
MANUAL_ARCHIVE_TAG = "manual-archive"


class TieredMemory:
    """
    The four ordered tiers owned by a single pawn.

    Only the host loop may call into this object. Background summarization
    work reaches it exclusively through callbacks drained on the host loop.
    """

    def __init__(
        self,
        agent_id: str,
        config: MemoryConfig,
        clock: Callable[[], int],
        scoring: "ScoringEngine",
        pipeline: Optional["SummarizationPipeline"] = None,
        agent_name: Optional[str] = None,
    ):
        self.agent_id = agent_id
        self.agent_name = agent_name or agent_id
        self._config = config
        self._clock = clock
        self._scoring = scoring
        self._pipeline = pipeline

        self._active: list[MemoryEntry] = []
        self._situational: list[MemoryEntry] = []
        self._event_log: list[MemoryEntry] = []
        self._archive: list[MemoryEntry] = []

        # Fingerprints whose archive summary we are waiting on
        self._archive_waiting: set[str] = set()

    # ------------------------------------------------------------------
    # Tier views
    # ------------------------------------------------------------------

    @property
    def active(self) -> list[MemoryEntry]:
        return list(self._active)

    @property
    def situational(self) -> list[MemoryEntry]:
        return list(self._situational)

    @property
    def event_log(self) -> list[MemoryEntry]:
        return list(self._event_log)

    @property
    def archive(self) -> list[MemoryEntry]:
        return list(self._archive)

    def _tiers(self) -> Iterator[list[MemoryEntry]]:
        yield self._active
        yield self._situational
        yield self._event_log
        yield self._archive

    def all_entries(self) -> list[MemoryEntry]:
        return [entry for tier in self._tiers() for entry in tier]

    def find(self, entry_id: str) -> Optional[MemoryEntry]:
        """Locate an entry by id, checking Active first and Archive last."""
        for tier in self._tiers():
            for entry in tier:
                if entry.id == entry_id:
                    return entry
        return None

    # ------------------------------------------------------------------
    # Ingestion and promotion
    # ------------------------------------------------------------------

    def add_active(
        self,
        content: str,
        type: MemoryType,
        importance: float = 1.0,
        related_pawn: Optional[str] = None,
    ) -> Optional[MemoryEntry]:
        """
        Record a new memory at the front of Active.

        Returns None (and changes nothing) when the content is empty or the
        same fact is already held in Active or among the newest Situational
        entries. When Active overflows, its oldest entry moves to Situational.
        """
        if not content:
            return None
        if self._is_duplicate(content, type, related_pawn):
            logger.debug(
                "tiered_memory.duplicate_skipped",
                agent_id=self.agent_id,
                content=content[:50],
            )
            return None

        entry = MemoryEntry(
            content=content,
            type=type,
            layer=MemoryLayer.ACTIVE,
            importance=importance,
            timestamp=self._clock(),
            related_pawn=related_pawn,
        )
        entry.derive_keywords()
        self._active.insert(0, entry)

        while len(self._active) > self._config.max_active:
            self._promote_to_situational(self._active.pop())

        return entry

    def _is_duplicate(self, content: str, type: MemoryType, related_pawn: Optional[str]) -> bool:
        if any(m.same_fact(content, type, related_pawn) for m in self._active):
            return True
        recent = self._situational[:DUPLICATE_WINDOW]
        return any(m.same_fact(content, type, related_pawn) for m in recent)

    def _promote_to_situational(self, entry: MemoryEntry) -> None:
        entry.layer = MemoryLayer.SITUATIONAL
        self._situational.insert(0, entry)

        if len(self._situational) > self._config.max_situational * SITUATIONAL_OVERFLOW_FACTOR:
            logger.warning(
                "tiered_memory.situational_overflow",
                agent_id=self.agent_id,
                size=len(self._situational),
                hint="needs summarization",
            )

    # ------------------------------------------------------------------
    # Compression
    # ------------------------------------------------------------------

    @staticmethod
    def _group_by_type(entries: list[MemoryEntry]) -> list[tuple[MemoryType, list[MemoryEntry]]]:
        groups: dict[MemoryType, list[MemoryEntry]] = {}
        for entry in entries:
            groups.setdefault(entry.type, []).append(entry)
        return list(groups.items())

    def _summarizer_ready(self) -> bool:
        return (
            self._config.use_ai_summarization
            and self._pipeline is not None
            and self._pipeline.is_available()
        )

    def compress_situational(self) -> list[MemoryEntry]:
        """
        Fold all Situational memories into one EventLog summary per type.

        Returns the new EventLog entries. Situational is emptied and the
        EventLog is trimmed back to capacity afterwards.
        """
        if not self._situational:
            return []

        use_ai = self._summarizer_ready()
        created: list[MemoryEntry] = []

        for memory_type, members in self._group_by_type(self._situational):
            entry = MemoryEntry(
                content=build_simple_summary(members, memory_type) or "",
                type=memory_type,
                layer=MemoryLayer.EVENT_LOG,
                importance=fmean(m.importance for m in members) + SUMMARY_IMPORTANCE_BOOST,
                timestamp=self._clock(),
            )
            for member in members:
                for keyword in member.keywords:
                    entry.add_keyword(keyword)
                for tag in member.tags:
                    entry.add_tag(tag)
            entry.add_tag(SIMPLE_SUMMARY_TAG)

            if use_ai:
                self._request_daily_summary(entry, members)

            self._event_log.insert(0, entry)
            created.append(entry)

        compressed = len(self._situational)
        self._situational.clear()
        demoted = self._trim_event_log()

        logger.info(
            "tiered_memory.situational_compressed",
            agent_id=self.agent_id,
            source_entries=compressed,
            summaries=len(created),
            demoted_to_archive=demoted,
            ai_requested=use_ai,
        )
        return created

    def _request_daily_summary(self, entry: MemoryEntry, members: list[MemoryEntry]) -> None:
        pipeline = self._pipeline
        assert pipeline is not None
        fingerprint = pipeline.fingerprint(self.agent_id, members)
        entry_id = entry.id

        # Register before requesting so a fast completion cannot be missed.
        pipeline.register_callback(fingerprint, lambda text: self.apply_summary(entry_id, text))
        cached = pipeline.summarize(
            self.agent_id,
            members,
            SummaryTemplate.DAILY_SUMMARY,
            agent_name=self.agent_name,
        )
        if cached:
            pipeline.discard_callbacks(fingerprint)
            self._apply_ai_text(entry, cached)
            return

        entry.add_tag(PENDING_AI_TAG)
        entry.notes = "AI summary is being generated in the background."

    def apply_summary(self, entry_id: str, text: Optional[str]) -> bool:
        """Replace a placeholder summary with model output (host loop only)."""
        if not text or not text.strip():
            return False
        entry = self.find(entry_id)
        if entry is None:
            logger.debug("tiered_memory.summary_target_missing", entry_id=entry_id)
            return False
        if entry.is_user_edited:
            entry.remove_tag(PENDING_AI_TAG)
            logger.info("tiered_memory.summary_skipped_user_edit", agent_id=self.agent_id, entry_id=entry_id)
            return False
        self._apply_ai_text(entry, text)
        logger.info("tiered_memory.summary_applied", agent_id=self.agent_id, entry_id=entry_id)
        return True

    @staticmethod
    def _apply_ai_text(entry: MemoryEntry, text: str) -> None:
        entry.content = text.strip()
        entry.remove_tag(SIMPLE_SUMMARY_TAG)
        entry.remove_tag(PENDING_AI_TAG)
        entry.add_tag(AI_SUMMARY_TAG)
        entry.notes = "AI summary completed in the background."

    def _trim_event_log(self) -> int:
        demoted = 0
        while len(self._event_log) > self._config.max_event_log:
            oldest = self._event_log.pop()
            oldest.layer = MemoryLayer.ARCHIVE
            self._archive.insert(0, oldest)
            demoted += 1
        return demoted

    def manual_archive_compress(self) -> int:
        """
        Distil the EventLog into one deep Archive entry per memory type.

        With a summarizer configured, each group's deep summary is requested
        from the pipeline. When no group is ready the EventLog is left alone
        and the pass re-runs automatically once a result arrives. Without a
        summarizer, the rule-based summary is archived directly. Once any
        group is archived the whole EventLog is cleared.

        Returns the number of Archive entries created.
        """
        if not self._event_log:
            return 0

        use_ai = self._summarizer_ready()
        archived = 0

        for memory_type, members in self._group_by_type(self._event_log):
            if use_ai:
                text = self._request_archive_summary(members)
            else:
                text = build_simple_summary(members, memory_type)

            if not text or not text.strip():
                continue

            entry = MemoryEntry(
                content=text.strip(),
                type=memory_type,
                layer=MemoryLayer.ARCHIVE,
                importance=fmean(m.importance for m in members) + ARCHIVE_IMPORTANCE_BOOST,
                timestamp=self._clock(),
            )
            entry.derive_keywords()
            entry.add_tag(MANUAL_ARCHIVE_TAG)
            entry.add_tag(f"from-{len(members)}-eventlog")
            self._archive.insert(0, entry)
            archived += 1

        if archived:
            cleared = len(self._event_log)
            self._event_log = []
            self._forget_archive_requests()
            logger.info(
                "tiered_memory.manual_archive",
                agent_id=self.agent_id,
                archived=archived,
                cleared_event_log=cleared,
            )
        return archived

    def _request_archive_summary(self, members: list[MemoryEntry]) -> Optional[str]:
        pipeline = self._pipeline
        assert pipeline is not None
        fingerprint = pipeline.fingerprint(self.agent_id, members)
        if fingerprint not in self._archive_waiting:
            self._archive_waiting.add(fingerprint)
            pipeline.register_callback(
                fingerprint, lambda _text: self._on_archive_summary_ready(fingerprint)
            )
        text = pipeline.summarize(
            self.agent_id,
            members,
            SummaryTemplate.DEEP_ARCHIVE,
            agent_name=self.agent_name,
        )
        if text:
            self._archive_waiting.discard(fingerprint)
            pipeline.discard_callbacks(fingerprint)
        return text

    def _on_archive_summary_ready(self, fingerprint: str) -> None:
        self._archive_waiting.discard(fingerprint)
        self.manual_archive_compress()

    def _forget_archive_requests(self) -> None:
        # The groups these reruns were waiting on are gone with the EventLog.
        if self._pipeline is not None:
            for fingerprint in self._archive_waiting:
                self._pipeline.discard_callbacks(fingerprint)
        self._archive_waiting.clear()

    def trim_archive(self, max_archive: Optional[int] = None) -> int:
        """Evict the least important (then oldest) Archive entries beyond capacity."""
        limit = self._config.max_archive if max_archive is None else max(0, max_archive)
        excess = len(self._archive) - limit
        if excess <= 0:
            return 0
        victims = sorted(self._archive, key=lambda m: (m.importance, m.timestamp))[:excess]
        victim_ids = {m.id for m in victims}
        self._archive = [m for m in self._archive if m.id not in victim_ids]
        logger.info(
            "tiered_memory.archive_trimmed",
            agent_id=self.agent_id,
            evicted=len(victim_ids),
            remaining=len(self._archive),
        )
        return len(victim_ids)

    # ------------------------------------------------------------------
    # Decay
    # ------------------------------------------------------------------

    def decay(self, rates: Optional[DecayRates] = None) -> None:
        """Fade activity in every tier except Active."""
        rates = rates or self._config.decay_rates
        for entry in self._situational:
            entry.decay(rates.situational)
        for entry in self._event_log:
            entry.decay(rates.event_log)
        for entry in self._archive:
            entry.decay(rates.archive)

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    def retrieve(self, query: MemoryQuery) -> list[MemoryEntry]:
        """
        Deterministic retrieval across tiers.

        Active always comes first, then the best Situational matches, then
        EventLog matches filling the remaining budget (when ``include_context``),
        then the most important Archive matches when the query targets Archive.
        """
        keywords = query.keywords

        def ranked(entries: list[MemoryEntry]) -> list[MemoryEntry]:
            matching = [m for m in entries if query.matches(m)]
            matching.sort(key=lambda m: self._scoring.score(m, keywords), reverse=True)
            return matching

        results: list[MemoryEntry] = list(self._active[: self._config.max_active])
        results.extend(ranked(self._situational)[:SITUATIONAL_RETRIEVE_LIMIT])

        if query.include_context and len(results) < query.max_count:
            results.extend(ranked(self._event_log)[: query.max_count - len(results)])

        if query.layer == MemoryLayer.ARCHIVE:
            archive = [m for m in self._archive if query.matches(m)]
            archive.sort(key=lambda m: m.importance, reverse=True)
            results.extend(archive[:ARCHIVE_RETRIEVE_LIMIT])

        return results[: max(0, query.max_count)]

    # ------------------------------------------------------------------
    # User edits
    # ------------------------------------------------------------------

    def edit(self, entry_id: str, content: str, notes: Optional[str] = None) -> bool:
        entry = self.find(entry_id)
        if entry is None:
            return False
        entry.content = content
        entry.is_user_edited = True
        if notes:
            entry.notes = notes
        return True

    def pin(self, entry_id: str, pinned: bool) -> bool:
        entry = self.find(entry_id)
        if entry is None:
            return False
        entry.is_pinned = pinned
        return True

    def delete(self, entry_id: str) -> bool:
        removed = False
        for tier in self._tiers():
            before = len(tier)
            tier[:] = [m for m in tier if m.id != entry_id]
            removed = removed or len(tier) != before
        return removed

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    @property
    def counts(self) -> dict[str, int]:
        return {
            "active": len(self._active),
            "situational": len(self._situational),
            "event_log": len(self._event_log),
            "archive": len(self._archive),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "agent_name": self.agent_name,
            "active": [m.to_dict() for m in self._active],
            "situational": [m.to_dict() for m in self._situational],
            "event_log": [m.to_dict() for m in self._event_log],
            "archive": [m.to_dict() for m in self._archive],
        }

    def load_dict(self, data: dict[str, Any]) -> None:
        """Replace tier contents from a saved snapshot; missing tiers load empty."""
        self.agent_name = data.get("agent_name") or self.agent_name

        def _load(key: str, layer: MemoryLayer) -> list[MemoryEntry]:
            raw = data.get(key) or []
            return [MemoryEntry.from_dict(item, layer=layer) for item in raw if isinstance(item, dict)]

        self._active = _load("active", MemoryLayer.ACTIVE)
        self._situational = _load("situational", MemoryLayer.SITUATIONAL)
        self._event_log = _load("event_log", MemoryLayer.EVENT_LOG)
        self._archive = _load("archive", MemoryLayer.ARCHIVE)

        seen: set[str] = set()
        for tier in self._tiers():
            unique = []
            for entry in tier:
                if entry.id in seen:
                    logger.warning("tiered_memory.duplicate_id_dropped", entry_id=entry.id)
                    continue
                seen.add(entry.id)
                unique.append(entry)
            tier[:] = unique
