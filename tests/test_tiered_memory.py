"""Tests for pawnmem/memory/tiers.py — the four-tier store."""

from __future__ import annotations

import pytest
from structlog.testing import capture_logs

from pawnmem.config import DecayRates, MemoryConfig
from pawnmem.memory.entry import MemoryQuery
from pawnmem.memory.tiers import (
    AI_SUMMARY_TAG,
    MANUAL_ARCHIVE_TAG,
    PENDING_AI_TAG,
    SIMPLE_SUMMARY_TAG,
    TieredMemory,
)
from pawnmem.types import MemoryLayer, MemoryType, SummaryTemplate

OBS = MemoryType.OBSERVATION


def _contents(entries):
    return [e.content for e in entries]


def _with_pipeline(memory_config, clock, scoring, pipeline) -> TieredMemory:
    return TieredMemory("pawn-1", memory_config, clock, scoring, pipeline=pipeline, agent_name="Ada")


# ---------------------------------------------------------------------------
# Ingestion and promotion
# ---------------------------------------------------------------------------


class TestAddActive:
    def test_overflow_moves_oldest_to_situational(self, memory) -> None:
        for content in ("A", "B", "C", "D"):
            memory.add_active(content, OBS)

        assert _contents(memory.active) == ["D", "C", "B"]
        assert _contents(memory.situational) == ["A"]
        assert memory.situational[0].layer == MemoryLayer.SITUATIONAL
        assert all(e.layer == MemoryLayer.ACTIVE for e in memory.active)

    def test_returns_new_entry_with_keywords(self, memory, clock) -> None:
        entry = memory.add_active("found steel", OBS, importance=0.7, related_pawn="Bob")
        assert entry is not None
        assert entry.timestamp == clock.now
        assert entry.importance == 0.7
        assert entry.related_pawn == "Bob"
        assert 0 < len(entry.keywords) <= 10
        assert "fo" in entry.keywords

    def test_duplicate_in_active_is_skipped(self, memory) -> None:
        memory.add_active("ate a meal", OBS)
        assert memory.add_active("ate a meal", OBS) is None
        assert len(memory.active) == 1

    def test_same_content_different_partner_is_not_duplicate(self, memory) -> None:
        memory.add_active("chatted", MemoryType.CONVERSATION, related_pawn="Bob")
        assert memory.add_active("chatted", MemoryType.CONVERSATION, related_pawn="Cara") is not None

    def test_same_content_different_type_is_not_duplicate(self, memory) -> None:
        memory.add_active("fire", OBS)
        assert memory.add_active("fire", MemoryType.EVENT) is not None

    def test_duplicate_window_covers_five_newest_situational(self, memory) -> None:
        for i in range(9):
            memory.add_active(f"m{i}", OBS)
        # Active [m8, m7, m6]; Situational [m5 .. m0]
        assert _contents(memory.situational) == ["m5", "m4", "m3", "m2", "m1", "m0"]

        assert memory.add_active("m1", OBS) is None
        assert memory.add_active("m0", OBS) is not None

    def test_empty_content_is_ignored(self, memory) -> None:
        assert memory.add_active("", OBS) is None
        assert memory.all_entries() == []

    def test_ids_unique_across_tiers(self, memory) -> None:
        for i in range(10):
            memory.add_active(f"event {i}", OBS)
        ids = [e.id for e in memory.all_entries()]
        assert len(ids) == len(set(ids))

    def test_warns_when_situational_overflows(self, clock, scoring) -> None:
        config = MemoryConfig(_env_file=None, max_active=1, max_situational=2)
        memory = TieredMemory("pawn-1", config, clock, scoring)
        with capture_logs() as logs:
            for i in range(5):
                memory.add_active(f"m{i}", OBS)
        events = [log["event"] for log in logs]
        assert "tiered_memory.situational_overflow" in events

    def test_capacity_changes_apply_live(self, memory, memory_config) -> None:
        memory_config.max_active = 1
        memory.add_active("A", OBS)
        memory.add_active("B", OBS)
        assert _contents(memory.active) == ["B"]
        assert _contents(memory.situational) == ["A"]


# ---------------------------------------------------------------------------
# Daily compression
# ---------------------------------------------------------------------------


class TestCompressSituational:
    def _fill(self, memory) -> None:
        memory.add_active("chat one", MemoryType.CONVERSATION, importance=0.4, related_pawn="Bob")
        memory.add_active("chat two", MemoryType.CONVERSATION, importance=0.6, related_pawn="Bob")
        memory.add_active("hauled wood", MemoryType.ACTION, importance=0.5)
        for i in range(3):
            memory.add_active(f"filler {i}", OBS)

    def test_groups_by_type_into_event_log(self, memory) -> None:
        self._fill(memory)
        assert len(memory.situational) == 3

        created = memory.compress_situational()

        assert memory.situational == []
        assert len(created) == 2
        assert {e.type for e in created} == {MemoryType.CONVERSATION, MemoryType.ACTION}
        assert all(e.layer == MemoryLayer.EVENT_LOG for e in memory.event_log)
        assert all(SIMPLE_SUMMARY_TAG in e.tags for e in created)

        conversation = next(e for e in created if e.type == MemoryType.CONVERSATION)
        assert conversation.content == "talked with Bob×2"
        assert conversation.importance == pytest.approx(0.5 + 0.2)

    def test_last_group_lands_at_front(self, memory) -> None:
        self._fill(memory)
        created = memory.compress_situational()
        assert memory.event_log[0] is created[-1]

    def test_summary_unions_source_keywords(self, memory) -> None:
        self._fill(memory)
        sources = [e for e in memory.situational if e.type == MemoryType.CONVERSATION]
        created = memory.compress_situational()
        conversation = next(e for e in created if e.type == MemoryType.CONVERSATION)
        for source in sources:
            assert set(source.keywords) <= set(conversation.keywords)

    def test_empty_situational_is_noop(self, memory) -> None:
        assert memory.compress_situational() == []
        assert memory.event_log == []

    def test_event_log_overflow_demotes_oldest_to_archive(self, clock, scoring) -> None:
        config = MemoryConfig(_env_file=None, max_active=1, max_event_log=2)
        memory = TieredMemory("pawn-1", config, clock, scoring)
        for round_ in range(3):
            memory.add_active(f"seen {round_}", OBS)
            memory.add_active(f"seen {round_} again", OBS)
            memory.compress_situational()

        assert len(memory.event_log) == 2
        assert len(memory.archive) == 1
        assert memory.archive[0].layer == MemoryLayer.ARCHIVE

    def test_ai_summary_replaces_placeholder_after_drain(
        self, memory_config, clock, scoring, make_pipeline, make_handler, executor
    ) -> None:
        handler = make_handler("Ada kept watch all night.")
        pipeline = make_pipeline(handler)
        memory = _with_pipeline(memory_config, clock, scoring, pipeline)
        for content in ("A", "B", "C", "D", "E"):
            memory.add_active(content, OBS)

        created = memory.compress_situational()
        placeholder = created[0]
        assert PENDING_AI_TAG in placeholder.tags
        assert SIMPLE_SUMMARY_TAG in placeholder.tags
        assert handler.requests == []

        executor.run_all()
        assert placeholder.content != "Ada kept watch all night."
        assert pipeline.drain_callbacks() == 1

        assert placeholder.content == "Ada kept watch all night."
        assert AI_SUMMARY_TAG in placeholder.tags
        assert PENDING_AI_TAG not in placeholder.tags
        assert SIMPLE_SUMMARY_TAG not in placeholder.tags
        assert len(handler.requests) == 1

    def test_cached_summary_applies_immediately(
        self, memory_config, clock, scoring, make_pipeline, make_handler, executor
    ) -> None:
        pipeline = make_pipeline(make_handler("cached text"))
        memory = _with_pipeline(memory_config, clock, scoring, pipeline)
        for content in ("A", "B", "C", "D", "E"):
            memory.add_active(content, OBS)

        pipeline.summarize("pawn-1", memory.situational, SummaryTemplate.DAILY_SUMMARY)
        executor.run_all()

        created = memory.compress_situational()
        assert created[0].content == "cached text"
        assert AI_SUMMARY_TAG in created[0].tags
        assert pipeline.drain_callbacks() == 0

    def test_ai_disabled_in_config_keeps_simple_summary(
        self, memory_config, clock, scoring, make_pipeline, make_handler, executor
    ) -> None:
        memory_config.use_ai_summarization = False
        memory = _with_pipeline(memory_config, clock, scoring, make_pipeline(make_handler("x")))
        for content in ("A", "B", "C", "D"):
            memory.add_active(content, OBS)

        created = memory.compress_situational()
        assert PENDING_AI_TAG not in created[0].tags
        assert executor.jobs == []

    def test_summary_for_deleted_entry_is_dropped(
        self, memory_config, clock, scoring, make_pipeline, make_handler, executor
    ) -> None:
        pipeline = make_pipeline(make_handler("late"))
        memory = _with_pipeline(memory_config, clock, scoring, pipeline)
        for content in ("A", "B", "C", "D"):
            memory.add_active(content, OBS)
        created = memory.compress_situational()
        memory.delete(created[0].id)

        executor.run_all()
        assert pipeline.drain_callbacks() == 1
        assert memory.event_log == []

    def test_late_summary_does_not_overwrite_user_edit(
        self, memory_config, clock, scoring, make_pipeline, make_handler, executor
    ) -> None:
        pipeline = make_pipeline(make_handler("AI text"))
        memory = _with_pipeline(memory_config, clock, scoring, pipeline)
        for content in ("A", "B", "C", "D"):
            memory.add_active(content, OBS)
        placeholder = memory.compress_situational()[0]
        memory.edit(placeholder.id, "my own words")

        executor.run_all()
        assert pipeline.drain_callbacks() == 1

        assert placeholder.content == "my own words"
        assert placeholder.is_user_edited is True
        assert AI_SUMMARY_TAG not in placeholder.tags
        assert PENDING_AI_TAG not in placeholder.tags


# ---------------------------------------------------------------------------
# Archive
# ---------------------------------------------------------------------------


class TestManualArchive:
    def _event_log(self, memory) -> None:
        for i in range(4):
            memory.add_active(f"walked the perimeter {i}", OBS, importance=0.5)
            memory.add_active(f"built a wall {i}", MemoryType.ACTION, importance=0.7)
        memory.compress_situational()

    def test_deterministic_archive_without_pipeline(self, memory) -> None:
        self._event_log(memory)
        sources = memory.event_log
        assert len(sources) == 2

        archived = memory.manual_archive_compress()

        assert archived == 2
        assert memory.event_log == []
        for entry in memory.archive:
            assert entry.layer == MemoryLayer.ARCHIVE
            assert MANUAL_ARCHIVE_TAG in entry.tags
            assert "from-1-eventlog" in entry.tags
        by_type = {e.type: e for e in memory.archive}
        source_by_type = {e.type: e for e in sources}
        for memory_type, entry in by_type.items():
            assert entry.importance == pytest.approx(source_by_type[memory_type].importance + 0.3)

    def test_empty_event_log_is_noop(self, memory) -> None:
        assert memory.manual_archive_compress() == 0

    def test_pending_summary_keeps_event_log_then_archives(
        self, memory_config, clock, scoring, make_pipeline, make_handler, executor
    ) -> None:
        memory_config.use_ai_summarization = False
        pipeline = make_pipeline(make_handler("A steady builder."))
        memory = _with_pipeline(memory_config, clock, scoring, pipeline)
        self._event_log(memory)
        memory_config.use_ai_summarization = True

        assert memory.manual_archive_compress() == 0
        assert len(memory.event_log) == 2
        # Repeat calls while pending do not dispatch again
        assert memory.manual_archive_compress() == 0
        assert len(executor.jobs) == 2

        executor.run_all()
        pipeline.drain_callbacks()

        assert memory.event_log == []
        assert len(memory.archive) == 2
        assert all(e.content == "A steady builder." for e in memory.archive)
        assert all(MANUAL_ARCHIVE_TAG in e.tags for e in memory.archive)

    def test_first_ready_group_clears_whole_event_log(
        self, memory_config, clock, scoring, make_pipeline, make_handler, executor
    ) -> None:
        memory_config.use_ai_summarization = False
        pipeline = make_pipeline(make_handler("Deep summary."))
        memory = _with_pipeline(memory_config, clock, scoring, pipeline)
        self._event_log(memory)
        memory_config.use_ai_summarization = True

        assert memory.manual_archive_compress() == 0
        assert len(executor.jobs) == 2

        executor.run_next()
        assert pipeline.drain_callbacks() == 1

        assert memory.event_log == []
        assert len(memory.archive) == 1
        assert memory.archive[0].content == "Deep summary."

        # The other group's result lands after its sources are gone
        executor.run_next()
        assert pipeline.drain_callbacks() == 0
        assert len(memory.archive) == 1


class TestTrimArchive:
    def test_evicts_lowest_importance_then_oldest(self, memory, clock) -> None:
        memory.load_dict({
            "archive": [
                {"id": "keep", "content": "big day", "importance": 0.9, "timestamp": 10},
                {"id": "old-low", "content": "dull", "importance": 0.1, "timestamp": 1},
                {"id": "new-low", "content": "dull too", "importance": 0.1, "timestamp": 5},
                {"id": "mid", "content": "okay", "importance": 0.5, "timestamp": 3},
            ]
        })

        evicted = memory.trim_archive(2)

        assert evicted == 2
        assert [e.id for e in memory.archive] == ["keep", "mid"]

    def test_under_capacity_is_noop(self, memory) -> None:
        assert memory.trim_archive() == 0


# ---------------------------------------------------------------------------
# Decay and retrieval
# ---------------------------------------------------------------------------


class TestDecay:
    def test_active_untouched_colder_tiers_fade(self, memory) -> None:
        for content in ("A", "B", "C", "D"):
            memory.add_active(content, OBS)

        memory.decay()

        assert all(e.activity == 1.0 for e in memory.active)
        assert memory.situational[0].activity == pytest.approx(0.99)

    def test_activity_never_negative(self, memory) -> None:
        for content in ("A", "B", "C", "D"):
            memory.add_active(content, OBS)
        memory.decay(DecayRates(situational=1.0, event_log=1.0, archive=1.0))
        assert memory.situational[0].activity == 0.0


class TestRetrieve:
    def test_active_first_then_situational(self, memory) -> None:
        for i in range(6):
            memory.add_active(f"thing {i}", OBS)
        results = memory.retrieve(MemoryQuery())
        assert _contents(results[:3]) == ["thing 5", "thing 4", "thing 3"]
        assert {e.content for e in results[3:]} == {"thing 0", "thing 1", "thing 2"}

    def test_caps_situational_at_five_and_respects_max_count(self, memory) -> None:
        for i in range(12):
            memory.add_active(f"thing {i}", OBS)
        results = memory.retrieve(MemoryQuery(include_context=False, max_count=20))
        assert len(results) == 3 + 5
        assert len(memory.retrieve(MemoryQuery(max_count=4))) == 4

    def test_event_log_fills_remaining_budget(self, memory) -> None:
        for i in range(6):
            memory.add_active(f"thing {i}", OBS)
        memory.compress_situational()
        with_context = memory.retrieve(MemoryQuery(max_count=10))
        without = memory.retrieve(MemoryQuery(max_count=10, include_context=False))
        assert len(with_context) == len(without) + 1

    def test_archive_only_when_requested(self, memory) -> None:
        memory.load_dict({
            "archive": [
                {"id": "a1", "content": "minor", "importance": 0.2},
                {"id": "a2", "content": "major", "importance": 0.9},
                {"id": "a3", "content": "middling", "importance": 0.5},
                {"id": "a4", "content": "tiny", "importance": 0.1},
            ]
        })
        assert memory.retrieve(MemoryQuery()) == []
        results = memory.retrieve(MemoryQuery(layer=MemoryLayer.ARCHIVE))
        assert [e.id for e in results] == ["a2", "a3", "a1"]

    def test_filters_by_related_pawn(self, memory) -> None:
        for i in range(5):
            memory.add_active(f"talk {i}", MemoryType.CONVERSATION, related_pawn="Bob" if i % 2 else "Cara")
        results = memory.retrieve(MemoryQuery(related_pawn="Bob"))
        situational = [e for e in results if e.layer == MemoryLayer.SITUATIONAL]
        assert all(e.related_pawn == "Bob" for e in situational)


# ---------------------------------------------------------------------------
# Edits and persistence
# ---------------------------------------------------------------------------


class TestEdits:
    def test_edit_pin_delete_in_any_tier(self, memory) -> None:
        for content in ("A", "B", "C", "D"):
            memory.add_active(content, OBS)
        target = memory.situational[0]

        assert memory.edit(target.id, "A, remembered differently", notes="fixed") is True
        assert target.content == "A, remembered differently"
        assert target.is_user_edited is True
        assert target.notes == "fixed"
        assert target.layer == MemoryLayer.SITUATIONAL

        assert memory.pin(target.id, True) is True
        assert target.is_pinned is True
        assert target.layer == MemoryLayer.SITUATIONAL

        assert memory.delete(target.id) is True
        assert memory.find(target.id) is None

    def test_unknown_id_is_noop(self, memory) -> None:
        memory.add_active("A", OBS)
        before = memory.to_dict()
        assert memory.edit("missing", "x") is False
        assert memory.pin("missing", True) is False
        assert memory.delete("missing") is False
        assert memory.apply_summary("missing", "text") is False
        assert memory.to_dict() == before

    def test_apply_summary_ignores_blank_text(self, memory) -> None:
        entry = memory.add_active("A", OBS)
        assert memory.apply_summary(entry.id, "   ") is False
        assert entry.content == "A"


class TestSerialization:
    def test_round_trip_preserves_tiers(self, memory, memory_config, clock, scoring) -> None:
        for content in ("A", "B", "C", "D", "E"):
            memory.add_active(content, OBS)
        memory.compress_situational()
        memory.add_active("F", OBS)
        memory.pin(memory.active[0].id, True)

        restored = TieredMemory("pawn-1", memory_config, clock, scoring)
        restored.load_dict(memory.to_dict())

        assert restored.agent_name == "Ada"
        assert _contents(restored.active) == _contents(memory.active)
        assert _contents(restored.situational) == _contents(memory.situational)
        assert _contents(restored.event_log) == _contents(memory.event_log)
        assert restored.active[0].is_pinned is True
        assert all(e.layer == MemoryLayer.EVENT_LOG for e in restored.event_log)

    def test_missing_fields_default(self, memory) -> None:
        memory.load_dict({"active": [{"content": "bare"}]})
        entry = memory.active[0]
        assert entry.type == MemoryType.OBSERVATION
        assert entry.importance == 1.0
        assert entry.activity == 1.0
        assert entry.keywords
        assert entry.id.startswith("mem-")

    def test_duplicate_ids_are_dropped_on_load(self, memory) -> None:
        memory.load_dict({
            "active": [{"id": "same", "content": "first"}],
            "archive": [{"id": "same", "content": "second"}],
        })
        assert len(memory.all_entries()) == 1
        assert memory.find("same").content == "first"
