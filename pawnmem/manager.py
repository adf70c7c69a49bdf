"""
Memory Manager — the world-level owner of every pawn's memory.

The host calls ``on_tick`` from its simulation loop. The manager turns raw
ticks into the memory cadence:

    every in-game hour    decay activity in the colder tiers of every pawn
    once a day, at hour H fold each pawn's Situational tier into the EventLog
    every N days          distil each pawn's EventLog into the Archive, then
                          trim the Archive back to capacity
    every tick            deliver finished background summaries

It also owns the shared knowledge library and builds the text injected into a
pawn's prompt. Everything here runs on the host loop; the only concurrency is
inside the summarization pipeline.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Union

import structlog

from pawnmem.api.summarizer import SummarizationPipeline
from pawnmem.clock import TICKS_PER_HOUR, SimulationClock
from pawnmem.config import HostAIConfig, PawnMemConfig, select_config_provider
from pawnmem.memory.injection import compose_injection, format_knowledge, format_memories
from pawnmem.memory.knowledge import KnowledgeLibrary
from pawnmem.memory.scoring import ScoringEngine
from pawnmem.memory.tiers import TieredMemory
from pawnmem.types import MemoryType

logger = structlog.get_logger(__name__)

DECAY_INTERVAL_TICKS = TICKS_PER_HOUR


class MemoryManager:
    """Registry of per-pawn memories plus the world-level schedule."""

    def __init__(
        self,
        config: Optional[PawnMemConfig] = None,
        clock: Optional[SimulationClock] = None,
        pipeline: Optional[SummarizationPipeline] = None,
    ):
        self._config = config or PawnMemConfig()
        self.clock = clock or SimulationClock()
        self.scoring = ScoringEngine(self._config.scoring, self.clock)
        self.pipeline = pipeline
        self.knowledge = KnowledgeLibrary()
        self._agents: dict[str, TieredMemory] = {}

        self.last_decay_tick = 0
        self.last_summarization_day = -1
        self.last_archive_day = -1

    @classmethod
    def create(
        cls,
        config: Optional[PawnMemConfig] = None,
        host_ai_config: Union[HostAIConfig, Callable[[], Optional[HostAIConfig]], None] = None,
        clock: Optional[SimulationClock] = None,
        **pipeline_kwargs: Any,
    ) -> MemoryManager:
        """Build a manager with a summarization pipeline wired to the chosen credentials."""
        config = config or PawnMemConfig()
        provider = select_config_provider(config.summarizer, host_ai_config)
        pipeline = SummarizationPipeline(provider, **pipeline_kwargs)
        return cls(config=config, clock=clock, pipeline=pipeline)

    @property
    def config(self) -> PawnMemConfig:
        return self._config

    # ------------------------------------------------------------------
    # Agent registry
    # ------------------------------------------------------------------

    def memory_for(self, agent_id: str, agent_name: Optional[str] = None) -> TieredMemory:
        memory = self._agents.get(agent_id)
        if memory is None:
            memory = TieredMemory(
                agent_id,
                self._config.memory,
                self.clock,
                self.scoring,
                pipeline=self.pipeline,
                agent_name=agent_name,
            )
            self._agents[agent_id] = memory
            logger.debug("memory_manager.agent_registered", agent_id=agent_id)
        elif agent_name:
            memory.agent_name = agent_name
        return memory

    def get(self, agent_id: str) -> Optional[TieredMemory]:
        return self._agents.get(agent_id)

    def agent_ids(self) -> list[str]:
        return list(self._agents)

    def remove_agent(self, agent_id: str) -> bool:
        return self._agents.pop(agent_id, None) is not None

    def add_memory(
        self,
        agent_id: str,
        content: str,
        type: MemoryType,
        importance: float = 1.0,
        related_pawn: Optional[str] = None,
    ):
        return self.memory_for(agent_id).add_active(content, type, importance, related_pawn)

    # ------------------------------------------------------------------
    # Cadence
    # ------------------------------------------------------------------

    def on_tick(self, tick: Optional[int] = None) -> None:
        if tick is not None:
            self.clock.set(tick)
        now = self.clock.now

        if now - self.last_decay_tick >= DECAY_INTERVAL_TICKS:
            self.decay_all()
            self.last_decay_tick = now

        self._check_daily_summarization()
        self._check_archive_interval()

        if self.pipeline is not None:
            self.pipeline.drain_callbacks()

    def decay_all(self) -> None:
        rates = self._config.memory.decay_rates
        for memory in self._agents.values():
            memory.decay(rates)

    def _check_daily_summarization(self) -> None:
        settings = self._config.memory
        if not settings.enable_daily_summarization:
            return
        day = self.clock.day
        if day == self.last_summarization_day or self.clock.hour_of_day != settings.summarization_hour:
            return
        self.summarize_all()
        self.last_summarization_day = day

    def summarize_all(self) -> int:
        summarized = 0
        for memory in self._agents.values():
            if memory.compress_situational():
                summarized += 1
        logger.info(
            "memory_manager.daily_summarization",
            day=self.clock.day,
            agents=len(self._agents),
            summarized=summarized,
        )
        return summarized

    def _check_archive_interval(self) -> None:
        settings = self._config.memory
        if not settings.enable_auto_archive:
            return
        day = self.clock.day
        if day == self.last_archive_day or day % settings.archive_interval_days != 0:
            return
        archived = evicted = 0
        for memory in self._agents.values():
            archived += memory.manual_archive_compress()
            evicted += memory.trim_archive()
        self.last_archive_day = day
        logger.info(
            "memory_manager.archive_interval",
            day=day,
            interval_days=settings.archive_interval_days,
            archived=archived,
            evicted=evicted,
        )

    # ------------------------------------------------------------------
    # Prompt injection
    # ------------------------------------------------------------------

    def inject_memories(self, agent_id: str, context: Optional[str]) -> str:
        memory = self._agents.get(agent_id)
        if memory is None:
            return ""
        selected = self.scoring.select_memories(
            memory, context, self._config.memory.max_injected_memories
        )
        return format_memories(selected, self.clock.now)

    def inject_knowledge(self, context: Optional[str]) -> str:
        selected = self.scoring.select_knowledge(
            self.knowledge.entries, context, self._config.memory.max_injected_knowledge
        )
        return format_knowledge(selected)

    def build_prompt_context(self, agent_id: str, context: Optional[str]) -> str:
        """Text to inject into ``agent_id``'s next prompt for the given context."""
        return compose_injection(
            self.inject_memories(agent_id, context),
            self.inject_knowledge(context),
        )

    # ------------------------------------------------------------------
    # Lifecycle and persistence
    # ------------------------------------------------------------------

    def shutdown(self) -> None:
        if self.pipeline is not None:
            self.pipeline.shutdown()

    def to_dict(self) -> dict[str, Any]:
        return {
            "last_decay_tick": self.last_decay_tick,
            "last_summarization_day": self.last_summarization_day,
            "last_archive_day": self.last_archive_day,
            "tick": self.clock.now,
            "agents": {agent_id: memory.to_dict() for agent_id, memory in self._agents.items()},
            "knowledge": self.knowledge.to_dict(),
        }

    def load_dict(self, data: dict[str, Any]) -> None:
        self.last_decay_tick = _as_int(data.get("last_decay_tick"), 0)
        self.last_summarization_day = _as_int(data.get("last_summarization_day"), -1)
        self.last_archive_day = _as_int(data.get("last_archive_day"), -1)
        self.clock.set(_as_int(data.get("tick"), self.clock.now))

        self._agents.clear()
        agents = data.get("agents") or {}
        if isinstance(agents, dict):
            for agent_id, snapshot in agents.items():
                if not isinstance(snapshot, dict):
                    logger.warning("memory_manager.agent_snapshot_corrupt", agent_id=agent_id)
                    continue
                self.memory_for(str(agent_id)).load_dict(snapshot)

        knowledge = data.get("knowledge")
        self.knowledge = KnowledgeLibrary.from_dict(knowledge if isinstance(knowledge, dict) else None)


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default
