"""
Prompt injection — turning selected memories and knowledge into prompt text.

The scoring engine decides *what* goes in; this module decides how it reads.
Memories are listed coldest-last (Active first, Archive last) and keep their
score order within a tier. Both sections are plain numbered lines so the host
can drop them into a system prompt unchanged.
"""

from __future__ import annotations

from typing import Callable, Optional, Sequence

from pawnmem.clock import humanize_age
from pawnmem.memory.entry import MemoryEntry
from pawnmem.memory.knowledge import KnowledgeEntry

MEMORY_HEADER = "Memories:"
KNOWLEDGE_HEADER = "Common knowledge:"


def format_memories(
    scored: Sequence[tuple[MemoryEntry, float]],
    now: int,
    age_formatter: Callable[[int], str] = humanize_age,
) -> str:
    if not scored:
        return ""
    # sorted() is stable, so score order survives inside each tier
    ordered = sorted((entry for entry, _ in scored), key=lambda e: e.layer)
    lines = [
        f"{index}. [{entry.type.label}] {entry.content} ({age_formatter(now - entry.timestamp)})"
        for index, entry in enumerate(ordered, start=1)
    ]
    return "\n".join(lines) + "\n"


def format_knowledge(scored: Sequence[tuple[KnowledgeEntry, float]]) -> str:
    if not scored:
        return ""
    lines = [
        f"{index}. [{entry.tag}] {entry.content}"
        for index, (entry, _) in enumerate(scored, start=1)
    ]
    return "\n".join(lines) + "\n"


def compose_injection(memory_text: Optional[str], knowledge_text: Optional[str]) -> str:
    """Join the knowledge and memory sections, skipping whichever is empty."""
    sections = []
    if knowledge_text:
        sections.append(f"{KNOWLEDGE_HEADER}\n{knowledge_text}")
    if memory_text:
        sections.append(f"{MEMORY_HEADER}\n{memory_text}")
    return "\n".join(sections)
