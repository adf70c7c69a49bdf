"""Memory architecture — the four-tier pawn memory and shared knowledge."""
from pawnmem.memory.entry import MemoryEntry, MemoryQuery
from pawnmem.memory.knowledge import KnowledgeEntry, KnowledgeLibrary
from pawnmem.memory.scoring import ScoringEngine
from pawnmem.memory.store import MemoryStore
from pawnmem.memory.tiers import TieredMemory

__all__ = [
    "MemoryEntry",
    "MemoryQuery",
    "TieredMemory",
    "ScoringEngine",
    "KnowledgeEntry",
    "KnowledgeLibrary",
    "MemoryStore",
]
