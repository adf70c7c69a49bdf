"""
Memory entries — the atoms of a pawn's recollection.

A ``MemoryEntry`` is one remembered fact: what happened, what kind of thing it
was, which tier currently holds it, and the bookkeeping the scoring engine
needs (importance, creation tick, keywords, activity). Entries are created in
the Active tier and only ever move toward colder tiers.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

import structlog

from pawnmem.memory._utils import extract_keywords
from pawnmem.types import MemoryLayer, MemoryType

logger = structlog.get_logger(__name__)

ENTRY_KEYWORD_LIMIT = 10


def new_entry_id() -> str:
    return f"mem-{uuid.uuid4().hex[:12]}"


@dataclass
class MemoryEntry:
    """A single remembered fact held in exactly one tier."""

    content: str
    type: MemoryType = MemoryType.OBSERVATION
    layer: MemoryLayer = MemoryLayer.ACTIVE
    importance: float = 1.0

    # Simulation tick at creation
    timestamp: int = 0

    id: str = field(default_factory=new_entry_id)
    keywords: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    related_pawn: Optional[str] = None

    is_pinned: bool = False
    is_user_edited: bool = False

    # Usage/recency counter, faded by hourly decay
    activity: float = 1.0

    notes: str = ""

    def derive_keywords(self, limit: int = ENTRY_KEYWORD_LIMIT) -> None:
        self.keywords = extract_keywords(self.content, limit=limit)

    def add_keyword(self, keyword: str) -> None:
        if keyword and keyword not in self.keywords:
            self.keywords.append(keyword)

    def add_tag(self, tag: str) -> None:
        if tag and tag not in self.tags:
            self.tags.append(tag)

    def remove_tag(self, tag: str) -> None:
        if tag in self.tags:
            self.tags.remove(tag)

    def decay(self, rate: float) -> None:
        """Fade activity by ``rate`` (fraction lost per call)."""
        self.activity = max(0.0, self.activity * (1.0 - rate))

    def same_fact(self, content: str, type: MemoryType, related_pawn: Optional[str]) -> bool:
        return (
            self.type == type
            and self.content == content
            and self.related_pawn == related_pawn
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for persistence."""
        return {
            "id": self.id,
            "content": self.content,
            "type": self.type.value,
            "layer": self.layer.label,
            "importance": self.importance,
            "timestamp": self.timestamp,
            "keywords": list(self.keywords),
            "tags": list(self.tags),
            "related_pawn": self.related_pawn,
            "is_pinned": self.is_pinned,
            "is_user_edited": self.is_user_edited,
            "activity": self.activity,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], layer: Optional[MemoryLayer] = None) -> MemoryEntry:
        """Deserialize, defaulting any field missing from older saves.

        ``layer`` overrides the stored value; the containing tier list is the
        source of truth on load.
        """
        content = str(data.get("content") or "")
        entry = cls(
            content=content,
            type=MemoryType.parse(data.get("type"), default=MemoryType.OBSERVATION),
            layer=layer if layer is not None else MemoryLayer.parse(
                data.get("layer"), default=MemoryLayer.ACTIVE
            ),
            importance=_as_float(data.get("importance"), 1.0),
            timestamp=int(_as_float(data.get("timestamp"), 0)),
            id=str(data.get("id") or new_entry_id()),
            keywords=[str(k) for k in data.get("keywords") or []],
            tags=[str(t) for t in data.get("tags") or []],
            related_pawn=data.get("related_pawn") or None,
            is_pinned=bool(data.get("is_pinned", False)),
            is_user_edited=bool(data.get("is_user_edited", False)),
            activity=_as_float(data.get("activity"), 1.0),
            notes=str(data.get("notes") or ""),
        )
        if not entry.keywords and content:
            entry.derive_keywords()
        return entry


def _as_float(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        if value is not None:
            logger.warning("memory_entry.invalid_number", raw=str(value)[:40])
        return default


@dataclass
class MemoryQuery:
    """A read-only retrieval request, built per call."""

    type: Optional[MemoryType] = None
    layer: Optional[MemoryLayer] = None
    related_pawn: Optional[str] = None
    tags: set[str] = field(default_factory=set)
    keywords: set[str] = field(default_factory=set)
    max_count: int = 10
    include_context: bool = True

    def matches(self, entry: MemoryEntry) -> bool:
        if self.type is not None and entry.type != self.type:
            return False
        if self.layer is not None and entry.layer != self.layer:
            return False
        if self.related_pawn and entry.related_pawn != self.related_pawn:
            return False
        if self.tags and not any(tag in self.tags for tag in entry.tags):
            return False
        return True
