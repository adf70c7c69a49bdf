"""
Knowledge Library — world facts shared by every pawn.

Unlike memories, knowledge entries are not owned by an agent and never age.
They are authored by the player (usually pasted in as ``[tag]content`` lines),
can be switched off individually, and compete for a small slot in the prompt
on keyword relevance alone.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

import structlog

from pawnmem.memory._utils import clamp01, extract_keywords

logger = structlog.get_logger(__name__)

KNOWLEDGE_KEYWORD_LIMIT = 20
DEFAULT_TAG = "general"
DEFAULT_IMPORTANCE = 0.5


def new_knowledge_id() -> str:
    return f"ck-{uuid.uuid4().hex[:12]}"


@dataclass(eq=False)
class KnowledgeEntry:
    """One tagged fact. Identity is by object, not by content."""

    tag: str
    content: str
    importance: float = DEFAULT_IMPORTANCE
    enabled: bool = True
    id: str = field(default_factory=new_knowledge_id)
    keywords: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.keywords:
            self.derive_keywords()

    def derive_keywords(self) -> None:
        self.keywords = extract_keywords(self.content, limit=KNOWLEDGE_KEYWORD_LIMIT)

    def format_for_export(self) -> str:
        return f"[{self.tag}]{self.content}"

    def __str__(self) -> str:
        return self.format_for_export()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "tag": self.tag,
            "content": self.content,
            "importance": self.importance,
            "enabled": self.enabled,
            "keywords": list(self.keywords),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KnowledgeEntry:
        return cls(
            tag=str(data.get("tag") or DEFAULT_TAG),
            content=str(data.get("content") or ""),
            importance=clamp01(data.get("importance", DEFAULT_IMPORTANCE), DEFAULT_IMPORTANCE),
            enabled=bool(data.get("enabled", True)),
            id=str(data.get("id") or new_knowledge_id()),
            keywords=[str(k) for k in data.get("keywords") or []],
        )


def parse_knowledge_line(line: str) -> Optional[KnowledgeEntry]:
    """
    Parse one ``[tag]content`` line.

    A line without a well-formed bracket pair becomes content under the
    ``general`` tag. Returns None when nothing is left after the tag.
    """
    line = line.strip()
    if not line:
        return None

    start = line.find("[")
    end = line.find("]")
    if start == -1 or end == -1 or end <= start:
        return KnowledgeEntry(tag=DEFAULT_TAG, content=line)

    tag = line[start + 1:end].strip()
    content = line[end + 1:].strip()
    if not content:
        return None
    return KnowledgeEntry(tag=tag, content=content)


class KnowledgeLibrary:
    """The flat, ordered list of knowledge entries."""

    def __init__(self, entries: Optional[Iterable[KnowledgeEntry]] = None):
        self._entries: list[KnowledgeEntry] = list(entries or [])

    @property
    def entries(self) -> list[KnowledgeEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(list(self._entries))

    def add_entry(self, tag: str, content: str) -> KnowledgeEntry:
        entry = KnowledgeEntry(tag=tag, content=content)
        self._entries.append(entry)
        return entry

    def add(self, entry: KnowledgeEntry) -> bool:
        if entry is None or any(e is entry for e in self._entries):
            return False
        self._entries.append(entry)
        return True

    def remove_entry(self, entry: KnowledgeEntry) -> bool:
        for index, existing in enumerate(self._entries):
            if existing is entry:
                del self._entries[index]
                return True
        return False

    def get(self, entry_id: str) -> Optional[KnowledgeEntry]:
        return next((e for e in self._entries if e.id == entry_id), None)

    def clear(self) -> None:
        self._entries.clear()

    def import_from_text(self, text: Optional[str], clear_existing: bool = False) -> int:
        """Append one entry per non-empty ``[tag]content`` line; return how many."""
        if not text:
            return 0
        if clear_existing:
            self._entries.clear()

        imported = 0
        for line in text.splitlines():
            entry = parse_knowledge_line(line)
            if entry is not None:
                self._entries.append(entry)
                imported += 1

        logger.info("knowledge.imported", count=imported, total=len(self._entries))
        return imported

    def export_to_text(self) -> str:
        return "".join(f"{e.format_for_export()}\n" for e in self._entries)

    def entries_by_tag(self) -> dict[str, list[KnowledgeEntry]]:
        grouped: dict[str, list[KnowledgeEntry]] = {}
        for entry in self._entries:
            grouped.setdefault(entry.tag, []).append(entry)
        return grouped

    def to_dict(self) -> dict[str, Any]:
        return {"entries": [e.to_dict() for e in self._entries]}

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> KnowledgeLibrary:
        raw = (data or {}).get("entries") or []
        return cls(KnowledgeEntry.from_dict(item) for item in raw if isinstance(item, dict))
