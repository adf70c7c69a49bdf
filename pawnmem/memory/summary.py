"""
Rule-based summaries — the placeholder that is always available.

When Situational memories are folded into the EventLog, a short deterministic
summary is written immediately. If an external summarizer is configured its
result replaces the placeholder later; if not, this text is the final word.

Each memory type has its own grouping rule, registered in ``_SUMMARIZERS``:
    Conversation  → grouped by conversation partner, up to 5 partners
    Action        → grouped by the first 15 characters, up to 3 groups
    everything else → grouped by the first 20 characters, up to 5 groups
"""

from __future__ import annotations

from typing import Callable, Hashable, Iterable, Optional, Sequence

from pawnmem.memory.entry import MemoryEntry
from pawnmem.types import MemoryType

SEPARATOR = "; "
ACTION_KEY_CHARS = 15
DEFAULT_KEY_CHARS = 20
REPRESENTATIVE_CHARS = 40


def _group(
    entries: Iterable[MemoryEntry],
    key: Callable[[MemoryEntry], Optional[Hashable]],
) -> list[tuple[Hashable, list[MemoryEntry]]]:
    """Group by key, largest groups first; ties keep first-appearance order."""
    groups: dict[Hashable, list[MemoryEntry]] = {}
    for entry in entries:
        k = key(entry)
        if k is None:
            continue
        groups.setdefault(k, []).append(entry)
    # sorted() is stable, so equal counts stay in insertion order
    return sorted(groups.items(), key=lambda item: len(item[1]), reverse=True)


def _with_count(text: str, count: int) -> str:
    return f"{text}×{count}" if count > 1 else text


def _summarize_conversations(entries: Sequence[MemoryEntry]) -> list[str]:
    groups = _group(entries, lambda m: m.related_pawn or None)
    parts = [f"talked with {pawn}×{len(members)}" for pawn, members in groups[:5]]
    if not parts:
        parts.append(f"Conversation ×{len(entries)}")
    return parts


def _summarize_actions(entries: Sequence[MemoryEntry]) -> list[str]:
    groups = _group(entries, lambda m: m.content[:ACTION_KEY_CHARS])
    return [_with_count(str(key), len(members)) for key, members in groups[:3]]


def _summarize_generic(entries: Sequence[MemoryEntry]) -> list[str]:
    parts = []
    for _, members in _group(entries, lambda m: m.content[:DEFAULT_KEY_CHARS])[:5]:
        text = members[0].content
        if len(text) > REPRESENTATIVE_CHARS:
            text = text[:REPRESENTATIVE_CHARS] + "..."
        parts.append(_with_count(text, len(members)))
    return parts


_SUMMARIZERS: dict[MemoryType, Callable[[Sequence[MemoryEntry]], list[str]]] = {
    MemoryType.CONVERSATION: _summarize_conversations,
    MemoryType.ACTION: _summarize_actions,
}


def build_simple_summary(entries: Sequence[MemoryEntry], memory_type: MemoryType) -> Optional[str]:
    """Summarize same-typed entries without any model call."""
    if not entries:
        return None

    summarizer = _SUMMARIZERS.get(memory_type, _summarize_generic)
    summary = SEPARATOR.join(part for part in summarizer(entries) if part)
    if not summary:
        return f"{memory_type.label} memories ×{len(entries)}"
    if len(entries) > 3:
        summary += f" ({len(entries)} total)"
    return summary
