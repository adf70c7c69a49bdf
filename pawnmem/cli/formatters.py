"""CLI formatters — console, tables and score rendering."""

from __future__ import annotations

from typing import Any, Iterable

from rich.console import Console
from rich.table import Table

from pawnmem.clock import humanize_age
from pawnmem.memory.entry import MemoryEntry
from pawnmem.memory.scoring import ScoreBreakdown

CONTENT_PREVIEW_CHARS = 60


def get_console(no_color: bool = False) -> Console:
    """Get a Rich Console, optionally with color disabled."""
    return Console(no_color=no_color)


def truncate(text: str, limit: int = CONTENT_PREVIEW_CHARS) -> str:
    return text if len(text) <= limit else text[: limit - 3] + "..."


def build_table(title: str, columns: list[str], rows: list[list[Any]]) -> Table:
    """Build a Rich table with standard styling."""
    table = Table(title=title, show_header=True, header_style="bold")
    for col in columns:
        table.add_column(col)
    for row in rows:
        table.add_row(*(str(v) for v in row))
    return table


def entry_flags(entry: MemoryEntry) -> str:
    flags = []
    if entry.is_pinned:
        flags.append("pinned")
    if entry.is_user_edited:
        flags.append("edited")
    return ",".join(flags)


def memory_table(title: str, entries: Iterable[MemoryEntry], now: int) -> Table:
    rows = [
        [
            entry.layer.label,
            entry.type.label,
            f"{entry.importance:.2f}",
            f"{entry.activity:.2f}",
            humanize_age(now - entry.timestamp),
            truncate(entry.content),
            ",".join(entry.tags),
            entry_flags(entry),
        ]
        for entry in entries
    ]
    return build_table(
        title,
        ["Tier", "Type", "Importance", "Activity", "Age", "Content", "Tags", "Flags"],
        rows,
    )


def score_table(title: str, scored: Iterable[tuple[MemoryEntry, ScoreBreakdown]]) -> Table:
    rows = [
        [
            entry.layer.label,
            truncate(entry.content, 40),
            f"{b.time:.3f}",
            f"{b.importance:.3f}",
            f"{b.keyword:.3f}",
            f"{b.bonus:.3f}",
            f"{b.total:.3f}",
        ]
        for entry, b in scored
    ]
    return build_table(title, ["Tier", "Content", "Time", "Importance", "Keyword", "Bonus", "Total"], rows)
