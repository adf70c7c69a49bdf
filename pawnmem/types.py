"""
Core discriminators shared across pawnmem subsystems.

These live here rather than in a specific subsystem to avoid circular imports
between the store, the scoring engine, and the summarization pipeline.
"""

from __future__ import annotations

from enum import Enum, IntEnum


class MemoryType(str, Enum):
    """What kind of experience an entry records."""

    CONVERSATION = "conversation"
    ACTION = "action"
    OBSERVATION = "observation"
    EVENT = "event"
    EMOTION = "emotion"
    RELATIONSHIP = "relationship"

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @classmethod
    def parse(cls, value: object, default: "MemoryType | None" = None) -> "MemoryType":
        """Accept enum members, values ("action") or names ("ACTION", "Action")."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().lower()
            for member in cls:
                if member.value == key:
                    return member
        if default is not None:
            return default
        raise ValueError(f"Unknown memory type: {value!r}")


class MemoryLayer(IntEnum):
    """Retention tier. Higher values are colder; entries only ever move up."""

    ACTIVE = 0
    SITUATIONAL = 1
    EVENT_LOG = 2
    ARCHIVE = 3

    @property
    def label(self) -> str:
        return _LAYER_LABELS[self]

    @classmethod
    def parse(cls, value: object, default: "MemoryLayer | None" = None) -> "MemoryLayer":
        if isinstance(value, cls):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            try:
                return cls(value)
            except ValueError:
                pass
        if isinstance(value, str):
            key = value.strip().lower().replace("_", "")
            for member, label in _LAYER_LABELS.items():
                if label.lower() == key or member.name.lower().replace("_", "") == key:
                    return member
        if default is not None:
            return default
        raise ValueError(f"Unknown memory layer: {value!r}")


_LAYER_LABELS = {
    MemoryLayer.ACTIVE: "Active",
    MemoryLayer.SITUATIONAL: "Situational",
    MemoryLayer.EVENT_LOG: "EventLog",
    MemoryLayer.ARCHIVE: "Archive",
}


class SummaryTemplate(str, Enum):
    """Prompt templates understood by the summarization pipeline."""

    DAILY_SUMMARY = "daily_summary"
    DEEP_ARCHIVE = "deep_archive"
