"""
Memory Store — the JSON snapshot on disk.

The whole world's memory (every pawn's four tiers, the knowledge library and
the cadence markers) is written as a single JSON document. Loading is lenient:
fields missing from older saves are defaulted by the model classes, and a
corrupt or unreadable file is logged and skipped so the host starts with an
empty memory rather than crashing.
"""

from __future__ import annotations

import json
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

import structlog

if TYPE_CHECKING:
    from pawnmem.manager import MemoryManager

logger = structlog.get_logger(__name__)

SNAPSHOT_VERSION = 1


class MemoryStore:
    """Reads and writes a ``MemoryManager`` snapshot."""

    def __init__(self, path: Path):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.exists()

    def save(self, manager: "MemoryManager") -> bool:
        payload = {
            "version": SNAPSHOT_VERSION,
            "saved_at": time.time(),
            **manager.to_dict(),
        }
        return self.write(payload)

    def write(self, payload: dict[str, Any]) -> bool:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._best_effort_chmod(self._path.parent, 0o700)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            tmp_path.write_text(
                json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8"
            )
            tmp_path.replace(self._path)
        except OSError as e:
            logger.warning("memory_store.save_failed", path=str(self._path), error=str(e))
            return False
        self._best_effort_chmod(self._path, 0o600)
        logger.info(
            "memory_store.saved",
            path=str(self._path),
            agents=len(payload.get("agents") or {}),
        )
        return True

    def read(self) -> Optional[dict[str, Any]]:
        """Return the raw snapshot, or None if absent or unreadable."""
        if not self._path.exists():
            return None
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("memory_store.load_failed", path=str(self._path), error=str(e))
            return None
        if not isinstance(payload, dict):
            logger.warning("memory_store.snapshot_corrupt", path=str(self._path))
            return None
        return payload

    def load(self, manager: "MemoryManager") -> bool:
        payload = self.read()
        if payload is None:
            return False
        manager.load_dict(payload)
        logger.info(
            "memory_store.loaded",
            path=str(self._path),
            agents=len(manager.agent_ids()),
            knowledge=len(manager.knowledge),
        )
        return True

    @staticmethod
    def _best_effort_chmod(path: Path, mode: int) -> None:
        if not path.exists():
            return
        try:
            path.chmod(mode)
        except OSError:
            logger.debug("memory_store.chmod_skipped", path=str(path), mode=oct(mode))
