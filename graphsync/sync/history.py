"""Capped, most-recent-first history of terminal sync items."""

import json
import os
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from graphsync.shared.config import DEFAULT_HISTORY_MAX_ENTRIES
from graphsync.shared.observability import get_logger

from .types import SyncItem

logger = get_logger(__name__)


class SyncHistory:
    def __init__(
        self,
        path: Optional[str] = None,
        max_entries: int = DEFAULT_HISTORY_MAX_ENTRIES,
    ):
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.path = Path(path).expanduser() if path else None
        self.max_entries = max_entries
        self._lock = threading.Lock()
        self._entries: List[Dict[str, Any]] = self._load()

    def _load(self) -> List[Dict[str, Any]]:
        if self.path is None or not self.path.exists():
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("sync_history_load_failed", path=str(self.path), error=str(e))
            return []
        if not isinstance(data, list):
            logger.warning("sync_history_malformed", path=str(self.path))
            return []
        return data[: self.max_entries]

    def _save(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self._entries, f, indent=2, default=str)
        os.replace(tmp_path, self.path)

    def add(self, item: SyncItem) -> Dict[str, Any]:
        entry = item.to_history_dict()
        with self._lock:
            self._entries.insert(0, entry)
            del self._entries[self.max_entries :]
            try:
                self._save()
            except OSError as e:
                # History is advisory; a write failure must not fail the item
                logger.error(
                    "sync_history_save_failed", path=str(self.path), error=str(e)
                )
        return entry

    def entries(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        with self._lock:
            entries = list(self._entries)
        return entries[:limit] if limit is not None else entries

    def items(self, limit: Optional[int] = None) -> List[SyncItem]:
        return [SyncItem.from_history_dict(e) for e in self.entries(limit)]

    def __len__(self) -> int:
        return len(self._entries)
