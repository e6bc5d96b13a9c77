"""
Session store for Bedrock Orchestrator.
Keeps OrchestrationState records in memory, bounded by age and count, and
optionally writes a JSON snapshot of each finished session to disk.
"""

import json
import logging
import os
import re
import threading
import time
from collections import OrderedDict
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Tuple

from config import app_config

if TYPE_CHECKING:
    from agent.models import OrchestrationState

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _safe_name(session_id: str) -> str:
    """Turn a session id into a safe filename component."""
    s = re.sub(r"[^A-Za-z0-9_.-]+", "-", session_id).strip("-.")[:100]
    return s or "session"


class SessionStore:
    """
    In-memory session map with TTL and size-bounded eviction.

    Entries older than ttl_seconds (measured from their last put) are dropped
    lazily; when more than max_entries are held, the least recently written
    ones go first. Snapshot layout: {snapshot_dir}/{session_id}.json
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        max_entries: Optional[int] = None,
        snapshot_dir: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = app_config.session_ttl_seconds if ttl_seconds is None else ttl_seconds
        self.max_entries = app_config.session_max_entries if max_entries is None else max_entries
        self.snapshot_dir = app_config.session_dir if snapshot_dir is None else snapshot_dir
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: "OrderedDict[str, Tuple[float, 'OrchestrationState']]" = OrderedDict()
        if self.snapshot_dir:
            os.makedirs(self.snapshot_dir, exist_ok=True)

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    def put(self, state: "OrchestrationState") -> None:
        with self._lock:
            self._entries.pop(state.session_id, None)
            self._entries[state.session_id] = (self._clock(), state)
            self._evict_locked()
        if self.snapshot_dir and state.status.is_terminal:
            try:
                self.save_snapshot(state)
            except OSError as e:
                logger.error(f"Failed to write snapshot for session {state.session_id}: {e}")

    def get(self, session_id: str) -> Optional["OrchestrationState"]:
        with self._lock:
            entry = self._entries.get(session_id)
            if entry is None:
                return None
            stored_at, state = entry
            if self._expired(stored_at):
                del self._entries[session_id]
                return None
            return state

    def __len__(self) -> int:
        with self._lock:
            self._evict_locked()
            return len(self._entries)

    def _expired(self, stored_at: float) -> bool:
        return self.ttl_seconds > 0 and self._clock() - stored_at > self.ttl_seconds

    def _evict_locked(self) -> None:
        for sid in [sid for sid, (ts, _) in self._entries.items() if self._expired(ts)]:
            del self._entries[sid]
        while self.max_entries > 0 and len(self._entries) > self.max_entries:
            sid, _ = self._entries.popitem(last=False)
            logger.debug(f"Evicted session {sid} (store full)")

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def _path_for(self, session_id: str) -> str:
        return os.path.join(self.snapshot_dir, f"{_safe_name(session_id)}.json")

    def save_snapshot(self, state: "OrchestrationState") -> str:
        """Write the session to disk atomically. Returns the file path."""
        if not self.snapshot_dir:
            raise ValueError("No snapshot directory configured")
        path = self._path_for(state.session_id)
        data = state.to_dict()
        data["saved_at"] = _now_iso()

        tmp_path = path + ".tmp"
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, path)
            logger.info(f"Session snapshot saved: {path}")
        except Exception:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
        return path

    def load_snapshot(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Load a saved snapshot as a plain dict, or None when there is none."""
        if not self.snapshot_dir:
            return None
        path = self._path_for(session_id)
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Failed to read snapshot {path}: {e}")
            return None
