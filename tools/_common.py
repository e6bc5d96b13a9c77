"""Shared types and state for the tools package."""

import os
import threading
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from security import SecurityPolicy, validate_path


@dataclass
class ToolResult:
    """Result from executing a tool"""
    success: bool
    output: str
    error: Optional[str] = None
    # True when the sandbox refused the call rather than the tool failing
    blocked: bool = False

    def to_text(self) -> str:
        """Text handed back to the model as the tool_result content."""
        if self.success:
            return self.output or "(no output)"
        prefix = "Blocked" if self.blocked else "Error"
        text = f"{prefix}: {self.error or 'unknown error'}"
        if self.output:
            text += "\n" + self.output
        return text


def blocked(reason: str) -> ToolResult:
    return ToolResult(success=False, output="", error=reason, blocked=True)


def sandbox_path(path: Optional[str], policy: SecurityPolicy) -> Tuple[Optional[str], Optional[ToolResult]]:
    """Validate a tool path against the sandbox. Returns (absolute_path, None) or (None, refusal)."""
    verdict = validate_path(path if path else ".", policy)
    if not verdict.ok:
        return None, blocked(verdict.reason)
    return verdict.value, None


def relative_to_root(abs_path: str, policy: SecurityPolicy) -> str:
    rel = os.path.relpath(abs_path, os.path.abspath(policy.workspace_root))
    return "." if rel == "." else rel.replace(os.sep, "/")


class RepositoryLocks:
    """One re-entrant lock per repository so workspace mutations never interleave."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}

    def lock_for(self, repository: str) -> threading.RLock:
        key = repository or "."
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    def __len__(self) -> int:
        return len(self._locks)


def repository_of(rel_path: str) -> str:
    """First path segment of a workspace-relative path: the repository it belongs to."""
    parts = [p for p in (rel_path or "").replace("\\", "/").split("/") if p and p != "."]
    return parts[0] if parts else "."
