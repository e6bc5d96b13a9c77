"""Tool execution dispatch: sandbox policy, allowed-tool filtering and per-repository locking."""

import logging
import os
from typing import Any, Dict, Iterable, Optional

from backend import Backend, LocalBackend
from security import SecurityPolicy
from tools._common import ToolResult, RepositoryLocks, blocked, repository_of
from tools.schemas import TOOL_IMPLEMENTATIONS, MUTATING_TOOLS

logger = logging.getLogger(__name__)


class ToolDispatcher:
    """Executes tool calls requested by the model.

    Never raises: unknown tools, bad arguments, sandbox refusals and tool
    crashes all come back as an unsuccessful ToolResult the model can read.
    """

    def __init__(
        self,
        policy: SecurityPolicy,
        backend: Optional[Backend] = None,
        locks: Optional[RepositoryLocks] = None,
    ):
        self.policy = policy
        self.backend = backend or LocalBackend(policy.workspace_root)
        self.locks = locks if locks is not None else RepositoryLocks()

    def _repository_for(self, inputs: Dict[str, Any]) -> str:
        if inputs.get("repository"):
            return repository_of(str(inputs["repository"]))
        target = inputs.get("path") or inputs.get("cwd") or ""
        target = str(target)
        if os.path.isabs(target):
            target = os.path.relpath(target, os.path.abspath(self.policy.workspace_root))
        return repository_of(target)

    def execute(
        self,
        name: str,
        inputs: Optional[Dict[str, Any]],
        allowed: Optional[Iterable[str]] = None,
    ) -> ToolResult:
        """Execute a tool by name. allowed, when given, is the set of tool names this caller may use."""
        inputs = dict(inputs or {})
        impl = TOOL_IMPLEMENTATIONS.get(name)
        if not impl:
            return ToolResult(success=False, output="", error=f"Unknown tool: {name}")
        if allowed is not None and name not in set(allowed):
            logger.warning(f"Refused tool outside the allowed set: {name}")
            return blocked(f"Tool '{name}' is not available for this step")

        # Callers cannot override the sandbox context
        for reserved in ("backend", "policy"):
            inputs.pop(reserved, None)
        kwargs = dict(inputs, backend=self.backend, policy=self.policy)

        try:
            if name in MUTATING_TOOLS:
                with self.locks.lock_for(self._repository_for(inputs)):
                    result = impl(**kwargs)
            else:
                result = impl(**kwargs)
        except TypeError as e:
            return ToolResult(success=False, output="", error=f"Invalid arguments for {name}: {e}")
        except Exception as e:
            logger.exception(f"Tool execution error: {name}")
            return ToolResult(success=False, output="", error=f"Tool error: {e}")

        if result.blocked:
            logger.warning(f"Sandbox refused {name}: {result.error}")
        return result
