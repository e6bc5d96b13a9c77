"""Orchestrator exception hierarchy."""

from typing import List, Optional


class OrchestratorError(Exception):
    """Base class for orchestration failures."""
    pass


class InvalidStateTransition(OrchestratorError):
    """A session was moved out of a terminal status, or into a non-terminal one via finalize."""
    pass


class PlanValidationError(OrchestratorError):
    """A parsed plan broke one or more structural rules."""

    def __init__(self, violations: List[str]):
        self.violations = list(violations)
        super().__init__("; ".join(self.violations) or "invalid plan")


class UnrecoverableStepError(OrchestratorError):
    """A step failure that must stop the rest of the plan."""

    def __init__(self, message: str, tool: Optional[str] = None):
        super().__init__(message)
        self.tool = tool
