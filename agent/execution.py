"""
Execution engine: runs plan steps in order, one bounded agent loop per step.
"""

import logging
import time
from typing import Callable, Dict, List, Optional

from bedrock_service import BedrockCredentialsError
from config import app_config, model_config
from tools import resolve_tool_names

from .events import AgentEvent
from .exceptions import UnrecoverableStepError
from .loop import AgentLoop, LoopSpec
from .models import (
    ExecutionPlan, PlanStep, StepError, StepResult, StepStatus, WorkspaceContext,
)
from .prompts import EXECUTION_SYSTEM, EXECUTION_USER, STEP_COMPLETE

logger = logging.getLogger(__name__)

COMPLETED_CONFIDENCE = 0.85
DEPENDENCIES_NOT_MET = "Dependencies not met"

# Failures that make every later step pointless
NON_RECOVERABLE_ERRORS = (UnrecoverableStepError, BedrockCredentialsError)


def truncate_outcome(text: str, limit: Optional[int] = None) -> str:
    limit = limit or app_config.outcome_max_chars
    text = (text or "").strip()
    if len(text) > limit:
        return text[:limit] + "..."
    return text


def _previous_results(step: PlanStep, results: Dict[int, StepResult]) -> str:
    if not step.dependencies:
        return "No dependencies - this is an independent step."
    lines = []
    for dep in step.dependencies:
        r = results.get(dep)
        if r is not None:
            lines.append(f"Step {r.step_id}: {r.outcome} (Status: {r.status.value})")
    return "\n".join(lines) or "No results available for dependencies."


class ExecutionEngine:
    """Executes an ExecutionPlan step by step.

    Steps run sequentially in ascending step_id order. A step whose
    dependencies did not all complete is skipped. Exceptions inside a step
    become a Failed result; a non-recoverable failure stops the run and the
    remaining steps get no result at all.
    """

    def __init__(self, loop: AgentLoop, model_id: Optional[str] = None,
                 max_iterations: Optional[int] = None,
                 on_event: Optional[Callable[[AgentEvent], None]] = None):
        self.loop = loop
        self.model_id = model_id or model_config.model_for("execution")
        self.max_iterations = max_iterations or app_config.step_max_iterations
        self._on_event = on_event

    def _emit(self, event_type: str, content: str = "", data=None) -> None:
        if self._on_event is not None:
            self._on_event(AgentEvent(type=event_type, content=content, data=data))

    def execute(self, plan: ExecutionPlan, workspace: WorkspaceContext) -> List[StepResult]:
        results: Dict[int, StepResult] = {}
        ordered: List[StepResult] = []

        for step in sorted(plan.steps, key=lambda s: s.step_id):
            unmet = [d for d in step.dependencies
                     if d not in results or results[d].status is not StepStatus.COMPLETED]
            if unmet:
                logger.info(f"Skipping step {step.step_id}: dependencies {unmet} not completed")
                result = StepResult(step_id=step.step_id, status=StepStatus.SKIPPED,
                                    outcome=DEPENDENCIES_NOT_MET)
            else:
                self._emit("step_start", f"Step {step.step_id}: {step.action}", {"step_id": step.step_id})
                result = self.execute_step(step, workspace, results)
                self._emit("step_end", f"Step {step.step_id}: {result.status.value}",
                           {"step_id": step.step_id, "status": result.status.value})

            results[step.step_id] = result
            ordered.append(result)

            if result.status is StepStatus.FAILED and result.error and not result.error.recoverable:
                logger.error(f"Step {step.step_id} failed unrecoverably; stopping plan execution")
                break

        return ordered

    def execute_step(self, step: PlanStep, workspace: WorkspaceContext,
                     previous: Dict[int, StepResult]) -> StepResult:
        started = time.monotonic()
        tool_names, unknown = resolve_tool_names(step.tools)
        if unknown:
            logger.warning(f"Step {step.step_id} ignores unknown tools: {unknown}")

        spec = LoopSpec(
            system_prompt=EXECUTION_SYSTEM.format(
                workspace=workspace.describe(),
                step_id=step.step_id,
                action=step.action,
                description=step.description or step.action,
                target_files=", ".join(step.target_files) or "(none specified)",
                expected_outcome=step.expected_outcome or "(not specified)",
                tools=", ".join(tool_names) or "(no tools)",
                previous_results=_previous_results(step, previous),
                sentinel=STEP_COMPLETE,
            ),
            tools=tool_names,
            sentinels=[STEP_COMPLETE],
            max_iterations=self.max_iterations,
            model_id=self.model_id,
            use_finish_tool=True,
            temperature=0.3,
        )

        try:
            loop_result = self.loop.run(spec, EXECUTION_USER.format(step_id=step.step_id, action=step.action))
        except Exception as e:
            elapsed = time.monotonic() - started
            recoverable = not isinstance(e, NON_RECOVERABLE_ERRORS)
            logger.error(f"Error executing step {step.step_id}: {type(e).__name__}: {e}")
            return StepResult(
                step_id=step.step_id,
                status=StepStatus.FAILED,
                execution_time=elapsed,
                outcome="Execution failed",
                error=StepError(
                    type=type(e).__name__,
                    message=str(e),
                    tool_involved=getattr(e, "tool", None),
                    recoverable=recoverable,
                ),
            )

        elapsed = time.monotonic() - started
        logger.info(f"Step {step.step_id} completed in {elapsed:.1f}s after {loop_result.iterations} "
                    f"iteration(s) ({loop_result.termination.value})")
        return StepResult(
            step_id=step.step_id,
            status=StepStatus.COMPLETED,
            execution_time=elapsed,
            outcome=truncate_outcome(loop_result.outcome),
            files_modified=list(loop_result.files_modified),
            confidence=COMPLETED_CONFIDENCE,
            tools_used=list(loop_result.tool_trace),
        )
