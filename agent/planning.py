"""
Planning stage: turn a task into a validated, dependency-ordered ExecutionPlan.
"""

import logging
from typing import List, Optional

from config import app_config, model_config, security_config
from tools import READ_ONLY_TOOLS, canonical_tool_identifiers

from .exceptions import PlanValidationError
from .loop import AgentLoop, LoopSpec
from .models import ExecutionPlan, PlanStep, WorkspaceContext
from .plan import extract_json_object, fallback_plan, plan_from_dict, validate_plan
from .prompts import PLANNING_SYSTEM, PLANNING_TOOL_NOTE, PLANNING_USER, PLAN_READY

logger = logging.getLogger(__name__)


def _drop_unknown_tools(plan: ExecutionPlan) -> ExecutionPlan:
    """Remove tool identifiers that map to no registered tool, warning about each one."""
    steps: List[PlanStep] = []
    for step in plan.steps:
        kept, dropped = canonical_tool_identifiers(step.tools)
        for ident in dropped:
            logger.warning(f"Plan step {step.step_id} names unknown tool '{ident}', dropping it")
        steps.append(PlanStep(
            step_id=step.step_id,
            action=step.action,
            description=step.description,
            tools=kept,
            target_files=list(step.target_files),
            dependencies=list(step.dependencies),
            expected_outcome=step.expected_outcome,
        ))
    required, _ = canonical_tool_identifiers(plan.required_tools)
    return ExecutionPlan(
        plan_id=plan.plan_id,
        task=plan.task,
        steps=steps,
        risks=list(plan.risks),
        required_tools=required,
        confidence=plan.confidence,
        estimated_iterations=plan.estimated_iterations,
        estimated_duration=plan.estimated_duration,
    )


def parse_plan(text: str, task: str, workspace: WorkspaceContext,
               max_steps: Optional[int] = None) -> ExecutionPlan:
    """Parse and validate a planning reply. Raises ValueError or PlanValidationError."""
    data = extract_json_object(text)
    try:
        plan = plan_from_dict(data, task)
    except (TypeError, KeyError) as e:
        raise ValueError(f"malformed plan: {e}")
    plan = _drop_unknown_tools(plan)
    validate_plan(
        plan,
        max_steps=max_steps or app_config.max_plan_steps,
        known_repositories=workspace.repositories.keys(),
    )
    return plan


class Planner:
    """Produces an ExecutionPlan, or the single-step fallback when the reply cannot be trusted."""

    def __init__(self, loop: AgentLoop, model_id: Optional[str] = None,
                 use_tools: Optional[bool] = None, max_steps: Optional[int] = None):
        self.loop = loop
        self.model_id = model_id or model_config.model_for("planning")
        self.use_tools = app_config.planning_uses_tools if use_tools is None else use_tools
        self.max_steps = max_steps or app_config.max_plan_steps

    def _spec(self, workspace: WorkspaceContext) -> LoopSpec:
        system = PLANNING_SYSTEM.format(
            workspace=workspace.describe(),
            allowed_commands=", ".join(security_config.allowed_commands) or "none",
            max_steps=self.max_steps,
            tool_note=PLANNING_TOOL_NOTE.format(sentinel=PLAN_READY) if self.use_tools else "",
        )
        if self.use_tools:
            return LoopSpec(
                system_prompt=system,
                tools=sorted(READ_ONLY_TOOLS),
                sentinels=[PLAN_READY],
                max_iterations=app_config.planning_max_iterations,
                model_id=self.model_id,
                max_tokens=8192,
            )
        return LoopSpec(system_prompt=system, max_iterations=1, model_id=self.model_id, max_tokens=8192)

    def create_plan(self, task: str, workspace: WorkspaceContext) -> ExecutionPlan:
        reply = self.loop.run(self._spec(workspace), PLANNING_USER.format(task=task)).outcome
        try:
            plan = parse_plan(reply, task, workspace, self.max_steps)
        except PlanValidationError as e:
            logger.warning(f"Plan rejected ({e}); using fallback plan")
            return fallback_plan(task)
        except ValueError as e:
            logger.warning(f"Planning reply could not be parsed ({e}); using fallback plan")
            return fallback_plan(task)

        logger.info(f"Created plan {plan.plan_id} with {len(plan.steps)} steps "
                    f"(estimated: {plan.estimated_duration or 'n/a'})")
        return plan
