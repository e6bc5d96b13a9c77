"""
Plan parsing utilities.
Handles extraction of JSON objects from model responses, conversion into an
ExecutionPlan, structural validation and the deterministic fallback plan.
"""

import json
import re
import uuid
from typing import Any, Dict, Iterable, List, Optional

from .exceptions import PlanValidationError
from .models import ExecutionPlan, PlanRisk, PlanStep

FALLBACK_TOOLS = ["FileOps", "Git", "Command"]

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*\n?(.*?)```", re.DOTALL)


def strip_code_fences(text: str) -> str:
    """Return the body of the first ``` fenced block, or the text unchanged."""
    text = (text or "").strip()
    m = _FENCE_RE.search(text)
    if m:
        return m.group(1).strip()
    if text.startswith("```"):
        # Unterminated fence
        return text.split("\n", 1)[-1].strip()
    return text


def extract_json_object(text: str) -> Dict[str, Any]:
    """Parse the first brace-balanced JSON object in a model reply.

    Fences and surrounding prose are ignored. Raises ValueError when no
    object can be found or decoded.
    """
    body = strip_code_fences(text)
    brace_start = body.find("{")
    if brace_start < 0:
        raise ValueError("no JSON object in response")
    depth, end = 0, -1
    in_string = escaped = False
    for i in range(brace_start, len(body)):
        ch = body[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                end = i + 1
                break
    if end < 0:
        raise ValueError("unbalanced JSON object in response")
    result = json.loads(body[brace_start:end])
    if not isinstance(result, dict):
        raise ValueError("response JSON is not an object")
    return result


def _pick(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """First present key among camelCase / snake_case spellings."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value if v is not None]


def _int_list(value: Any) -> List[int]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        value = [value]
    return [int(v) for v in value]


def _clean_path(path: str) -> str:
    return path.strip().strip("`").strip().replace("\\", "/")


def plan_from_dict(data: Dict[str, Any], task: str) -> ExecutionPlan:
    """Build an ExecutionPlan from decoded JSON. Raises ValueError/TypeError on malformed fields."""
    raw_steps = _pick(data, "steps", default=[])
    if not isinstance(raw_steps, list):
        raise ValueError("steps must be a list")

    steps: List[PlanStep] = []
    for raw in raw_steps:
        if not isinstance(raw, dict):
            raise ValueError("each step must be an object")
        steps.append(PlanStep(
            step_id=int(_pick(raw, "stepId", "step_id", "id")),
            action=str(_pick(raw, "action", default="")).strip(),
            description=str(_pick(raw, "description", default="")).strip(),
            tools=_str_list(_pick(raw, "tools")),
            target_files=[_clean_path(p) for p in _str_list(_pick(raw, "targetFiles", "target_files"))],
            dependencies=_int_list(_pick(raw, "dependencies", "dependsOn")),
            expected_outcome=str(_pick(raw, "expectedOutcome", "expected_outcome", default="")).strip(),
        ))

    risks = []
    for raw in _pick(data, "risks", default=[]) or []:
        if isinstance(raw, dict):
            risks.append(PlanRisk(
                description=str(raw.get("description", "")),
                mitigation=str(raw.get("mitigation", "")),
                severity=str(raw.get("severity", "medium")).lower(),
            ))
        elif isinstance(raw, str):
            risks.append(PlanRisk(description=raw))

    confidence = float(_pick(data, "confidence", default=0.0))
    return ExecutionPlan(
        plan_id=str(_pick(data, "planId", "plan_id", default="") or uuid.uuid4()),
        task=str(_pick(data, "task", default="") or task),
        steps=sorted(steps, key=lambda s: s.step_id),
        risks=risks,
        required_tools=_str_list(_pick(data, "requiredTools", "required_tools")),
        confidence=min(max(confidence, 0.0), 1.0),
        estimated_iterations=int(_pick(data, "estimatedIterations", "estimated_iterations", default=0) or 0),
        estimated_duration=str(_pick(data, "estimatedDuration", "estimated_duration", default="")),
    )


def validate_plan(
    plan: ExecutionPlan,
    max_steps: int,
    known_repositories: Optional[Iterable[str]] = None,
) -> None:
    """Raise PlanValidationError listing every structural violation.

    Rules: at least one step and at most max_steps; step ids unique and
    positive; every dependency names an existing, strictly earlier step;
    target files are relative repo/path strings without '..', and name a
    known repository when the workspace lists any.
    """
    violations: List[str] = []
    if not plan.steps:
        violations.append("plan has no steps")
    if len(plan.steps) > max_steps:
        violations.append(f"plan has {len(plan.steps)} steps, more than the limit of {max_steps}")

    ids = [s.step_id for s in plan.steps]
    if len(set(ids)) != len(ids):
        violations.append("step ids are not unique")
    known_ids = set(ids)
    repos = set(known_repositories or [])

    for step in plan.steps:
        if step.step_id <= 0:
            violations.append(f"step id {step.step_id} is not positive")
        if not step.action:
            violations.append(f"step {step.step_id} has no action")
        for dep in step.dependencies:
            if dep not in known_ids:
                violations.append(f"step {step.step_id} depends on unknown step {dep}")
            elif dep >= step.step_id:
                violations.append(f"step {step.step_id} depends on later or same step {dep}")
        for path in step.target_files:
            parts = [p for p in path.split("/") if p]
            if not parts or path.startswith("/") or re.match(r"^[A-Za-z]:", path):
                violations.append(f"step {step.step_id} target '{path}' is not a workspace-relative path")
            elif ".." in parts:
                violations.append(f"step {step.step_id} target '{path}' contains '..'")
            elif repos and parts[0] not in repos:
                violations.append(f"step {step.step_id} target '{path}' is outside the known repositories")

    if violations:
        raise PlanValidationError(violations)


def fallback_plan(task: str) -> ExecutionPlan:
    """Single-step plan used whenever planning output cannot be trusted."""
    return ExecutionPlan(
        plan_id=str(uuid.uuid4()),
        task=task,
        steps=[PlanStep(
            step_id=1,
            action="Execute task",
            description=task,
            tools=list(FALLBACK_TOOLS),
            expected_outcome="Task completed",
        )],
        required_tools=list(FALLBACK_TOOLS),
        confidence=0.3,
        estimated_iterations=5,
        estimated_duration="Unknown - planning failed",
    )
