"""
Summary stage and final-response formatting.

The model writes the prose; the numbers always come from the StepResults so
a summary can never claim more progress than was actually made.
"""

import logging
from typing import Any, Dict, List, Optional

from config import model_config

from .loop import AgentLoop, LoopSpec
from .models import (
    ExecutionPlan, FileChanges, ResearchResult, StepResult, StepStatus,
    SummaryMetrics, SummaryResult,
)
from .plan import extract_json_object
from .prompts import (
    SUMMARY_RESEARCH_SYSTEM, SUMMARY_RESEARCH_USER, SUMMARY_TASK_SYSTEM, SUMMARY_TASK_USER,
)

logger = logging.getLogger(__name__)

DEFAULT_NEXT_STEPS = ["Review changes", "Run tests"]
_MAX_ACCOMPLISHMENTS = 5


def compute_metrics(plan: ExecutionPlan, step_results: List[StepResult], execution_time: float) -> SummaryMetrics:
    completed = sum(1 for r in step_results if r.status is StepStatus.COMPLETED)
    total = len(plan.steps)
    return SummaryMetrics(
        steps_completed=completed,
        steps_total=total,
        success_rate=(completed / total) if total else 0.0,
        execution_time=execution_time,
    )


def modified_files(step_results: List[StepResult]) -> List[str]:
    files: List[str] = []
    for r in step_results:
        for f in r.files_modified:
            if f not in files:
                files.append(f)
    return files


def fallback_task_summary(plan: ExecutionPlan, step_results: List[StepResult],
                          execution_time: float) -> SummaryResult:
    metrics = compute_metrics(plan, step_results, execution_time)
    completed = [r for r in step_results if r.status is StepStatus.COMPLETED]
    return SummaryResult(
        summary=f"Completed {metrics.steps_completed}/{metrics.steps_total} steps for: {plan.task}",
        accomplishments=[r.outcome for r in completed if r.outcome][:_MAX_ACCOMPLISHMENTS],
        files_changed=FileChanges(modified=modified_files(step_results)),
        metrics=metrics,
        next_steps=list(DEFAULT_NEXT_STEPS),
    )


def fallback_research_summary(question: str, research: ResearchResult) -> SummaryResult:
    return SummaryResult(
        summary=f"Answered: {question}",
        key_findings=[research.answer],
        files_referenced=_referenced_files(research),
    )


def _referenced_files(research: ResearchResult) -> List[str]:
    files: List[str] = []
    for ref in research.references:
        if ref.file not in files:
            files.append(ref.file)
    return files


def _str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        raise ValueError("expected a list of strings")
    return [str(v) for v in value if str(v).strip()]


def _file_changes(raw: Any, known_modified: List[str]) -> FileChanges:
    raw = raw if isinstance(raw, dict) else {}
    created = _str_list(raw.get("created"))
    deleted = _str_list(raw.get("deleted"))
    modified = [f for f in known_modified if f not in created and f not in deleted]
    for f in _str_list(raw.get("modified")):
        if f not in modified and f not in created and f not in deleted:
            modified.append(f)
    return FileChanges(created=created, modified=modified, deleted=deleted)


class Summarizer:
    """Turns stage outputs into a SummaryResult with a single tool-less model call."""

    def __init__(self, loop: AgentLoop, model_id: Optional[str] = None):
        self.loop = loop
        self.model_id = model_id or model_config.model_for("summary")

    def _ask(self, system: str, user: str) -> Dict[str, Any]:
        spec = LoopSpec(system_prompt=system, max_iterations=1, model_id=self.model_id,
                        max_tokens=2048, temperature=0.2)
        return extract_json_object(self.loop.run(spec, user).outcome)

    def summarize_task(self, plan: ExecutionPlan, step_results: List[StepResult],
                       execution_time: float) -> SummaryResult:
        metrics = compute_metrics(plan, step_results, execution_time)
        files = modified_files(step_results)
        step_lines = "\n".join(
            f"Step {r.step_id}: {r.outcome} (Status: {r.status.value}, Files: {', '.join(r.files_modified) or 'none'})"
            for r in step_results
        ) or "(no steps ran)"
        user = SUMMARY_TASK_USER.format(
            task=plan.task,
            steps_total=metrics.steps_total,
            steps_completed=metrics.steps_completed,
            execution_time=execution_time,
            step_lines=step_lines,
            files=", ".join(files) or "none",
        )
        try:
            data = self._ask(SUMMARY_TASK_SYSTEM, user)
            summary = str(data.get("summary", "")).strip()
            if not summary:
                raise ValueError("summary is empty")
            return SummaryResult(
                summary=summary,
                accomplishments=_str_list(data.get("accomplishments"))[:_MAX_ACCOMPLISHMENTS],
                files_changed=_file_changes(data.get("filesChanged") or data.get("files_changed"), files),
                metrics=metrics,
                next_steps=_str_list(data.get("nextSteps") or data.get("next_steps")) or list(DEFAULT_NEXT_STEPS),
            )
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Task summary reply could not be parsed ({e}); using deterministic summary")
            return fallback_task_summary(plan, step_results, execution_time)

    def summarize_research(self, question: str, research: ResearchResult) -> SummaryResult:
        references = ", ".join(str(r) for r in research.references) or "none"
        user = SUMMARY_RESEARCH_USER.format(question=question, answer=research.answer, references=references)
        try:
            data = self._ask(SUMMARY_RESEARCH_SYSTEM, user)
            summary = str(data.get("summary", "")).strip()
            if not summary:
                raise ValueError("summary is empty")
            referenced = _str_list(data.get("filesReferenced") or data.get("files_referenced"))
            return SummaryResult(
                summary=summary,
                key_findings=_str_list(data.get("keyFindings") or data.get("key_findings")),
                files_referenced=referenced or _referenced_files(research),
            )
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Research summary reply could not be parsed ({e}); using raw answer")
            return fallback_research_summary(question, research)


def format_task_summary(summary: SummaryResult) -> str:
    lines: List[str] = []
    if summary.summary:
        lines += [f"## {summary.summary}", ""]

    if summary.accomplishments:
        lines.append("**Accomplishments:**")
        lines += [f"- {a}" for a in summary.accomplishments]
        lines.append("")

    changes = summary.files_changed
    if changes and (changes.created or changes.modified or changes.deleted):
        lines.append("**Files Changed:**")
        lines += [f"- Created: {f}" for f in changes.created]
        lines += [f"- Modified: {f}" for f in changes.modified]
        lines += [f"- Deleted: {f}" for f in changes.deleted]
        lines.append("")

    if summary.metrics is not None:
        m = summary.metrics
        lines.append("**Metrics:**")
        lines.append(f"- Execution Time: {m.execution_time:.1f}s")
        lines.append(f"- Steps: {m.steps_completed}/{m.steps_total}")
        lines.append(f"- Success Rate: {m.success_rate:.0%}")
        lines.append("")

    if summary.next_steps:
        lines.append("**Next Steps:**")
        lines += [f"- {s}" for s in summary.next_steps]

    return "\n".join(lines).rstrip()


def format_research_summary(summary: SummaryResult, research: ResearchResult) -> str:
    lines: List[str] = []
    if summary.summary:
        lines += [f"## {summary.summary}", ""]

    # The fallback summary's only finding is the answer itself; don't print it twice
    findings = [f for f in summary.key_findings if f != research.answer]
    if findings:
        lines.append("**Key Findings:**")
        lines += [f"- {f}" for f in findings]
        lines.append("")

    lines.append(research.answer)

    if summary.files_referenced:
        lines += ["", "**Files Referenced:**"]
        lines += [f"- {f}" for f in summary.files_referenced]

    return "\n".join(lines).rstrip()
