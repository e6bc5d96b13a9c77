"""
Tests for the summary stage and final-response formatting.
"""

import json

import pytest

from agent.loop import AgentLoop
from agent.models import (
    CodeReference, ExecutionPlan, FileChanges, PlanStep, ResearchResult, StepResult, StepStatus,
    SummaryMetrics, SummaryResult,
)
from agent.summary import (
    Summarizer, compute_metrics, fallback_task_summary, format_research_summary, format_task_summary,
)
from conftest import FakeGateway, text_reply

PLAN = ExecutionPlan(
    plan_id="p",
    task="Add health endpoint",
    steps=[PlanStep(step_id=1, action="a"), PlanStep(step_id=2, action="b"),
           PlanStep(step_id=3, action="c"), PlanStep(step_id=4, action="d")],
)

RESULTS = [
    StepResult(step_id=1, status=StepStatus.COMPLETED, outcome="Read Program.cs"),
    StepResult(step_id=2, status=StepStatus.COMPLETED, outcome="Added /health",
               files_modified=["Api/Program.cs"]),
    StepResult(step_id=3, status=StepStatus.FAILED, outcome="Execution failed"),
    StepResult(step_id=4, status=StepStatus.SKIPPED, outcome="Dependencies not met"),
]


def make_summarizer(*replies):
    gateway = FakeGateway(list(replies))
    return Summarizer(AgentLoop(gateway, sleep=lambda s: None), model_id="sum-model"), gateway


def test_metrics_come_from_step_results():
    m = compute_metrics(PLAN, RESULTS, 12.5)
    assert (m.steps_completed, m.steps_total) == (2, 4)
    assert m.success_rate == pytest.approx(0.5)
    assert m.execution_time == 12.5


def test_metrics_for_empty_plan():
    empty = ExecutionPlan(plan_id="p", task="t", steps=[])
    assert compute_metrics(empty, [], 0.0).success_rate == 0.0


def test_model_cannot_inflate_metrics():
    reply = json.dumps({
        "summary": "Everything done",
        "accomplishments": ["Added /health"],
        "filesChanged": {"created": ["Api/Health.cs"], "modified": [], "deleted": []},
        "metrics": {"stepsCompleted": 4, "stepsTotal": 4, "successRate": 1.0},
        "nextSteps": ["Deploy"],
    })
    summarizer, gateway = make_summarizer(text_reply(reply))
    summary = summarizer.summarize_task(PLAN, RESULTS, 3.0)

    assert summary.summary == "Everything done"
    assert summary.metrics.steps_completed == 2
    assert summary.metrics.steps_total == 4
    assert summary.files_changed.created == ["Api/Health.cs"]
    assert summary.files_changed.modified == ["Api/Program.cs"]
    assert summary.next_steps == ["Deploy"]
    assert gateway.calls[0]["tools"] == []


def test_unparseable_task_summary_uses_fallback():
    summarizer, _ = make_summarizer(text_reply("Sorry, I can't do JSON today."))
    summary = summarizer.summarize_task(PLAN, RESULTS, 3.0)
    assert summary.summary == "Completed 2/4 steps for: Add health endpoint"
    assert summary.accomplishments == ["Read Program.cs", "Added /health"]
    assert summary.next_steps == ["Review changes", "Run tests"]
    assert summary.files_changed.modified == ["Api/Program.cs"]


def test_fallback_accomplishments_capped_at_five():
    plan = ExecutionPlan(plan_id="p", task="t", steps=[PlanStep(step_id=i, action="a") for i in range(1, 8)])
    results = [StepResult(step_id=i, status=StepStatus.COMPLETED, outcome=f"did {i}") for i in range(1, 8)]
    assert len(fallback_task_summary(plan, results, 1.0).accomplishments) == 5


def test_research_summary_fallback_keeps_answer():
    research = ResearchResult(answer="Totals live in Api/Services/Orders.cs:40",
                              references=[CodeReference("Api/Services/Orders.cs", 40)])
    summarizer, _ = make_summarizer(text_reply("not json"))
    summary = summarizer.summarize_research("Where are totals computed?", research)
    assert summary.summary == "Answered: Where are totals computed?"
    assert summary.key_findings == [research.answer]
    assert summary.files_referenced == ["Api/Services/Orders.cs"]


def test_format_task_summary():
    summary = SummaryResult(
        summary="Added a health endpoint",
        accomplishments=["Added /health"],
        files_changed=FileChanges(created=["Api/Health.cs"], modified=["Api/Program.cs"]),
        metrics=SummaryMetrics(steps_completed=2, steps_total=4, success_rate=0.5, execution_time=3.25),
        next_steps=["Run tests"],
    )
    text = format_task_summary(summary)
    assert text.startswith("## Added a health endpoint")
    assert "- Created: Api/Health.cs" in text
    assert "- Modified: Api/Program.cs" in text
    assert "- Execution Time: 3.2s" in text or "- Execution Time: 3.3s" in text
    assert "- Steps: 2/4" in text
    assert "- Success Rate: 50%" in text
    assert text.endswith("- Run tests")


def test_format_research_summary_does_not_repeat_answer():
    research = ResearchResult(answer="It is in Api/Program.cs:3")
    summary = SummaryResult(summary="Found it", key_findings=[research.answer],
                            files_referenced=["Api/Program.cs"])
    text = format_research_summary(summary, research)
    assert text.count(research.answer) == 1
    assert "**Key Findings:**" not in text
    assert "**Files Referenced:**" in text
