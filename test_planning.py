"""
Tests for plan parsing, validation, the fallback plan and the Planner stage.
"""

import json

import pytest

from agent.exceptions import PlanValidationError
from agent.loop import AgentLoop
from agent.models import ExecutionPlan, PlanStep
from agent.plan import extract_json_object, fallback_plan, plan_from_dict, strip_code_fences, validate_plan
from agent.planning import Planner, parse_plan
from agent.prompts import PLAN_READY
from conftest import FakeGateway, text_reply, tool_reply


def plan_json(steps, **extra):
    data = {"planId": "p-1", "task": "Add health endpoint", "steps": steps, "confidence": 0.9}
    data.update(extra)
    return json.dumps(data)


GOOD_STEPS = [
    {"stepId": 1, "action": "Read Program.cs", "tools": ["FileOps.read_file"],
     "targetFiles": ["Api/Program.cs"], "dependencies": [], "expectedOutcome": "Understood startup"},
    {"stepId": 2, "action": "Add endpoint", "tools": ["FileOps"],
     "targetFiles": ["`Api/Program.cs`"], "dependencies": [1]},
    {"stepId": 3, "action": "Build", "tools": ["Command"], "dependencies": [2]},
]


# ------------------------------------------------------------------
# JSON extraction
# ------------------------------------------------------------------

def test_strip_code_fences():
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('plain {"a": 1}') == 'plain {"a": 1}'


def test_extract_json_ignores_surrounding_prose():
    text = 'Here is the plan:\n{"a": {"b": "}"}, "c": [1, 2]}\nLet me know!'
    assert extract_json_object(text) == {"a": {"b": "}"}, "c": [1, 2]}


def test_extract_json_without_object_raises():
    with pytest.raises(ValueError):
        extract_json_object("no braces here")


# ------------------------------------------------------------------
# Parsing and validation
# ------------------------------------------------------------------

def test_parse_plan_accepts_valid_plan(workspace):
    plan = parse_plan(plan_json(GOOD_STEPS), "Add health endpoint", workspace, max_steps=15)
    assert [s.step_id for s in plan.steps] == [1, 2, 3]
    assert plan.steps[1].target_files == ["Api/Program.cs"]
    assert plan.steps[1].dependencies == [1]
    assert plan.confidence == 0.9


def test_plan_from_dict_accepts_snake_case():
    data = {"steps": [{"step_id": 2, "action": "b", "dependencies": [1]},
                      {"step_id": 1, "action": "a", "target_files": ["Api/x.cs"]}]}
    plan = plan_from_dict(data, "task")
    assert [s.step_id for s in plan.steps] == [1, 2]
    assert plan.task == "task"
    assert plan.plan_id


def test_unknown_tools_are_dropped(workspace):
    steps = [{"stepId": 1, "action": "Query", "tools": ["Database", "CodeNav"]}]
    plan = parse_plan(plan_json(steps), "t", workspace, max_steps=15)
    assert plan.steps[0].tools == ["CodeNav"]


@pytest.mark.parametrize("steps,fragment", [
    ([], "no steps"),
    ([{"stepId": 1, "action": "a", "dependencies": [2]}, {"stepId": 2, "action": "b"}], "later or same"),
    ([{"stepId": 1, "action": "a", "dependencies": [1]}], "later or same"),
    ([{"stepId": 1, "action": "a", "dependencies": [9]}], "unknown step"),
    ([{"stepId": 1, "action": "a"}, {"stepId": 1, "action": "b"}], "not unique"),
    ([{"stepId": 0, "action": "a"}], "not positive"),
    ([{"stepId": 1, "action": "a", "targetFiles": ["/etc/passwd"]}], "workspace-relative"),
    ([{"stepId": 1, "action": "a", "targetFiles": ["Api/../secret"]}], "'..'"),
    ([{"stepId": 1, "action": "a", "targetFiles": ["Billing/x.cs"]}], "known repositories"),
])
def test_validation_violations(workspace, steps, fragment):
    with pytest.raises(PlanValidationError) as exc:
        parse_plan(plan_json(steps), "t", workspace, max_steps=15)
    assert any(fragment in v for v in exc.value.violations)


def test_step_limit(workspace):
    steps = [{"stepId": i, "action": f"s{i}"} for i in range(1, 5)]
    with pytest.raises(PlanValidationError):
        parse_plan(plan_json(steps), "t", workspace, max_steps=3)


def test_validate_plan_without_known_repositories_accepts_any_repo():
    plan = ExecutionPlan(plan_id="p", task="t", steps=[PlanStep(step_id=1, action="a", target_files=["Any/x.cs"])])
    validate_plan(plan, max_steps=15, known_repositories=[])


def test_fallback_plan_shape():
    plan = fallback_plan("Add health endpoint")
    assert len(plan.steps) == 1
    step = plan.steps[0]
    assert step.step_id == 1
    assert step.action == "Execute task"
    assert step.description == "Add health endpoint"
    assert step.tools == ["FileOps", "Git", "Command"]
    assert step.expected_outcome == "Task completed"
    assert plan.confidence == pytest.approx(0.3)


# ------------------------------------------------------------------
# Planner stage
# ------------------------------------------------------------------

def make_planner(gateway, dispatcher=None, use_tools=False):
    return Planner(AgentLoop(gateway, dispatcher, sleep=lambda s: None), model_id="plan-model",
                   use_tools=use_tools, max_steps=15)


def test_planner_returns_parsed_plan(workspace):
    gateway = FakeGateway([text_reply("```json\n" + plan_json(GOOD_STEPS) + "\n```")])
    plan = make_planner(gateway).create_plan("Add health endpoint", workspace)
    assert len(plan.steps) == 3
    assert gateway.calls[0]["tools"] == []
    assert "Api" in gateway.calls[0]["system_prompt"]


def test_planner_falls_back_on_garbage(workspace):
    gateway = FakeGateway([text_reply("I think we should add an endpoint.")])
    plan = make_planner(gateway).create_plan("Add health endpoint", workspace)
    assert plan.steps[0].action == "Execute task"
    assert plan.confidence == pytest.approx(0.3)


def test_planner_falls_back_on_invalid_plan(workspace):
    bad = [{"stepId": 1, "action": "a", "dependencies": [5]}]
    gateway = FakeGateway([text_reply(plan_json(bad))])
    plan = make_planner(gateway).create_plan("Do it", workspace)
    assert plan.steps[0].description == "Do it"


def test_planner_with_tools_explores_then_plans(workspace, fake_dispatcher):
    gateway = FakeGateway([
        tool_reply(("directory_tree", {"path": "Api"})),
        text_reply(plan_json(GOOD_STEPS) + "\n" + PLAN_READY),
    ])
    plan = make_planner(gateway, fake_dispatcher, use_tools=True).create_plan("Add health endpoint", workspace)
    assert len(plan.steps) == 3
    assert "write_file" not in gateway.calls[0]["tools"]
    assert "directory_tree" in gateway.calls[0]["tools"]
    assert fake_dispatcher.calls[0]["name"] == "directory_tree"
