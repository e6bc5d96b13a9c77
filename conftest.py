"""
Shared fixtures: a scripted model gateway, a recording tool dispatcher and a
throwaway workspace with two small repositories.
"""

import copy
import itertools
from typing import Any, Dict, List, Optional

import pytest

from agent.models import RepositoryInfo, WorkspaceContext
from bedrock_service import GenerationResult, ModelGateway, ToolUseBlock
from security import SecurityPolicy
from sessions import SessionStore
from tools import ToolDispatcher, ToolResult

_ids = itertools.count(1)


def text_reply(text: str) -> GenerationResult:
    return GenerationResult(content=text, stop_reason="end_turn")


def tool_reply(*calls, text: str = "") -> GenerationResult:
    """Reply requesting tools; each call is (name, input)."""
    uses = [ToolUseBlock(id=f"toolu_{next(_ids)}", name=name, input=inputs) for name, inputs in calls]
    return GenerationResult(content=text, tool_uses=uses, stop_reason="tool_use")


def finish_reply(outcome: str, *calls) -> GenerationResult:
    return tool_reply(*(list(calls) + [("finish", {"outcome": outcome})]))


class FakeGateway(ModelGateway):
    """Returns queued replies in order. Queued exceptions are raised instead."""

    def __init__(self, replies: Optional[List[Any]] = None):
        self.replies = list(replies or [])
        self.calls: List[Dict[str, Any]] = []

    def queue(self, *replies) -> "FakeGateway":
        self.replies.extend(replies)
        return self

    def complete(self, messages, system_prompt=None, tools=None, model_id=None, config=None):
        # The loop keeps appending to the same list, so snapshot it
        self.calls.append({
            "messages": copy.deepcopy(messages),
            "system_prompt": system_prompt,
            "tools": [t["name"] for t in (tools or [])],
            "model_id": model_id,
            "config": config,
        })
        if not self.replies:
            raise AssertionError("FakeGateway ran out of scripted replies")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeDispatcher:
    """Records tool calls and answers with canned results (success by default)."""

    def __init__(self, results: Optional[Dict[str, ToolResult]] = None):
        self.results = results or {}
        self.calls: List[Dict[str, Any]] = []

    def execute(self, name, inputs, allowed=None):
        self.calls.append({"name": name, "inputs": dict(inputs or {}), "allowed": allowed})
        if allowed is not None and name not in set(allowed):
            return ToolResult(success=False, output="", error=f"Tool '{name}' is not available", blocked=True)
        return self.results.get(name, ToolResult(success=True, output=f"{name} ok"))


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def fake_dispatcher():
    return FakeDispatcher()


@pytest.fixture
def workspace_root(tmp_path):
    api = tmp_path / "Api"
    (api / "Controllers").mkdir(parents=True)
    (api / "Program.cs").write_text("var builder = WebApplication.CreateBuilder(args);\n")
    (api / "Controllers" / "OrdersController.cs").write_text(
        "public class OrdersController\n{\n    public decimal Total() => 0m;\n}\n"
    )
    (api / "README.md").write_text("# Api\n")
    web = tmp_path / "Web"
    web.mkdir()
    (web / "package.json").write_text('{"name": "web"}\n')
    return tmp_path


@pytest.fixture
def policy(workspace_root):
    return SecurityPolicy(
        workspace_root=str(workspace_root),
        allowed_commands=["dotnet", "npm", "pytest", "python -m pytest", "echo"],
        max_file_bytes=1024,
        denied_directories=["/etc", "/sys", "/proc", "/dev"],
    )


@pytest.fixture
def dispatcher(policy):
    return ToolDispatcher(policy)


@pytest.fixture
def workspace(workspace_root):
    return WorkspaceContext(
        root=str(workspace_root),
        repositories={
            "Api": RepositoryInfo(name="Api", path=str(workspace_root / "Api"), total_files=3,
                                  files_by_extension={".cs": 2, ".md": 1}, key_files=["Program.cs"]),
            "Web": RepositoryInfo(name="Web", path=str(workspace_root / "Web"), total_files=1,
                                  files_by_extension={".json": 1}, key_files=["package.json"]),
        },
    )


@pytest.fixture
def sessions(tmp_path):
    return SessionStore(ttl_seconds=3600, max_entries=50, snapshot_dir="")
