"""
Data types shared by the pipeline stages: intents, plans, step results,
summaries, research answers, workspace descriptors and the session state.
"""

import time
from dataclasses import dataclass, field, fields, asdict, is_dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Optional

from .exceptions import InvalidStateTransition


class IntentType(str, Enum):
    QUESTION = "Question"
    TASK = "Task"
    GREETING = "Greeting"
    UNCLEAR = "Unclear"

    @classmethod
    def parse(cls, value: Any) -> "IntentType":
        """Case-insensitive lookup by value or name. Raises ValueError for anything else."""
        text = str(value or "").strip().lower()
        for member in cls:
            if text in (member.value.lower(), member.name.lower()):
                return member
        raise ValueError(f"Unknown intent: {value!r}")


@dataclass(frozen=True)
class IntentResult:
    intent: IntentType
    confidence: float
    reasoning: str = ""

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")


@dataclass(frozen=True)
class PlanStep:
    """One unit of work. Dependencies always point at earlier steps."""
    step_id: int
    action: str
    description: str = ""
    tools: List[str] = field(default_factory=list)
    target_files: List[str] = field(default_factory=list)
    dependencies: List[int] = field(default_factory=list)
    expected_outcome: str = ""


@dataclass(frozen=True)
class PlanRisk:
    description: str
    mitigation: str = ""
    severity: str = "medium"


@dataclass(frozen=True)
class ExecutionPlan:
    plan_id: str
    task: str
    steps: List[PlanStep]
    risks: List[PlanRisk] = field(default_factory=list)
    required_tools: List[str] = field(default_factory=list)
    confidence: float = 0.0
    estimated_iterations: int = 0
    estimated_duration: str = ""

    def step(self, step_id: int) -> Optional[PlanStep]:
        for s in self.steps:
            if s.step_id == step_id:
                return s
        return None


class StepStatus(str, Enum):
    COMPLETED = "Completed"
    FAILED = "Failed"
    SKIPPED = "Skipped"


@dataclass(frozen=True)
class StepError:
    type: str
    message: str
    tool_involved: Optional[str] = None
    recoverable: bool = True


@dataclass(frozen=True)
class ToolInvocation:
    tool: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    result: str = ""
    success: bool = True
    execution_time: float = 0.0


@dataclass(frozen=True)
class StepResult:
    step_id: int
    status: StepStatus
    execution_time: float = 0.0
    outcome: str = ""
    files_modified: List[str] = field(default_factory=list)
    confidence: float = 0.0
    error: Optional[StepError] = None
    tools_used: List[ToolInvocation] = field(default_factory=list)


@dataclass
class FileChanges:
    created: List[str] = field(default_factory=list)
    modified: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)


@dataclass
class SummaryMetrics:
    steps_completed: int = 0
    steps_total: int = 0
    success_rate: float = 0.0
    execution_time: float = 0.0


@dataclass
class SummaryResult:
    summary: str
    accomplishments: List[str] = field(default_factory=list)
    key_findings: List[str] = field(default_factory=list)
    files_changed: FileChanges = field(default_factory=FileChanges)
    metrics: Optional[SummaryMetrics] = None
    next_steps: List[str] = field(default_factory=list)
    files_referenced: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class CodeReference:
    file: str
    line_start: Optional[int] = None
    line_end: Optional[int] = None

    def __str__(self) -> str:
        if self.line_start is None:
            return self.file
        if self.line_end is None or self.line_end == self.line_start:
            return f"{self.file}:{self.line_start}"
        return f"{self.file}:{self.line_start}-{self.line_end}"


@dataclass(frozen=True)
class ResearchResult:
    answer: str
    references: List[CodeReference] = field(default_factory=list)
    confidence: float = 0.0


@dataclass
class RepositoryInfo:
    name: str
    path: str
    total_files: int = 0
    files_by_extension: Dict[str, int] = field(default_factory=dict)
    key_files: List[str] = field(default_factory=list)


@dataclass
class WorkspaceContext:
    """Read-only descriptor of the workspace handed to every stage."""
    root: str
    repositories: Dict[str, RepositoryInfo] = field(default_factory=dict)

    def describe(self) -> str:
        if not self.repositories:
            return f"Workspace root: {self.root}\nNo repositories detected."
        lines = [f"Workspace root: {self.root}", f"Repositories ({len(self.repositories)}):"]
        for name, info in sorted(self.repositories.items()):
            exts = ", ".join(f"{ext} ({count})" for ext, count in
                             sorted(info.files_by_extension.items(), key=lambda kv: -kv[1])[:5])
            lines.append(f"- {name}: {info.total_files} files" + (f"; {exts}" if exts else ""))
            if info.key_files:
                lines.append(f"  key files: {', '.join(info.key_files[:10])}")
        return "\n".join(lines)


class OrchestrationStatus(str, Enum):
    WORKING = "Working"
    COMPLETE = "Complete"
    ERROR = "Error"
    NEEDS_CLARIFICATION = "NeedsClarification"

    @property
    def is_terminal(self) -> bool:
        return self is not OrchestrationStatus.WORKING


@dataclass(frozen=True)
class ConversationMessage:
    role: str
    content: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class OrchestrationState:
    """Per-request session record. Stages fill it in; a terminal status freezes it.

    conversation carries the whole exchange of the session: earlier requests
    made under the same session id, then this request and its final response.
    """
    session_id: str
    original_input: str
    intent: Optional[IntentResult] = None
    plan: Optional[ExecutionPlan] = None
    step_results: List[StepResult] = field(default_factory=list)
    research_result: Optional[ResearchResult] = None
    summary: Optional[SummaryResult] = None
    final_response: str = ""
    status: OrchestrationStatus = OrchestrationStatus.WORKING
    metrics: Dict[str, float] = field(default_factory=dict)
    conversation: List[ConversationMessage] = field(default_factory=list)
    started_at: float = field(default_factory=time.time)
    ended_at: Optional[float] = None

    def __setattr__(self, name, value):
        # Once terminal, the record is read-only
        if name in self.__dict__ and self.status.is_terminal:
            raise InvalidStateTransition(f"Session {self.session_id} is {self.status.value}; cannot modify {name}")
        super().__setattr__(name, value)

    def record_message(self, role: str, content: str) -> None:
        if self.status.is_terminal:
            raise InvalidStateTransition(f"Session {self.session_id} is {self.status.value}; cannot add messages")
        self.conversation.append(ConversationMessage(role=role, content=content))

    def finalize(self, status: OrchestrationStatus, final_response: str) -> None:
        if self.status.is_terminal:
            raise InvalidStateTransition(
                f"Session {self.session_id} already ended as {self.status.value}"
            )
        if not status.is_terminal:
            raise InvalidStateTransition(f"{status.value} is not a terminal status")
        self.record_message("assistant", final_response)
        self.final_response = final_response
        self.ended_at = time.time()
        # Read-only views, so the containers cannot be edited in place either
        self.metrics = MappingProxyType(dict(self.metrics))
        self.step_results = tuple(self.step_results)
        self.conversation = tuple(self.conversation)
        self.status = status

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly representation (enums as values)."""
        return {f.name: _jsonable(getattr(self, f.name)) for f in fields(self)}


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if is_dataclass(value) and not isinstance(value, type):
        return _jsonable(asdict(value))
    if isinstance(value, (dict, MappingProxyType)):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value
