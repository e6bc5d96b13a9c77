"""
Agent package - the orchestration pipeline.

This package contains the pipeline split into logical modules:
- models: data types for intents, plans, step results, summaries and sessions
- exceptions: orchestrator exception hierarchy
- events: AgentEvent progress notifications
- prompts: stage prompt templates and canned replies
- loop: bounded agent loop over the model gateway and tool dispatcher
- intent: intent classification
- plan: JSON extraction, plan parsing, validation and fallback
- planning: planning stage
- execution: step-by-step plan execution
- research: question answering with read-only tools
- summary: summary stage and final-response formatting
- workspace: workspace scanning
- core: Orchestrator state machine
"""

from .core import Orchestrator
from .events import AgentEvent
from .exceptions import (
    OrchestratorError,
    InvalidStateTransition,
    PlanValidationError,
    UnrecoverableStepError,
)
from .models import (
    IntentType,
    IntentResult,
    PlanStep,
    PlanRisk,
    ExecutionPlan,
    StepStatus,
    StepError,
    StepResult,
    ToolInvocation,
    FileChanges,
    SummaryMetrics,
    SummaryResult,
    CodeReference,
    ResearchResult,
    RepositoryInfo,
    WorkspaceContext,
    OrchestrationStatus,
    OrchestrationState,
)
from .loop import AgentLoop, LoopSpec, LoopResult, Termination
from .intent import IntentClassifier, parse_intent
from .plan import extract_json_object, strip_code_fences, validate_plan, fallback_plan
from .planning import Planner, parse_plan
from .execution import ExecutionEngine
from .research import Researcher, extract_references
from .summary import Summarizer, format_task_summary, format_research_summary
from .workspace import scan_workspace

__all__ = [
    # Orchestrator
    "Orchestrator",

    # Events and errors
    "AgentEvent",
    "OrchestratorError",
    "InvalidStateTransition",
    "PlanValidationError",
    "UnrecoverableStepError",

    # Data types
    "IntentType",
    "IntentResult",
    "PlanStep",
    "PlanRisk",
    "ExecutionPlan",
    "StepStatus",
    "StepError",
    "StepResult",
    "ToolInvocation",
    "FileChanges",
    "SummaryMetrics",
    "SummaryResult",
    "CodeReference",
    "ResearchResult",
    "RepositoryInfo",
    "WorkspaceContext",
    "OrchestrationStatus",
    "OrchestrationState",

    # Stages
    "AgentLoop",
    "LoopSpec",
    "LoopResult",
    "Termination",
    "IntentClassifier",
    "parse_intent",
    "Planner",
    "parse_plan",
    "ExecutionEngine",
    "Researcher",
    "extract_references",
    "Summarizer",
    "format_task_summary",
    "format_research_summary",
    "scan_workspace",

    # Plan utilities
    "extract_json_object",
    "strip_code_fences",
    "validate_plan",
    "fallback_plan",
]
