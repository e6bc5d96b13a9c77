"""
Orchestrator: the state machine that routes a request through the pipeline.

    Working -> Complete            (summary produced, or canned reply)
    Working -> NeedsClarification  (low-confidence task/question)
    Working -> Error               (any uncaught exception)

Each stage writes its output into the session's OrchestrationState and its
wall-clock duration into state.metrics.
"""

import logging
import time
import uuid
from contextlib import contextmanager
from typing import Callable, Dict, List, Optional

from bedrock_service import ModelGateway
from config import app_config
from security import SecurityPolicy
from sessions import SessionStore
from tools import ToolDispatcher

from .events import AgentEvent
from .execution import ExecutionEngine
from .intent import IntentClassifier
from .loop import AgentLoop
from .models import ConversationMessage, IntentType, OrchestrationState, OrchestrationStatus, WorkspaceContext
from .planning import Planner
from .prompts import CLARIFICATION_REPLY, GREETING_REPLY, UNCLEAR_REPLY
from .research import Researcher
from .summary import Summarizer, format_research_summary, format_task_summary
from .workspace import scan_workspace

logger = logging.getLogger(__name__)

METRIC_INTENT = "IntentClassificationTime"
METRIC_RESEARCH = "ResearchTime"
METRIC_PLANNING = "PlanningTime"
METRIC_EXECUTION = "ExecutionTime"
METRIC_SUMMARY = "SummaryTime"


class Orchestrator:
    """Runs one request end to end and keeps the resulting session in a SessionStore."""

    def __init__(
        self,
        gateway: ModelGateway,
        workspace_root: Optional[str] = None,
        dispatcher: Optional[ToolDispatcher] = None,
        sessions: Optional[SessionStore] = None,
        workspace: Optional[WorkspaceContext] = None,
        sleep: Callable[[float], None] = time.sleep,
        on_event: Optional[Callable[[AgentEvent], None]] = None,
        clarification_threshold: Optional[float] = None,
    ):
        self.workspace_root = workspace_root or app_config.workspace_root
        self.policy = SecurityPolicy.from_config(self.workspace_root)
        self.dispatcher = dispatcher or ToolDispatcher(self.policy)
        self.sessions = sessions if sessions is not None else SessionStore()
        self._fixed_workspace = workspace
        self._on_event = on_event
        self.clarification_threshold = (
            app_config.clarification_threshold if clarification_threshold is None else clarification_threshold
        )

        self.loop = AgentLoop(gateway, self.dispatcher, sleep=sleep, on_event=on_event)
        self.classifier = IntentClassifier(self.loop)
        self.planner = Planner(self.loop)
        self.executor = ExecutionEngine(self.loop, on_event=on_event)
        self.researcher = Researcher(self.loop)
        self.summarizer = Summarizer(self.loop)

        self._routes: Dict[IntentType, Callable[[OrchestrationState, WorkspaceContext], None]] = {
            IntentType.TASK: self._handle_task,
            IntentType.QUESTION: self._handle_question,
            IntentType.GREETING: self._handle_greeting,
            IntentType.UNCLEAR: self._handle_unclear,
        }

    def _emit(self, event_type: str, content: str = "", data=None) -> None:
        if self._on_event is not None:
            self._on_event(AgentEvent(type=event_type, content=content, data=data))

    @contextmanager
    def _timed(self, state: OrchestrationState, metric: str):
        self._emit("stage_start", metric)
        started = time.monotonic()
        try:
            yield
        finally:
            state.metrics[metric] = time.monotonic() - started
            self._emit("stage_end", metric, {"seconds": state.metrics[metric]})

    def workspace(self) -> WorkspaceContext:
        if self._fixed_workspace is not None:
            return self._fixed_workspace
        return scan_workspace(self.workspace_root, app_config.repositories)

    def get_state(self, session_id: str) -> Optional[OrchestrationState]:
        return self.sessions.get(session_id)

    def get_conversation(self, session_id: str) -> Optional[List[ConversationMessage]]:
        """Messages exchanged under session_id so far, oldest first."""
        state = self.sessions.get(session_id)
        return None if state is None else list(state.conversation)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def process(self, user_input: str, session_id: Optional[str] = None) -> OrchestrationState:
        state = OrchestrationState(session_id=session_id or str(uuid.uuid4()), original_input=user_input)
        previous = self.sessions.get(state.session_id)
        if previous is not None:
            state.conversation.extend(previous.conversation)
        state.record_message("user", user_input)
        self.sessions.put(state)
        logger.info(f"Session {state.session_id}: processing request "
                    f"(turn {len(state.conversation) // 2 + 1}): {user_input[:80]}")

        try:
            workspace = self.workspace()
            with self._timed(state, METRIC_INTENT):
                state.intent = self.classifier.classify(user_input, workspace)

            intent = state.intent
            if intent.intent in (IntentType.TASK, IntentType.QUESTION) \
                    and intent.confidence < self.clarification_threshold:
                logger.info(f"Session {state.session_id}: {intent.intent.value} intent below "
                            f"confidence threshold ({intent.confidence:.2f}); asking for clarification")
                state.finalize(OrchestrationStatus.NEEDS_CLARIFICATION, CLARIFICATION_REPLY)
            else:
                self._routes[intent.intent](state, workspace)
        except Exception as e:
            logger.exception(f"Session {state.session_id}: orchestration failed")
            state.finalize(OrchestrationStatus.ERROR, f"Error: {e}")

        self.sessions.put(state)
        self._emit("done", state.status.value, {"session_id": state.session_id})
        logger.info(f"Session {state.session_id}: finished with status {state.status.value}")
        return state

    # ------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------

    def _handle_task(self, state: OrchestrationState, workspace: WorkspaceContext) -> None:
        with self._timed(state, METRIC_PLANNING):
            state.plan = self.planner.create_plan(state.original_input, workspace)
        with self._timed(state, METRIC_EXECUTION):
            state.step_results = self.executor.execute(state.plan, workspace)
        with self._timed(state, METRIC_SUMMARY):
            state.summary = self.summarizer.summarize_task(
                state.plan, state.step_results, state.metrics[METRIC_EXECUTION]
            )
        state.finalize(OrchestrationStatus.COMPLETE, format_task_summary(state.summary))

    def _handle_question(self, state: OrchestrationState, workspace: WorkspaceContext) -> None:
        with self._timed(state, METRIC_RESEARCH):
            state.research_result = self.researcher.research(state.original_input, workspace)
        with self._timed(state, METRIC_SUMMARY):
            state.summary = self.summarizer.summarize_research(state.original_input, state.research_result)
        state.finalize(OrchestrationStatus.COMPLETE,
                       format_research_summary(state.summary, state.research_result))

    def _handle_greeting(self, state: OrchestrationState, workspace: WorkspaceContext) -> None:
        state.finalize(OrchestrationStatus.COMPLETE, GREETING_REPLY)

    def _handle_unclear(self, state: OrchestrationState, workspace: WorkspaceContext) -> None:
        state.finalize(OrchestrationStatus.COMPLETE, UNCLEAR_REPLY)
