"""
Bounded agent loop.

Drives one conversation with the model gateway: send, run any requested
tools through the sandboxed dispatcher, feed results back, repeat until the
model signals completion or the iteration budget runs out. Every stage of
the pipeline (classification, planning, execution, research, summary) is a
LoopSpec run through this class.
"""

import logging
import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from bedrock_service import (
    GenerationConfig, GenerationResult, ModelGateway, RateLimitError, parse_retry_after,
)
from config import app_config, model_config
from tools import (
    ToolDispatcher, ToolResult, FILE_MUTATING_TOOLS, FINISH_TOOL_NAME, FINISH_TOOL_DEFINITION, definitions_for,
)

from .events import AgentEvent
from .models import ToolInvocation

logger = logging.getLogger(__name__)

# Fraction of the iteration budget after which the model is told to wrap up
SOFT_LIMIT_RATIO = 0.85
_MAX_TOOL_RESULT_CHARS = 12000
_MAX_TRACE_RESULT_CHARS = 2000


class Termination(str, Enum):
    SENTINEL = "sentinel"
    FINISH_TOOL = "finish_tool"
    IMPLICIT = "implicit"
    FORCED = "forced"


@dataclass
class LoopSpec:
    """What one loop run may do and how it knows it is done."""
    system_prompt: str
    tools: List[str] = field(default_factory=list)
    sentinels: List[str] = field(default_factory=list)
    max_iterations: int = 10
    model_id: Optional[str] = None
    use_finish_tool: bool = False
    max_tokens: int = 4096
    temperature: Optional[float] = None


@dataclass
class LoopResult:
    outcome: str
    tool_trace: List[ToolInvocation] = field(default_factory=list)
    iterations: int = 0
    termination: Termination = Termination.IMPLICIT
    files_modified: List[str] = field(default_factory=list)


def _strip_sentinels(text: str, sentinels: List[str]) -> str:
    for s in sentinels:
        text = text.replace(s, "")
    return text.strip()


def _clip(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit // 2] + f"\n... ({len(text) - limit} chars truncated) ...\n" + text[-limit // 2:]


class AgentLoop:
    """Runs LoopSpecs against a model gateway and a tool dispatcher."""

    def __init__(
        self,
        gateway: ModelGateway,
        dispatcher: Optional[ToolDispatcher] = None,
        sleep: Callable[[float], None] = time.sleep,
        on_event: Optional[Callable[[AgentEvent], None]] = None,
        default_retry_delay: Optional[float] = None,
    ):
        self.gateway = gateway
        self.dispatcher = dispatcher
        self._sleep = sleep
        self._on_event = on_event
        self.default_retry_delay = (
            app_config.rate_limit_default_delay if default_retry_delay is None else default_retry_delay
        )

    def _emit(self, event_type: str, content: str = "", data: Optional[Dict[str, Any]] = None) -> None:
        if self._on_event is not None:
            self._on_event(AgentEvent(type=event_type, content=content, data=data))

    # ------------------------------------------------------------------
    # Gateway call with a single bounded retry on throttling
    # ------------------------------------------------------------------

    def _retry_delay(self, err: RateLimitError) -> float:
        if err.retry_after_seconds is not None:
            return float(err.retry_after_seconds)
        parsed = parse_retry_after(str(err))
        if parsed is not None:
            return parsed
        return float(self.default_retry_delay)

    def _complete(self, spec: LoopSpec, messages: List[Dict[str, Any]],
                  tool_defs: Optional[List[Dict[str, Any]]]) -> GenerationResult:
        config = GenerationConfig(max_tokens=spec.max_tokens, temperature=spec.temperature,
                                  throughput_mode=model_config.throughput_mode)
        kwargs = dict(messages=messages, system_prompt=spec.system_prompt, tools=tool_defs,
                      model_id=spec.model_id, config=config)
        try:
            return self.gateway.complete(**kwargs)
        except RateLimitError as e:
            delay = self._retry_delay(e)
            logger.warning(f"Rate limited by model provider, retrying once in {delay:.1f}s")
            self._emit("rate_limited", f"Rate limited; retrying in {delay:.1f}s", {"delay": delay})
            self._sleep(delay)
            return self.gateway.complete(**kwargs)

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    def run(self, spec: LoopSpec, user_message: str) -> LoopResult:
        max_iterations = max(1, int(spec.max_iterations))
        soft_limit = math.ceil(max_iterations * SOFT_LIMIT_RATIO)

        tool_defs = definitions_for(spec.tools) if spec.tools else []
        if spec.use_finish_tool:
            tool_defs = tool_defs + [FINISH_TOOL_DEFINITION]

        messages: List[Dict[str, Any]] = [{"role": "user", "content": user_message}]
        trace: List[ToolInvocation] = []
        files_modified: List[str] = []
        last_text = ""

        for iteration in range(1, max_iterations + 1):
            response = self._complete(spec, messages, tool_defs or None)
            text = (response.content or "").strip()
            if text:
                last_text = text

            calls = list(response.tool_uses)
            finish_call = next((c for c in calls if c.name == FINISH_TOOL_NAME), None)
            work_calls = [c for c in calls if c.name != FINISH_TOOL_NAME]

            if not calls:
                if any(s in text for s in spec.sentinels):
                    return LoopResult(_strip_sentinels(text, spec.sentinels), trace, iteration,
                                      Termination.SENTINEL, files_modified)
                expects_signal = bool(spec.sentinels) or spec.use_finish_tool
                if iteration == 1 and expects_signal and iteration < max_iterations:
                    # A bare first reply is usually a preamble; ask the model to carry on
                    messages.append({"role": "assistant", "content": text or "(no content)"})
                    messages.append({"role": "user", "content": self._nudge(spec)})
                    continue
                return LoopResult(_strip_sentinels(text, spec.sentinels), trace, iteration,
                                  Termination.IMPLICIT, files_modified)

            assistant_blocks: List[Dict[str, Any]] = []
            if text:
                assistant_blocks.append({"type": "text", "text": text})
            for c in calls:
                assistant_blocks.append({"type": "tool_use", "id": c.id, "name": c.name, "input": c.input})
            messages.append({"role": "assistant", "content": assistant_blocks})

            result_blocks = [self._run_tool(c, spec, trace, files_modified) for c in work_calls]

            if finish_call is not None:
                outcome = str((finish_call.input or {}).get("outcome") or text)
                return LoopResult(_strip_sentinels(outcome, spec.sentinels), trace, iteration,
                                  Termination.FINISH_TOOL, files_modified)

            if iteration >= soft_limit and iteration < max_iterations:
                remaining = max_iterations - iteration
                result_blocks.append({"type": "text", "text": self._wrap_up_note(spec, remaining)})
            messages.append({"role": "user", "content": result_blocks})

        logger.info(f"Agent loop reached its iteration cap ({max_iterations}); using last response")
        return LoopResult(_strip_sentinels(last_text, spec.sentinels), trace, max_iterations,
                          Termination.FORCED, files_modified)

    def _run_tool(self, call, spec: LoopSpec, trace: List[ToolInvocation],
                  files_modified: List[str]) -> Dict[str, Any]:
        self._emit("tool_call", call.name, {"input": call.input})
        started = time.monotonic()
        if self.dispatcher is None:
            result = ToolResult(success=False, output="", error="No tools are available in this context")
        else:
            result = self.dispatcher.execute(call.name, call.input, allowed=spec.tools)
        elapsed = time.monotonic() - started

        text = _clip(result.to_text(), _MAX_TOOL_RESULT_CHARS)
        trace.append(ToolInvocation(
            tool=call.name,
            parameters=dict(call.input or {}),
            result=_clip(text, _MAX_TRACE_RESULT_CHARS),
            success=result.success,
            execution_time=elapsed,
        ))
        if result.success and call.name in FILE_MUTATING_TOOLS:
            path = str((call.input or {}).get("path", "")).strip().replace("\\", "/")
            if path and path not in files_modified:
                files_modified.append(path)
        self._emit("tool_result", call.name, {"success": result.success})

        block = {"type": "tool_result", "tool_use_id": call.id, "content": text}
        if not result.success:
            block["is_error"] = True
        return block

    @staticmethod
    def _nudge(spec: LoopSpec) -> str:
        if spec.use_finish_tool:
            return "Continue working. When you are done, call the finish tool with the outcome."
        return f"Continue working. When you are done, end your reply with {spec.sentinels[0]}."

    @staticmethod
    def _wrap_up_note(spec: LoopSpec, remaining: int) -> str:
        how = "call the finish tool" if spec.use_finish_tool else (
            f"end your reply with {spec.sentinels[0]}" if spec.sentinels else "give your final answer")
        return (f"[Iteration budget: {remaining} turn(s) left. Wrap up now: stop exploring, "
                f"summarize what was done and {how}.]")
