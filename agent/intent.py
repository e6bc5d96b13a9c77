"""
Intent classification for incoming requests.
One model call decides whether a request is a question, a task, a greeting or unclear.
"""

import logging

from config import model_config

from .loop import AgentLoop, LoopSpec
from .models import IntentResult, IntentType, WorkspaceContext
from .plan import extract_json_object
from .prompts import INTENT_SYSTEM, INTENT_USER

logger = logging.getLogger(__name__)

FALLBACK_INTENT = IntentResult(IntentType.UNCLEAR, 0.5, "parse error")


def parse_intent(text: str) -> IntentResult:
    """Parse a classifier reply. Any malformed reply yields the Unclear fallback."""
    try:
        data = extract_json_object(text)
        intent = IntentType.parse(data.get("intent"))
        confidence = float(data.get("confidence", 0.0))
        if not 0.0 <= confidence <= 1.0:
            raise ValueError(f"confidence out of range: {confidence}")
        return IntentResult(intent, confidence, str(data.get("reasoning", "")))
    except (ValueError, TypeError) as e:
        logger.warning(f"Intent classification reply could not be parsed ({e}), using fallback")
        return FALLBACK_INTENT


class IntentClassifier:
    """Classifies a request with a single tool-less model call."""

    def __init__(self, loop: AgentLoop, model_id: str = None):
        self.loop = loop
        self.model_id = model_id or model_config.model_for("classifier")

    def classify(self, request: str, workspace: WorkspaceContext) -> IntentResult:
        spec = LoopSpec(
            system_prompt=INTENT_SYSTEM,
            max_iterations=1,
            model_id=self.model_id,
            max_tokens=300,
            temperature=0.0,
        )
        names = ", ".join(sorted(workspace.repositories)) or "none"
        user = INTENT_USER.format(
            request=request,
            repository_count=len(workspace.repositories),
            repository_names=names,
        )
        result = parse_intent(self.loop.run(spec, user).outcome)
        logger.info(f"Intent: {result.intent.value} ({result.confidence:.2f}) for: {request[:80]}")
        return result
