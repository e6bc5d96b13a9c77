"""
Research stage: answer questions about the workspace with read-only tools.
"""

import logging
import re
from typing import List, Optional

from config import app_config, model_config
from tools import READ_ONLY_TOOLS

from .loop import AgentLoop, LoopSpec
from .models import CodeReference, ResearchResult, WorkspaceContext
from .prompts import RESEARCH_DONE, RESEARCH_SYSTEM, RESEARCH_USER

logger = logging.getLogger(__name__)

RESEARCH_CONFIDENCE = 0.85

# repo/path/file.ext:12 or repo/path/file.ext:12-40, optionally wrapped in backticks
_REFERENCE_RE = re.compile(
    r"`?(?P<file>[A-Za-z0-9_.\-]+(?:/[A-Za-z0-9_.\-]+)*\.[A-Za-z0-9]+)"
    r"(?::(?P<start>\d+)(?:-(?P<end>\d+))?)?`?"
)


def extract_references(text: str, known_repositories: Optional[List[str]] = None) -> List[CodeReference]:
    """Pull file references out of an answer, keeping the first occurrence of each."""
    refs: List[CodeReference] = []
    seen = set()
    repos = set(known_repositories or [])
    for m in _REFERENCE_RE.finditer(text or ""):
        path = m.group("file")
        if "/" not in path and m.group("start") is None:
            # Bare words like "README.md" without a line are too ambiguous
            continue
        if path.startswith(("http", "www.")) or ".." in path.split("/"):
            continue
        if repos and "/" in path and path.split("/", 1)[0] not in repos:
            continue
        start = int(m.group("start")) if m.group("start") else None
        end = int(m.group("end")) if m.group("end") else None
        ref = CodeReference(file=path, line_start=start, line_end=end)
        if ref not in seen:
            seen.add(ref)
            refs.append(ref)
    return refs


class Researcher:
    """Runs a read-only tool loop to answer a question."""

    def __init__(self, loop: AgentLoop, model_id: Optional[str] = None,
                 max_iterations: Optional[int] = None):
        self.loop = loop
        self.model_id = model_id or model_config.model_for("research")
        self.max_iterations = max_iterations or app_config.research_max_iterations

    def research(self, question: str, workspace: WorkspaceContext) -> ResearchResult:
        spec = LoopSpec(
            system_prompt=RESEARCH_SYSTEM.format(workspace=workspace.describe(), sentinel=RESEARCH_DONE),
            tools=sorted(READ_ONLY_TOOLS),
            sentinels=[RESEARCH_DONE],
            max_iterations=self.max_iterations,
            model_id=self.model_id,
            use_finish_tool=True,
        )
        result = self.loop.run(spec, RESEARCH_USER.format(question=question))
        references = extract_references(result.outcome, list(workspace.repositories))
        logger.info(f"Research answered in {result.iterations} iteration(s) with {len(references)} reference(s)")
        return ResearchResult(answer=result.outcome, references=references, confidence=RESEARCH_CONFIDENCE)
