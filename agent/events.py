"""
Agent event data type.
"""

from dataclasses import dataclass
from typing import Dict, Any, Optional


@dataclass
class AgentEvent:
    """Event emitted during orchestration"""
    type: str  # stage_start, stage_end, tool_call, tool_result, step_start, step_end, error, done
    content: str = ""
    data: Optional[Dict[str, Any]] = None
