"""
Shared mutable state for the web server.

The orchestrator is built lazily on first use so that importing the app
(e.g. in tests) never touches AWS. Tests swap in their own instance with
set_orchestrator().
"""

import logging
import threading
from typing import Optional

from config import app_config, model_config
from sessions import SessionStore

logger = logging.getLogger(__name__)

# ============================================================
# Globals
# ============================================================

_working_directory: str = app_config.workspace_root
_orchestrator = None  # agent.Orchestrator, built on first request
_sessions: Optional[SessionStore] = None
_init_lock = threading.Lock()


def get_sessions() -> SessionStore:
    global _sessions
    if _sessions is None:
        _sessions = SessionStore()
    return _sessions


def get_orchestrator():
    """Return the process-wide Orchestrator, creating it on first call."""
    global _orchestrator
    if _orchestrator is not None:
        return _orchestrator
    with _init_lock:
        if _orchestrator is None:
            from agent import Orchestrator
            from bedrock_service import BedrockService

            logger.info(f"Creating orchestrator for workspace {_working_directory} "
                        f"(model {model_config.model_id})")
            _orchestrator = Orchestrator(
                BedrockService(),
                workspace_root=_working_directory,
                sessions=get_sessions(),
            )
    return _orchestrator


def set_orchestrator(orchestrator) -> None:
    global _orchestrator
    _orchestrator = orchestrator
