"""
Orchestration routes: submit a request, look up a session or its conversation, health check.
"""

import asyncio
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

import web.state as _state
from config import app_config

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/api/health")
async def api_health():
    return {"ok": True, "title": app_config.title, "workspace": _state._working_directory}


@router.post("/api/orchestrate")
async def api_orchestrate(request: Request):
    """Run one request through the pipeline. Body: {"input": str, "session_id"?: str}."""
    try:
        body = await request.json()
    except ValueError:
        return JSONResponse({"ok": False, "error": "Request body must be JSON"}, status_code=400)
    if not isinstance(body, dict):
        return JSONResponse({"ok": False, "error": "Request body must be a JSON object"}, status_code=400)

    user_input = (body.get("input") or "").strip()
    if not user_input:
        return JSONResponse({"ok": False, "error": "input is required"}, status_code=400)
    session_id = body.get("session_id") or None

    try:
        orchestrator = _state.get_orchestrator()
    except Exception as e:
        logger.error(f"Orchestrator unavailable: {e}")
        return JSONResponse({"ok": False, "error": str(e)}, status_code=503)

    # process() is blocking (model calls, subprocesses); keep it off the event loop
    state = await asyncio.to_thread(orchestrator.process, user_input, session_id)
    return {
        "ok": True,
        "session_id": state.session_id,
        "status": state.status.value,
        "response": state.final_response,
        "metrics": dict(state.metrics),
    }


@router.get("/api/sessions/{session_id}")
async def api_get_session(session_id: str):
    try:
        orchestrator = _state.get_orchestrator()
    except Exception as e:
        logger.error(f"Orchestrator unavailable: {e}")
        return JSONResponse({"ok": False, "error": str(e)}, status_code=503)

    state = orchestrator.get_state(session_id)
    if state is None:
        return JSONResponse({"ok": False, "error": f"Session not found: {session_id}"}, status_code=404)
    return {"ok": True, "session": state.to_dict()}


@router.get("/api/sessions/{session_id}/conversation")
async def api_get_conversation(session_id: str):
    """Messages exchanged under a session, oldest first."""
    try:
        orchestrator = _state.get_orchestrator()
    except Exception as e:
        logger.error(f"Orchestrator unavailable: {e}")
        return JSONResponse({"ok": False, "error": str(e)}, status_code=503)

    messages = orchestrator.get_conversation(session_id)
    if messages is None:
        return JSONResponse({"ok": False, "error": f"Session not found: {session_id}"}, status_code=404)
    return {
        "ok": True,
        "session_id": session_id,
        "messages": [{"role": m.role, "content": m.content, "timestamp": m.timestamp} for m in messages],
    }
