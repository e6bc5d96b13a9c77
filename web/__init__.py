"""
Bedrock Orchestrator - HTTP server.
FastAPI front end for the Orchestrator.

Run:  python -m web [--port 8765] [--dir /path/to/workspace]
"""

import logging

from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI

from config import app_config
from web import api_orchestration

logger = logging.getLogger(__name__)

# ============================================================
# FastAPI application
# ============================================================

app = FastAPI(title=app_config.title)

app.include_router(api_orchestration.router)
