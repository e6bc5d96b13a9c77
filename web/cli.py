"""
CLI entry point for the Bedrock Orchestrator web server.

Run:  python -m web [--port 8765] [--dir /path/to/workspace]
"""

import argparse
import logging
import os

import web.state as _state
from config import app_config


def main():
    import uvicorn

    parser = argparse.ArgumentParser(description="Bedrock Orchestrator - HTTP server")
    parser.add_argument("--port", type=int, default=8765, help="Server port (default: 8765)")
    parser.add_argument("--host", default="127.0.0.1", help="Server host (default: 127.0.0.1)")
    parser.add_argument("--dir", default=None, help="Workspace root holding the repositories")
    args = parser.parse_args()

    if args.dir:
        _state._working_directory = os.path.abspath(os.path.expanduser(args.dir))

    if not os.path.isdir(_state._working_directory):
        print(f"\n  Error: workspace not found: {_state._working_directory}")
        print(f"  Hint: pass --dir or set WORKSPACE_ROOT\n")
        raise SystemExit(1)

    print(f"\n  Bedrock Orchestrator")
    print(f"  http://{args.host}:{args.port}")
    print(f"  Workspace: {_state._working_directory}\n")

    # uvicorn's log_level only affects its own loggers
    level = getattr(logging, app_config.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    from web import app
    uvicorn.run(app, host=args.host, port=args.port, log_level="warning")
