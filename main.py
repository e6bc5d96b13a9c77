"""
Bedrock Orchestrator - an autonomous coding assistant powered by Amazon Bedrock.
Command-line front end rendered with Rich.
"""

import argparse
import logging
import os
import sys

from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape as rich_escape
from rich.text import Text

from agent import AgentEvent, Orchestrator, OrchestrationStatus
from bedrock_service import BedrockError, BedrockService
from config import app_config, get_credentials_info, get_model_config, model_config

# Log to a file so it doesn't interleave with the rendered output
logging.basicConfig(
    filename="bedrock_orchestrator.log",
    level=getattr(logging, app_config.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

console = Console()

STATUS_STYLES = {
    OrchestrationStatus.COMPLETE: "#3fb950",
    OrchestrationStatus.NEEDS_CLARIFICATION: "#e3b341",
    OrchestrationStatus.ERROR: "#f85149",
    OrchestrationStatus.WORKING: "#58a6ff",
}


def render_event(event: AgentEvent) -> None:
    """Print a one-line progress note for pipeline events."""
    if event.type == "stage_start":
        console.print(Text.from_markup(f"[#8957e5]●[/#8957e5] [#8b949e]{rich_escape(event.content)}…[/#8b949e]"))
    elif event.type == "step_start":
        console.print(Text.from_markup(f"  [#58a6ff]▶[/#58a6ff] {rich_escape(event.content)}"))
    elif event.type == "step_end":
        console.print(Text.from_markup(f"  [#6e7681]→ {rich_escape(event.content)}[/#6e7681]"))
    elif event.type == "tool_call":
        console.print(Text.from_markup(f"    [#6e7681]○ {rich_escape(event.content)}[/#6e7681]"))
    elif event.type == "rate_limited":
        console.print(Text.from_markup(f"  [#e3b341]⚠ {rich_escape(event.content)}[/#e3b341]"))


def run_once(orchestrator: Orchestrator, request: str, session_id=None) -> int:
    state = orchestrator.process(request, session_id=session_id)
    console.print()
    console.print(Markdown(state.final_response or ""))
    style = STATUS_STYLES.get(state.status, "#c9d1d9")
    console.print(Text.from_markup(
        f"\n[{style}]{state.status.value}[/{style}] [#6e7681]session {state.session_id}[/#6e7681]"
    ))
    return 1 if state.status is OrchestrationStatus.ERROR else 0


def repl(orchestrator: Orchestrator) -> int:
    """Read requests until EOF or 'exit'."""
    console.print(Text.from_markup("[#6e7681]Type a request, or 'exit' to quit.[/#6e7681]"))
    while True:
        try:
            request = console.input("[bold #f0f6fc]❯ [/bold #f0f6fc]").strip()
        except (EOFError, KeyboardInterrupt):
            console.print()
            return 0
        if not request:
            continue
        if request.lower() in ("exit", "quit", "/exit", "/quit"):
            return 0
        run_once(orchestrator, request)


# ============================================================
# Entry point
# ============================================================

def main():
    parser = argparse.ArgumentParser(
        description="Bedrock Orchestrator - Autonomous Coding Assistant",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py "Add a health endpoint to the Api project"
  python main.py -w ~/src "Where is the order total calculated?"
  python main.py -w ~/src           Interactive mode
        """,
    )
    parser.add_argument("request", nargs="?", default=None, help="Request to run (omit for interactive mode)")
    parser.add_argument(
        "-w", "--workspace",
        default=None,
        help="Workspace root holding the repositories (default: WORKSPACE_ROOT)",
    )
    parser.add_argument("--session", default=None, help="Session id to use for the request")
    parser.add_argument("--check", action="store_true", help="Test the Bedrock connection and exit")

    args = parser.parse_args()

    workspace_root = os.path.abspath(os.path.expanduser(args.workspace or app_config.workspace_root))
    if not os.path.isdir(workspace_root):
        console.print(f"Error: {workspace_root} is not a directory")
        sys.exit(1)

    try:
        gateway = BedrockService()
    except BedrockError as e:
        console.print(Text.from_markup(f"[bold #f85149]✗ Failed to initialize: {rich_escape(str(e))}[/bold #f85149]"))
        sys.exit(1)

    if args.check:
        console.print(get_credentials_info())
        ok, message = gateway.test_connection()
        console.print(message)
        sys.exit(0 if ok else 1)

    model_name = get_model_config(model_config.model_id).get("name", model_config.model_id)
    console.print(Text.from_markup(
        f"[bold]{rich_escape(app_config.title)}[/bold] [#6e7681]{rich_escape(model_name)} · {rich_escape(workspace_root)}[/#6e7681]"
    ))

    orchestrator = Orchestrator(gateway, workspace_root=workspace_root, on_event=render_event)
    if args.request:
        sys.exit(run_once(orchestrator, args.request, session_id=args.session))
    sys.exit(repl(orchestrator))


if __name__ == "__main__":
    main()
