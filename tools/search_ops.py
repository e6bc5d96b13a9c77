"""Code navigation tools: search, find_definition, directory_tree, workspace_overview."""

import os
import re
import logging
from typing import Any, Dict, List, Optional

from backend import Backend, LocalBackend
from config import app_config
from security import SecurityPolicy
from tools._common import ToolResult, sandbox_path, relative_to_root
from tools.gitignore import IgnoreRules, rules_for

logger = logging.getLogger(__name__)

_MAX_MATCH_LINES = 100


def _relativize(output: str, policy: SecurityPolicy) -> str:
    """Strip the workspace root prefix from search hits so paths read repo/relative/path."""
    root = os.path.abspath(policy.workspace_root).rstrip(os.sep) + os.sep
    return output.replace(root, "")


def search_code(pattern: str, path: Optional[str] = None, include: Optional[str] = None,
                backend: Optional[Backend] = None, policy: Optional[SecurityPolicy] = None,
                **kw: Any) -> ToolResult:
    """Search for a regex pattern using ripgrep (or grep fallback)."""
    if not (pattern or "").strip():
        return ToolResult(success=False, output="", error="pattern is required")
    b = backend or LocalBackend(policy.workspace_root)
    full_path, refusal = sandbox_path(path, policy)
    if refusal:
        return refusal
    try:
        result = b.search(pattern, full_path, include=include)
        if not result:
            return ToolResult(success=True, output="No matches found.")

        lines = _relativize(result, policy).split("\n")
        output = "\n".join(lines[:_MAX_MATCH_LINES])
        if len(lines) > _MAX_MATCH_LINES:
            output += f"\n\n... [{len(lines) - _MAX_MATCH_LINES} more matches truncated]"
        return ToolResult(success=True, output=output)
    except Exception as e:
        if "timed out" in str(e).lower():
            return ToolResult(success=False, output="", error="Search timed out")
        return ToolResult(success=False, output="", error=str(e))


def find_definition(symbol: str, path: Optional[str] = None, include: Optional[str] = None,
                    backend: Optional[Backend] = None, policy: Optional[SecurityPolicy] = None,
                    **kw: Any) -> ToolResult:
    """Locate where a class, function, method or type is declared."""
    sym = re.escape((symbol or "").strip())
    if not sym:
        return ToolResult(success=False, output="", error="symbol is required")
    b = backend or LocalBackend(policy.workspace_root)
    full_path, refusal = sandbox_path(path, policy)
    if refusal:
        return refusal

    definition_patterns = [
        rf"(class|interface|struct|enum|record|trait|type)\s+{sym}\b",
        rf"(def|function)\s+{sym}\s*\(",
        rf"(public|private|protected|internal|static)[^=;(]*\s{sym}\s*\(",
        rf"(const|let|var)\s+{sym}\s*=",
    ]
    try:
        hits: List[str] = []
        seen = set()
        for pat in definition_patterns:
            res = b.search(pat, full_path, include=include)
            for line in _relativize(res, policy).split("\n") if res else []:
                if line.strip() and line not in seen:
                    seen.add(line)
                    hits.append(line)
        if not hits:
            return ToolResult(success=True, output=f"No definition found for {symbol}.")
        return ToolResult(success=True, output="Definitions:\n" + "\n".join(hits[:120]))
    except Exception as e:
        if "timed out" in str(e).lower():
            return ToolResult(success=False, output="", error="Symbol search timed out")
        return ToolResult(success=False, output="", error=str(e))


def _walk_tree(
    b: Backend,
    abs_dir: str,
    rel: str,
    rules: IgnoreRules,
    max_depth: int,
    depth: int = 0,
) -> List[Dict[str, Any]]:
    """Recursively walk the directory tree via Backend, collecting entries."""
    try:
        entries = b.list_dir(abs_dir)
    except (OSError, ValueError):
        return []

    dirs_out: List[Dict[str, Any]] = []
    files_out: List[Dict[str, Any]] = []

    for e in entries:
        name = e.get("name", "")
        if not name or name.startswith("."):
            continue
        is_dir = e.get("type") == "directory"
        child_rel = f"{rel}/{name}" if rel and rel != "." else name
        if rules.is_ignored(child_rel, is_dir):
            continue

        if is_dir:
            if depth >= max_depth:
                dirs_out.append({"name": name, "type": "directory", "collapsed": True})
            else:
                children = _walk_tree(b, os.path.join(abs_dir, name), child_rel, rules, max_depth, depth + 1)
                dirs_out.append({"name": name, "type": "directory", "children": children})
        else:
            files_out.append({"name": name, "type": "file"})

    return dirs_out + files_out


def _render_tree(entries: List[Dict[str, Any]], indent: int = 0, lines: Optional[List[str]] = None,
                 char_budget: int = 8000) -> List[str]:
    """Render tree entries into compact indented text lines, respecting a char budget."""
    if lines is None:
        lines = []
    prefix = "  " * indent
    for e in entries:
        if sum(len(l) + 1 for l in lines) > char_budget:
            lines.append(f"{prefix}... (truncated)")
            break
        if e["type"] == "directory":
            suffix = " ..." if e.get("collapsed") else ""
            lines.append(f"{prefix}{e['name']}/{suffix}")
            _render_tree(e.get("children", []), indent + 1, lines, char_budget)
        else:
            lines.append(f"{prefix}{e['name']}")
    return lines


def directory_tree(path: Optional[str] = None, max_depth: int = 3,
                   backend: Optional[Backend] = None, policy: Optional[SecurityPolicy] = None,
                   **kw: Any) -> ToolResult:
    """Build a compact recursive tree, respecting .gitignore."""
    b = backend or LocalBackend(policy.workspace_root)
    full_path, refusal = sandbox_path(path, policy)
    if refusal:
        return refusal
    try:
        if not b.is_dir(full_path):
            return ToolResult(success=False, output="", error=f"Not a directory: {path}")
        rel = relative_to_root(full_path, policy)
        rules = rules_for(policy.workspace_root)
        entries = _walk_tree(b, full_path, rel, rules, max(int(max_depth), 0))
        lines = _render_tree(entries)
        return ToolResult(success=True, output=f"{rel}/\n" + "\n".join(lines))
    except Exception as e:
        return ToolResult(success=False, output="", error=str(e))


def workspace_overview(backend: Optional[Backend] = None, policy: Optional[SecurityPolicy] = None,
                       **kw: Any) -> ToolResult:
    """Repositories under the workspace root with file counts and key files."""
    # Imported here: the agent package depends on tools
    from agent.workspace import scan_workspace

    try:
        context = scan_workspace(policy.workspace_root, app_config.repositories)
    except OSError as e:
        return ToolResult(success=False, output="", error=str(e))
    return ToolResult(success=True, output=context.describe())
