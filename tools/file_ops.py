"""File operation tools: read, write, list, find, delete."""

import logging
import os
from typing import Any, Optional

from backend import Backend, LocalBackend
from security import SecurityPolicy, is_text_file, validate_size
from tools._common import ToolResult, blocked, sandbox_path, relative_to_root
from tools.gitignore import rules_for, invalidate_gitignore_cache

logger = logging.getLogger(__name__)

_MAX_FULL_READ_LINES = 2000


def _require_path(path: str, name: str = "path") -> Optional[ToolResult]:
    """Return an error ToolResult if path is empty/whitespace; else None."""
    if not (path or "").strip():
        return ToolResult(success=False, output="", error=f"{name} is required")
    return None


def read_file(path: str, offset: Optional[int] = None, limit: Optional[int] = None,
              backend: Optional[Backend] = None, policy: Optional[SecurityPolicy] = None,
              **kw: Any) -> ToolResult:
    """Read the contents of a text file. Returns line-numbered content."""
    err = _require_path(path)
    if err:
        return err
    b = backend or LocalBackend(policy.workspace_root)
    full_path, refusal = sandbox_path(path, policy)
    if refusal:
        return refusal
    if not is_text_file(full_path):
        return blocked(f"Binary files cannot be read: {path}")
    try:
        if not b.is_file(full_path):
            return ToolResult(success=False, output="", error=f"File not found: {path}")

        size_check = validate_size(b.file_size(full_path), policy)
        if not size_check.ok:
            return blocked(size_check.reason)

        lines = b.read_file(full_path).splitlines()
        total_lines = len(lines)

        start = max((offset or 1) - 1, 0)
        end = start + (limit or _MAX_FULL_READ_LINES)
        selected = lines[start:end]
        numbered = [f"{start + i + 1:6}|{line.rstrip()}" for i, line in enumerate(selected)]
        output = "\n".join(numbered)
        if offset is not None or limit is not None or end < total_lines:
            header = f"[{total_lines} lines total] (showing lines {start + 1}-{start + len(selected)})"
            output = header + "\n" + output
        return ToolResult(success=True, output=output or "(empty file)")
    except Exception as e:
        return ToolResult(success=False, output="", error=str(e))


def write_file(path: str, content: str = "",
               backend: Optional[Backend] = None, policy: Optional[SecurityPolicy] = None,
               **kw: Any) -> ToolResult:
    """Create or overwrite a text file."""
    err = _require_path(path)
    if err:
        return err
    b = backend or LocalBackend(policy.workspace_root)
    full_path, refusal = sandbox_path(path, policy)
    if refusal:
        return refusal
    if not is_text_file(full_path):
        return blocked(f"Binary files cannot be written: {path}")
    content = content or ""
    size_check = validate_size(len(content.encode("utf-8")), policy)
    if not size_check.ok:
        return blocked(size_check.reason)
    try:
        existed = b.file_exists(full_path)
        b.write_file(full_path, content)
        if os.path.basename(full_path) == ".gitignore":
            invalidate_gitignore_cache(policy.workspace_root)
        verb = "Updated" if existed else "Created"
        rel = relative_to_root(full_path, policy)
        logger.info(f"{verb} file {rel} ({len(content)} chars)")
        return ToolResult(success=True, output=f"{verb} {rel} ({len(content.splitlines())} lines)")
    except Exception as e:
        return ToolResult(success=False, output="", error=str(e))


def delete_file(path: str,
                backend: Optional[Backend] = None, policy: Optional[SecurityPolicy] = None,
                **kw: Any) -> ToolResult:
    """Delete a single file inside the workspace."""
    err = _require_path(path)
    if err:
        return err
    b = backend or LocalBackend(policy.workspace_root)
    full_path, refusal = sandbox_path(path, policy)
    if refusal:
        return refusal
    try:
        if not b.is_file(full_path):
            return ToolResult(success=False, output="", error=f"File not found: {path}")
        b.remove_file(full_path)
        if os.path.basename(full_path) == ".gitignore":
            invalidate_gitignore_cache(policy.workspace_root)
        rel = relative_to_root(full_path, policy)
        logger.info(f"Deleted file {rel}")
        return ToolResult(success=True, output=f"Deleted {rel}")
    except Exception as e:
        return ToolResult(success=False, output="", error=str(e))


def list_directory(path: Optional[str] = None,
                   backend: Optional[Backend] = None, policy: Optional[SecurityPolicy] = None,
                   **kw: Any) -> ToolResult:
    """List files and directories at a path, respecting .gitignore."""
    b = backend or LocalBackend(policy.workspace_root)
    full_path, refusal = sandbox_path(path, policy)
    if refusal:
        return refusal
    try:
        if not b.is_dir(full_path):
            return ToolResult(success=False, output="", error=f"Not a directory: {path}")

        rel_target = relative_to_root(full_path, policy)
        rules = rules_for(policy.workspace_root)
        lines = []
        for e in b.list_dir(full_path):
            name = e["name"]
            is_dir = e["type"] == "directory"
            rel = name if rel_target == "." else f"{rel_target}/{name}"
            if rules.is_ignored(rel, is_dir):
                continue
            if is_dir:
                lines.append(f"  {name}/")
            else:
                lines.append(f"  {name} ({_format_size(e.get('size', 0))})")

        output = f"{rel_target}/\n" + "\n".join(lines) if lines else f"{rel_target}/ (empty)"
        return ToolResult(success=True, output=output)
    except Exception as e:
        return ToolResult(success=False, output="", error=str(e))


def find_files(pattern: str, path: Optional[str] = None,
               backend: Optional[Backend] = None, policy: Optional[SecurityPolicy] = None,
               **kw: Any) -> ToolResult:
    """Find files matching a glob pattern, respecting .gitignore."""
    if not (pattern or "").strip():
        return ToolResult(success=False, output="", error="pattern is required")
    if ".." in pattern.replace("\\", "/").split("/"):
        return blocked(f"Path traversal is not allowed: {pattern}")
    b = backend or LocalBackend(policy.workspace_root)
    full_path, refusal = sandbox_path(path, policy)
    if refusal:
        return refusal
    try:
        rel_base = relative_to_root(full_path, policy)
        rules = rules_for(policy.workspace_root)
        matches = []
        for m in b.glob_find(pattern, full_path):
            rel = m if rel_base == "." else f"{rel_base}/{m}"
            if rules.is_ignored(rel):
                continue
            matches.append(rel)

        if not matches:
            return ToolResult(success=True, output="No files found matching pattern.")

        output = f"Found {len(matches)} match(es):\n" + "\n".join(f"  {m}" for m in matches[:200])
        if len(matches) > 200:
            output += f"\n  ... [{len(matches) - 200} more]"
        return ToolResult(success=True, output=output)
    except Exception as e:
        return ToolResult(success=False, output="", error=str(e))


def _format_size(size: int) -> str:
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024:
            return f"{size:.0f}{unit}" if unit == "B" else f"{size:.1f}{unit}"
        size /= 1024
    return f"{size:.1f}TB"
