"""Git tools: status, diff, log, commit, push. Each runs git with a fixed argv inside one repository."""

import logging
import re
import subprocess
from typing import Any, List, Optional

from backend import Backend, LocalBackend
from config import app_config
from security import SecurityPolicy
from tools._common import ToolResult, blocked, sandbox_path
from tools.external_ops import format_process_output

logger = logging.getLogger(__name__)

_GIT_TIMEOUT = 60

_REF_NAME_RE = re.compile(r"^[A-Za-z0-9._/-]+$")


def _git(repository: str, args: List[str], backend: Optional[Backend],
         policy: SecurityPolicy, timeout: int = _GIT_TIMEOUT) -> ToolResult:
    if not (repository or "").strip():
        return ToolResult(success=False, output="", error="repository is required")
    repo_path, refusal = sandbox_path(repository, policy)
    if refusal:
        return refusal
    b = backend or LocalBackend(policy.workspace_root)
    try:
        if not b.is_dir(repo_path):
            return ToolResult(success=False, output="", error=f"Repository not found: {repository}")
        stdout, stderr, rc = b.run_command(["git"] + args, cwd=repo_path, timeout=timeout)
    except FileNotFoundError:
        return ToolResult(success=False, output="", error="git is not installed")
    except (ValueError, subprocess.SubprocessError) as e:
        return ToolResult(success=False, output="", error=str(e))
    if rc != 0:
        return ToolResult(success=False, output=format_process_output(stdout, stderr, rc),
                          error=f"git {args[0]} failed with code {rc}")
    return ToolResult(success=True, output=stdout.strip() or "(no output)")


def git_status(repository: str, backend: Optional[Backend] = None,
               policy: Optional[SecurityPolicy] = None, **kw: Any) -> ToolResult:
    return _git(repository, ["status", "--short", "--branch"], backend, policy)


def git_diff(repository: str, path: Optional[str] = None, staged: bool = False,
             backend: Optional[Backend] = None, policy: Optional[SecurityPolicy] = None,
             **kw: Any) -> ToolResult:
    args = ["diff"]
    if staged:
        args.append("--cached")
    if path:
        args.extend(["--", path])
    return _git(repository, args, backend, policy)


def git_log(repository: str, max_count: int = 10, backend: Optional[Backend] = None,
            policy: Optional[SecurityPolicy] = None, **kw: Any) -> ToolResult:
    count = max(1, min(int(max_count or 10), 100))
    return _git(repository, ["log", f"--max-count={count}", "--oneline", "--decorate"], backend, policy)


def git_commit(repository: str, message: str, paths: Optional[List[str]] = None,
               backend: Optional[Backend] = None, policy: Optional[SecurityPolicy] = None,
               **kw: Any) -> ToolResult:
    """Stage the given paths (or everything) and commit."""
    if not (message or "").strip():
        return ToolResult(success=False, output="", error="message is required")
    for p in paths or []:
        if ".." in str(p).replace("\\", "/").split("/"):
            return blocked(f"Path traversal is not allowed: {p}")
    staged = _git(repository, ["add", "--"] + list(paths) if paths else ["add", "-A"], backend, policy)
    if not staged.success:
        return staged
    result = _git(repository, ["commit", "-m", message], backend, policy)
    if result.success:
        logger.info(f"Committed in {repository}: {message[:80]}")
    return result


def _bad_ref(value: str, what: str) -> Optional[ToolResult]:
    """Refuse remote/branch values git could read as options or paths outside a ref name."""
    text = str(value or "")
    if text.startswith("-") or not _REF_NAME_RE.match(text) or ".." in text:
        return blocked(f"Invalid {what}: {text!r}")
    return None


def git_push(repository: str, remote: str = "origin", branch: Optional[str] = None,
             backend: Optional[Backend] = None, policy: Optional[SecurityPolicy] = None,
             **kw: Any) -> ToolResult:
    if not app_config.allow_git_push:
        return blocked("Pushing to a remote is disabled (set ALLOW_GIT_PUSH=true to enable)")
    refusal = _bad_ref(remote, "remote")
    if refusal:
        return refusal
    args = ["push", remote]
    if branch:
        refusal = _bad_ref(branch, "branch")
        if refusal:
            return refusal
        args.append(branch)
    # Configured remotes only, never a URL or path
    remotes = _git(repository, ["remote"], backend, policy)
    if not remotes.success:
        return remotes
    if remote not in remotes.output.split():
        return blocked(f"Unknown remote: {remote}")
    return _git(repository, args, backend, policy, timeout=app_config.command_timeout)
