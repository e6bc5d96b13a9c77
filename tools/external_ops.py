"""Command tools: whitelisted commands, plus dotnet/npm build and test shortcuts for a repository."""

import logging
import subprocess
from typing import Any, Optional

from backend import Backend, LocalBackend
from config import app_config
from security import SecurityPolicy, validate_command
from tools._common import ToolResult, blocked, sandbox_path

logger = logging.getLogger(__name__)

_MAX_OUTPUT_CHARS = 20000


def _truncate_output(output: str) -> str:
    if len(output) <= _MAX_OUTPUT_CHARS:
        return output
    lines_out = output.split("\n")
    if len(lines_out) > 200:
        return "\n".join(lines_out[:100]) + f"\n\n... [{len(lines_out) - 150} lines truncated] ...\n\n" + "\n".join(lines_out[-50:])
    return output[:10000] + "\n\n... [truncated] ...\n\n" + output[-5000:]


def format_process_output(stdout: str, stderr: str, rc: int) -> str:
    parts = []
    if stdout:
        parts.append(stdout)
    if stderr:
        parts.append(f"[stderr]\n{stderr}")
    output = "\n".join(parts) if parts else "(no output)"
    if rc != 0:
        output = f"[exit code: {rc}]\n{output}"
    return _truncate_output(output)


def run_command(command: str, cwd: Optional[str] = None, timeout: Optional[int] = None,
                backend: Optional[Backend] = None, policy: Optional[SecurityPolicy] = None,
                **kw: Any) -> ToolResult:
    """Execute a whitelisted command (no shell) in a workspace directory."""
    verdict = validate_command(command, policy)
    if not verdict.ok:
        return blocked(verdict.reason)
    full_cwd, refusal = sandbox_path(cwd, policy)
    if refusal:
        return refusal
    timeout = int(timeout or app_config.command_timeout)
    try:
        b = backend or LocalBackend(policy.workspace_root)
        stdout, stderr, rc = b.run_command(verdict.value, cwd=full_cwd, timeout=timeout)
        return ToolResult(
            success=rc == 0, output=format_process_output(stdout, stderr, rc),
            error=None if rc == 0 else f"Command exited with code {rc}",
        )
    except FileNotFoundError as e:
        return ToolResult(success=False, output="", error=f"Executable not found: {e.filename or command}")
    except (ValueError, subprocess.SubprocessError) as e:
        return ToolResult(success=False, output="", error=str(e))


def _repository_command(command: str, repository: str, timeout: Optional[int],
                        backend: Optional[Backend], policy: Optional[SecurityPolicy]) -> ToolResult:
    if not (repository or "").strip():
        return ToolResult(success=False, output="", error="repository is required")
    result = run_command(command, cwd=repository, timeout=timeout, backend=backend, policy=policy)
    if result.success:
        logger.info(f"{command} succeeded in {repository}")
    elif not result.blocked:
        logger.warning(f"{command} failed in {repository}: {result.error}")
    return result


def dotnet_build(repository: str, timeout: Optional[int] = None, backend: Optional[Backend] = None,
                 policy: Optional[SecurityPolicy] = None, **kw: Any) -> ToolResult:
    return _repository_command("dotnet build", repository, timeout, backend, policy)


def dotnet_test(repository: str, timeout: Optional[int] = None, backend: Optional[Backend] = None,
                policy: Optional[SecurityPolicy] = None, **kw: Any) -> ToolResult:
    return _repository_command("dotnet test", repository, timeout, backend, policy)


def npm_install(repository: str, timeout: Optional[int] = None, backend: Optional[Backend] = None,
                policy: Optional[SecurityPolicy] = None, **kw: Any) -> ToolResult:
    return _repository_command("npm install", repository, timeout, backend, policy)


def npm_test(repository: str, timeout: Optional[int] = None, backend: Optional[Backend] = None,
             policy: Optional[SecurityPolicy] = None, **kw: Any) -> ToolResult:
    return _repository_command("npm test", repository, timeout, backend, policy)
