"""
Security sandbox for workspace access.

Every path, file size and shell command the agent touches is checked here
before any tool runs. The validators have no side effects: they never write,
never raise and never log (path checks only read symlink targets), so the
same input always gets the same verdict. Callers (the tool dispatcher) decide
how to report refusals.
"""

import os
import re
from dataclasses import dataclass, field
from typing import List, Optional

from config import app_config, security_config


BINARY_EXTENSIONS = frozenset({
    ".exe", ".dll", ".so", ".dylib", ".bin", ".dat",
    ".zip", ".tar", ".gz", ".7z", ".rar",
    ".jpg", ".jpeg", ".png", ".gif", ".bmp", ".ico",
    ".mp3", ".mp4", ".avi", ".mov", ".wav",
})

# Checked before the whitelist, so a whitelisted prefix cannot smuggle these in.
DANGEROUS_COMMAND_PATTERNS = [
    re.compile(p, re.IGNORECASE) for p in (
        r"\brm\s+-rf",
        r"\bdel\s+/f\b",
        r"format\b",
        r"\bmkfs\b",
        r"\bdd\s+if=",
        r"\bcurl\b",
        r"\bwget\b",
        r"\bnc\s+",
        r"\bnetcat\b",
        r"sudo",
        r"\bchmod\s+\+x\b",
        r"&&",
        r"\|\|",
        r";",
        r"\|",
    )
]


@dataclass
class SecurityPolicy:
    """Sandbox policy for one workspace."""
    workspace_root: str
    allowed_commands: List[str] = field(default_factory=list)
    max_file_bytes: int = 10 * 1024 * 1024
    denied_directories: List[str] = field(default_factory=list)

    @classmethod
    def from_config(cls, workspace_root: Optional[str] = None) -> "SecurityPolicy":
        return cls(
            workspace_root=os.path.abspath(workspace_root or app_config.workspace_root),
            allowed_commands=list(security_config.allowed_commands),
            max_file_bytes=security_config.max_file_bytes,
            denied_directories=list(security_config.denied_directories),
        )


@dataclass
class ValidationResult:
    """Verdict of a sandbox check. value carries the canonical form on success."""
    ok: bool
    value: str = ""
    reason: str = ""


def _refuse(reason: str) -> ValidationResult:
    return ValidationResult(ok=False, reason=reason)


def _is_within(path: str, directory: str) -> bool:
    directory = os.path.normpath(directory)
    if path == directory:
        return True
    try:
        return os.path.commonpath([path, directory]) == directory
    except ValueError:
        # Different drives on Windows
        return False


def validate_path(path: str, policy: SecurityPolicy) -> ValidationResult:
    """Resolve path against the workspace root and confine it there.

    Any '..' segment is refused outright, even when the resolved path would
    still land inside the workspace. Containment is checked on the real path,
    so a symlink inside the workspace cannot point the caller outside it.
    """
    if path is None or not str(path).strip():
        return _refuse("Path is empty")
    raw = str(path).strip()

    segments = re.split(r"[\\/]", raw)
    if ".." in segments:
        return _refuse(f"Path traversal is not allowed: {raw}")

    root = os.path.normpath(os.path.abspath(policy.workspace_root))
    candidate = raw if os.path.isabs(raw) else os.path.join(root, raw)
    resolved = os.path.normpath(os.path.abspath(candidate))

    real_root = os.path.realpath(root)
    real = os.path.realpath(resolved)
    if not _is_within(resolved, root) or not _is_within(real, real_root):
        return _refuse(f"Path is outside the workspace: {raw}")

    for denied in policy.denied_directories:
        denied_norm = os.path.normpath(denied)
        # The workspace itself may legitimately live under a denied prefix (e.g. /root);
        # only refuse when the denied directory is not an ancestor of the workspace.
        if _is_within(root, denied_norm) or _is_within(real_root, denied_norm):
            continue
        if _is_within(resolved, denied_norm) or _is_within(real, denied_norm):
            return _refuse(f"Access to system directory is denied: {denied_norm}")

    return ValidationResult(ok=True, value=resolved)


def validate_size(num_bytes: int, policy: SecurityPolicy) -> ValidationResult:
    """Refuse content larger than the configured ceiling. Same rule for reads and writes."""
    if num_bytes > policy.max_file_bytes:
        limit_mb = policy.max_file_bytes / (1024 * 1024)
        return _refuse(f"File size {num_bytes} bytes exceeds limit of {limit_mb:g} MB")
    return ValidationResult(ok=True, value=str(num_bytes))


def is_text_file(path: str) -> bool:
    """False for known binary or media extensions (case-insensitive)."""
    _, ext = os.path.splitext(path or "")
    return ext.lower() not in BINARY_EXTENSIONS


def validate_command(command: str, policy: SecurityPolicy) -> ValidationResult:
    """Dangerous patterns first, then the whitelist (exact or 'entry ' prefix)."""
    if command is None or not command.strip():
        return _refuse("Command is empty")
    cmd = command.strip()

    for pattern in DANGEROUS_COMMAND_PATTERNS:
        if pattern.search(cmd):
            return _refuse(f"Command contains a blocked pattern ({pattern.pattern}): {cmd}")

    lowered = cmd.lower()
    for allowed in policy.allowed_commands:
        entry = allowed.strip().lower()
        if not entry:
            continue
        if lowered == entry or lowered.startswith(entry + " "):
            return ValidationResult(ok=True, value=cmd)

    return _refuse(f"Command is not in the allowed list: {cmd}")
