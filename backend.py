"""
Backend abstraction for file and command operations.
The orchestrator only ships a local filesystem backend; tools talk to the
Backend interface so a different transport can be dropped in later.
"""

import logging
import os
import pathlib
import shlex
import signal
import subprocess
from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional, Sequence, Tuple, Union

logger = logging.getLogger(__name__)


class Backend(ABC):
    """Abstract backend for file system and command operations."""

    @property
    @abstractmethod
    def working_directory(self) -> str:
        """Return the working directory path."""

    @abstractmethod
    def list_dir(self, path: str) -> List[Dict[str, Any]]:
        """List entries in a directory. Returns list of {name, type, ext?, size?}."""

    @abstractmethod
    def read_file(self, path: str) -> str:
        """Read file content as text."""

    @abstractmethod
    def write_file(self, path: str, content: str) -> None:
        """Write content to a file (create dirs as needed)."""

    @abstractmethod
    def file_exists(self, path: str) -> bool:
        """Check if a file exists."""

    @abstractmethod
    def is_dir(self, path: str) -> bool:
        """Check if a path is a directory."""

    @abstractmethod
    def is_file(self, path: str) -> bool:
        """Check if a path is a file."""

    @abstractmethod
    def file_size(self, path: str) -> int:
        """Get file size in bytes."""

    @abstractmethod
    def remove_file(self, path: str) -> None:
        """Delete a file."""

    @abstractmethod
    def run_command(self, command: Union[str, Sequence[str]], cwd: str, timeout: int = 30) -> Tuple[str, str, int]:
        """Run a command without a shell. Returns (stdout, stderr, returncode)."""

    @abstractmethod
    def search(self, pattern: str, path: str, include: Optional[str] = None,
               cwd: str = ".") -> str:
        """Search for a regex pattern. Returns matching lines."""

    @abstractmethod
    def glob_find(self, pattern: str, cwd: str) -> List[str]:
        """Find files matching a glob pattern. Returns relative paths."""

    def resolve_path(self, path: str) -> str:
        """Resolve a path relative to the working directory."""
        if os.path.isabs(path):
            return path
        return os.path.normpath(os.path.join(self.working_directory, path))

    def _ensure_under_working(self, resolved: str) -> None:
        """Raise ValueError if resolved path escapes the working directory. Overridden by backends."""
        pass


# ============================================================
# Local Backend
# ============================================================

# Cache ripgrep availability
_HAS_RIPGREP: Optional[bool] = None


def _has_ripgrep() -> bool:
    global _HAS_RIPGREP
    if _HAS_RIPGREP is None:
        try:
            subprocess.run(["rg", "--version"], capture_output=True, check=True)
            _HAS_RIPGREP = True
        except (subprocess.CalledProcessError, FileNotFoundError):
            _HAS_RIPGREP = False
    return _HAS_RIPGREP


def _to_argv(command: Union[str, Sequence[str]]) -> List[str]:
    if isinstance(command, str):
        return shlex.split(command)
    return list(command)


class LocalBackend(Backend):
    """Backend that operates on the local filesystem."""

    def __init__(self, working_directory: str = "."):
        self._working_directory = os.path.abspath(working_directory)

    @property
    def working_directory(self) -> str:
        return self._working_directory

    def _ensure_under_working(self, resolved: str) -> None:
        # Real paths on both sides so symlinks cannot lead outside
        real = os.path.realpath(resolved)
        wd = os.path.realpath(self._working_directory)
        if real != wd and not real.startswith(wd.rstrip(os.sep) + os.sep):
            raise ValueError(f"Path escapes working directory: {resolved!r}")

    def list_dir(self, path: str) -> List[Dict[str, Any]]:
        full = self.resolve_path(path) if path else self._working_directory
        self._ensure_under_working(full)
        entries = []
        for name in sorted(os.listdir(full)):
            child = os.path.join(full, name)
            if os.path.isdir(child):
                entries.append({"name": name, "type": "directory"})
            elif os.path.isfile(child):
                _, ext = os.path.splitext(name)
                entries.append({
                    "name": name, "type": "file",
                    "ext": ext.lstrip("."),
                    "size": os.path.getsize(child),
                })
        return entries

    def read_file(self, path: str) -> str:
        full = self.resolve_path(path)
        self._ensure_under_working(full)
        with open(full, "r", encoding="utf-8", errors="replace") as f:
            return f.read()

    def write_file(self, path: str, content: str) -> None:
        full = self.resolve_path(path)
        self._ensure_under_working(full)
        os.makedirs(os.path.dirname(full), exist_ok=True)
        with open(full, "w", encoding="utf-8") as f:
            f.write(content)

    def file_exists(self, path: str) -> bool:
        full = self.resolve_path(path)
        self._ensure_under_working(full)
        return os.path.exists(full)

    def is_dir(self, path: str) -> bool:
        full = self.resolve_path(path)
        self._ensure_under_working(full)
        return os.path.isdir(full)

    def is_file(self, path: str) -> bool:
        full = self.resolve_path(path)
        self._ensure_under_working(full)
        return os.path.isfile(full)

    def file_size(self, path: str) -> int:
        full = self.resolve_path(path)
        self._ensure_under_working(full)
        return os.path.getsize(full)

    def remove_file(self, path: str) -> None:
        full = self.resolve_path(path)
        self._ensure_under_working(full)
        os.remove(full)

    def run_command(self, command: Union[str, Sequence[str]], cwd: str, timeout: int = 30) -> Tuple[str, str, int]:
        argv = _to_argv(command)
        if not argv:
            raise ValueError("Empty command")
        full_cwd = self.resolve_path(cwd) if cwd != "." else self._working_directory
        self._ensure_under_working(full_cwd)
        proc = subprocess.Popen(
            argv, shell=False, cwd=full_cwd,
            stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True,
            start_new_session=True,  # own process group for clean kill
        )
        try:
            stdout, stderr = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            self._kill_process(proc)
            stdout, stderr = proc.communicate(timeout=5)
            return stdout or "", f"Command timed out after {timeout}s\n{stderr or ''}", -1
        return stdout or "", stderr or "", proc.returncode

    @staticmethod
    def _kill_process(proc: subprocess.Popen) -> None:
        try:
            os.killpg(os.getpgid(proc.pid), signal.SIGKILL)
        except (ProcessLookupError, OSError):
            proc.kill()

    def search(self, pattern: str, path: str, include: Optional[str] = None,
               cwd: str = ".") -> str:
        search_path = self.resolve_path(path) if path else self._working_directory
        self._ensure_under_working(search_path)
        full_cwd = self.resolve_path(cwd) if cwd != "." else self._working_directory

        if _has_ripgrep():
            cmd = ["rg", "--line-number", "--no-heading", "--color=never", "-m", "100"]
            if include:
                cmd.extend(["--glob", include])
            cmd.extend(["-e", pattern, search_path])
        else:
            cmd = ["grep", "-rnE", "--color=never"]
            if include:
                cmd.extend(["--include", include])
            cmd.extend(["-e", pattern, search_path])

        result = subprocess.run(cmd, capture_output=True, text=True, timeout=15, cwd=full_cwd)
        return result.stdout.strip() if result.stdout else ""

    def glob_find(self, pattern: str, cwd: str) -> List[str]:
        base = pathlib.Path(self.resolve_path(cwd) if cwd != "." else self._working_directory)
        self._ensure_under_working(str(base))
        skip = {"__pycache__", "node_modules", ".git", "venv", ".venv", "bin", "obj"}
        matches = []
        for p in sorted(base.glob(pattern)):
            rel = str(p.relative_to(base))
            parts = set(pathlib.PurePath(rel).parts)
            if not parts & skip:
                matches.append(rel)
        return matches
