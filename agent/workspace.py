"""
Workspace scanner: builds the WorkspaceContext handed to every stage.
"""

import logging
import os
from typing import Dict, Iterable, List, Optional

from tools.gitignore import SKIP_DIRS, IgnoreRules, rules_for

from .models import RepositoryInfo, WorkspaceContext

logger = logging.getLogger(__name__)


KEY_FILE_NAMES = {
    "README.md", "README.txt", "package.json", "appsettings.json", "Program.cs",
    "pyproject.toml", "setup.py", "requirements.txt", "Makefile", "Dockerfile",
}
KEY_FILE_EXTENSIONS = {".csproj", ".sln"}
_MAX_KEY_FILES = 25


def scan_repository(name: str, path: str, rules: Optional[IgnoreRules] = None) -> RepositoryInfo:
    info = RepositoryInfo(name=name, path=path)
    rules = rules or rules_for(os.path.dirname(os.path.abspath(path)))
    for dirpath, dirnames, filenames in os.walk(path):
        rel_dir = os.path.relpath(dirpath, path).replace(os.sep, "/")
        prefix = name if rel_dir == "." else f"{name}/{rel_dir}"
        dirnames[:] = sorted(d for d in dirnames if not rules.is_ignored(f"{prefix}/{d}", is_dir=True))
        for fname in sorted(filenames):
            if rules.is_ignored(f"{prefix}/{fname}"):
                continue
            info.total_files += 1
            ext = os.path.splitext(fname)[1].lower() or "(none)"
            info.files_by_extension[ext] = info.files_by_extension.get(ext, 0) + 1
            if len(info.key_files) < _MAX_KEY_FILES and (
                fname in KEY_FILE_NAMES or os.path.splitext(fname)[1] in KEY_FILE_EXTENSIONS
            ):
                rel = fname if rel_dir == "." else f"{rel_dir}/{fname}"
                info.key_files.append(rel)
    return info


def discover_repositories(root: str) -> List[str]:
    """Immediate, non-hidden subdirectories of the workspace root."""
    try:
        entries = sorted(os.listdir(root))
    except OSError as e:
        logger.warning(f"Cannot list workspace root {root}: {e}")
        return []
    return [e for e in entries
            if not e.startswith(".") and e not in SKIP_DIRS and os.path.isdir(os.path.join(root, e))]


def scan_workspace(root: str, repositories: Optional[Iterable[str]] = None) -> WorkspaceContext:
    """Describe every repository under root (configured names, or all subdirectories)."""
    root = os.path.abspath(root)
    names = [r for r in (repositories or []) if r] or discover_repositories(root)
    repos: Dict[str, RepositoryInfo] = {}
    rules = rules_for(root)
    for name in names:
        path = os.path.join(root, name)
        if not os.path.isdir(path):
            logger.warning(f"Configured repository not found: {path}")
            continue
        repos[name] = scan_repository(name, path, rules)
    logger.info(f"Workspace scan: {len(repos)} repositories under {root}")
    return WorkspaceContext(root=root, repositories=repos)
