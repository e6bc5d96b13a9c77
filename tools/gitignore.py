"""
Ignore rules for a multi-repository workspace.

A path is ignored when one of its directories is build output or tooling
state (SKIP_DIRS), when its name ends in a generated-file suffix, or when a
.gitignore matches it. Both the workspace root's .gitignore (against the
workspace-relative path) and the owning repository's own .gitignore
(against the repository-relative path) apply.
"""

import logging
import os
import threading
from typing import Dict, Optional

import pathspec

logger = logging.getLogger(__name__)

SKIP_DIRS = frozenset({
    ".git", ".vs", ".idea", "bin", "obj", "node_modules", "packages",
    "__pycache__", ".venv", "venv", ".mypy_cache", ".pytest_cache", ".tox",
    "dist", "coverage", "htmlcov", "TestResults",
})

SKIP_SUFFIXES = (
    ".pyc", ".pyo", ".o", ".a", ".class", ".pdb", ".nupkg",
    ".min.js", ".min.css", ".map", ".lock",
)


class IgnoreRules:
    """Ignore matcher for one workspace root. Parsed .gitignore files are cached per directory."""

    def __init__(self, root: str):
        self.root = os.path.abspath(root)
        self._lock = threading.Lock()
        self._specs: Dict[str, Optional[pathspec.PathSpec]] = {}

    def _spec_for(self, repository: str) -> Optional[pathspec.PathSpec]:
        """The .gitignore of a repository ("" for the workspace root), or None."""
        with self._lock:
            if repository in self._specs:
                return self._specs[repository]

        spec = None
        gitignore_path = os.path.join(self.root, repository, ".gitignore")
        try:
            if os.path.isfile(gitignore_path):
                with open(gitignore_path, "r", encoding="utf-8", errors="replace") as f:
                    spec = pathspec.PathSpec.from_lines("gitwildmatch", f)
        except OSError as e:
            logger.warning(f"Could not read {gitignore_path}: {e}")

        with self._lock:
            self._specs[repository] = spec
        return spec

    def is_ignored(self, rel_path: str, is_dir: bool = False) -> bool:
        """rel_path is workspace-relative, '/'-separated."""
        rel = (rel_path or "").replace("\\", "/").strip("/")
        if not rel or rel == ".":
            return False
        parts = rel.split("/")
        dirs = parts if is_dir else parts[:-1]
        if any(p in SKIP_DIRS for p in dirs):
            return True
        if not is_dir and parts[-1].endswith(SKIP_SUFFIXES):
            return True

        suffix = "/" if is_dir else ""
        root_spec = self._spec_for("")
        if root_spec is not None and root_spec.match_file(rel + suffix):
            return True
        if len(parts) > 1:
            repo_spec = self._spec_for(parts[0])
            if repo_spec is not None and repo_spec.match_file("/".join(parts[1:]) + suffix):
                return True
        return False

    def forget(self) -> None:
        with self._lock:
            self._specs.clear()


_rules_lock = threading.Lock()
_rules: Dict[str, IgnoreRules] = {}


def rules_for(root: str) -> IgnoreRules:
    key = os.path.abspath(root)
    with _rules_lock:
        rules = _rules.get(key)
        if rules is None:
            rules = IgnoreRules(key)
            _rules[key] = rules
        return rules


def invalidate_gitignore_cache(root: Optional[str] = None) -> None:
    """Drop parsed .gitignore files (for one workspace root, or all). Call after a .gitignore changes."""
    with _rules_lock:
        targets = list(_rules.values()) if root is None else [
            r for k, r in _rules.items() if k == os.path.abspath(root)
        ]
    for rules in targets:
        rules.forget()
