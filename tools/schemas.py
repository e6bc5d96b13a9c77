"""Tool schema definitions (Bedrock/Anthropic Messages API), tool groups and dispatch maps."""

import re
from typing import Any, Dict, Iterable, List, Tuple

from tools.file_ops import read_file, write_file, delete_file, list_directory, find_files
from tools.search_ops import search_code, find_definition, directory_tree, workspace_overview
from tools.external_ops import run_command, dotnet_build, dotnet_test, npm_install, npm_test
from tools.git_ops import git_status, git_diff, git_log, git_commit, git_push


FINISH_TOOL_NAME = "finish"

# Structured completion signal offered to the model alongside the real tools.
FINISH_TOOL_DEFINITION: Dict[str, Any] = {
    "name": FINISH_TOOL_NAME,
    "description": "Call this exactly once when the work is done. Put the final result, answer or outcome in 'outcome'. Do not call any other tool in the same response.",
    "input_schema": {
        "type": "object",
        "properties": {
            "outcome": {"type": "string", "description": "Final outcome, answer or summary of what was done"},
        },
        "required": ["outcome"],
    },
}

_PATH_PROP = {"type": "string", "description": "Workspace-relative path, e.g. my-repo/src/app.py"}
_REPO_PROP = {"type": "string", "description": "Repository directory name under the workspace root"}

TOOL_DEFINITIONS: List[Dict[str, Any]] = [
    {
        "name": "read_file",
        "description": "Read a text file. Returns line-numbered content. Use offset/limit for large files.",
        "input_schema": {
            "type": "object",
            "properties": {
                "path": _PATH_PROP,
                "offset": {"type": "integer", "description": "1-based line to start from"},
                "limit": {"type": "integer", "description": "Number of lines to return"},
            },
            "required": ["path"],
        },
    },
    {
        "name": "write_file",
        "description": "Create or overwrite a text file with the full new content.",
        "input_schema": {
            "type": "object",
            "properties": {
                "path": _PATH_PROP,
                "content": {"type": "string", "description": "Complete file content"},
            },
            "required": ["path", "content"],
        },
    },
    {
        "name": "delete_file",
        "description": "Delete a single file.",
        "input_schema": {
            "type": "object",
            "properties": {"path": _PATH_PROP},
            "required": ["path"],
        },
    },
    {
        "name": "list_directory",
        "description": "List the files and subdirectories of a directory.",
        "input_schema": {
            "type": "object",
            "properties": {"path": _PATH_PROP},
        },
    },
    {
        "name": "find_files",
        "description": "Find files by glob pattern (e.g. '**/*.cs') under an optional directory.",
        "input_schema": {
            "type": "object",
            "properties": {
                "pattern": {"type": "string", "description": "Glob pattern"},
                "path": _PATH_PROP,
            },
            "required": ["pattern"],
        },
    },
    {
        "name": "search_code",
        "description": "Search file contents with a regular expression. Returns path:line:text hits.",
        "input_schema": {
            "type": "object",
            "properties": {
                "pattern": {"type": "string", "description": "Regular expression"},
                "path": _PATH_PROP,
                "include": {"type": "string", "description": "Optional filename glob filter, e.g. '*.py'"},
            },
            "required": ["pattern"],
        },
    },
    {
        "name": "find_definition",
        "description": "Locate the declaration of a class, function, method or type by name.",
        "input_schema": {
            "type": "object",
            "properties": {
                "symbol": {"type": "string", "description": "Symbol name"},
                "path": _PATH_PROP,
                "include": {"type": "string", "description": "Optional filename glob filter"},
            },
            "required": ["symbol"],
        },
    },
    {
        "name": "directory_tree",
        "description": "Show a compact recursive tree of a directory, honouring .gitignore.",
        "input_schema": {
            "type": "object",
            "properties": {
                "path": _PATH_PROP,
                "max_depth": {"type": "integer", "description": "Maximum depth (default 3)"},
            },
        },
    },
    {
        "name": "workspace_overview",
        "description": "List the repositories in the workspace with file counts by type and their key files (project files, READMEs, manifests).",
        "input_schema": {"type": "object", "properties": {}},
    },
    {
        "name": "run_command",
        "description": "Run an allowed build or test command (no shell operators). Only whitelisted commands are accepted.",
        "input_schema": {
            "type": "object",
            "properties": {
                "command": {"type": "string", "description": "Command line, e.g. 'npm test'"},
                "cwd": _PATH_PROP,
                "timeout": {"type": "integer", "description": "Timeout in seconds"},
            },
            "required": ["command"],
        },
    },
    {
        "name": "dotnet_build",
        "description": "Run 'dotnet build' in a repository.",
        "input_schema": {"type": "object", "properties": {"repository": _REPO_PROP}, "required": ["repository"]},
    },
    {
        "name": "dotnet_test",
        "description": "Run 'dotnet test' in a repository.",
        "input_schema": {"type": "object", "properties": {"repository": _REPO_PROP}, "required": ["repository"]},
    },
    {
        "name": "npm_install",
        "description": "Run 'npm install' in a repository.",
        "input_schema": {"type": "object", "properties": {"repository": _REPO_PROP}, "required": ["repository"]},
    },
    {
        "name": "npm_test",
        "description": "Run 'npm test' in a repository.",
        "input_schema": {"type": "object", "properties": {"repository": _REPO_PROP}, "required": ["repository"]},
    },
    {
        "name": "git_status",
        "description": "Show the working tree status of a repository.",
        "input_schema": {"type": "object", "properties": {"repository": _REPO_PROP}, "required": ["repository"]},
    },
    {
        "name": "git_diff",
        "description": "Show unstaged (or staged) changes of a repository, optionally for one path.",
        "input_schema": {
            "type": "object",
            "properties": {
                "repository": _REPO_PROP,
                "path": {"type": "string", "description": "Path inside the repository"},
                "staged": {"type": "boolean", "description": "Diff the index instead of the working tree"},
            },
            "required": ["repository"],
        },
    },
    {
        "name": "git_log",
        "description": "Show recent commits of a repository.",
        "input_schema": {
            "type": "object",
            "properties": {
                "repository": _REPO_PROP,
                "max_count": {"type": "integer", "description": "Number of commits (default 10)"},
            },
            "required": ["repository"],
        },
    },
    {
        "name": "git_commit",
        "description": "Stage changes (the given paths, or everything) and commit them with a message.",
        "input_schema": {
            "type": "object",
            "properties": {
                "repository": _REPO_PROP,
                "message": {"type": "string", "description": "Commit message"},
                "paths": {"type": "array", "items": {"type": "string"}, "description": "Paths inside the repository"},
            },
            "required": ["repository", "message"],
        },
    },
    {
        "name": "git_push",
        "description": "Push the current branch to a remote. Disabled unless the operator enabled pushing.",
        "input_schema": {
            "type": "object",
            "properties": {
                "repository": _REPO_PROP,
                "remote": {"type": "string", "description": "Remote name (default origin)"},
                "branch": {"type": "string", "description": "Branch to push"},
            },
            "required": ["repository"],
        },
    },
]

TOOL_IMPLEMENTATIONS = {
    "read_file": read_file,
    "write_file": write_file,
    "delete_file": delete_file,
    "list_directory": list_directory,
    "find_files": find_files,
    "search_code": search_code,
    "find_definition": find_definition,
    "directory_tree": directory_tree,
    "workspace_overview": workspace_overview,
    "run_command": run_command,
    "dotnet_build": dotnet_build,
    "dotnet_test": dotnet_test,
    "npm_install": npm_install,
    "npm_test": npm_test,
    "git_status": git_status,
    "git_diff": git_diff,
    "git_log": git_log,
    "git_commit": git_commit,
    "git_push": git_push,
}

TOOL_GROUPS: Dict[str, List[str]] = {
    "FileOps": ["read_file", "write_file", "delete_file", "list_directory", "find_files"],
    "CodeNav": ["search_code", "find_definition", "directory_tree", "workspace_overview"],
    "Command": ["run_command", "dotnet_build", "dotnet_test", "npm_install", "npm_test"],
    "Git": ["git_status", "git_diff", "git_log", "git_commit", "git_push"],
}

READ_ONLY_TOOLS = frozenset({
    "read_file", "list_directory", "find_files",
    "search_code", "find_definition", "directory_tree", "workspace_overview",
    "git_status", "git_diff", "git_log",
})

# Tools whose "path" input names a file they change
FILE_MUTATING_TOOLS = frozenset({"write_file", "delete_file"})
MUTATING_TOOLS = frozenset(TOOL_IMPLEMENTATIONS) - READ_ONLY_TOOLS

_DEFINITIONS_BY_NAME = {d["name"]: d for d in TOOL_DEFINITIONS}


def _norm(identifier: str) -> str:
    return re.sub(r"[^a-z0-9]", "", identifier.lower())


_GROUP_BY_NORM = {_norm(g): g for g in TOOL_GROUPS}
_TOOL_BY_NORM = {_norm(t): t for t in TOOL_IMPLEMENTATIONS}


def resolve_tool_names(identifiers: Iterable[str]) -> Tuple[List[str], List[str]]:
    """Map plan tool identifiers ('Git', 'FileOps.read_file', 'readFile') to concrete tool names.

    Returns (tool_names, unknown_identifiers); order follows first appearance.
    """
    names: List[str] = []
    unknown: List[str] = []
    for ident in identifiers or []:
        raw = str(ident).strip()
        if not raw:
            continue
        group_part, _, tool_part = raw.partition(".")
        candidates: List[str] = []
        if tool_part:
            tool = _TOOL_BY_NORM.get(_norm(tool_part))
            group = _GROUP_BY_NORM.get(_norm(group_part))
            if tool and group:
                candidates = [tool]
            elif group:
                # Unknown member of a known group: fall back to the whole group
                candidates = list(TOOL_GROUPS[group])
        elif _norm(raw) in _GROUP_BY_NORM:
            candidates = list(TOOL_GROUPS[_GROUP_BY_NORM[_norm(raw)]])
        elif _norm(raw) in _TOOL_BY_NORM:
            candidates = [_TOOL_BY_NORM[_norm(raw)]]

        if not candidates:
            unknown.append(raw)
            continue
        for name in candidates:
            if name not in names:
                names.append(name)
    return names, unknown


def canonical_tool_identifiers(identifiers: Iterable[str]) -> Tuple[List[str], List[str]]:
    """Keep the plan's identifiers that resolve to at least one tool; report the rest."""
    kept: List[str] = []
    dropped: List[str] = []
    for ident in identifiers or []:
        names, unknown = resolve_tool_names([ident])
        if names and not unknown:
            kept.append(str(ident).strip())
        else:
            dropped.append(str(ident))
    return kept, dropped


def definitions_for(tool_names: Iterable[str]) -> List[Dict[str, Any]]:
    """Schema list for the given tool names, in catalog order."""
    wanted = set(tool_names)
    return [d for d in TOOL_DEFINITIONS if d["name"] in wanted]
