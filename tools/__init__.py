"""
Tool definitions and implementations for the orchestrator.
Each tool has an Anthropic-compatible schema and an implementation function.
Tools use a Backend abstraction for file/command operations and a
SecurityPolicy for sandboxing.
"""

from tools._common import ToolResult, RepositoryLocks  # noqa: F401
from tools.gitignore import IgnoreRules, rules_for, invalidate_gitignore_cache  # noqa: F401
from tools.file_ops import (  # noqa: F401
    read_file,
    write_file,
    delete_file,
    list_directory,
    find_files,
)
from tools.search_ops import (  # noqa: F401
    search_code,
    find_definition,
    directory_tree,
    workspace_overview,
)
from tools.external_ops import (  # noqa: F401
    run_command,
    dotnet_build,
    dotnet_test,
    npm_install,
    npm_test,
)
from tools.git_ops import (  # noqa: F401
    git_status,
    git_diff,
    git_log,
    git_commit,
    git_push,
)
from tools.schemas import (  # noqa: F401
    TOOL_DEFINITIONS,
    TOOL_IMPLEMENTATIONS,
    TOOL_GROUPS,
    READ_ONLY_TOOLS,
    MUTATING_TOOLS,
    FILE_MUTATING_TOOLS,
    FINISH_TOOL_NAME,
    FINISH_TOOL_DEFINITION,
    resolve_tool_names,
    canonical_tool_identifiers,
    definitions_for,
)
from tools.dispatch import ToolDispatcher  # noqa: F401
