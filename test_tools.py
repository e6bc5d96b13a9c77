"""
Tests for the workspace tools and the tool dispatcher.
"""

import shutil
import subprocess
import threading

import pytest

from backend import LocalBackend
from config import app_config
from security import SecurityPolicy
from tools import (
    RepositoryLocks, ToolDispatcher, resolve_tool_names, canonical_tool_identifiers,
    definitions_for, READ_ONLY_TOOLS, TOOL_DEFINITIONS, TOOL_IMPLEMENTATIONS, FINISH_TOOL_DEFINITION,
)


class RecordingBackend(LocalBackend):
    """Local backend that records commands instead of running them."""

    def __init__(self, working_directory):
        super().__init__(working_directory)
        self.commands = []

    def run_command(self, command, cwd, timeout=30):
        self.commands.append((command, cwd))
        return "ok", "", 0


# ------------------------------------------------------------------
# File operations through the dispatcher
# ------------------------------------------------------------------

def test_read_file_returns_numbered_lines(dispatcher):
    result = dispatcher.execute("read_file", {"path": "Api/Program.cs"})
    assert result.success
    assert "1|var builder" in result.output


def test_read_missing_file(dispatcher):
    result = dispatcher.execute("read_file", {"path": "Api/Missing.cs"})
    assert not result.success
    assert not result.blocked
    assert "not found" in result.error


def test_read_binary_file_is_blocked(dispatcher, workspace_root):
    (workspace_root / "Api" / "logo.png").write_bytes(b"\x89PNG")
    result = dispatcher.execute("read_file", {"path": "Api/logo.png"})
    assert result.blocked


def test_read_oversized_file_is_blocked(dispatcher, workspace_root):
    (workspace_root / "Api" / "big.txt").write_text("x" * 2048)
    result = dispatcher.execute("read_file", {"path": "Api/big.txt"})
    assert result.blocked
    assert "exceeds limit" in result.error


def test_write_file_creates_parents(dispatcher, workspace_root):
    result = dispatcher.execute("write_file", {"path": "Api/Services/Health.cs", "content": "class Health {}\n"})
    assert result.success
    assert "Created Api/Services/Health.cs" in result.output
    assert (workspace_root / "Api" / "Services" / "Health.cs").read_text() == "class Health {}\n"


def test_write_file_overwrite_reports_update(dispatcher, workspace_root):
    result = dispatcher.execute("write_file", {"path": "Api/README.md", "content": "# Api v2\n"})
    assert result.success
    assert result.output.startswith("Updated")


def test_write_oversized_content_is_blocked(dispatcher, workspace_root):
    result = dispatcher.execute("write_file", {"path": "Api/big.txt", "content": "x" * 4096})
    assert result.blocked
    assert not (workspace_root / "Api" / "big.txt").exists()


def test_write_outside_workspace_is_blocked(dispatcher, tmp_path):
    result = dispatcher.execute("write_file", {"path": "../escape.txt", "content": "nope"})
    assert result.blocked
    assert not (tmp_path.parent / "escape.txt").exists()


def test_delete_file(dispatcher, workspace_root):
    result = dispatcher.execute("delete_file", {"path": "Api/README.md"})
    assert result.success
    assert not (workspace_root / "Api" / "README.md").exists()


def test_list_directory(dispatcher):
    result = dispatcher.execute("list_directory", {"path": "Api"})
    assert result.success
    assert "Controllers/" in result.output
    assert "Program.cs" in result.output


def test_find_files(dispatcher):
    result = dispatcher.execute("find_files", {"pattern": "**/*.cs"})
    assert result.success
    assert "Api/Controllers/OrdersController.cs" in result.output


def test_directory_tree(dispatcher):
    result = dispatcher.execute("directory_tree", {"path": "Api", "max_depth": 2})
    assert result.success
    assert "Controllers/" in result.output


# ------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------

def test_run_command_refuses_non_whitelisted(dispatcher):
    result = dispatcher.execute("run_command", {"command": "ls -la", "cwd": "Api"})
    assert result.blocked
    assert "allowed list" in result.error


def test_run_command_refuses_chained_commands(dispatcher, workspace_root):
    result = dispatcher.execute("run_command", {"command": "echo hi; rm -rf Api", "cwd": "Api"})
    assert result.blocked
    assert (workspace_root / "Api").exists()


def test_run_command_runs_whitelisted(dispatcher):
    result = dispatcher.execute("run_command", {"command": "echo hello", "cwd": "Api"})
    assert result.success
    assert "hello" in result.output


def test_git_push_disabled_by_default(dispatcher):
    result = dispatcher.execute("git_push", {"repository": "Api"})
    assert result.blocked


def test_build_shortcut_runs_in_repository(policy, workspace_root):
    backend = RecordingBackend(policy.workspace_root)
    result = ToolDispatcher(policy, backend=backend).execute("dotnet_build", {"repository": "Api"})
    assert result.success
    assert backend.commands == [("dotnet build", str(workspace_root / "Api"))]


@pytest.mark.parametrize("tool,command", [
    ("dotnet_test", "dotnet test"),
    ("npm_install", "npm install"),
    ("npm_test", "npm test"),
])
def test_shortcut_commands(policy, tool, command):
    backend = RecordingBackend(policy.workspace_root)
    ToolDispatcher(policy, backend=backend).execute(tool, {"repository": "Web"})
    assert backend.commands[0][0] == command


def test_shortcuts_still_honour_the_whitelist(workspace_root):
    policy = SecurityPolicy(workspace_root=str(workspace_root), allowed_commands=["echo"])
    backend = RecordingBackend(policy.workspace_root)
    result = ToolDispatcher(policy, backend=backend).execute("npm_install", {"repository": "Web"})
    assert result.blocked
    assert backend.commands == []


def test_shortcut_requires_repository(dispatcher):
    result = dispatcher.execute("npm_test", {"repository": " "})
    assert not result.success
    assert "repository is required" in result.error


# ------------------------------------------------------------------
# Code navigation
# ------------------------------------------------------------------

def test_search_code_hit_is_workspace_relative(dispatcher):
    result = dispatcher.execute("search_code", {"pattern": "decimal Total", "path": "Api"})
    assert result.success
    assert "Api/Controllers/OrdersController.cs:3:" in result.output
    assert str(dispatcher.policy.workspace_root) not in result.output


def test_search_code_without_hits(dispatcher):
    result = dispatcher.execute("search_code", {"pattern": "NoSuchThingAnywhere"})
    assert result.success
    assert result.output == "No matches found."


def test_find_definition(dispatcher):
    result = dispatcher.execute("find_definition", {"symbol": "OrdersController"})
    assert result.success
    assert result.output.startswith("Definitions:")
    assert "Api/Controllers/OrdersController.cs:1:public class OrdersController" in result.output


def test_find_definition_unknown_symbol(dispatcher):
    result = dispatcher.execute("find_definition", {"symbol": "InvoiceService"})
    assert result.success
    assert "No definition found" in result.output


def test_workspace_overview(dispatcher):
    result = dispatcher.execute("workspace_overview", {})
    assert result.success
    assert "Repositories (2):" in result.output
    assert "- Api: 3 files" in result.output
    assert "package.json" in result.output


def test_repository_gitignore_is_honoured(dispatcher, workspace_root):
    (workspace_root / "Api" / ".gitignore").write_text("*.log\n")
    (workspace_root / "Api" / "debug.log").write_text("noise\n")
    result = dispatcher.execute("find_files", {"pattern": "**/*.*"})
    assert "Api/Program.cs" in result.output
    assert "debug.log" not in result.output


def test_writing_gitignore_refreshes_rules(dispatcher, workspace_root):
    (workspace_root / "Web" / "app.log").write_text("noise\n")
    assert "app.log" in dispatcher.execute("list_directory", {"path": "Web"}).output
    dispatcher.execute("write_file", {"path": "Web/.gitignore", "content": "*.log\n"})
    assert "app.log" not in dispatcher.execute("list_directory", {"path": "Web"}).output


# ------------------------------------------------------------------
# Symlinks
# ------------------------------------------------------------------

@pytest.fixture
def outside_secret(tmp_path_factory):
    secret = tmp_path_factory.mktemp("outside") / "secret.txt"
    secret.write_text("TOP SECRET\n")
    return secret


def test_read_through_symlink_out_of_workspace_is_blocked(dispatcher, workspace_root, outside_secret):
    (workspace_root / "Api" / "link.txt").symlink_to(outside_secret)
    result = dispatcher.execute("read_file", {"path": "Api/link.txt"})
    assert result.blocked
    assert "TOP SECRET" not in result.output


def test_write_through_symlinked_directory_is_blocked(dispatcher, workspace_root, outside_secret):
    (workspace_root / "Api" / "out").symlink_to(outside_secret.parent, target_is_directory=True)
    result = dispatcher.execute("write_file", {"path": "Api/out/secret.txt", "content": "changed"})
    assert result.blocked
    assert outside_secret.read_text() == "TOP SECRET\n"


def test_backend_refuses_symlink_escape(workspace_root, outside_secret):
    (workspace_root / "Api" / "link.txt").symlink_to(outside_secret)
    with pytest.raises(ValueError):
        LocalBackend(str(workspace_root)).read_file("Api/link.txt")


# ------------------------------------------------------------------
# Git
# ------------------------------------------------------------------

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


def run_git(cwd, *args):
    subprocess.run(["git", *args], cwd=str(cwd), check=True, capture_output=True)


@pytest.fixture
def git_repo(workspace_root):
    repo = workspace_root / "Api"
    run_git(repo, "init", "-q")
    run_git(repo, "symbolic-ref", "HEAD", "refs/heads/main")
    run_git(repo, "config", "user.email", "dev@example.com")
    run_git(repo, "config", "user.name", "Dev")
    run_git(repo, "config", "commit.gpgsign", "false")
    run_git(repo, "add", "-A")
    run_git(repo, "commit", "-q", "-m", "Initial commit")
    return repo


@requires_git
def test_git_status_diff_commit_log(dispatcher, git_repo):
    (git_repo / "Program.cs").write_text("var app = builder.Build();\n")

    status = dispatcher.execute("git_status", {"repository": "Api"})
    assert status.success
    assert "## main" in status.output
    assert "M Program.cs" in status.output

    diff = dispatcher.execute("git_diff", {"repository": "Api", "path": "Program.cs"})
    assert diff.success
    assert "-var builder = WebApplication.CreateBuilder(args);" in diff.output
    assert "+var app = builder.Build();" in diff.output

    commit = dispatcher.execute("git_commit", {"repository": "Api", "message": "Build the app",
                                               "paths": ["Program.cs"]})
    assert commit.success
    assert "Build the app" in commit.output

    assert "Program.cs" not in dispatcher.execute("git_status", {"repository": "Api"}).output
    log = dispatcher.execute("git_log", {"repository": "Api", "max_count": 5})
    assert log.success
    assert "Build the app" in log.output
    assert "Initial commit" in log.output


@requires_git
def test_git_commit_requires_message_and_safe_paths(dispatcher, git_repo):
    assert "message is required" in dispatcher.execute("git_commit", {"repository": "Api", "message": ""}).error
    result = dispatcher.execute("git_commit", {"repository": "Api", "message": "x", "paths": ["../Web/package.json"]})
    assert result.blocked


def test_git_on_missing_repository(dispatcher):
    result = dispatcher.execute("git_status", {"repository": "Billing"})
    assert not result.success
    assert "Repository not found" in result.error


@requires_git
@pytest.mark.parametrize("remote,branch", [
    ("--receive-pack=touch {marker}; git-receive-pack", "main"),
    ("--upload-pack=touch {marker}", None),
    ("origin", "--exec=touch {marker}"),
    ("origin", "-f"),
    ("origin;touch {marker}", None),
    ("origin", "main:../../x"),
])
def test_git_push_refuses_option_like_arguments(dispatcher, git_repo, tmp_path_factory, monkeypatch,
                                                remote, branch):
    monkeypatch.setattr(app_config, "allow_git_push", True)
    marker = tmp_path_factory.mktemp("push") / "marker"
    inputs = {"repository": "Api", "remote": remote.format(marker=marker)}
    if branch:
        inputs["branch"] = branch.format(marker=marker)
    result = dispatcher.execute("git_push", inputs)
    assert result.blocked
    assert not marker.exists()


@requires_git
def test_git_push_only_to_configured_remotes(dispatcher, git_repo, tmp_path_factory, monkeypatch):
    monkeypatch.setattr(app_config, "allow_git_push", True)
    bare = tmp_path_factory.mktemp("remotes") / "api.git"
    run_git(bare.parent, "init", "-q", "--bare", str(bare))

    unknown = dispatcher.execute("git_push", {"repository": "Api", "remote": str(bare), "branch": "main"})
    assert unknown.blocked

    run_git(git_repo, "remote", "add", "origin", str(bare))
    pushed = dispatcher.execute("git_push", {"repository": "Api", "remote": "origin", "branch": "main"})
    assert pushed.success, pushed.error


# ------------------------------------------------------------------
# Dispatcher behaviour
# ------------------------------------------------------------------

def test_unknown_tool(dispatcher):
    result = dispatcher.execute("format_disk", {})
    assert not result.success
    assert "Unknown tool" in result.error


def test_tool_outside_allowed_set_is_refused(dispatcher, workspace_root):
    result = dispatcher.execute("write_file", {"path": "Api/x.txt", "content": "x"}, allowed=["read_file"])
    assert result.blocked
    assert not (workspace_root / "Api" / "x.txt").exists()


def test_bad_arguments_do_not_raise(dispatcher):
    result = dispatcher.execute("read_file", {"no_such_argument": 1})
    assert not result.success
    assert "Invalid arguments" in result.error


def test_model_cannot_override_policy(dispatcher, workspace_root):
    result = dispatcher.execute("read_file", {"path": "Api/Program.cs", "policy": None, "backend": None})
    assert result.success


def test_mutating_tools_take_repository_lock(policy):
    locks = RepositoryLocks()
    d = ToolDispatcher(policy, locks=locks)
    d.execute("write_file", {"path": "Web/index.js", "content": "// hi\n"})
    assert len(locks) == 1
    assert isinstance(locks.lock_for("Web"), type(threading.RLock()))


def test_read_only_tools_take_no_lock(policy):
    locks = RepositoryLocks()
    d = ToolDispatcher(policy, locks=locks)
    d.execute("read_file", {"path": "Api/Program.cs"})
    assert len(locks) == 0


# ------------------------------------------------------------------
# Catalog
# ------------------------------------------------------------------

def test_every_definition_has_an_implementation():
    assert {d["name"] for d in TOOL_DEFINITIONS} == set(TOOL_IMPLEMENTATIONS)
    assert FINISH_TOOL_DEFINITION["name"] not in TOOL_IMPLEMENTATIONS


@pytest.mark.parametrize("identifiers,expected", [
    (["Git"], ["git_status", "git_diff", "git_log", "git_commit", "git_push"]),
    (["FileOps.read_file"], ["read_file"]),
    (["fileops.ReadFile"], ["read_file"]),
    (["readFile", "read_file"], ["read_file"]),
    (["Command"], ["run_command", "dotnet_build", "dotnet_test", "npm_install", "npm_test"]),
])
def test_resolve_tool_names(identifiers, expected):
    names, unknown = resolve_tool_names(identifiers)
    assert names == expected
    assert unknown == []


def test_resolve_reports_unknown():
    names, unknown = resolve_tool_names(["Teleport", "CodeNav"])
    assert unknown == ["Teleport"]
    assert names == ["search_code", "find_definition", "directory_tree", "workspace_overview"]


def test_canonical_identifiers_drop_unknown():
    kept, dropped = canonical_tool_identifiers(["FileOps", "Database", "Git.git_status"])
    assert kept == ["FileOps", "Git.git_status"]
    assert dropped == ["Database"]


def test_definitions_for_read_only_tools():
    names = {d["name"] for d in definitions_for(READ_ONLY_TOOLS)}
    assert names == set(READ_ONLY_TOOLS)
    assert "write_file" not in names
