"""
Tests for workspace scanning and research reference extraction.
"""

from agent.models import CodeReference
from agent.research import extract_references
from agent.workspace import scan_workspace


def test_scan_discovers_repositories(workspace_root):
    (workspace_root / ".hidden").mkdir()
    (workspace_root / "Api" / "bin").mkdir()
    (workspace_root / "Api" / "bin" / "Api.dll").write_bytes(b"\0")

    ctx = scan_workspace(str(workspace_root))

    assert sorted(ctx.repositories) == ["Api", "Web"]
    api = ctx.repositories["Api"]
    assert api.total_files == 3
    assert api.files_by_extension[".cs"] == 2
    assert "Program.cs" in api.key_files
    assert "package.json" in ctx.repositories["Web"].key_files


def test_scan_configured_repositories_only(workspace_root):
    ctx = scan_workspace(str(workspace_root), ["Web", "Missing"])
    assert list(ctx.repositories) == ["Web"]


def test_describe_lists_repositories(workspace):
    text = workspace.describe()
    assert "Repositories (2):" in text
    assert "- Api: 3 files" in text


def test_extract_references():
    text = ("Totals are computed in `Api/Services/Orders.cs:40-58` and wired up in "
            "Api/Program.cs:12. See also Api/Services/Orders.cs:40-58 and https://example.com/x.html")
    refs = extract_references(text, ["Api", "Web"])
    assert refs == [
        CodeReference("Api/Services/Orders.cs", 40, 58),
        CodeReference("Api/Program.cs", 12),
    ]
    assert str(refs[0]) == "Api/Services/Orders.cs:40-58"


def test_extract_references_ignores_unknown_repositories():
    refs = extract_references("Look at Billing/Invoice.cs:3", ["Api"])
    assert refs == []


def test_scan_honours_repository_gitignore(workspace_root):
    (workspace_root / "Web" / ".gitignore").write_text("dist-local/\n*.log\n")
    (workspace_root / "Web" / "dist-local").mkdir()
    (workspace_root / "Web" / "dist-local" / "bundle.js").write_text("x")
    (workspace_root / "Web" / "npm-debug.log").write_text("x")

    web = scan_workspace(str(workspace_root)).repositories["Web"]

    assert web.total_files == 2
    assert web.files_by_extension == {".json": 1, "(none)": 1}
