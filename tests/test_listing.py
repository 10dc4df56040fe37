"""Tests for building item lists from listings and directories."""

import subprocess

from archmap.listing import extract_items, filter_items, is_excluded, list_repo_files


def test_extract_tree_listing():
    text = """
# repository tree
- src/app.py
- src/
  - ./src/util.py
* docs/logo.png
+ README.md
src/app.py
package-lock.lock
"""
    assert extract_items(text) == ["src/app.py", "src/util.py", "README.md"]


def test_extract_plain_lines_with_backslashes():
    assert extract_items("src\\win\\main.cs\nlib/x.rb\n") == ["src/win/main.cs", "lib/x.rb"]


def test_excluded_extensions_and_dirs():
    assert is_excluded("assets/icon.svg")
    assert is_excluded("bundle.tgz")
    assert is_excluded("node_modules/react/index.js")
    assert not is_excluded("src/index.js")
    assert not is_excluded(".gitignore")


def test_filter_keeps_first_occurrence_order():
    assert filter_items(["b.py", "a.py", "b.py", " "]) == ["b.py", "a.py"]


def test_walk_without_git(tmp_path):
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "main.py").write_text("print(1)\n")
    (tmp_path / "node_modules" / "pkg").mkdir(parents=True)
    (tmp_path / "node_modules" / "pkg" / "index.js").write_text("")
    (tmp_path / "logo.png").write_bytes(b"\x89PNG")
    (tmp_path / "README.md").write_text("# hi\n")

    assert list_repo_files(tmp_path) == ["README.md", "src/main.py"]


def test_git_tracked_files_preferred(tmp_path, monkeypatch):
    (tmp_path / ".git").mkdir()
    (tmp_path / "tracked.py").write_text("")
    (tmp_path / "untracked.py").write_text("")

    def fake_check_output(cmd, stderr=None):
        assert cmd[:3] == ["git", "-C", str(tmp_path.resolve())]
        return b"tracked.py\x00gone.py\x00"

    monkeypatch.setattr(subprocess, "check_output", fake_check_output)
    assert list_repo_files(tmp_path) == ["tracked.py"]


def test_git_failure_falls_back_to_walk(tmp_path, monkeypatch):
    (tmp_path / ".git").mkdir()
    (tmp_path / "a.py").write_text("")

    def broken(cmd, stderr=None):
        raise subprocess.CalledProcessError(128, cmd)

    monkeypatch.setattr(subprocess, "check_output", broken)
    assert list_repo_files(tmp_path) == ["a.py"]
