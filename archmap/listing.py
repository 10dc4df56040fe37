"""Turn a repository or a text listing into the item list."""

from __future__ import annotations

import os
import re
import subprocess
from pathlib import Path
from typing import Iterable, List

IGNORE_DIRS = {
    ".git",
    ".hg",
    ".svn",
    "node_modules",
    "bower_components",
    "vendor",
    "dist",
    "build",
    "target",
    "out",
    ".next",
    ".nuxt",
    ".venv",
    "venv",
    "env",
    "__pycache__",
    ".mypy_cache",
    ".pytest_cache",
    ".tox",
    ".idea",
    ".vscode",
    "coverage",
}

EXCLUDED_EXTS = {
    ".png",
    ".jpg",
    ".jpeg",
    ".gif",
    ".svg",
    ".ico",
    ".lock",
    ".mp4",
    ".mp3",
    ".zip",
    ".tgz",
    ".gz",
    ".pdf",
    ".exe",
    ".dll",
}

# "- path", "* path", "+ path" or a bare path, optionally indented.
LISTING_LINE_RE = re.compile(r"^\s*(?:[-*+]\s+)?(?P<path>\S.*?)\s*$")


def relposix(base: Path, p: Path) -> str:
    """Return a POSIX-style relative path."""
    return p.relative_to(base).as_posix()


def is_excluded(path: str) -> bool:
    """Binary assets, archives and lock files carry no architectural signal."""
    parts = path.replace("\\", "/").split("/")
    if any(part.lower() in IGNORE_DIRS for part in parts[:-1]):
        return True
    name = parts[-1].lower()
    dot = name.rfind(".")
    return dot > 0 and name[dot:] in EXCLUDED_EXTS


def filter_items(paths: Iterable[str]) -> List[str]:
    """Normalize separators, drop excluded paths and repeats, keep order."""
    seen = set()
    out: List[str] = []
    for raw in paths:
        path = raw.strip().replace("\\", "/")
        while path.startswith("./"):
            path = path[2:]
        if not path or path.endswith("/") or is_excluded(path) or path in seen:
            continue
        seen.add(path)
        out.append(path)
    return out


def extract_items(text: str) -> List[str]:
    """Parse a tree listing (``- path`` lines) or one path per line.

    Blank lines and ``#`` comments are skipped.
    """
    paths: List[str] = []
    for line in text.splitlines():
        if not line.strip() or line.lstrip().startswith("#"):
            continue
        m = LISTING_LINE_RE.match(line)
        if m:
            paths.append(m.group("path"))
    return filter_items(paths)


def list_repo_files(repo: Path) -> List[str]:
    """List candidate files, preferring git-tracked files when possible."""
    repo = repo.resolve()
    # Prefer git-tracked files to avoid build outputs and vendored noise.
    if (repo / ".git").exists():
        try:
            out = subprocess.check_output(
                ["git", "-C", str(repo), "ls-files", "-z"],
                stderr=subprocess.DEVNULL,
            )
        except (OSError, subprocess.CalledProcessError):
            out = b""
        tracked = [
            b.decode("utf-8", errors="ignore")
            for b in out.split(b"\x00")
            if b and (repo / b.decode("utf-8", errors="ignore")).is_file()
        ]
        if tracked:
            return filter_items(tracked)

    files: List[str] = []
    for root, dirs, filenames in os.walk(repo):
        dirs[:] = sorted(d for d in dirs if d.lower() not in IGNORE_DIRS)
        for fn in sorted(filenames):
            p = Path(root) / fn
            if p.is_file():
                files.append(relposix(repo, p))
    return filter_items(files)
