"""Path-based heuristics: category classification and fallback records."""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .models import Priority
from .record import Component, FileStructure, Record, UNKNOWN

PRESENTATION = "presentation"
LOGIC = "logic"
CONFIG = "config"
TEST = "test"
DOC = "doc"
SHARED = "shared"
OTHER = "other"

# Deterministic order used when slicing categories into units.
CATEGORY_ORDER: Tuple[str, ...] = (PRESENTATION, LOGIC, CONFIG, TEST, DOC, SHARED, OTHER)

CATEGORY_PRIORITY: Dict[str, Priority] = {
    LOGIC: Priority.HIGH,
    PRESENTATION: Priority.HIGH,
    CONFIG: Priority.MEDIUM,
    SHARED: Priority.MEDIUM,
    TEST: Priority.LOW,
    DOC: Priority.LOW,
    OTHER: Priority.LOW,
}

CATEGORY_TITLES: Dict[str, str] = {
    LOGIC: "Application logic",
    PRESENTATION: "Presentation",
    CONFIG: "Configuration",
    SHARED: "Shared utilities",
    TEST: "Tests",
    DOC: "Documentation",
    OTHER: "Other",
}

TEST_DIRS = {"test", "tests", "__tests__", "spec", "specs", "testing", "e2e"}
TEST_NAME_RE = re.compile(
    r"(^test_.*\.py$|_test\.(py|go|rb)$|\.(test|spec)\.[jt]sx?$|Tests?\.(java|kt|cs)$|_spec\.rb$)"
)

DOC_DIRS = {"doc", "docs", "documentation", "adr", "adrs"}
DOC_EXTS = {".md", ".rst", ".adoc", ".txt"}
DOC_NAME_PREFIXES = ("readme", "changelog", "contributing", "license", "authors")

CONFIG_EXTS = {
    ".yml",
    ".yaml",
    ".toml",
    ".json",
    ".ini",
    ".cfg",
    ".conf",
    ".properties",
    ".env",
    ".xml",
}
CONFIG_NAMES = {
    "dockerfile",
    "makefile",
    "procfile",
    "jenkinsfile",
    "package.json",
    "pom.xml",
    "build.gradle",
    "build.gradle.kts",
    "go.mod",
    "cargo.toml",
    "pyproject.toml",
    "setup.cfg",
    "setup.py",
    "requirements.txt",
    ".gitignore",
    ".dockerignore",
}
CONFIG_NAME_HINTS = ("config", "settings", "docker-compose", "compose", ".env")
CONFIG_DIRS = {"config", "configs", "conf", "deploy", "deployment", "k8s", "kubernetes", "helm", "charts", ".github"}

PRESENTATION_DIRS = {
    "components",
    "views",
    "pages",
    "templates",
    "layouts",
    "ui",
    "static",
    "public",
    "styles",
    "assets",
    "screens",
    "widgets",
}
PRESENTATION_EXTS = {
    ".html",
    ".htm",
    ".css",
    ".scss",
    ".sass",
    ".less",
    ".vue",
    ".svelte",
    ".jsx",
    ".tsx",
    ".jinja",
    ".j2",
    ".hbs",
    ".ejs",
}

SHARED_DIRS = {"utils", "util", "helpers", "helper", "common", "shared", "lib", "libs", "core"}

CODE_EXTS = {
    ".py",
    ".js",
    ".mjs",
    ".cjs",
    ".ts",
    ".java",
    ".kt",
    ".kts",
    ".scala",
    ".go",
    ".rs",
    ".rb",
    ".php",
    ".cs",
    ".c",
    ".h",
    ".cpp",
    ".hpp",
    ".cc",
    ".swift",
    ".m",
    ".ex",
    ".exs",
    ".erl",
    ".clj",
    ".sql",
    ".sh",
    ".proto",
    ".graphql",
    ".dart",
    ".lua",
}

TECH_BY_EXT: Dict[str, str] = {
    ".py": "Python",
    ".js": "JavaScript",
    ".jsx": "JavaScript/React",
    ".ts": "TypeScript",
    ".tsx": "TypeScript/React",
    ".vue": "Vue.js",
    ".svelte": "Svelte",
    ".java": "Java",
    ".kt": "Kotlin",
    ".scala": "Scala",
    ".go": "Go",
    ".rs": "Rust",
    ".rb": "Ruby",
    ".php": "PHP",
    ".cs": "C#",
    ".cpp": "C++",
    ".c": "C",
    ".swift": "Swift",
    ".dart": "Dart",
    ".ex": "Elixir",
    ".sql": "SQL",
    ".proto": "Protocol Buffers",
    ".graphql": "GraphQL",
    ".scss": "SCSS",
    ".html": "HTML",
    ".yml": "YAML Configuration",
    ".yaml": "YAML Configuration",
}

TECH_BY_NAME: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"(^|/)dockerfile|docker-compose", re.IGNORECASE), "Docker"),
    (re.compile(r"(^|/)(k8s|kubernetes|helm)(/|$)", re.IGNORECASE), "Kubernetes"),
    (re.compile(r"(^|/)package\.json$", re.IGNORECASE), "Node.js"),
    (re.compile(r"angular\.json$|\.component\.ts$", re.IGNORECASE), "Angular"),
    (re.compile(r"(^|/)(pom\.xml|build\.gradle(\.kts)?)$", re.IGNORECASE), "JVM build"),
    (re.compile(r"(^|/)(pyproject\.toml|requirements[^/]*\.txt|setup\.py)$", re.IGNORECASE), "Python packaging"),
    (re.compile(r"(^|/)go\.mod$", re.IGNORECASE), "Go modules"),
    (re.compile(r"\bmongo", re.IGNORECASE), "MongoDB"),
    (re.compile(r"\bpostgres", re.IGNORECASE), "PostgreSQL"),
    (re.compile(r"\bmysql", re.IGNORECASE), "MySQL"),
    (re.compile(r"\bredis", re.IGNORECASE), "Redis"),
    (re.compile(r"(^|/)\.github/workflows/", re.IGNORECASE), "GitHub Actions"),
]


def _split(path: str) -> Tuple[List[str], str, str]:
    """Return (lowercased directory segments, lowercased file name, extension)."""
    parts = [p for p in path.replace("\\", "/").lower().split("/") if p]
    if not parts:
        return [], "", ""
    name = parts[-1]
    dot = name.rfind(".")
    ext = name[dot:] if dot > 0 else ""
    return parts[:-1], name, ext


def classify_path(path: str) -> str:
    """Assign one category to a path. Unmatched paths land in ``other``."""
    dirs, name, ext = _split(path)
    if not name:
        return OTHER
    dir_set = set(dirs)
    original_name = path.replace("\\", "/").rsplit("/", 1)[-1]

    if dir_set & TEST_DIRS or TEST_NAME_RE.search(original_name) or TEST_NAME_RE.search(name):
        return TEST
    if dir_set & DOC_DIRS or ext in DOC_EXTS or name.startswith(DOC_NAME_PREFIXES):
        return DOC
    if (
        name in CONFIG_NAMES
        or ext in CONFIG_EXTS
        or name.startswith(".env")
        or any(hint in name for hint in CONFIG_NAME_HINTS)
        or (dir_set & CONFIG_DIRS and ext not in CODE_EXTS and ext not in PRESENTATION_EXTS)
    ):
        return CONFIG
    if ext in PRESENTATION_EXTS or (dir_set & PRESENTATION_DIRS and (ext in CODE_EXTS or not ext)):
        return PRESENTATION
    if dir_set & SHARED_DIRS and ext in CODE_EXTS:
        return SHARED
    if ext in CODE_EXTS:
        return LOGIC
    return OTHER


def group_by_category(items: Iterable[str]) -> Dict[str, List[str]]:
    """Bucket items by category, in CATEGORY_ORDER, dropping empty buckets."""
    groups: Dict[str, List[str]] = {key: [] for key in CATEGORY_ORDER}
    for item in items:
        groups[classify_path(item)].append(item)
    return {key: files for key, files in groups.items() if files}


def priority_for(category: str) -> Priority:
    return CATEGORY_PRIORITY.get(category, Priority.LOW)


def infer_tech_stack(items: Iterable[str]) -> Tuple[str, ...]:
    """Guess technologies from file extensions and well-known names."""
    seen: Dict[str, None] = {}
    for item in items:
        _, name, ext = _split(item)
        tech = TECH_BY_EXT.get(ext)
        if tech:
            seen.setdefault(tech, None)
        low = item.lower()
        for rx, label in TECH_BY_NAME:
            if rx.search(low):
                seen.setdefault(label, None)
    return tuple(seen)


def main_directories(items: Iterable[str], *, limit: int = 10) -> Tuple[str, ...]:
    """Top-level directories, in first-seen order."""
    dirs: Dict[str, None] = {}
    for item in items:
        parts = item.replace("\\", "/").split("/")
        if len(parts) > 1 and parts[0]:
            dirs.setdefault(parts[0], None)
    return tuple(list(dirs)[:limit])


def configuration_files(items: Iterable[str], *, limit: int = 25) -> Tuple[str, ...]:
    out: List[str] = []
    for item in items:
        if classify_path(item) == CONFIG:
            out.append(item)
            if len(out) >= limit:
                break
    return tuple(out)


def fallback_record(items: Sequence[str], *, reason: Optional[str] = None) -> Record:
    """Build a minimal record from paths alone, used when analysis is unavailable."""
    tech = infer_tech_stack(items)
    groups = group_by_category(items)
    insights = ["Analysis completed with fallback method; no semantic analysis was available"]
    if reason:
        insights.append(f"Error: {reason}")
    if groups:
        breakdown = ", ".join(f"{CATEGORY_TITLES[key].lower()}={len(files)}" for key, files in groups.items())
        insights.append(f"File categories: {breakdown}")
    has_tests = TEST in groups
    has_docs = DOC in groups
    return Record(
        architecture=UNKNOWN,
        tech_stack=tech,
        components=(
            Component(
                name="Main Application",
                type="Application",
                technologies=tech,
                description="Main application code",
            ),
        ),
        insights=tuple(insights),
        file_structure=FileStructure(
            main_directories=main_directories(items),
            configuration_files=configuration_files(items),
            test_structure=f"{len(groups[TEST])} test files detected" if has_tests else "No test files detected",
            documentation_presence=(
                f"{len(groups[DOC])} documentation files detected" if has_docs else "No documentation files detected"
            ),
        ),
        scalability_notes="Analysis incomplete",
        security_considerations="Security analysis incomplete",
    )
