"""Clean, validate and fall back for Mermaid architecture diagrams."""

from __future__ import annotations

import re
from typing import Dict, List, Optional

from .record import Record

CODE_FENCE_RE = re.compile(r"```(?:mermaid)?\s*([\s\S]*?)```", re.IGNORECASE)
BROKEN_ARROW_RE = re.compile(r"--\s+>")
EDGE_LABEL_RE = re.compile(r"\|\s*([^|]+?)\s*\|")
SEMICOLON_RE = re.compile(r"\s*;\s*")
BLANK_LINES_RE = re.compile(r"\n\s*\n")
GRAPH_HEADER_RE = re.compile(r"^\s*(graph|flowchart)\b", re.IGNORECASE)
NODE_RE = re.compile(r"\[[^\]]*\]|\([^)]*\)|\{[^}]*\}")
ARROW_RE = re.compile(r"-->|-\.->|==>")


def _slugify_id(text: str) -> str:
    """Make a Mermaid-safe identifier."""
    slug = re.sub(r"[^a-z0-9]+", "_", text.lower()).strip("_")
    return slug or "node"


def _escape_label(text: str) -> str:
    """Escape Mermaid string labels."""
    return text.replace('"', "#quot;")


def clean_mermaid(text: Optional[str]) -> str:
    """Strip fences, force a graph header and fix common syntax slips."""
    if not text:
        return ""
    cleaned = CODE_FENCE_RE.sub(r"\1", text).strip()
    if not GRAPH_HEADER_RE.match(cleaned):
        cleaned = "graph TD\n" + cleaned
    cleaned = BROKEN_ARROW_RE.sub("-->", cleaned)
    cleaned = EDGE_LABEL_RE.sub(r"|\1|", cleaned)
    cleaned = SEMICOLON_RE.sub("\n", cleaned)
    cleaned = BLANK_LINES_RE.sub("\n", cleaned)
    return cleaned.strip() + "\n"


def validate_mermaid(diagram: str) -> List[str]:
    """Return a list of problems; empty means the diagram looks usable."""
    if not diagram or not diagram.strip():
        return ["empty diagram"]
    issues: List[str] = []
    if not GRAPH_HEADER_RE.match(diagram):
        issues.append("missing graph declaration")
    if not NODE_RE.search(diagram):
        issues.append("no nodes found")
    if not ARROW_RE.search(diagram):
        issues.append("no arrows found")
    return issues


def fallback_diagram(record: Record) -> str:
    """Build a deterministic diagram from components and dependency edges."""
    lines = ["graph TD"]
    ids: Dict[str, str] = {}
    used = set()

    def _node_id(name: str) -> str:
        key = name.lower()
        if key in ids:
            return ids[key]
        base = _slugify_id(name)
        node_id = base
        i = 2
        while node_id in used:
            node_id = f"{base}_{i}"
            i += 1
        used.add(node_id)
        ids[key] = node_id
        return node_id

    for comp in record.components:
        label = f"{comp.name}: {comp.type}" if comp.type else comp.name
        lines.append(f'  {_node_id(comp.name)}["{_escape_label(label)}"]')

    if not record.components:
        lines.append('  application["Application"]')
        lines.append('  datastore["Data store"]')
        lines.append("  application --> datastore")
        return "\n".join(lines) + "\n"

    edges: List[str] = []
    for edge in record.dependencies:
        for name in (edge.source, edge.target):
            if name.lower() not in ids:
                lines.append(f'  {_node_id(name)}["{_escape_label(name)}"]')
        arrow = f"-->|{_escape_label(edge.type)}|" if edge.type else "-->"
        edges.append(f"  {ids[edge.source.lower()]} {arrow} {ids[edge.target.lower()]}")

    if not edges:
        # No known edges: chain components in listed order.
        names = [ids[c.name.lower()] for c in record.components]
        deduped = list(dict.fromkeys(names))
        edges = [f"  {a} --> {b}" for a, b in zip(deduped, deduped[1:])]

    lines.extend(edges)
    return "\n".join(lines) + "\n"
