"""Render an analysis response as JSON and Markdown."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models import AnalysisResponse, BatchSummary
from .record import UNKNOWN, record_to_dict


def _pretty_list(items: List[str], *, fallback: str = "Not detected") -> str:
    cleaned = [str(x).strip() for x in items if x is not None and str(x).strip()]
    cleaned = [x for x in cleaned if x.lower() != "unknown"]
    return ", ".join(cleaned) if cleaned else fallback


def summary_to_dict(summary: Optional[BatchSummary]) -> Optional[Dict[str, Any]]:
    if summary is None:
        return None
    return {
        "total_units": summary.total_units,
        "succeeded": summary.succeeded,
        "failed": summary.failed,
        "tag_counts": dict(summary.tag_counts),
        "elapsed_s": round(summary.elapsed_s, 3),
        "elapsed": summary.elapsed_text,
    }


def response_to_dict(response: AnalysisResponse, *, repo_name: Optional[str] = None) -> Dict[str, Any]:
    """JSON-ready view of a response; the path indicator always comes first."""
    data: Dict[str, Any] = {
        "path": response.path,
        "success": response.success,
        "item_count": response.item_count,
    }
    if repo_name:
        data["repository"] = repo_name
    data["analysis"] = record_to_dict(response.record)
    data["summary"] = summary_to_dict(response.summary)
    data["diagram"] = response.diagram
    data["metadata"] = {
        "strategy": response.strategy,
        "merge_method": response.merge_method,
        "fallback_used": response.fallback_used,
        "diagram_fallback": response.diagram_fallback,
        "elapsed_s": round(response.elapsed_s, 3),
    }
    data["errors"] = list(response.errors)
    return data


def write_analysis_json(out_path: Path, response: AnalysisResponse, *, repo_name: Optional[str] = None) -> None:
    out_path.write_text(
        json.dumps(response_to_dict(response, repo_name=repo_name), indent=2, ensure_ascii=False) + "\n",
        encoding="utf-8",
    )


def write_arch_md(out_path: Path, response: AnalysisResponse, *, repo_name: str = "Repository") -> None:
    """Write a Markdown summary from an analysis response."""
    record = response.record
    lines: List[str] = []
    lines.append(f"# {repo_name} Architecture\n")

    lines.append("## Overview\n")
    architecture = (record.architecture or "").strip()
    if not architecture or architecture.lower() == UNKNOWN.lower():
        architecture = "Not detected"
    lines.append(f"- **Architecture pattern:** {architecture}\n")
    lines.append(f"- **Tech stack:** {_pretty_list(list(record.tech_stack))}\n")
    lines.append(f"- **Analysis path:** {response.path}\n")
    lines.append(f"- **Files analyzed:** {response.item_count}\n")
    if response.fallback_used:
        lines.append("- **Note:** heuristic fallback used; results are approximate\n")

    summary = response.summary
    if summary is not None:
        lines.append("\n## Units\n")
        lines.append(
            f"- total={summary.total_units}, succeeded={summary.succeeded}, "
            f"failed={summary.failed}, elapsed={summary.elapsed_text or 'n/a'}\n"
        )
        for tag, count in sorted(summary.tag_counts.items()):
            lines.append(f"- {tag}: {count}\n")

    lines.append("\n## Components\n")
    if not record.components:
        lines.append("- Not detected\n")
    else:
        for c in record.components:
            lines.append(f"### {c.name}\n")
            lines.append(f"- Type: {c.type or 'Not detected'}\n")
            lines.append(f"- Tech: {_pretty_list(list(c.technologies))}\n")
            lines.append(f"- Description: {c.description or 'Not detected'}\n")
            if c.units:
                lines.append(f"- Found in: {', '.join(c.units)}\n")
            lines.append("\n")

    lines.append("\n## Dependencies\n")
    if not record.dependencies:
        lines.append("- Not detected\n")
    else:
        for e in record.dependencies:
            kind = f" ({e.type})" if e.type else ""
            lines.append(f"- {e.source} -> {e.target}{kind}, strength={e.strength}\n")

    fs = record.file_structure
    lines.append("\n## File structure\n")
    lines.append(f"- Main directories: {_pretty_list(list(fs.main_directories))}\n")
    lines.append(f"- Configuration files: {_pretty_list(list(fs.configuration_files))}\n")
    lines.append(f"- Tests: {fs.test_structure or 'Not detected'}\n")
    lines.append(f"- Documentation: {fs.documentation_presence or 'Not detected'}\n")

    lines.append("\n## Insights\n")
    if not record.insights:
        lines.append("- None\n")
    else:
        for i in record.insights:
            lines.append(f"- {i}\n")

    lines.append("\n## Scalability\n")
    lines.append(f"{record.scalability_notes or 'Not detected'}\n")
    lines.append("\n## Security\n")
    lines.append(f"{record.security_considerations or 'Not detected'}\n")

    if response.diagram:
        lines.append("\n## Diagram\n")
        lines.append("```mermaid\n")
        lines.append(response.diagram if response.diagram.endswith("\n") else response.diagram + "\n")
        lines.append("```\n")

    if response.errors:
        lines.append("\n## Errors\n")
        for err in response.errors:
            lines.append(f"- {err}\n")

    out_path.write_text("".join(lines), encoding="utf-8")
