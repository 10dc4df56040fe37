"""Merge succeeded unit records into one unified record."""

from __future__ import annotations

from collections import Counter
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from .json_tools import Parsed, Unparsable
from .models import BatchOutcome, BatchSummary, UnifiedRecord, UnitResult
from .record import (
    DEFAULT_STRENGTH,
    UNKNOWN,
    Component,
    DependencyEdge,
    FileStructure,
    Record,
    ordered_union,
)

MERGE_SYNTHESIZED = "synthesized"
MERGE_DETERMINISTIC = "deterministic"
MERGE_NONE = "none"

NOTE_SEPARATOR = "; "

SynthesizeFn = Callable[[Sequence[UnitResult], Mapping[str, Any]], Awaitable[Any]]


def format_duration(seconds: float) -> str:
    """Format elapsed seconds into a compact, human-readable string."""
    if seconds < 0:
        seconds = 0.0
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    if seconds < 60:
        return f"{seconds:.2f}s"
    minutes, secs = divmod(seconds, 60)
    if minutes < 60:
        return f"{int(minutes)}m{secs:04.1f}s"
    hours, minutes = divmod(minutes, 60)
    return f"{int(hours)}h{int(minutes):02d}m{secs:04.1f}s"


def build_summary(outcome: BatchOutcome) -> BatchSummary:
    """Counts and tag histogram straight from the batch outcome."""
    tags = Counter(r.unit.tag for r in outcome.succeeded)
    return BatchSummary(
        total_units=outcome.total_units,
        succeeded=outcome.succeeded_count,
        failed=outcome.failed_count,
        tag_counts=dict(tags),
        elapsed_s=outcome.elapsed_s,
        elapsed_text=format_duration(outcome.elapsed_s),
    )


def degenerate_record(total_units: int) -> Record:
    """Well-formed record stating that no unit produced data."""
    return Record(
        architecture=UNKNOWN,
        insights=(
            f"No successful analysis units were available: 0 of {total_units} units succeeded",
        ),
        file_structure=FileStructure(test_structure=UNKNOWN, documentation_presence=UNKNOWN),
        scalability_notes="No scalability analysis available: no successful units",
        security_considerations="No security analysis available: no successful units",
    )


def vote_architecture(labels: Sequence[Optional[str]]) -> str:
    """Most frequent usable label; ties go to the first seen."""
    counts: Dict[str, int] = {}
    first: Dict[str, str] = {}
    for label in labels:
        text = (label or "").strip()
        if not text or text.lower() == UNKNOWN.lower():
            continue
        key = text.lower()
        counts[key] = counts.get(key, 0) + 1
        first.setdefault(key, text)
    if not counts:
        return UNKNOWN
    best = max(counts.values())
    # dicts keep insertion order, so the first key at ``best`` is the earliest label.
    for key, count in counts.items():
        if count == best:
            return first[key]
    return UNKNOWN


def merge_components(groups: Sequence[Sequence[Component]]) -> Tuple[Component, ...]:
    """Merge components keyed by case-insensitive (name, type).

    Names differing only in case are one component. Repeated identical
    descriptions are kept once; distinct ones are joined with "; ".
    """
    merged: Dict[Tuple[str, str], Dict[str, Any]] = {}
    for components in groups:
        for comp in components:
            key = (comp.name.lower(), comp.type.lower())
            slot = merged.get(key)
            if slot is None:
                merged[key] = {
                    "name": comp.name,
                    "type": comp.type,
                    "technologies": [comp.technologies],
                    "descriptions": [comp.description] if comp.description else [],
                    "units": [comp.units],
                }
                continue
            slot["technologies"].append(comp.technologies)
            slot["units"].append(comp.units)
            if comp.description and comp.description not in slot["descriptions"]:
                slot["descriptions"].append(comp.description)
    return tuple(
        Component(
            name=slot["name"],
            type=slot["type"],
            technologies=ordered_union(slot["technologies"]),
            description=NOTE_SEPARATOR.join(slot["descriptions"]),
            units=ordered_union(slot["units"]),
        )
        for slot in merged.values()
    )


def merge_edges(groups: Sequence[Sequence[DependencyEdge]]) -> Tuple[DependencyEdge, ...]:
    """De-duplicate edges by case-insensitive (from, to, type); first strength wins."""
    merged: Dict[Tuple[str, str, str], Dict[str, Any]] = {}
    for edges in groups:
        for edge in edges:
            key = (edge.source.lower(), edge.target.lower(), edge.type.lower())
            slot = merged.get(key)
            if slot is None:
                merged[key] = {"edge": edge, "units": [edge.units]}
            else:
                slot["units"].append(edge.units)
    out: List[DependencyEdge] = []
    for slot in merged.values():
        edge = slot["edge"]
        out.append(
            DependencyEdge(
                source=edge.source,
                target=edge.target,
                type=edge.type,
                strength=edge.strength or DEFAULT_STRENGTH,
                units=ordered_union(slot["units"]),
            )
        )
    return tuple(out)


def _first(values: Sequence[Optional[str]]) -> Optional[str]:
    for value in values:
        if value and value.strip() and value.strip().lower() != UNKNOWN.lower():
            return value
    return None


def _join_notes(values: Sequence[Optional[str]], missing: str) -> str:
    notes = [v.strip() for v in values if v and v.strip()]
    return NOTE_SEPARATOR.join(notes) if notes else missing


def deterministic_merge(records: Sequence[Record]) -> Record:
    """Rule-based merge of unit records."""
    structures = [r.file_structure for r in records]
    return Record(
        architecture=vote_architecture([r.architecture for r in records]),
        tech_stack=ordered_union(r.tech_stack for r in records),
        components=merge_components([r.components for r in records]),
        dependencies=merge_edges([r.dependencies for r in records]),
        insights=ordered_union(r.insights for r in records),
        file_structure=FileStructure(
            main_directories=ordered_union(fs.main_directories for fs in structures),
            configuration_files=ordered_union(fs.configuration_files for fs in structures),
            test_structure=_first([fs.test_structure for fs in structures]) or UNKNOWN,
            documentation_presence=_first([fs.documentation_presence for fs in structures]) or UNKNOWN,
        ),
        scalability_notes=_join_notes(
            [r.scalability_notes for r in records], "No scalability analysis available"
        ),
        security_considerations=_join_notes(
            [r.security_considerations for r in records], "No security analysis available"
        ),
    )


class Aggregator:
    """Combines a BatchOutcome into a UnifiedRecord.

    A configured ``synthesize`` collaborator is tried first; any failure or
    unparsable output falls back to :func:`deterministic_merge`. The summary
    block is always computed from the outcome itself.
    """

    def __init__(
        self,
        synthesize: Optional[SynthesizeFn] = None,
        *,
        log: Optional[Callable[[str], None]] = None,
    ):
        self.synthesize = synthesize
        self.log = log

    def _log(self, msg: str) -> None:
        if self.log:
            self.log(f"[AGG] {msg}")

    async def aggregate(
        self,
        outcome: BatchOutcome,
        context: Optional[Mapping[str, Any]] = None,
    ) -> UnifiedRecord:
        summary = build_summary(outcome)
        succeeded = outcome.succeeded
        if not succeeded:
            self._log(f"no successful units out of {outcome.total_units}; degenerate record")
            return UnifiedRecord(
                record=degenerate_record(outcome.total_units),
                summary=summary,
                merge_method=MERGE_NONE,
            )

        if self.synthesize is not None:
            record = await self._synthesized(succeeded, context or {})
            if record is not None:
                self._log(f"synthesized {len(succeeded)} unit record(s)")
                return UnifiedRecord(record=record, summary=summary, merge_method=MERGE_SYNTHESIZED)

        record = deterministic_merge([r.record for r in succeeded if r.record is not None])
        self._log(
            f"merged {len(succeeded)} unit record(s) deterministically: "
            f"components={len(record.components)} dependencies={len(record.dependencies)}"
        )
        return UnifiedRecord(record=record, summary=summary, merge_method=MERGE_DETERMINISTIC)

    async def _synthesized(
        self,
        succeeded: Sequence[UnitResult],
        context: Mapping[str, Any],
    ) -> Optional[Record]:
        try:
            value = await self.synthesize(succeeded, context)
        except Exception as e:
            self._log(f"synthesis failed ({type(e).__name__}: {e}); using deterministic merge")
            return None
        if isinstance(value, Parsed):
            value = value.value
        if isinstance(value, Unparsable):
            self._log(f"synthesis output unparsable ({value.reason}); using deterministic merge")
            return None
        if not isinstance(value, Record):
            self._log(f"synthesis returned {type(value).__name__}; using deterministic merge")
            return None
        return value
