"""Structured analysis records and the boundary that normalizes raw JSON into them."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Tuple

from .json_tools import ParseOutcome, Parsed, Unparsable, parse_json_object

UNKNOWN = "Unknown"
DEFAULT_STRENGTH = "medium"


@dataclass(frozen=True)
class Component:
    """One architectural component and the units it was found in."""
    name: str
    type: str = ""
    technologies: Tuple[str, ...] = ()
    description: str = ""
    units: Tuple[str, ...] = ()


@dataclass(frozen=True)
class DependencyEdge:
    """A directed dependency between two components."""
    source: str
    target: str
    type: str = ""
    strength: str = DEFAULT_STRENGTH
    units: Tuple[str, ...] = ()


@dataclass(frozen=True)
class FileStructure:
    main_directories: Tuple[str, ...] = ()
    configuration_files: Tuple[str, ...] = ()
    test_structure: Optional[str] = None
    documentation_presence: Optional[str] = None


@dataclass(frozen=True)
class Record:
    """Semantic payload describing one unit or the whole input."""
    architecture: Optional[str] = None
    tech_stack: Tuple[str, ...] = ()
    components: Tuple[Component, ...] = ()
    dependencies: Tuple[DependencyEdge, ...] = ()
    insights: Tuple[str, ...] = ()
    file_structure: FileStructure = field(default_factory=FileStructure)
    scalability_notes: Optional[str] = None
    security_considerations: Optional[str] = None


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return ""
    return str(value).strip()


def _optional_text(value: Any) -> Optional[str]:
    s = _text(value)
    return s or None


def _normalize_list(values: Any) -> Tuple[str, ...]:
    """Coerce a string or list of scalars into a tuple of non-empty strings."""
    if values is None:
        return ()
    if isinstance(values, str):
        values = [part for part in values.split(",")]
    if not isinstance(values, (list, tuple)):
        return ()
    out: List[str] = []
    for v in values:
        s = _text(v)
        if s:
            out.append(s)
    return tuple(out)


def _normalize_component(raw: Any, unit_id: Optional[str]) -> Optional[Component]:
    if isinstance(raw, str):
        name = raw.strip()
        if not name:
            return None
        return Component(name=name, units=(unit_id,) if unit_id else ())
    if not isinstance(raw, dict):
        return None
    name = _text(raw.get("name"))
    if not name:
        return None
    units = _normalize_list(raw.get("chunks") or raw.get("units"))
    if unit_id and unit_id not in units:
        units = units + (unit_id,)
    return Component(
        name=name,
        type=_text(raw.get("type")),
        technologies=_normalize_list(raw.get("technologies") or raw.get("tech")),
        description=_text(raw.get("description")),
        units=units,
    )


def _normalize_edge(raw: Any, unit_id: Optional[str]) -> Optional[DependencyEdge]:
    if not isinstance(raw, dict):
        return None
    source = _text(raw.get("from") or raw.get("source"))
    target = _text(raw.get("to") or raw.get("target"))
    if not source or not target:
        return None
    units = _normalize_list(raw.get("chunks") or raw.get("units"))
    if unit_id and unit_id not in units:
        units = units + (unit_id,)
    return DependencyEdge(
        source=source,
        target=target,
        type=_text(raw.get("type")),
        strength=_text(raw.get("strength")) or DEFAULT_STRENGTH,
        units=units,
    )


def _normalize_file_structure(raw: Any) -> FileStructure:
    if not isinstance(raw, dict):
        return FileStructure()
    return FileStructure(
        main_directories=_normalize_list(raw.get("main_directories")),
        configuration_files=_normalize_list(raw.get("configuration_files")),
        test_structure=_optional_text(raw.get("test_structure")),
        documentation_presence=_optional_text(raw.get("documentation_presence")),
    )


def _collect(values: Any, fn, unit_id: Optional[str]) -> Tuple[Any, ...]:
    if not isinstance(values, list):
        return ()
    out = []
    for raw in values:
        item = fn(raw, unit_id)
        if item is not None:
            out.append(item)
    return tuple(out)


def record_from_dict(data: dict, *, unit_id: Optional[str] = None) -> Record:
    """Normalize a loosely-shaped analysis mapping into a Record.

    Missing or mistyped fields fall back to their defaults; nothing past this
    point needs to guard against odd shapes. When ``unit_id`` is given every
    component and edge is tagged with it.
    """
    if not isinstance(data, dict):
        raise TypeError(f"expected a mapping, got {type(data).__name__}")
    return Record(
        architecture=_optional_text(data.get("architecture_pattern") or data.get("architecture")),
        tech_stack=_normalize_list(data.get("tech_stack")),
        components=_collect(data.get("key_components") or data.get("components"), _normalize_component, unit_id),
        dependencies=_collect(data.get("dependencies"), _normalize_edge, unit_id),
        insights=_normalize_list(data.get("insights")),
        file_structure=_normalize_file_structure(data.get("file_structure_analysis") or data.get("file_structure")),
        scalability_notes=_optional_text(data.get("scalability_notes")),
        security_considerations=_optional_text(data.get("security_considerations")),
    )


def parse_record(raw: str, *, unit_id: Optional[str] = None) -> ParseOutcome:
    """Parse collaborator text into ``Parsed(Record)`` or ``Unparsable``."""
    outcome = parse_json_object(raw)
    if isinstance(outcome, Unparsable):
        return outcome
    return Parsed(record_from_dict(outcome.value, unit_id=unit_id))


def component_to_dict(c: Component) -> dict:
    return {
        "name": c.name,
        "type": c.type,
        "technologies": list(c.technologies),
        "description": c.description,
        "chunks": list(c.units),
    }


def edge_to_dict(e: DependencyEdge) -> dict:
    return {
        "from": e.source,
        "to": e.target,
        "type": e.type,
        "strength": e.strength,
        "chunks": list(e.units),
    }


def record_to_dict(record: Record) -> dict:
    """Serialize a Record using the JSON field names the collaborators speak."""
    fs = record.file_structure
    return {
        "architecture_pattern": record.architecture or UNKNOWN,
        "tech_stack": list(record.tech_stack),
        "key_components": [component_to_dict(c) for c in record.components],
        "insights": list(record.insights),
        "dependencies": [edge_to_dict(e) for e in record.dependencies],
        "file_structure_analysis": {
            "main_directories": list(fs.main_directories),
            "configuration_files": list(fs.configuration_files),
            "test_structure": fs.test_structure or UNKNOWN,
            "documentation_presence": fs.documentation_presence or UNKNOWN,
        },
        "scalability_notes": record.scalability_notes or "",
        "security_considerations": record.security_considerations or "",
    }


def ordered_union(groups: Iterable[Iterable[str]]) -> Tuple[str, ...]:
    """Union of string groups keeping first-occurrence order."""
    seen = set()
    out: List[str] = []
    for group in groups:
        for item in group:
            if item in seen:
                continue
            seen.add(item)
            out.append(item)
    return tuple(out)
