"""Split a flat item list into bounded work units."""

from __future__ import annotations

import math
import re
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .config import ChunkingConstraints
from .errors import DecompositionError
from .heuristics import CATEGORY_TITLES, group_by_category, priority_for
from .models import Decomposition, Priority, WorkUnit

SINGLE_UNIT_ID = "single_unit"
SINGLE_UNIT_TAG = "mixed"

# Async callable proposing a unit set for the given items.
ClassifyFn = Callable[[Sequence[str], ChunkingConstraints], Awaitable[Any]]

_TAG_RE = re.compile(r"[^a-z0-9]+")


def dedupe_items(items: Iterable[str]) -> List[str]:
    """Drop repeated items, keeping first occurrence order."""
    return list(dict.fromkeys(items))


def chunk_size_for(total: int, constraints: ChunkingConstraints) -> int:
    """Page size used by the deterministic strategy."""
    if total <= 0:
        return constraints.max_unit_size
    return max(1, min(constraints.max_unit_size, math.ceil(total / constraints.max_unit_count)))


def _paginate(files: Sequence[str], size: int, constraints: ChunkingConstraints) -> List[List[str]]:
    """Slice into pages; a short trailing page folds into its predecessor when it fits."""
    pages = [list(files[i : i + size]) for i in range(0, len(files), size)]
    if len(pages) > 1 and len(pages[-1]) < constraints.min_unit_size:
        if len(pages[-2]) + len(pages[-1]) <= constraints.max_unit_size:
            pages[-2].extend(pages.pop())
    return pages


def _page_count(groups: Dict[str, List[str]], size: int, constraints: ChunkingConstraints) -> int:
    return sum(len(_paginate(files, size, constraints)) for files in groups.values())


def fitted_page_size(groups: Dict[str, List[str]], total: int, constraints: ChunkingConstraints) -> int:
    """Start from chunk_size_for and grow until the pages fit max_unit_count or max_unit_size is reached."""
    size = chunk_size_for(total, constraints)
    while size < constraints.max_unit_size and _page_count(groups, size, constraints) > constraints.max_unit_count:
        size += 1
    return size


def verify_coverage(items: Sequence[str], units: Sequence[WorkUnit]) -> List[str]:
    """Return coverage problems: missing, duplicated or unknown items."""
    expected = set(items)
    seen: Set[str] = set()
    problems: List[str] = []
    duplicated: List[str] = []
    unknown: List[str] = []
    ids: Set[str] = set()
    for unit in units:
        if unit.id in ids:
            problems.append(f"duplicate unit id {unit.id}")
        ids.add(unit.id)
        for item in unit.items:
            if item not in expected:
                unknown.append(item)
            elif item in seen:
                duplicated.append(item)
            seen.add(item)
    missing = [item for item in items if item not in seen]
    if missing:
        problems.append(f"{len(missing)} item(s) not covered (first: {missing[0]})")
    if duplicated:
        problems.append(f"{len(duplicated)} item(s) assigned twice (first: {duplicated[0]})")
    if unknown:
        problems.append(f"{len(unknown)} unknown item(s) (first: {unknown[0]})")
    return problems


class _IdPool:
    """Hands out unique ``chunk_<n>`` ids, skipping ones already taken."""

    def __init__(self, taken: Iterable[str] = ()):
        self._taken = set(taken)
        self._next = 1

    def reserve(self, unit_id: str) -> bool:
        if not unit_id or unit_id in self._taken:
            return False
        self._taken.add(unit_id)
        return True

    def generate(self) -> str:
        while f"chunk_{self._next}" in self._taken:
            self._next += 1
        unit_id = f"chunk_{self._next}"
        self._taken.add(unit_id)
        self._next += 1
        return unit_id


def deterministic_units(
    items: Sequence[str],
    constraints: ChunkingConstraints,
    *,
    ids: Optional[_IdPool] = None,
    total: Optional[int] = None,
) -> List[WorkUnit]:
    """Group by path category, then page each category by the fitted page size.

    ``total`` sizes the pages when ``items`` is only part of the input.
    """
    ids = ids or _IdPool()
    groups = group_by_category(items)
    size = fitted_page_size(groups, len(items) if total is None else total, constraints)
    units: List[WorkUnit] = []
    for category, files in groups.items():
        pages = _paginate(files, size, constraints)
        title = CATEGORY_TITLES.get(category, category.title())
        for n, page in enumerate(pages, start=1):
            label = title if len(pages) == 1 else f"{title} ({n}/{len(pages)})"
            units.append(
                WorkUnit(
                    id=ids.generate(),
                    label=label,
                    tag=category,
                    priority=priority_for(category),
                    items=tuple(page),
                    description=f"{len(page)} {title.lower()} file(s)",
                )
            )
    return units


def _text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value).strip()


def _proposal_files(raw: dict) -> List[Any]:
    for key in ("files", "items", "paths"):
        value = raw.get(key)
        if isinstance(value, list):
            return value
    return []


class Decomposer:
    """Turns an item list into WorkUnits, content-aware when possible."""

    def __init__(
        self,
        classify_units: Optional[ClassifyFn] = None,
        *,
        log: Optional[Callable[[str], None]] = None,
    ):
        self.classify_units = classify_units
        self.log = log

    def _log(self, msg: str) -> None:
        if self.log:
            self.log(f"[DECOMPOSE] {msg}")

    async def decompose(
        self,
        items: Sequence[str],
        constraints: Optional[ChunkingConstraints] = None,
    ) -> Decomposition:
        constraints = constraints or ChunkingConstraints()
        unique = dedupe_items(items)
        if len(unique) != len(items):
            self._log(f"dropped {len(items) - len(unique)} duplicate item(s)")
        if not unique:
            raise DecompositionError("cannot decompose an empty item list")

        if len(unique) <= constraints.max_unit_size:
            unit = WorkUnit(
                id=SINGLE_UNIT_ID,
                label="All items",
                tag=SINGLE_UNIT_TAG,
                priority=Priority.HIGH,
                items=tuple(unique),
                description="Input fits in one unit",
            )
            self._log(f"items={len(unique)} fits max_unit_size={constraints.max_unit_size}; single unit")
            return Decomposition(
                units=(unit,),
                strategy=f"No decomposition needed: {len(unique)} items fit in one unit",
            )

        if self.classify_units is not None:
            decomposition = await self._content_aware(unique, constraints)
            if decomposition is not None:
                self._check_count(decomposition, constraints)
                return decomposition

        units = deterministic_units(unique, constraints)
        problems = verify_coverage(unique, units)
        if problems:
            raise DecompositionError("deterministic decomposition broke coverage: " + "; ".join(problems))
        size = max(unit.size for unit in units)
        self._log(f"items={len(unique)} strategy=deterministic units={len(units)} largest_unit={size}")
        decomposition = Decomposition(
            units=tuple(units),
            strategy=(
                f"Deterministic grouping by path category: {len(units)} units "
                f"of at most {size} items ({len(unique)} items total)"
            ),
        )
        self._check_count(decomposition, constraints)
        return decomposition

    def _check_count(self, decomposition: Decomposition, constraints: ChunkingConstraints) -> None:
        if decomposition.unit_count > constraints.max_unit_count:
            self._log(
                f"warning: {decomposition.unit_count} units exceed max_unit_count={constraints.max_unit_count}"
            )

    async def _content_aware(
        self,
        items: List[str],
        constraints: ChunkingConstraints,
    ) -> Optional[Decomposition]:
        try:
            proposal = await self.classify_units(items, constraints)
        except Exception as e:
            self._log(f"content-aware grouping failed ({type(e).__name__}: {e}); using deterministic strategy")
            return None

        units = self.validate_proposal(proposal, items, constraints)
        if not units:
            self._log("content-aware proposal unusable; using deterministic strategy")
            return None
        problems = verify_coverage(items, units)
        if problems:
            self._log("content-aware proposal failed coverage (" + "; ".join(problems) + "); using deterministic strategy")
            return None
        self._log(f"items={len(items)} strategy=content-aware units={len(units)}")
        return Decomposition(
            units=tuple(units),
            strategy=f"Content-aware grouping: {len(units)} units ({len(items)} items total)",
            content_aware=True,
        )

    def validate_proposal(
        self,
        proposal: Any,
        items: Sequence[str],
        constraints: ChunkingConstraints,
    ) -> List[WorkUnit]:
        """Clean a proposed unit set against the real items.

        Returns an empty list when nothing usable survives. Items the proposal
        never mentioned are swept into deterministic units.
        """
        if isinstance(proposal, dict):
            raw_units = proposal.get("chunks", proposal.get("units"))
        else:
            raw_units = proposal
        if not isinstance(raw_units, list):
            return []

        known = set(items)
        claimed: Set[str] = set()
        accepted: List[Tuple[dict, List[str]]] = []
        dropped = 0
        for raw in raw_units:
            if not isinstance(raw, dict):
                continue
            files: List[str] = []
            for value in _proposal_files(raw):
                path = _text(value)
                if path not in known or path in claimed:
                    dropped += 1
                    continue
                claimed.add(path)
                files.append(path)
            if files:
                accepted.append((raw, files))
        if dropped:
            self._log(f"proposal: dropped {dropped} unknown or repeated item(s)")
        if not accepted:
            return []

        pool = _IdPool()
        assigned: List[str] = []
        for raw, _ in accepted:
            proposed = _text(raw.get("id"))
            assigned.append(proposed if pool.reserve(proposed) else "")
        assigned = [unit_id or pool.generate() for unit_id in assigned]

        # Proposed id -> final ids, so splits keep declared dependencies meaningful.
        id_map: Dict[str, List[str]] = {}
        drafts: List[Tuple[str, dict, List[str]]] = []
        for unit_id, (raw, files) in zip(assigned, accepted):
            pages = [files[i : i + constraints.max_unit_size] for i in range(0, len(files), constraints.max_unit_size)]
            if len(pages) == 1:
                ids_for_unit = [unit_id]
            else:
                ids_for_unit = [f"{unit_id}_part{n}" for n in range(1, len(pages) + 1)]
                for part_id in ids_for_unit:
                    pool.reserve(part_id)
                self._log(f"proposal: split oversized unit {unit_id} ({len(files)} items) into {len(pages)}")
            source_id = _text(raw.get("id")) or unit_id
            id_map.setdefault(source_id, []).extend(ids_for_unit)
            id_map.setdefault(unit_id, ids_for_unit)
            for part_id, page in zip(ids_for_unit, pages):
                drafts.append((part_id, raw, page))

        units: List[WorkUnit] = []
        for unit_id, raw, page in drafts:
            deps: Set[str] = set()
            raw_deps = raw.get("dependencies")
            if isinstance(raw_deps, list):
                for dep in raw_deps:
                    for target in id_map.get(_text(dep), []):
                        if target != unit_id:
                            deps.add(target)
            tag = _TAG_RE.sub("-", _text(raw.get("category")).lower()).strip("-") or SINGLE_UNIT_TAG
            units.append(
                WorkUnit(
                    id=unit_id,
                    label=_text(raw.get("name")) or unit_id,
                    tag=tag,
                    priority=Priority.parse(raw.get("priority")),
                    items=tuple(page),
                    dependencies=frozenset(deps),
                    description=_text(raw.get("description")),
                )
            )

        leftovers = [item for item in items if item not in claimed]
        if leftovers:
            self._log(f"proposal: sweeping {len(leftovers)} unassigned item(s) into deterministic units")
            units.extend(deterministic_units(leftovers, constraints, ids=pool, total=len(items)))
        return units
