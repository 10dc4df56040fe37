"""Work units, per-unit results and batch outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

from .record import Record


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @classmethod
    def parse(cls, value: object, default: Optional["Priority"] = None) -> "Priority":
        """Map a loose priority string to the enum, falling back to ``default``."""
        fallback = default or cls.MEDIUM
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return fallback
        try:
            return cls(value.strip().lower())
        except ValueError:
            return fallback


@dataclass(frozen=True)
class WorkUnit:
    """A bounded group of items analyzed as one scheduling task.

    ``dependencies`` lists ids of other units this one declares it relates
    to. It is carried through to the analyzer prompt but never orders or
    gates scheduling.
    """
    id: str
    label: str
    tag: str
    priority: Priority
    items: Tuple[str, ...]
    dependencies: FrozenSet[str] = frozenset()
    description: str = ""

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("WorkUnit.id must not be empty")
        if not self.items:
            raise ValueError(f"WorkUnit {self.id} has no items")

    @property
    def size(self) -> int:
        return len(self.items)


@dataclass(frozen=True)
class UnitResult:
    """Outcome of processing one WorkUnit."""
    unit: WorkUnit
    succeeded: bool
    attempts: int
    record: Optional[Record] = None
    failure_reason: Optional[str] = None
    elapsed_s: float = 0.0

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("UnitResult.attempts must be >= 1")
        if self.succeeded and self.record is None:
            raise ValueError("a succeeded UnitResult needs a record")
        if not self.succeeded and self.record is not None:
            raise ValueError("a failed UnitResult must not carry a record")
        if not self.succeeded and not self.failure_reason:
            raise ValueError("a failed UnitResult needs a failure reason")

    @property
    def unit_id(self) -> str:
        return self.unit.id


@dataclass(frozen=True)
class BatchOutcome:
    """All unit results of one scheduler run, in submission order."""
    unit_results: Tuple[UnitResult, ...]
    elapsed_s: float = 0.0

    @property
    def total_units(self) -> int:
        return len(self.unit_results)

    @property
    def succeeded(self) -> Tuple[UnitResult, ...]:
        return tuple(r for r in self.unit_results if r.succeeded)

    @property
    def failed(self) -> Tuple[UnitResult, ...]:
        return tuple(r for r in self.unit_results if not r.succeeded)

    @property
    def succeeded_count(self) -> int:
        return len(self.succeeded)

    @property
    def failed_count(self) -> int:
        return len(self.failed)


@dataclass(frozen=True)
class BatchSummary:
    total_units: int
    succeeded: int
    failed: int
    tag_counts: Dict[str, int] = field(default_factory=dict)
    elapsed_s: float = 0.0
    elapsed_text: str = ""

    def __post_init__(self) -> None:
        if self.succeeded + self.failed != self.total_units:
            raise ValueError(
                f"summary counts disagree: {self.succeeded} + {self.failed} != {self.total_units}"
            )


@dataclass(frozen=True)
class UnifiedRecord:
    """The merged record for the whole input plus its batch summary."""
    record: Record
    summary: BatchSummary
    merge_method: str


@dataclass(frozen=True)
class Decomposition:
    units: Tuple[WorkUnit, ...]
    strategy: str
    content_aware: bool = False

    @property
    def unit_count(self) -> int:
        return len(self.units)


PATH_SINGLE = "single-unit"
PATH_DECOMPOSED = "decomposed"


@dataclass(frozen=True)
class AnalysisResponse:
    """Final answer of the orchestrator for one request."""
    path: str
    success: bool
    record: Record
    item_count: int
    summary: Optional[BatchSummary] = None
    diagram: str = ""
    diagram_fallback: bool = False
    strategy: str = ""
    merge_method: str = ""
    fallback_used: bool = False
    errors: Tuple[str, ...] = ()
    elapsed_s: float = 0.0
