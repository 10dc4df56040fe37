import sys
from pathlib import Path
from typing import List

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from archmap.config import ChunkingConstraints, PipelineConfig, SchedulerPolicy
from archmap.models import Priority, WorkUnit
from archmap.record import Component, DependencyEdge, Record


class LogCapture:
    """Collects tagged log lines passed to ``log=`` callbacks."""

    def __init__(self):
        self.lines: List[str] = []

    def __call__(self, msg: str) -> None:
        self.lines.append(msg)

    def tagged(self, tag: str) -> List[str]:
        return [line for line in self.lines if line.startswith(f"[{tag}]")]


class FakeSleep:
    """Records requested backoff delays without waiting."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def make_unit(unit_id: str, items=None, *, tag: str = "logic") -> WorkUnit:
    return WorkUnit(
        id=unit_id,
        label=unit_id,
        tag=tag,
        priority=Priority.HIGH,
        items=tuple(items or (f"src/{unit_id}.py",)),
    )


def make_record(
    *,
    architecture="Layered",
    tech=("Python",),
    components=(),
    dependencies=(),
    insights=(),
    unit_id=None,
) -> Record:
    units = (unit_id,) if unit_id else ()
    return Record(
        architecture=architecture,
        tech_stack=tuple(tech),
        components=tuple(
            Component(name=name, type=ctype, technologies=tuple(ctech), description=desc, units=units)
            for name, ctype, ctech, desc in components
        ),
        dependencies=tuple(
            DependencyEdge(source=src, target=dst, type=kind, units=units) for src, dst, kind in dependencies
        ),
        insights=tuple(insights),
    )


@pytest.fixture
def log():
    return LogCapture()


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def fast_config():
    return PipelineConfig(
        constraints=ChunkingConstraints(max_unit_size=200, max_unit_count=10, min_unit_size=50),
        policy=SchedulerPolicy(max_concurrent=3, per_unit_timeout_s=2.0, max_attempts=2, backoff_base_s=0.0),
        enable_render=True,
    )
