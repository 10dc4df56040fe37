"""Run work units concurrently with a cap, per-attempt timeout and retry."""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from .config import SchedulerPolicy
from .json_tools import Parsed, Unparsable
from .models import BatchOutcome, UnitResult, WorkUnit
from .record import Record

AnalyzeFn = Callable[[WorkUnit], Awaitable[Any]]
SleepFn = Callable[[float], Awaitable[None]]


def _format_seconds(value: float) -> str:
    return f"{value:g}"


def backoff_delay(policy: SchedulerPolicy, attempt: int) -> float:
    """Delay between attempt ``attempt`` (1-based) and the next one."""
    return policy.backoff_base_s * (2 ** attempt)


class Scheduler:
    """Executes an analyzer over units in consecutive bounded batches.

    Attempt admission goes through a semaphore sized ``max_concurrent``.
    Results come back in submission order whatever the completion order.
    """

    def __init__(
        self,
        policy: Optional[SchedulerPolicy] = None,
        *,
        sleep: SleepFn = asyncio.sleep,
        log: Optional[Callable[[str], None]] = None,
    ):
        self.policy = policy or SchedulerPolicy()
        self.sleep = sleep
        self.log = log

    def _log(self, msg: str) -> None:
        if self.log:
            self.log(f"[SCHED] {msg}")

    async def run(self, units: Sequence[WorkUnit], analyze_fn: AnalyzeFn) -> BatchOutcome:
        policy = self.policy
        started = time.monotonic()
        gate = asyncio.Semaphore(policy.max_concurrent)
        results: List[Optional[UnitResult]] = [None] * len(units)
        batch_size = policy.max_concurrent
        batches = (len(units) + batch_size - 1) // batch_size

        self._log(
            f"units={len(units)} batches={batches} max_concurrent={policy.max_concurrent} "
            f"timeout={_format_seconds(policy.per_unit_timeout_s)}s max_attempts={policy.max_attempts}"
        )
        for b, start in enumerate(range(0, len(units), batch_size), start=1):
            batch = units[start : start + batch_size]
            self._log(f"batch {b}/{batches} units={','.join(u.id for u in batch)}")
            settled = await asyncio.gather(
                *(self._run_unit(unit, analyze_fn, gate) for unit in batch)
            )
            for offset, result in enumerate(settled):
                results[start + offset] = result

        outcome = BatchOutcome(
            unit_results=tuple(r for r in results if r is not None),
            elapsed_s=time.monotonic() - started,
        )
        self._log(
            f"done total={outcome.total_units} succeeded={outcome.succeeded_count} "
            f"failed={outcome.failed_count} elapsed={outcome.elapsed_s:.2f}s"
        )
        return outcome

    async def _attempt(self, unit: WorkUnit, analyze_fn: AnalyzeFn, gate: asyncio.Semaphore) -> Record:
        async with gate:
            value = await asyncio.wait_for(analyze_fn(unit), timeout=self.policy.per_unit_timeout_s)
        if isinstance(value, Parsed):
            value = value.value
        if isinstance(value, Unparsable):
            raise ValueError(f"unparsable analyzer output: {value.reason}")
        if not isinstance(value, Record):
            raise TypeError(f"analyzer returned {type(value).__name__}, expected Record")
        return value

    async def _run_unit(self, unit: WorkUnit, analyze_fn: AnalyzeFn, gate: asyncio.Semaphore) -> UnitResult:
        policy = self.policy
        started = time.monotonic()
        reason = "not attempted"
        for attempt in range(1, policy.max_attempts + 1):
            try:
                record = await self._attempt(unit, analyze_fn, gate)
            except asyncio.TimeoutError:
                reason = f"timeout after {_format_seconds(policy.per_unit_timeout_s)}s"
            except Exception as e:
                reason = f"{type(e).__name__}: {e}"
            else:
                self._log(f"unit={unit.id} ok attempt={attempt} items={unit.size}")
                return UnitResult(
                    unit=unit,
                    succeeded=True,
                    attempts=attempt,
                    record=record,
                    elapsed_s=time.monotonic() - started,
                )

            if attempt < policy.max_attempts:
                delay = backoff_delay(policy, attempt)
                self._log(f"unit={unit.id} attempt={attempt} failed ({reason}); retrying in {delay:g}s")
                await self.sleep(delay)
            else:
                self._log(f"unit={unit.id} attempt={attempt} failed ({reason}); giving up")

        return UnitResult(
            unit=unit,
            succeeded=False,
            attempts=policy.max_attempts,
            failure_reason=reason,
            elapsed_s=time.monotonic() - started,
        )
