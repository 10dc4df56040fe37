"""Choose the single-unit or decomposed path and assemble the final answer."""

from __future__ import annotations

import asyncio
import time
from dataclasses import replace
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from .aggregator import Aggregator, SynthesizeFn, build_summary
from .config import PipelineConfig
from .decomposer import SINGLE_UNIT_ID, SINGLE_UNIT_TAG, ClassifyFn, Decomposer, dedupe_items
from .errors import ListingError
from .heuristics import fallback_record
from .json_tools import Parsed, Unparsable
from .mermaid import fallback_diagram
from .models import (
    PATH_DECOMPOSED,
    PATH_SINGLE,
    AnalysisResponse,
    BatchSummary,
    Priority,
    WorkUnit,
)
from .record import UNKNOWN, Record
from .scheduler import AnalyzeFn, Scheduler, SleepFn

RenderFn = Callable[[Record], Awaitable[str]]


def validate_items(items: Any) -> List[str]:
    """Reject a missing or malformed listing before any work starts."""
    if items is None:
        raise ListingError("no item list provided")
    if not isinstance(items, (list, tuple)):
        raise ListingError(f"item list must be a list of paths, got {type(items).__name__}")
    if not items:
        raise ListingError("item list is empty")
    for i, item in enumerate(items):
        if not isinstance(item, str) or not item.strip():
            raise ListingError(f"item #{i + 1} is not a non-empty path string: {item!r}")
    return list(items)


def _as_record(value: Any) -> Record:
    if isinstance(value, Parsed):
        value = value.value
    if isinstance(value, Unparsable):
        raise ValueError(f"unparsable analyzer output: {value.reason}")
    if not isinstance(value, Record):
        raise TypeError(f"analyzer returned {type(value).__name__}, expected Record")
    return value


class Orchestrator:
    """Runs one request end to end.

    Only :class:`ListingError` escapes :meth:`handle`; every other failure is
    folded into the returned :class:`AnalysisResponse`.
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        *,
        analyze_unit: AnalyzeFn,
        synthesize: Optional[SynthesizeFn] = None,
        classify_units: Optional[ClassifyFn] = None,
        render: Optional[RenderFn] = None,
        sleep: SleepFn = asyncio.sleep,
        log: Optional[Callable[[str], None]] = None,
    ):
        self.config = config or PipelineConfig()
        self.analyze_unit = analyze_unit
        self.render = render
        self.log = log
        self.decomposer = Decomposer(classify_units if self.config.content_aware else None, log=log)
        self.scheduler = Scheduler(self.config.policy, sleep=sleep, log=log)
        self.aggregator = Aggregator(synthesize, log=log)

    @classmethod
    def from_collaborators(
        cls,
        config: PipelineConfig,
        collaborators: Any,
        *,
        log: Optional[Callable[[str], None]] = None,
    ) -> "Orchestrator":
        """Wire an object exposing the four collaborator methods."""
        return cls(
            config,
            analyze_unit=collaborators.analyze_unit,
            synthesize=collaborators.synthesize,
            classify_units=collaborators.classify_units,
            render=collaborators.render,
            log=log,
        )

    def _log(self, msg: str) -> None:
        if self.log:
            self.log(f"[ORCH] {msg}")

    async def handle(self, items: Sequence[str], repo_name: str = "repository") -> AnalysisResponse:
        items = dedupe_items(validate_items(items))
        count = len(items)
        started = time.monotonic()
        cfg = self.config
        small = count <= cfg.chunking_threshold or not cfg.enable_chunking
        path = PATH_SINGLE if small else PATH_DECOMPOSED
        self._log(f"repo={repo_name} items={count} threshold={cfg.chunking_threshold} path={path}")
        try:
            if small:
                response = await self._single_unit(items, repo_name)
            else:
                response = await self._decomposed(items, repo_name)
            response = await self._with_diagram(response)
        except Exception as e:
            self._log(f"unrecoverable failure: {type(e).__name__}: {e}")
            response = AnalysisResponse(
                path=path,
                success=False,
                record=Record(
                    architecture=UNKNOWN,
                    insights=(f"Analysis failed: {type(e).__name__}: {e}",),
                ),
                item_count=count,
                summary=BatchSummary(total_units=0, succeeded=0, failed=0) if path == PATH_DECOMPOSED else None,
                errors=(f"{type(e).__name__}: {e}",),
            )
        elapsed = time.monotonic() - started
        self._log(f"done path={response.path} success={response.success} fallback={response.fallback_used}")
        return replace(response, elapsed_s=elapsed)

    async def _single_unit(self, items: List[str], repo_name: str) -> AnalysisResponse:
        unit = WorkUnit(
            id=SINGLE_UNIT_ID,
            label=repo_name,
            tag=SINGLE_UNIT_TAG,
            priority=Priority.HIGH,
            items=tuple(items),
            description="Whole input analyzed as one unit",
        )
        errors: List[str] = []
        fallback_used = False
        try:
            value = await asyncio.wait_for(
                self.analyze_unit(unit), timeout=self.config.policy.per_unit_timeout_s
            )
            record = _as_record(value)
        except asyncio.TimeoutError:
            reason = f"timeout after {self.config.policy.per_unit_timeout_s:g}s"
            errors.append(reason)
            record = fallback_record(items, reason=reason)
            fallback_used = True
        except Exception as e:
            reason = f"{type(e).__name__}: {e}"
            errors.append(reason)
            record = fallback_record(items, reason=reason)
            fallback_used = True
        if fallback_used:
            self._log(f"analyzer failed ({errors[-1]}); using heuristic record")
        return AnalysisResponse(
            path=PATH_SINGLE,
            success=True,
            record=record,
            item_count=len(items),
            strategy="Single unit: input at or below the chunking threshold",
            fallback_used=fallback_used,
            errors=tuple(errors),
        )

    async def _decomposed(self, items: List[str], repo_name: str) -> AnalysisResponse:
        cfg = self.config
        errors: List[str] = []

        try:
            decomposition = await self.decomposer.decompose(items, cfg.constraints)
        except Exception as e:
            return self._stage_fallback(
                items, "decomposition", e, summary=BatchSummary(total_units=0, succeeded=0, failed=0)
            )
        units = decomposition.units

        try:
            outcome = await self.scheduler.run(units, self.analyze_unit)
        except Exception as e:
            summary = BatchSummary(total_units=len(units), succeeded=0, failed=len(units))
            return self._stage_fallback(items, "scheduling", e, summary=summary, strategy=decomposition.strategy)

        errors.extend(f"unit {r.unit_id}: {r.failure_reason}" for r in outcome.failed)

        try:
            unified = await self.aggregator.aggregate(outcome, {"repo_name": repo_name, "item_count": len(items)})
        except Exception as e:
            return self._stage_fallback(
                items,
                "aggregation",
                e,
                summary=build_summary(outcome),
                strategy=decomposition.strategy,
                errors=errors,
            )

        self._log(
            f"units={outcome.total_units} succeeded={outcome.succeeded_count} "
            f"failed={outcome.failed_count} merge={unified.merge_method}"
        )
        return AnalysisResponse(
            path=PATH_DECOMPOSED,
            success=True,
            record=unified.record,
            item_count=len(items),
            summary=unified.summary,
            strategy=decomposition.strategy,
            merge_method=unified.merge_method,
            errors=tuple(errors),
        )

    def _stage_fallback(
        self,
        items: List[str],
        stage: str,
        error: Exception,
        *,
        summary: Optional[BatchSummary],
        strategy: str = "",
        errors: Sequence[str] = (),
    ) -> AnalysisResponse:
        reason = f"{stage} failed: {type(error).__name__}: {error}"
        self._log(f"{reason}; using heuristic record")
        return AnalysisResponse(
            path=PATH_DECOMPOSED,
            success=True,
            record=fallback_record(items, reason=reason),
            item_count=len(items),
            summary=summary,
            strategy=strategy,
            fallback_used=True,
            errors=tuple(errors) + (reason,),
        )

    async def _with_diagram(self, response: AnalysisResponse) -> AnalysisResponse:
        if self.render is None or not self.config.enable_render:
            return replace(response, diagram=fallback_diagram(response.record))
        try:
            diagram = await asyncio.wait_for(
                self.render(response.record), timeout=self.config.policy.per_unit_timeout_s
            )
            if not isinstance(diagram, str) or not diagram.strip():
                raise ValueError("renderer returned no diagram")
        except Exception as e:
            reason = f"render failed: {type(e).__name__}: {e}"
            self._log(f"{reason}; using placeholder diagram")
            return replace(
                response,
                diagram=fallback_diagram(response.record),
                diagram_fallback=True,
                errors=response.errors + (reason,),
            )
        return replace(response, diagram=diagram)
