"""Ollama-backed implementations of the analyzer, synthesizer, grouper and renderer."""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, Mapping, Optional, Sequence

import httpx

from .config import ChunkingConstraints, OllamaSettings
from .errors import CollaboratorError
from .json_tools import Unparsable, parse_or_repair_json
from .mermaid import clean_mermaid, validate_mermaid
from .models import UnitResult, WorkUnit
from .ollama_client import ollama_chat
from .prompts import load_prompts
from .record import Record, record_from_dict, record_to_dict


def _unit_prompt(unit: WorkUnit) -> str:
    lines = [
        f"chunk.id={unit.id}",
        f"chunk.name={unit.label}",
        f"chunk.category={unit.tag}",
        f"chunk.priority={unit.priority.value}",
        f"chunk.file_count={unit.size}",
    ]
    if unit.description:
        lines.append(f"chunk.description={unit.description}")
    if unit.dependencies:
        lines.append(f"chunk.related_chunks={', '.join(sorted(unit.dependencies))}")
    lines.append("")
    lines.append("FILES:")
    lines.extend(f"- {item}" for item in unit.items)
    return "\n".join(lines)


class OllamaCollaborators:
    """All four collaborator contracts over one Ollama server.

    Each method raises :class:`CollaboratorError` when the model output is
    unusable; transport errors from httpx propagate unchanged.
    """

    def __init__(
        self,
        settings: Optional[OllamaSettings] = None,
        prompts: Optional[Mapping[str, str]] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        log: Optional[Callable[[str], None]] = None,
    ):
        self.settings = settings or OllamaSettings()
        self.prompts = load_prompts(prompts)
        self.client = client
        self.log = log

    async def _chat(self, model: str, temperature: float, system: str, user: str, label: str) -> str:
        s = self.settings
        return await ollama_chat(
            s.base_url,
            model,
            system,
            user,
            temperature=temperature,
            timeout_s=s.timeout_s,
            num_predict=s.num_predict,
            num_ctx=s.num_ctx,
            log=self.log,
            label=label,
            client=self.client,
        )

    async def _json(self, raw: str, model: str, label: str) -> Dict[str, Any]:
        repair = None
        if self.settings.repair_json:
            async def repair(text: str) -> str:
                return await self._chat(
                    model, 0.0, self.prompts["json_repair_system"], text, f"{label}_repair"
                )

        outcome = await parse_or_repair_json(raw, repair=repair, log=self.log, label=label)
        if isinstance(outcome, Unparsable):
            raise CollaboratorError(f"{label}: {outcome.reason}")
        return outcome.value

    async def analyze_unit(self, unit: WorkUnit) -> Record:
        s = self.settings
        raw = await self._chat(
            s.analyzer_model,
            s.analyzer_temperature,
            self.prompts["analyze_unit_system"],
            _unit_prompt(unit),
            f"analyze {unit.id}",
        )
        data = await self._json(raw, s.analyzer_model, f"analyze_{unit.id}")
        return record_from_dict(data, unit_id=unit.id)

    async def synthesize(self, results: Sequence[UnitResult], context: Mapping[str, Any]) -> Record:
        s = self.settings
        payload = {
            "repository": context.get("repo_name") or "repository",
            "chunks": [
                {
                    "id": r.unit_id,
                    "name": r.unit.label,
                    "category": r.unit.tag,
                    "analysis": record_to_dict(r.record),
                }
                for r in results
                if r.record is not None
            ],
        }
        raw = await self._chat(
            s.aggregator_model,
            s.aggregator_temperature,
            self.prompts["synthesize_system"],
            json.dumps(payload, indent=2, ensure_ascii=False),
            "synthesize",
        )
        data = await self._json(raw, s.aggregator_model, "synthesize")
        return record_from_dict(data)

    async def classify_units(self, items: Sequence[str], constraints: ChunkingConstraints) -> Dict[str, Any]:
        s = self.settings
        system = (
            self.prompts["classify_units_system"]
            .replace("{max_unit_size}", str(constraints.max_unit_size))
            .replace("{max_unit_count}", str(constraints.max_unit_count))
        )
        user = f"file_count={len(items)}\n\nFILES:\n" + "\n".join(items)
        raw = await self._chat(s.chunking_model, s.chunking_temperature, system, user, "classify_units")
        return await self._json(raw, s.chunking_model, "classify_units")

    async def render(self, record: Record) -> str:
        s = self.settings
        raw = await self._chat(
            s.diagram_model,
            s.diagram_temperature,
            self.prompts["mermaid_system"],
            json.dumps(record_to_dict(record), indent=2, ensure_ascii=False),
            "render",
        )
        diagram = clean_mermaid(raw)
        issues = validate_mermaid(diagram)
        if issues:
            raise CollaboratorError("invalid Mermaid diagram: " + ", ".join(issues))
        return diagram
