"""Prompt templates for the Ollama-backed collaborators.

Defaults live here; the ``prompts`` section of the YAML config may replace
any of them by key.
"""

from __future__ import annotations

from typing import Dict, Mapping, Optional

from .errors import ConfigError

ANALYZE_UNIT_SYSTEM = """You are a senior software architect analyzing one slice of a code repository.
You only see the file paths of this slice, not the whole repository.
Return ONLY a JSON object, no Markdown, no commentary, with exactly these keys:
{
  "architecture_pattern": "string (e.g. MVC, Microservices, Layered, Monolith)",
  "tech_stack": ["technology", "..."],
  "key_components": [
    {"name": "string", "type": "string", "technologies": ["..."], "description": "string"}
  ],
  "insights": ["string", "..."],
  "dependencies": [{"from": "component name", "to": "component name", "type": "string"}],
  "file_structure_analysis": {
    "main_directories": ["..."],
    "configuration_files": ["..."],
    "test_structure": "string",
    "documentation_presence": "string"
  },
  "scalability_notes": "string",
  "security_considerations": "string"
}
Use "Unknown" when the paths do not support a conclusion. Do not invent files.
"""

CLASSIFY_UNITS_SYSTEM = """You group repository file paths into coherent analysis chunks.
Group by responsibility (frontend, backend, configuration, tests, documentation, shared utilities).
Rules:
- every file path must appear in exactly one chunk;
- use only paths from the input, copied verbatim;
- each chunk holds at most {max_unit_size} files;
- produce at most {max_unit_count} chunks when possible.
Return ONLY a JSON object:
{
  "chunks": [
    {
      "id": "chunk_1",
      "name": "string",
      "category": "string",
      "priority": "high|medium|low",
      "description": "string",
      "dependencies": ["chunk id", "..."],
      "files": ["path", "..."]
    }
  ]
}
"""

SYNTHESIZE_SYSTEM = """You merge partial architecture analyses of one repository into a single analysis.
Each input analysis describes one chunk of the repository.
Merge duplicated components, keep every distinct dependency, and pick the architecture
pattern best supported by the chunks. Do not drop information that only one chunk reports.
Return ONLY a JSON object with the same keys as the inputs:
architecture_pattern, tech_stack, key_components, insights, dependencies,
file_structure_analysis, scalability_notes, security_considerations.
"""

MERMAID_SYSTEM = """You draw software architecture diagrams in Mermaid flowchart syntax.
Given an architecture analysis as JSON, output ONLY Mermaid code starting with "graph TD".
Use one node per key component (id in snake_case, label is the component name)
and one arrow per dependency, labelled with the dependency type when present.
No Markdown fences, no explanations.
"""

JSON_REPAIR_SYSTEM = """You repair malformed JSON.
Return ONLY the corrected JSON value. Keep every key and value that is recoverable.
No Markdown fences, no comments, no explanations.
"""

DEFAULT_PROMPTS: Dict[str, str] = {
    "analyze_unit_system": ANALYZE_UNIT_SYSTEM,
    "classify_units_system": CLASSIFY_UNITS_SYSTEM,
    "synthesize_system": SYNTHESIZE_SYSTEM,
    "mermaid_system": MERMAID_SYSTEM,
    "json_repair_system": JSON_REPAIR_SYSTEM,
}


def load_prompts(overrides: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Return the prompt table with config overrides applied."""
    prompts = dict(DEFAULT_PROMPTS)
    for key, text in (overrides or {}).items():
        if key not in DEFAULT_PROMPTS:
            raise ConfigError(f'Unknown prompt "{key}"')
        prompts[key] = text
    return prompts
