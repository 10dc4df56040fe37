"""Helpers for parsing and repairing JSON from LLM outputs."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

CODE_FENCE_RE = re.compile(r"^\s*```(?:json)?\s*|\s*```\s*$", re.IGNORECASE | re.MULTILINE)
LINE_COMMENT_RE = re.compile(r"(?m)^\s*//.*?$")
BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)
TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")


@dataclass(frozen=True)
class Parsed:
    """A collaborator response that parsed successfully."""
    value: Any


@dataclass(frozen=True)
class Unparsable:
    """A collaborator response that could not be parsed; keeps the raw text."""
    raw: str
    reason: str = "unparsable response"


ParseOutcome = Union[Parsed, Unparsable]

# Async callable that takes raw text and returns a repaired attempt.
RepairFn = Callable[[str], Awaitable[str]]


def strip_code_fences(text: str) -> str:
    """Remove Markdown code fences from text."""
    return CODE_FENCE_RE.sub("", text).strip()


def strip_json_comments(text: str) -> str:
    """Remove line and block comments from JSON-like text."""
    text = BLOCK_COMMENT_RE.sub("", text)
    text = LINE_COMMENT_RE.sub("", text)
    return text


def remove_trailing_commas(text: str) -> str:
    """Remove trailing commas from JSON arrays/objects."""
    prev = None
    while prev != text:
        prev = text
        text = TRAILING_COMMA_RE.sub(r"\1", text)
    return text


def extract_first_json_value(text: str) -> Optional[str]:
    """Extract the first JSON object/array from raw text."""
    # Scan for the first JSON object/array, respecting quoted strings.
    text = text.strip()
    start_obj = text.find("{")
    start_arr = text.find("[")
    if start_obj == -1 and start_arr == -1:
        return None

    if start_obj == -1 or (start_arr != -1 and start_arr < start_obj):
        start = start_arr
        open_c, close_c = "[", "]"
    else:
        start = start_obj
        open_c, close_c = "{", "}"

    depth = 0
    in_str = False
    esc = False

    for i in range(start, len(text)):
        ch = text[i]
        if in_str:
            if esc:
                esc = False
            elif ch == "\\":
                esc = True
            elif ch == '"':
                in_str = False
            continue
        if ch == '"':
            in_str = True
            continue
        if ch == open_c:
            depth += 1
        elif ch == close_c:
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def best_effort_json_text(raw: str) -> Optional[str]:
    """Try to extract a valid JSON snippet from raw text."""
    s = strip_code_fences(raw)
    s = strip_json_comments(s).strip()
    extracted = extract_first_json_value(s)
    if extracted:
        s = extracted
    s = remove_trailing_commas(s)
    return s if s else None


def parse_json_object(raw: str) -> ParseOutcome:
    """Parse a JSON object directly, then after light cleanup."""
    if not isinstance(raw, str) or not raw.strip():
        return Unparsable(raw=raw if isinstance(raw, str) else "", reason="empty response")
    for candidate in (raw, best_effort_json_text(raw)):
        if not candidate:
            continue
        try:
            value = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(value, dict):
            return Parsed(value)
        return Unparsable(raw=raw, reason=f"expected a JSON object, got {type(value).__name__}")
    return Unparsable(raw=raw, reason="no JSON object found")


async def parse_or_repair_json(
    raw: str,
    *,
    repair: Optional[RepairFn] = None,
    log: Optional[Callable[[str], None]] = None,
    label: str = "json_repair",
) -> ParseOutcome:
    """Parse JSON directly or fall back to LLM-based repair."""
    outcome = parse_json_object(raw)
    if isinstance(outcome, Parsed) or repair is None:
        return outcome

    if log:
        log(f"[JSON] {label} direct parse failed ({outcome.reason}); requesting repair")
    try:
        repaired = await repair(raw)
    except Exception as e:
        if log:
            log(f"[JSON] {label} repair request failed: {e}")
        return outcome
    repaired_outcome = parse_json_object(repaired)
    if isinstance(repaired_outcome, Parsed):
        return repaired_outcome
    return Unparsable(raw=raw, reason=f"{outcome.reason}; repair failed: {repaired_outcome.reason}")
