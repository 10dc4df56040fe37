"""Ollama chat client helper."""

from __future__ import annotations

from typing import Callable, Optional

import httpx


async def ollama_chat(
    base_url: str,
    model: str,
    system: str,
    user: str,
    *,
    temperature: float,
    timeout_s: float,
    num_predict: int,
    num_ctx: int,
    log: Optional[Callable[[str], None]] = None,
    label: str = "request",
    client: Optional[httpx.AsyncClient] = None,
) -> str:
    """Send a single chat request to Ollama and return the response text."""
    if log is not None:
        system_bytes = len(system.encode("utf-8", errors="ignore"))
        user_bytes = len(user.encode("utf-8", errors="ignore"))
        log(
            f"[LLM] {label} model={model} prompt_chars={len(system) + len(user)} "
            f"prompt_bytes={system_bytes + user_bytes} num_ctx={num_ctx} num_predict={num_predict}"
        )
    payload = {
        "model": model,
        "messages": [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ],
        "options": {
            "temperature": temperature,
            "num_predict": num_predict,
            "num_ctx": num_ctx,
        },
        "stream": False,
    }
    url = f"{base_url.rstrip('/')}/api/chat"
    if client is not None:
        r = await client.post(url, json=payload, timeout=timeout_s)
        r.raise_for_status()
        return r.json()["message"]["content"]
    async with httpx.AsyncClient(timeout=timeout_s) as own_client:
        r = await own_client.post(url, json=payload)
        r.raise_for_status()
        return r.json()["message"]["content"]
