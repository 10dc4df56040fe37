"""Tests for the Ollama chat helper and the collaborators built on it."""

import json

import httpx
import pytest

from archmap.collaborators import OllamaCollaborators
from archmap.config import ChunkingConstraints, OllamaSettings
from archmap.errors import CollaboratorError
from archmap.models import UnitResult
from archmap.ollama_client import ollama_chat

from conftest import make_record, make_unit


def _client(replies, seen=None):
    """AsyncClient whose /api/chat answers with ``replies`` in order."""
    queue = list(replies)

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/chat"
        body = json.loads(request.content)
        if seen is not None:
            seen.append(body)
        reply = queue.pop(0)
        if isinstance(reply, int):
            return httpx.Response(reply, json={"error": "nope"})
        return httpx.Response(200, json={"message": {"role": "assistant", "content": reply}})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestOllamaChat:
    @pytest.mark.asyncio
    async def test_payload_and_reply(self, log):
        seen = []
        async with _client(["hello"], seen) as client:
            text = await ollama_chat(
                "http://ollama:11434/",
                "llama3",
                "sys",
                "user",
                temperature=0.2,
                timeout_s=5,
                num_predict=128,
                num_ctx=2048,
                log=log,
                label="probe",
                client=client,
            )
        assert text == "hello"
        body = seen[0]
        assert body["model"] == "llama3"
        assert body["stream"] is False
        assert body["messages"] == [
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "user"},
        ]
        assert body["options"] == {"temperature": 0.2, "num_predict": 128, "num_ctx": 2048}
        assert log.lines[0].startswith("[LLM] probe model=llama3 prompt_chars=7")

    @pytest.mark.asyncio
    async def test_http_error_raises(self):
        async with _client([500]) as client:
            with pytest.raises(httpx.HTTPStatusError):
                await ollama_chat(
                    "http://ollama:11434",
                    "llama3",
                    "s",
                    "u",
                    temperature=0.0,
                    timeout_s=5,
                    num_predict=1,
                    num_ctx=1,
                    client=client,
                )


def _settings(**kw):
    return OllamaSettings(base_url="http://ollama:11434", **kw)


class TestCollaborators:
    @pytest.mark.asyncio
    async def test_analyze_unit_tags_components(self):
        reply = json.dumps(
            {
                "architecture_pattern": "MVC",
                "tech_stack": ["Python"],
                "key_components": [{"name": "Views", "type": "Presentation"}],
            }
        )
        seen = []
        async with _client([reply], seen) as client:
            collab = OllamaCollaborators(_settings(analyzer_model="codellama:13b"), client=client)
            record = await collab.analyze_unit(make_unit("chunk_7", ["app/views.py", "app/models.py"]))
        assert record.architecture == "MVC"
        assert record.components[0].units == ("chunk_7",)
        assert seen[0]["model"] == "codellama:13b"
        assert "- app/views.py" in seen[0]["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_unparsable_reply_is_repaired(self):
        async with _client(["not json at all", '{"architecture_pattern": "Layered"}']) as client:
            collab = OllamaCollaborators(_settings(), client=client)
            record = await collab.analyze_unit(make_unit("u1"))
        assert record.architecture == "Layered"

    @pytest.mark.asyncio
    async def test_unrepairable_reply_raises(self):
        async with _client(["nope"]) as client:
            collab = OllamaCollaborators(_settings(repair_json=False), client=client)
            with pytest.raises(CollaboratorError, match="analyze_u1"):
                await collab.analyze_unit(make_unit("u1"))

    @pytest.mark.asyncio
    async def test_classify_units_fills_limits(self):
        seen = []
        async with _client(['{"chunks": []}'], seen) as client:
            collab = OllamaCollaborators(_settings(), client=client)
            proposal = await collab.classify_units(["a.py", "b.py"], ChunkingConstraints(max_unit_size=77))
        assert proposal == {"chunks": []}
        system = seen[0]["messages"][0]["content"]
        assert "at most 77 files" in system
        assert "{max_unit_size}" not in system

    @pytest.mark.asyncio
    async def test_synthesize_sends_unit_analyses(self):
        seen = []
        result = UnitResult(unit=make_unit("chunk_1"), succeeded=True, attempts=1, record=make_record())
        async with _client(['{"architecture_pattern": "Hexagonal"}'], seen) as client:
            collab = OllamaCollaborators(_settings(), client=client)
            record = await collab.synthesize([result], {"repo_name": "shop"})
        assert record.architecture == "Hexagonal"
        payload = json.loads(seen[0]["messages"][1]["content"])
        assert payload["repository"] == "shop"
        assert payload["chunks"][0]["id"] == "chunk_1"

    @pytest.mark.asyncio
    async def test_render_cleans_and_validates(self):
        async with _client(["```mermaid\na[API] -- > b[DB]\n```", "just words"]) as client:
            collab = OllamaCollaborators(_settings(), client=client)
            diagram = await collab.render(make_record())
            assert diagram == "graph TD\na[API] --> b[DB]\n"
            with pytest.raises(CollaboratorError, match="invalid Mermaid"):
                await collab.render(make_record())
