"""Tests for the CLI and its output files."""

import json

import pytest

import archmap.runner as runner
from archmap.models import PATH_DECOMPOSED, PATH_SINGLE, AnalysisResponse, BatchSummary
from archmap.output import response_to_dict, write_arch_md

from conftest import make_record


def _response(success=True, **kw):
    base = dict(
        path=PATH_DECOMPOSED,
        success=success,
        record=make_record(components=[("API", "Service", ["Python"], "HTTP API")], unit_id="chunk_1"),
        item_count=800,
        summary=BatchSummary(total_units=10, succeeded=9, failed=1, tag_counts={"logic": 5}, elapsed_s=2.0, elapsed_text="2.00s"),
        diagram="graph TD\n  api[API]\n",
        merge_method="deterministic",
        errors=("unit chunk_4: timeout after 120s",),
    )
    base.update(kw)
    return AnalysisResponse(**base)


def test_response_to_dict():
    data = response_to_dict(_response(), repo_name="shop")
    assert list(data)[:3] == ["path", "success", "item_count"]
    assert data["path"] == "decomposed"
    assert data["summary"]["failed"] == 1
    assert data["analysis"]["key_components"][0]["chunks"] == ["chunk_1"]
    assert data["metadata"]["merge_method"] == "deterministic"
    assert data["errors"] == ["unit chunk_4: timeout after 120s"]


def test_write_arch_md(tmp_path):
    out = tmp_path / "ARCHITECTURE.md"
    write_arch_md(out, _response(), repo_name="shop")
    text = out.read_text(encoding="utf-8")
    assert text.startswith("# shop Architecture\n")
    assert "- total=10, succeeded=9, failed=1, elapsed=2.00s" in text
    assert "### API" in text
    assert "- Found in: chunk_1" in text
    assert "```mermaid\ngraph TD" in text
    assert "## Errors" in text


@pytest.fixture
def fake_run(monkeypatch):
    calls = []

    def install(response):
        async def fake(config, items, repo_name, *, log, llm_log=None):
            calls.append((config, items, repo_name, llm_log))
            log("[ORCH] fake run")
            return response

        monkeypatch.setattr(runner, "run_analysis", fake)
        return calls

    return install


def test_main_writes_outputs(tmp_path, fake_run, monkeypatch):
    monkeypatch.delenv("ARCHMAP_CONFIG", raising=False)
    listing = tmp_path / "shop.txt"
    listing.write_text("- src/app.py\n- src/db.py\n", encoding="utf-8")
    out = tmp_path / "out"
    calls = fake_run(_response())

    code = runner.main(["--listing", str(listing), "--out", str(out), "--max-concurrent", "5", "--no-render"])

    assert code == 0
    config, items, repo_name, llm_log = calls[0]
    assert items == ["src/app.py", "src/db.py"]
    assert repo_name == "shop"
    assert llm_log is None
    assert config.policy.max_concurrent == 5
    assert config.enable_render is False
    data = json.loads((out / "analysis.json").read_text(encoding="utf-8"))
    assert data["repository"] == "shop"
    assert (out / "ARCHITECTURE.md").exists()
    assert (out / "diagram.mmd").read_text(encoding="utf-8").startswith("graph TD")
    log_text = (out / "run.log").read_text(encoding="utf-8")
    assert "[ORCH] fake run" in log_text
    assert "[DONE] path=decomposed units=10" in log_text


def test_main_reports_failed_analysis(tmp_path, fake_run, monkeypatch):
    monkeypatch.delenv("ARCHMAP_CONFIG", raising=False)
    (tmp_path / "repo").mkdir()
    (tmp_path / "repo" / "main.go").write_text("package main\n")
    fake_run(_response(success=False, path=PATH_SINGLE, summary=None))
    code = runner.main(["--repo", str(tmp_path / "repo"), "--out", str(tmp_path / "out"), "--model", "qwen2.5-coder:7b"])
    assert code == 1


def test_main_input_errors(tmp_path, fake_run, monkeypatch):
    monkeypatch.delenv("ARCHMAP_CONFIG", raising=False)
    fake_run(_response())
    assert runner.main(["--listing", str(tmp_path / "missing.txt"), "--out", str(tmp_path / "o")]) == 2
    bad_config = tmp_path / "bad.yaml"
    bad_config.write_text("pipeline:\n  max_attempts: 0\n", encoding="utf-8")
    listing = tmp_path / "l.txt"
    listing.write_text("a.py\n", encoding="utf-8")
    assert runner.main(["--listing", str(listing), "--config", str(bad_config), "--out", str(tmp_path / "o")]) == 2


def test_main_empty_listing_is_an_input_error(tmp_path, monkeypatch):
    monkeypatch.delenv("ARCHMAP_CONFIG", raising=False)
    listing = tmp_path / "empty.txt"
    listing.write_text("# nothing\n", encoding="utf-8")
    assert runner.main(["--listing", str(listing), "--out", str(tmp_path / "o"), "--no-render"]) == 2
