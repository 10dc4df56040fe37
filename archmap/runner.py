"""CLI runner for chunked architecture analysis."""

from __future__ import annotations

import argparse
import asyncio
import sys
import time
from dataclasses import replace
from pathlib import Path
from typing import Callable, List, Optional

import httpx

from .collaborators import OllamaCollaborators
from .config import PipelineConfig, load_pipeline_config
from .errors import ConfigError, ListingError
from .listing import extract_items, list_repo_files
from .models import AnalysisResponse
from .orchestrator import Orchestrator
from .output import write_analysis_json, write_arch_md


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Chunked parallel architecture analysis using local Ollama")
    src = ap.add_mutually_exclusive_group(required=True)
    src.add_argument("--repo", help="Repository directory to list files from")
    src.add_argument("--listing", help="Text file with one path per line or '- path' tree lines")
    ap.add_argument("--name", help="Repository name used in outputs (default: directory or file stem)")
    ap.add_argument("--out", default="architecture-out", help="Output directory")
    ap.add_argument("--config", help="Path to archmap.yaml (default: $ARCHMAP_CONFIG or bundled archmap.yaml)")
    ap.add_argument("--ollama", help="Ollama base URL")
    ap.add_argument("--model", help="Model used for per-unit analysis")
    ap.add_argument("--max-unit-size", type=int, help="Max items per work unit")
    ap.add_argument("--max-chunk-count", type=int, help="Target number of work units")
    ap.add_argument("--min-unit-size", type=int, help="Trailing pages smaller than this are folded")
    ap.add_argument("--max-concurrent", type=int, help="Max concurrent unit analyses")
    ap.add_argument("--unit-timeout", type=float, help="Per-attempt timeout in seconds")
    ap.add_argument("--max-attempts", type=int, help="Attempts per unit before giving up")
    ap.add_argument("--chunking-threshold", type=int, help="Inputs above this size are decomposed")
    ap.add_argument("--no-chunking", dest="enable_chunking", action="store_const", const=False, help="Always analyze as one unit")
    ap.add_argument("--no-render", dest="enable_render", action="store_const", const=False, help="Skip LLM diagram rendering")
    ap.add_argument(
        "--no-content-aware",
        dest="content_aware",
        action="store_const",
        const=False,
        help="Skip LLM grouping and use path categories only",
    )
    ap.add_argument("--verbose", action="store_true", help="Log every LLM request")
    return ap


def _overrides(args: argparse.Namespace) -> dict:
    return {
        "max_unit_size": args.max_unit_size,
        "max_chunk_count": args.max_chunk_count,
        "min_unit_size": args.min_unit_size,
        "max_concurrent": args.max_concurrent,
        "per_unit_timeout_s": args.unit_timeout,
        "max_attempts": args.max_attempts,
        "chunking_threshold": args.chunking_threshold,
        "enable_chunking": args.enable_chunking,
        "enable_render": args.enable_render,
        "content_aware": args.content_aware,
    }


async def run_analysis(
    config: PipelineConfig,
    items: List[str],
    repo_name: str,
    *,
    log: Callable[[str], None],
    llm_log: Optional[Callable[[str], None]] = None,
) -> AnalysisResponse:
    """Run one request against Ollama with a shared HTTP client."""
    async with httpx.AsyncClient(timeout=config.ollama.timeout_s) as client:
        collaborators = OllamaCollaborators(config.ollama, config.prompts, client=client, log=llm_log)
        orchestrator = Orchestrator.from_collaborators(config, collaborators, log=log)
        return await orchestrator.handle(items, repo_name=repo_name)


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entrypoint for the analyzer."""
    args = _build_parser().parse_args(argv)

    run_log_path: Optional[Path] = None

    def _append_log(line: str) -> None:
        if run_log_path is None:
            return
        run_log_path.parent.mkdir(parents=True, exist_ok=True)
        with run_log_path.open("a", encoding="utf-8") as fh:
            fh.write(line + "\n")

    def _log(msg: str, *, stderr: bool = False) -> None:
        stream = sys.stderr if stderr else sys.stdout
        print(msg, file=stream)
        _append_log(msg)

    try:
        config = load_pipeline_config(args.config, _overrides(args))
    except ConfigError as e:
        _log(f"[ERROR] {e}", stderr=True)
        return 2
    ollama = config.ollama
    if args.ollama:
        ollama = replace(ollama, base_url=args.ollama.rstrip("/"))
    if args.model:
        ollama = replace(ollama, analyzer_model=args.model)
    config = replace(config, ollama=ollama)

    if args.repo:
        repo = Path(args.repo).expanduser().resolve()
        if not repo.is_dir():
            _log(f'[ERROR] Repository directory not found: "{repo}"', stderr=True)
            return 2
        items = list_repo_files(repo)
        repo_name = args.name or repo.name
    else:
        listing = Path(args.listing).expanduser().resolve()
        if not listing.is_file():
            _log(f'[ERROR] Listing file not found: "{listing}"', stderr=True)
            return 2
        items = extract_items(listing.read_text(encoding="utf-8", errors="ignore"))
        repo_name = args.name or listing.stem

    out_root = Path(args.out).resolve()
    out_root.mkdir(parents=True, exist_ok=True)
    run_log_path = out_root / "run.log"
    _append_log(f"[RUN] start {time.strftime('%Y-%m-%d %H:%M:%S')}")
    _log(f"[RUN] repo={repo_name} items={len(items)} ollama={config.ollama.base_url}")

    try:
        response = asyncio.run(
            run_analysis(
                config,
                items,
                repo_name,
                log=_log,
                llm_log=_log if args.verbose else None,
            )
        )
    except ListingError as e:
        _log(f"[ERROR] {e}", stderr=True)
        return 2

    analysis_path = out_root / "analysis.json"
    write_analysis_json(analysis_path, response, repo_name=repo_name)
    _log(f"[OK] wrote {analysis_path}")
    md_path = out_root / "ARCHITECTURE.md"
    write_arch_md(md_path, response, repo_name=repo_name)
    _log(f"[OK] wrote {md_path}")
    if response.diagram:
        diagram_path = out_root / "diagram.mmd"
        diagram_path.write_text(response.diagram, encoding="utf-8")
        _log(f"[OK] wrote {diagram_path}")

    for err in response.errors:
        _log(f"[WARN] {err}", stderr=True)
    summary = response.summary
    if summary is not None:
        _log(
            f"[DONE] path={response.path} units={summary.total_units} "
            f"succeeded={summary.succeeded} failed={summary.failed} elapsed={summary.elapsed_text}"
        )
    else:
        _log(f"[DONE] path={response.path} fallback={response.fallback_used}")
    return 0 if response.success else 1


if __name__ == "__main__":
    raise SystemExit(main())
