"""
Main entry point for the Academic RAG Evaluation Engine.

Usage:
  # Evaluation runs
  python run.py create-run --name hybrid-v1 --questions data/questions.json
  python run.py run <run_id> --corpus data/corpus.json
  python run.py results <run_id> --stats

  # Ablation studies
  python run.py ablation --name retrieval --configs vector_only bm25_only hybrid_no_rerank

  # Cross-run views
  python run.py hallucination-summary
  python run.py list-configs
  python run.py health-check
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

console = Console()
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))


# ============================================================
# Shared wiring
# ============================================================

def _store(args):
    from rag_eval.pipeline.pipeline_config import load_yaml
    from rag_eval.storage.store import JsonFileStore

    results_dir = args.results_dir
    if not results_dir:
        configured = (load_yaml(args.config_file).get("storage") or {}).get("results_dir")
        results_dir = str(project_root / configured) if configured else None
    return JsonFileStore(results_dir)


def _retriever(args):
    """Static corpus when --corpus is given, otherwise the retrieval service."""
    from rag_eval.pipeline.pipeline_config import load_yaml
    from rag_eval.retrieval.context_retriever import HttpContextRetriever, StaticContextRetriever

    if getattr(args, "corpus", None):
        return StaticContextRetriever.from_file(args.corpus)
    settings = load_yaml(args.config_file).get("retrieval") or {}
    return HttpContextRetriever(
        endpoint=settings.get("endpoint", "http://localhost:3000/api/retrieve"),
        timeout=settings.get("timeout", 30),
    )


def _runner(args):
    from rag_eval.evaluation.evaluation_runner import EvaluationRunner
    from rag_eval.generation.hallucination_detector import HallucinationDetector

    return EvaluationRunner(
        store=_store(args),
        retriever=_retriever(args),
        detector=HallucinationDetector(use_nli=not args.no_nli),
    )


def _questions(path):
    from rag_eval.evaluation.question_sets import ACADEMIC_QUESTIONS, load_questions

    questions = load_questions(path) if path else ACADEMIC_QUESTIONS
    return [q.to_run_input() for q in questions]


def _fmt(value, pct=True):
    if value is None:
        return "n/a"
    return f"{value * 100:.1f}%" if pct else f"{value:.3f}"


# ============================================================
# Run commands
# ============================================================

def cmd_create_run(args):
    """Create a pending evaluation run."""
    from rag_eval.evaluation.evaluation_runner import EvaluationRunner
    from rag_eval.pipeline.pipeline_config import get_ablation_config, load_config

    if args.preset:
        config = get_ablation_config(args.preset)
    else:
        config = load_config(args.config_file, overrides={
            "retrieval_strategy": args.strategy,
            "top_k": args.top_k,
            "use_reranker": args.rerank or None,
            "use_agentic_mode": args.agentic or None,
            "llm_model": args.model,
        })

    runner = EvaluationRunner(store=_store(args), retriever=None)
    run = runner.create_run(
        name=args.name,
        config=config,
        questions=_questions(args.questions),
        description=args.description,
    )
    console.print(f"[bold green]Created run {run.id}[/bold green]")
    console.print(f"Config: {config.name} | Questions: {run.total_questions}")


def cmd_run(args):
    """Execute a run."""
    runner = _runner(args)
    console.print(f"\n[bold]Executing run {args.run_id}[/bold]")
    run = runner.execute(args.run_id)
    console.print(
        f"[bold green]Run {run.status}[/bold green]: "
        f"{run.completed_questions}/{run.total_questions} evaluated, "
        f"{run.failed_questions} failed"
    )
    _print_summary(runner.store, run.id)


def cmd_results(args):
    """Show aggregated results of a run."""
    store = _store(args)
    if args.json:
        from rag_eval.evaluation.aggregator import summarize_run
        console.print_json(json.dumps(summarize_run(store, args.run_id), default=str))
        return

    _print_summary(store, args.run_id)

    if args.stats:
        from rag_eval.evaluation.statistical_analysis import compare_rag_vs_baseline

        table = Table(title="RAG vs Baseline (paired)")
        table.add_column("Metric", style="cyan")
        for col in ["n", "RAG", "Baseline", "p-value", "Test", "Cohen's d", "95% CI"]:
            table.add_column(col, justify="right")
        for metric, r in compare_rag_vs_baseline(store, args.run_id).items():
            sig = "*" if r.significant else ""
            table.add_row(
                metric, str(r.n), f"{r.mean_rag:.3f}", f"{r.mean_baseline:.3f}",
                f"{r.p_value:.4f}{sig}", r.test, f"{r.effect_size:.2f} ({r.effect_label})",
                f"[{r.ci_lower:+.3f}, {r.ci_upper:+.3f}]",
            )
        console.print(table)


def cmd_list_runs(args):
    store = _store(args)
    table = Table(title="Evaluation runs")
    for col in ["ID", "Name", "Status", "Progress", "Created"]:
        table.add_column(col)
    for run in store.list_runs(status=args.status):
        table.add_row(
            run.id, run.name, run.status,
            f"{run.completed_questions}/{run.total_questions} ({run.failed_questions} failed)",
            run.created_at[:19],
        )
    console.print(table)


# ============================================================
# Ablation and summaries
# ============================================================

def cmd_ablation(args):
    """Create and run an ablation study."""
    from rag_eval.evaluation.ablation import AblationRunner

    ablation = AblationRunner(_runner(args))
    study = ablation.create_study(
        name=args.name,
        configurations=args.configs,
        questions=_questions(args.questions),
        description=args.description,
    )
    console.print(f"[bold]Running ablation study {study.id}[/bold] "
                  f"({len(study.configurations)} configs, {len(study.questions)} questions)")
    study = ablation.run_study(study.id)
    console.print(study.report)

    if args.output:
        Path(args.output).write_text(study.report, encoding="utf-8")
        console.print(f"[green]Report saved: {args.output}[/green]")


def cmd_hallucination_summary(args):
    from rag_eval.evaluation.aggregator import hallucination_summary

    summary = hallucination_summary(_store(args))
    table = Table(title=f"Hallucination summary ({summary['runs']} completed runs, "
                        f"{summary['questions']} questions)")
    table.add_column("Metric", style="cyan")
    table.add_column("Mean", justify="right")
    for key in ["hallucination_rate", "factual_consistency", "source_attribution",
                "contradiction_free", "baseline_hallucination_rate"]:
        table.add_row(key, _fmt(summary[key]))
    console.print(table)


def cmd_list_configs(args):
    from rag_eval.pipeline.pipeline_config import ABLATION_CONFIGS

    table = Table(title="Ablation configurations")
    for col in ["Name", "RAG", "Retrieval", "Chunking", "Rerank", "Agent", "Guardrails", "Description"]:
        table.add_column(col)
    for c in ABLATION_CONFIGS:
        table.add_row(
            c.name, "✓" if c.use_rag else "✗", c.retrieval_strategy, c.chunking_strategy,
            c.reranker_strategy or "-", "✓" if c.use_agentic_mode else "✗",
            "✓" if c.use_guardrails else "✗", c.description,
        )
    console.print(table)


def cmd_health_check(args):
    """Verify optional capabilities."""
    from rag_eval.pipeline.pipeline_config import load_config

    console.print("\n[bold]═══ Health Check ═══[/bold]\n")
    config = load_config(args.config_file)

    console.print("[bold]1. LLM[/bold]")
    from rag_eval.generation.llm_manager import LLMManager
    llm = LLMManager(provider=config.llm_provider, model=config.llm_model)
    if llm.is_available():
        console.print(f"  [green]✓ {llm.provider}/{llm.model} available[/green]")
    else:
        console.print(f"  [yellow]⚠ {llm.provider}/{llm.model} not reachable[/yellow]")

    console.print("[bold]2. NLI model[/bold]")
    from rag_eval.generation.hallucination_detector import HallucinationDetector
    detector = HallucinationDetector()
    _ = detector.nli_model
    if detector.method == "nli":
        console.print("  [green]✓ NLI model loaded[/green]")
    else:
        console.print("  [yellow]⚠ NLI model unavailable (keyword fallback active)[/yellow]")

    console.print("[bold]3. Embeddings[/bold]")
    if config.embedding_model:
        from rag_eval.embedding.embedding_manager import EmbeddingManager
        if EmbeddingManager(config.embedding_model).available:
            console.print(f"  [green]✓ {config.embedding_model} loaded[/green]")
        else:
            console.print("  [yellow]⚠ Embedding model unavailable (bag-of-words fallback)[/yellow]")
    else:
        console.print("  [dim]- not configured[/dim]")


# ============================================================
# Output helpers
# ============================================================

def _print_summary(store, run_id):
    from rag_eval.evaluation.aggregator import summarize_run

    data = summarize_run(store, run_id)
    run = data["run"]
    console.print(f"\n[bold cyan]{run['name']}[/bold cyan] ({run['status']}) "
                  f"config={run['config']['name']}")

    table = Table(title="Metrics (mean over valid questions)")
    table.add_column("Metric", style="cyan")
    table.add_column("RAG", justify="right")
    table.add_column("Baseline", justify="right")
    table.add_column("Improvement", justify="right")

    rag, base, imp = data["rag"], data["baseline"], data["improvements"]
    table.add_row("answer_relevancy", _fmt(rag["answer_relevancy"]),
                  _fmt(base["answer_relevancy"]), f"{imp['answer_relevancy']:+.1f}%")
    table.add_row("answer_correctness", _fmt(rag["answer_correctness"]),
                  _fmt(base["answer_correctness"]), f"{imp['answer_correctness']:+.1f}%")
    table.add_row("hallucination_rate", _fmt(rag["hallucination_rate"]),
                  _fmt(base["hallucination_rate"]), f"{imp['hallucination_reduction']:+.1f}% (reduction)")
    for key in ["faithfulness", "context_precision", "context_recall", "academic_rigor",
                "citation_accuracy", "terminology_correctness", "factual_consistency",
                "source_attribution", "contradiction_score", "ndcg", "mrr", "precision"]:
        table.add_row(key, _fmt(rag[key]), "", "")
    console.print(table)

    lat = data["latency"]
    console.print(
        f"[dim]Latency p50: total={lat['total_ms']['p50']:.0f}ms "
        f"(retrieval={lat['retrieval_ms']['p50']:.0f}, "
        f"rerank={lat['reranking_ms']['p50']:.0f}, "
        f"gen={lat['generation_ms']['p50']:.0f})[/dim]"
    )
    s = data["summary"]
    verdict = "[green]better[/green]" if s["rag_better_than_baseline"] else "[red]not better[/red]"
    console.print(f"RAG is {verdict} than baseline on correctness "
                  f"({s['evaluated_questions']}/{s['total_questions']} questions evaluated)")


# ============================================================
# Main parser
# ============================================================

def main():
    parser = argparse.ArgumentParser(
        description="Academic RAG Evaluation Engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run.py create-run --name hybrid-v1 --strategy hybrid --top-k 5
  python run.py run <run_id> --corpus data/corpus.json --no-nli
  python run.py results <run_id> --stats
  python run.py ablation --name retrieval --configs vector_only hybrid_cross_encoder
""",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    parser.add_argument("--config-file", default=None, help="Path to config.yaml")
    parser.add_argument("--results-dir", default=None, help="Results directory (JSON store)")

    subparsers = parser.add_subparsers(dest="command")

    cr = subparsers.add_parser("create-run", help="Create an evaluation run")
    cr.add_argument("--name", required=True)
    cr.add_argument("--description", default="")
    cr.add_argument("--questions", help="JSON/YAML question file (default: academic set)")
    cr.add_argument("--preset", help="Use a predefined ablation config")
    cr.add_argument("--strategy", choices=["vector", "keyword", "hybrid"])
    cr.add_argument("--top-k", type=int)
    cr.add_argument("--rerank", action="store_true")
    cr.add_argument("--agentic", action="store_true")
    cr.add_argument("--model", help="LLM model name")

    rn = subparsers.add_parser("run", help="Execute an evaluation run")
    rn.add_argument("run_id")
    rn.add_argument("--corpus", help="Static JSON/YAML corpus instead of the retrieval service")
    rn.add_argument("--no-nli", action="store_true", help="Keyword claim matching only")

    rs = subparsers.add_parser("results", help="Show run results")
    rs.add_argument("run_id")
    rs.add_argument("--stats", action="store_true", help="Paired significance tests")
    rs.add_argument("--json", action="store_true")

    ls = subparsers.add_parser("list-runs", help="List evaluation runs")
    ls.add_argument("--status", choices=["pending", "running", "completed", "failed"])

    ab = subparsers.add_parser("ablation", help="Run an ablation study")
    ab.add_argument("--name", required=True)
    ab.add_argument("--description", default="")
    ab.add_argument("--configs", nargs="*", help="Predefined config names (default: first 5)")
    ab.add_argument("--questions")
    ab.add_argument("--corpus")
    ab.add_argument("--no-nli", action="store_true")
    ab.add_argument("--output", help="Write the markdown report to this file")

    subparsers.add_parser("hallucination-summary", help="Hallucination metrics across completed runs")
    subparsers.add_parser("list-configs", help="List predefined ablation configs")
    subparsers.add_parser("health-check", help="Check optional capabilities")

    args = parser.parse_args()

    # Setup logging
    log_level = logging.DEBUG if args.verbose else logging.INFO
    log_dir = project_root / "logs"
    log_dir.mkdir(exist_ok=True)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(log_dir / "evaluation.log", encoding="utf-8"),
        ],
    )

    handlers = {
        "create-run": cmd_create_run,
        "run": cmd_run,
        "results": cmd_results,
        "list-runs": cmd_list_runs,
        "ablation": cmd_ablation,
        "hallucination-summary": cmd_hallucination_summary,
        "list-configs": cmd_list_configs,
        "health-check": cmd_health_check,
    }
    if args.command not in handlers:
        parser.print_help()
        return

    from rag_eval.errors import EvaluationError
    try:
        handlers[args.command](args)
    except EvaluationError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
