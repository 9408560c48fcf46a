"""Command-line interface for txlens."""

import json
import logging
import sys
from pathlib import Path

import structlog
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from txlens.config.settings import get_settings
from txlens.models import FinalReport, ProgressEventType
from txlens.pipeline.graph import analyze_transaction
from txlens.pipeline.progress import ProgressEvent

# Configure structlog for CLI
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

app = typer.Typer(
    name="txlens",
    help="txlens - Explain blockchain transactions in plain language",
    add_completion=False,
)
console = Console()

STEP_LABELS = {
    ProgressEventType.RPC_DONE: "Transaction and receipt fetched",
    ProgressEventType.ETHERSCAN_START: "Querying explorer",
    ProgressEventType.ETHERSCAN_DONE: "Explorer data collected",
    ProgressEventType.TENDERLY_START: "Waiting for execution trace",
    ProgressEventType.TENDERLY_DONE: "Execution trace step finished",
    ProgressEventType.CALLTRACE_ENRICH_START: "Enriching call-trace addresses",
    ProgressEventType.CALLTRACE_ENRICH_DONE: "Call-trace addresses enriched",
    ProgressEventType.CALLTRACE_EXPLAIN_START: "Explaining call trace",
    ProgressEventType.CALLTRACE_EXPLAIN_DONE: "Call trace explained",
    ProgressEventType.DRAFT_START: "Writing explanation",
    ProgressEventType.DRAFT_DONE: "Explanation written",
    ProgressEventType.VERIFY_START: "Fact-checking explanation",
    ProgressEventType.VERIFY_DONE: "Fact check finished",
}


class ConsoleSink:
    """Renders progress events on the terminal."""

    def __init__(self, stream_draft: bool = False):
        self.stream_draft = stream_draft

    def __call__(self, event: ProgressEvent) -> None:
        if event.type == ProgressEventType.DRAFT_CHUNK:
            if self.stream_draft:
                console.print(event.payload.get("text", ""), end="", markup=False, highlight=False)
            return
        if event.type == ProgressEventType.DONE:
            return
        if event.type == ProgressEventType.ERROR:
            console.print(f"[red]Error in {event.payload.get('step')}:[/red] {event.payload.get('message')}")
            return

        label = STEP_LABELS.get(event.type, event.type.value)
        details = ", ".join(f"{k}={v}" for k, v in event.payload.items())
        if event.type == ProgressEventType.DRAFT_DONE and self.stream_draft:
            console.print()
        console.print(f"[dim]-[/dim] {label}" + (f" [dim]({details})[/dim]" if details else ""))


@app.command()
def analyze(
    tx_hash: str = typer.Argument(..., help="Transaction hash (0x + 64 hex characters)"),
    chain_id: int = typer.Option(
        None,
        "--chain-id",
        "-c",
        help="Chain id (default: TXLENS chain_id setting, 1 = Ethereum mainnet)",
    ),
    output: Path = typer.Option(
        None,
        "--output",
        "-o",
        help="Output file path for the JSON report (default: <tx_hash>_report.json)",
    ),
    no_verify: bool = typer.Option(
        False,
        "--no-verify",
        help="Skip the fact-check pass",
    ),
    stream: bool = typer.Option(
        False,
        "--stream",
        help="Print the explanation as it is generated",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging",
    ),
) -> None:
    """Analyze a transaction and write a structured JSON report."""
    settings = get_settings()
    logging.basicConfig(level=_resolve_log_level(verbose, settings.log_level))

    if no_verify:
        settings = settings.model_copy(update={"verification_enabled": False})
    chain_id = chain_id or settings.chain_id

    console.print(
        Panel.fit(
            "[bold blue]txlens[/bold blue]\n"
            "Explaining transaction...",
            border_style="blue",
        )
    )
    console.print(f"\n[dim]Transaction:[/dim] {tx_hash}")
    console.print(f"[dim]Chain:[/dim] {chain_id}")

    if output is None:
        output = Path(f"{tx_hash[:18]}_report.json")
    console.print(f"[dim]Output:[/dim] {output}\n")

    report = analyze_transaction(tx_hash, chain_id, ConsoleSink(stream_draft=stream), settings=settings)

    with open(output, "w", encoding="utf-8") as f:
        json.dump(report.model_dump(mode="json"), f, indent=2, ensure_ascii=False)

    _display_summary(report)
    console.print(f"\n[green]Report saved to:[/green] {output}")

    if report.is_error:
        sys.exit(1)


@app.command()
def info() -> None:
    """Display configuration."""
    from txlens import __version__
    from txlens.llm.client import get_llm_settings

    settings = get_settings()
    llm_settings = get_llm_settings()

    console.print(Panel.fit("[bold blue]txlens[/bold blue]", border_style="blue"))

    table = Table(show_header=False, box=None)
    table.add_column("Setting", style="dim")
    table.add_column("Value")

    table.add_row("Version", __version__)
    table.add_row("RPC URL", settings.rpc_url)
    table.add_row("Trace RPC", settings.trace_rpc_url or "not configured")
    table.add_row("Trace simulation", str(settings.use_trace_simulation))
    table.add_row("Explorer key", "set" if settings.explorer_api_key else "not set")
    table.add_row("Label DB", str(settings.label_db_path))
    table.add_row("Selector DB", str(settings.selector_db_path))
    table.add_row("LLM Model", llm_settings.model_name)
    table.add_row("Ollama URL", llm_settings.ollama_base_url)
    table.add_row("Verification", str(settings.verification_enabled))
    table.add_row("Log Level", settings.log_level.upper())

    console.print(table)


def _resolve_log_level(verbose: bool, configured: str) -> int:
    if verbose:
        return logging.DEBUG
    level = logging.getLevelName(configured.upper())
    return level if isinstance(level, int) else logging.WARNING


def _display_summary(report: FinalReport) -> None:
    """Display a summary of the analysis results.

    Args:
        report: The final report.
    """
    if report.is_error:
        console.print(f"\n[red]{report.summary}[/red]")
        return

    console.print("\n[bold]Analysis Summary[/bold]")
    console.print("-" * 40)

    details = report.technical_details
    table = Table(show_header=False, box=None)
    table.add_column("Field", style="dim")
    table.add_column("Value")

    table.add_row("Block", str(details.get("block_number")))
    table.add_row("Pattern", f"{report.pattern_type.value} ({details.get('pattern_confidence')})")
    table.add_row("Token transfers", str(len(report.token_flows)))
    table.add_row(
        "Internal calls",
        f"{len(report.internal_transactions)} (from {details.get('internal_tx_source')})",
    )
    if details.get("unavailable_sources"):
        table.add_row("Unavailable", ", ".join(details["unavailable_sources"]))
    console.print(table)

    if report.steps:
        console.print("\n[bold]Steps[/bold]")
        for i, step in enumerate(report.steps, 1):
            console.print(f"  {i}. {step}")

    verification = report.verification
    if verification is not None:
        if verification.skipped_reason:
            console.print(f"\n[yellow]Fact check skipped:[/yellow] {verification.skipped_reason}")
        elif verification.issues:
            console.print(f"\n[yellow]Fact check found {len(verification.issues)} issue(s):[/yellow]")
            for issue in verification.issues:
                console.print(f"  - {issue}")
        else:
            console.print("\n[green]Fact check passed[/green]")


if __name__ == "__main__":
    app()
