"""Command-line interface for studio departments."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

app = typer.Typer(
    name="studio-departments",
    help="Studio Departments - hierarchical agent orchestration and audit analytics",
    add_completion=False,
)

console = Console()


def _configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def version():
    """Show version information."""
    from studio_departments import __version__

    console.print(Panel.fit(
        f"[bold blue]Studio Departments[/bold blue]\n"
        f"Version: [green]{__version__}[/green]",
        title="Version Info"
    ))


@app.command()
def weights(
    file: Optional[Path] = typer.Option(None, "--file", "-f", help="YAML weight profiles to validate")
):
    """Validate and show scoring weight profiles."""
    from quality.weights import BALANCED_WEIGHTS, DEPARTMENT_WEIGHTS, QualityDimension, load_weight_profiles

    profiles = load_weight_profiles(file) if file else dict(DEPARTMENT_WEIGHTS)
    profiles["balanced"] = BALANCED_WEIGHTS

    table = Table(title="Scoring Weights")
    table.add_column("Profile", style="bold")
    for dimension in QualityDimension:
        table.add_column(dimension.value, justify="right")
    table.add_column("Total", justify="right")

    for name, profile in sorted(profiles.items()):
        values = profile.as_dict()
        table.add_row(
            name,
            *(f"{values[d.value]:.2f}" for d in QualityDimension),
            f"{profile.total:.2f}",
        )

    console.print(table)


@app.command()
def analyze(
    store: Optional[Path] = typer.Option(None, "--store", "-s", help="JSONL execution store (defaults to AUDIT_STORE_PATH)"),
    timeframe: str = typer.Option("7d", "--timeframe", "-t", help="24h, 7d, 30d, 90d or all"),
    project: Optional[str] = typer.Option(None, "--project", "-p", help="Restrict to one project"),
    group_by: str = typer.Option("day", "--group-by", "-g", help="hour, day, week or month"),
    as_json: bool = typer.Option(False, "--json", help="Print the full result as JSON"),
):
    """Run audit analytics over stored execution records."""
    from audit.tracking import JSONLExecutionStore
    from models.analytics import AnalyticsFilters, GroupBy, Timeframe
    from studio_departments.config import Settings
    from studio_departments.services import build_audit_services

    settings = Settings.load()
    _configure_logging(settings.app.log_level)

    try:
        filters = AnalyticsFilters(timeframe=Timeframe(timeframe), project_id=project, group_by=GroupBy(group_by))
    except ValueError as e:
        console.print(f"[red]Invalid option: {e}[/red]")
        raise typer.Exit(code=2)

    services = build_audit_services(settings, JSONLExecutionStore(store) if store else None)
    result = asyncio.run(services.analytics.analyze(filters))

    if as_json:
        console.print_json(result.model_dump_json())
        return

    metrics = result.metrics
    summary = Table(title=f"Audit Analytics ({timeframe})", show_header=False)
    summary.add_column("Metric", style="bold")
    summary.add_column("Value", justify="right")
    summary.add_row("Executions", str(metrics.executions.total))
    summary.add_row("Skipped records", str(result.skipped_records))
    summary.add_row("Success rate", f"{metrics.executions.success_rate * 100:.1f}%")
    summary.add_row("Average quality", f"{metrics.quality.average:.1f}")
    summary.add_row("Quality trend", metrics.quality.trend_direction)
    summary.add_row("Median time", f"{metrics.performance.median_ms:.0f} ms")
    summary.add_row("p95 time", f"{metrics.performance.p95_ms:.0f} ms")
    summary.add_row("Total tokens", str(metrics.tokens.total_tokens))
    summary.add_row("Total cost", f"${metrics.tokens.total_cost:.2f}")
    summary.add_row("Error rate", f"{metrics.errors.rate * 100:.1f}%")
    console.print(summary)

    colors = {"success": "green", "warning": "yellow", "error": "red", "info": "blue"}
    for insight in result.insights:
        color = colors.get(insight.type.value, "white")
        console.print(f"[{color}]{insight.title}[/{color}] ({insight.impact.value}): {insight.description}")

    if result.recommendations:
        console.print(Panel("\n".join(f"- {r}" for r in result.recommendations), title="Recommendations"))


@app.command()
def orchestrate(
    prompt: str = typer.Argument(..., help="Request to route across departments"),
    registry_file: Optional[Path] = typer.Option(None, "--registry", "-r", help="YAML agent registry"),
    project: Optional[str] = typer.Option(None, "--project", "-p", help="Project id recorded on executions"),
    as_json: bool = typer.Option(False, "--json", help="Print the full result as JSON"),
):
    """Run a request through the department hierarchy."""
    from repositories.loader import load_registry
    from studio_departments.config import Settings
    from studio_departments.services import build_services
    from utils.errors import StudioError

    settings = Settings.load()
    _configure_logging(settings.app.log_level)

    try:
        registry = load_registry(registry_file or settings.orchestration.registry_file)
        services = build_services(settings, registry)
        project_context = {"project_id": project} if project else {}
        result = asyncio.run(services.orchestrator.orchestrate(prompt, project_context))
    except (StudioError, ValueError, OSError) as e:
        console.print(f"[red]Orchestration failed: {e}[/red]")
        raise typer.Exit(code=1)

    if as_json:
        console.print_json(result.model_dump_json())
        return

    table = Table(title="Departments")
    table.add_column("Department", style="bold")
    table.add_column("Status")
    table.add_column("Relevance", justify="right")
    table.add_column("Quality", justify="right")
    table.add_column("Issues")
    for report in result.departments:
        status_color = "green" if report.status.value == "complete" else "red"
        table.add_row(
            report.department_id,
            f"[{status_color}]{report.status.value}[/{status_color}]",
            f"{report.relevance:.2f}",
            f"{report.quality:.2f}",
            "; ".join(report.issues),
        )
    console.print(table)

    consistency = "n/a" if result.consistency is None else f"{result.consistency:.2f}"
    console.print(Panel.fit(
        f"Overall quality: [bold]{result.overall_quality:.2f}[/bold]\n"
        f"Completeness: {result.completeness:.2f}\n"
        f"Consistency: {consistency}\n"
        f"Recommendation: [bold]{result.recommendation.value}[/bold]",
        title="Result"
    ))

    for report in result.departments:
        if report.result is not None:
            output = report.result.output
            text = output if isinstance(output, str) else json.dumps(output, indent=2, default=str)
            console.print(Panel(text, title=report.result.department_name))


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
