"""CMM Calc CLI.

Commands:
- init: Initialize database schema
- seed: Load taxonomy, materials, profiles and rule sets from YAML
- taxonomy: Show the active L1/L2/L3 tree
- run: Execute a calculation run from a work-item file
- runs: List persisted runs
- show-run: Replay one run's breakdown
- rulesets: List rule set versions
- set-current: Point the current rule set at a version
- convert: Convert a material quantity between units
- estimate: Legacy floor-area estimate
- validate: Run startup validations
- web serve: Run the HTTP API
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from uuid import UUID

import typer
import yaml
from rich.console import Console
from rich.table import Table
from rich.tree import Tree

from cmmcalc.config import get_config
from cmmcalc.core.errors import CMMError
from cmmcalc.core.logging import configure_logging
from cmmcalc.db.connection import close_db, get_session, init_db
from cmmcalc.engine.calculator import CalculationEngine
from cmmcalc.ledger.runs import RunLedger
from cmmcalc.legacy.estimator import FloorAreaEstimator
from cmmcalc.materials.conversion import UnitConversionResolver
from cmmcalc.models import (
    CalculationResult,
    LegacyCalculateRequest,
    RunStatus,
    StructureType,
    WorkItem,
)
from cmmcalc.rules.registry import RuleSetRegistry
from cmmcalc.taxonomy.catalog import TaxonomyCatalog
from cmmcalc.taxonomy.seed import seed_reference_data

app = typer.Typer(
    name="cmmcalc",
    help="CMM Calc - taxonomy-driven material quantity takeoff",
    no_args_is_help=True,
)

web_cli = typer.Typer(help="HTTP API")
app.add_typer(web_cli, name="web")

console = Console()

_STATUS_STYLE = {
    RunStatus.SUCCESS: "green",
    RunStatus.PARTIAL: "yellow",
    RunStatus.FAILED: "red",
    RunStatus.RUNNING: "cyan",
    RunStatus.PENDING: "dim",
}


@app.callback()
def _configure(
    log_level: str = typer.Option("WARNING", "--log-level", envvar="CMM_CLI_LOG_LEVEL", help="Service log level"),
):
    """Service logs go to stdout below the Rich output."""
    configure_logging(level=log_level, fmt="text")


def _run(coro):
    """Run a coroutine, disposing the engine afterwards."""

    async def _wrapped():
        try:
            return await coro
        finally:
            await close_db()

    try:
        return asyncio.run(_wrapped())
    except CMMError as e:
        console.print(f"[bold red]✗[/bold red] {e}")
        raise typer.Exit(code=1) from e


def load_work_items(path: Path) -> dict:
    """Read a work-item file (YAML or JSON).

    Accepts either a bare list of work items or a mapping with
    ``work_items`` plus optional ``category_l1``, ``project_id`` and
    ``rule_set_version``.
    """
    with path.open(encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if isinstance(data, list):
        data = {"work_items": data}
    if not isinstance(data, dict) or not isinstance(data.get("work_items"), list):
        raise typer.BadParameter(f"{path} must contain a list of work items")

    data["work_items"] = [WorkItem.model_validate(item) for item in data["work_items"]]
    return data


def _print_result(result: CalculationResult) -> None:
    style = _STATUS_STYLE.get(result.status, "white")
    console.print(
        f"[bold]Run[/bold] {result.run_id}  "
        f"[{style}]{result.status.value}[/{style}]  "
        f"rule set {result.rule_set_version}  ({result.duration_ms} ms)"
    )
    console.print(f"[dim]input hash {result.input_snapshot_hash}[/dim]")

    table = Table(title="Material Breakdown")
    table.add_column("Item", style="cyan")
    table.add_column("Material")
    table.add_column("Base", justify="right")
    table.add_column("Waste", justify="right")
    table.add_column("Final", justify="right", style="green")
    table.add_column("Unit")
    table.add_column("Packages", justify="right")
    table.add_column("Subtotal", justify="right")

    for line in result.material_breakdown:
        packages = (
            f"{line.packaging_quantity} {line.packaging_unit}"
            if line.packaging_quantity is not None
            else "-"
        )
        table.add_row(
            line.source_work_item_code,
            line.material_name,
            f"{line.base_quantity:,.2f}",
            f"{line.waste_factor:.0%}",
            f"{line.final_quantity:,.2f}",
            line.unit,
            packages,
            f"{line.subtotal:,.2f}" if line.subtotal is not None else "-",
        )
    console.print(table)

    for error in result.errors:
        console.print(f"[yellow]⚠ {error.item_code}:[/yellow] {error.message}")


@app.command()
def init(
    drop: bool = typer.Option(False, "--drop", help="Drop existing tables"),
):
    """Initialize database schema."""
    config = get_config()
    console.print(f"[bold]Initializing database:[/bold] {config.db.url}")
    if drop:
        console.print("[yellow]Dropping existing tables...[/yellow]")

    _run(init_db(drop=drop))
    console.print("[bold green]✓[/bold green] Database initialized")


@app.command()
def seed(
    file: Path | None = typer.Option(None, "--file", "-f", help="Seed YAML (default: config/cmm_seed.yaml)"),
):
    """Load reference data. Existing codes are skipped."""

    async def _seed():
        async with get_session() as session:
            return await seed_reference_data(session, file)

    counts = _run(_seed())

    table = Table(title="Seeded")
    table.add_column("Entity", style="cyan")
    table.add_column("Created", justify="right", style="green")
    for entity, count in counts.items():
        table.add_row(entity, str(count))
    console.print(table)


@app.command()
def taxonomy():
    """Show the active taxonomy tree."""

    async def _tree():
        async with get_session() as session:
            return await TaxonomyCatalog(session).get_taxonomy_tree()

    tree = _run(_tree())
    if not tree.categories:
        console.print("[yellow]Taxonomy is empty; run `cmmcalc seed`[/yellow]")
        return

    root = Tree("[bold]Taxonomy[/bold]")
    for l1 in tree.categories:
        l1_branch = root.add(f"[bold cyan]{l1.code}[/bold cyan] {l1.name}")
        for l2 in l1.children:
            unit = f" [dim]({l2.default_unit})[/dim]" if l2.default_unit else ""
            l2_branch = l1_branch.add(f"[cyan]{l2.code}[/cyan] {l2.name}{unit}")
            for l3 in l2.children:
                materials = ", ".join(l3.default_materials) or "-"
                l2_branch.add(f"{l3.code} {l3.name} [dim]→ {materials}[/dim]")
    console.print(root)


@app.command()
def run(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Work items (YAML/JSON)"),
    category_l1: str | None = typer.Option(None, "--category-l1", "-c", help="L1 category"),
    project_id: str | None = typer.Option(None, "--project", help="Project ID"),
    rule_set_version: str | None = typer.Option(None, "--ruleset", help="Rule set version (default: current)"),
    created_by: str = typer.Option("cli", "--by", help="Created by user/system"),
):
    """Execute a calculation run."""
    data = load_work_items(file)
    category = category_l1 or data.get("category_l1")
    if not category:
        raise typer.BadParameter("L1 category is required (--category-l1 or category_l1 in file)")

    async def _execute():
        async with get_session() as session:
            engine = CalculationEngine(session)
            return await engine.execute_run(
                category_l1=category,
                work_items=data["work_items"],
                rule_set_version=rule_set_version or data.get("rule_set_version"),
                project_id=project_id or data.get("project_id"),
                created_by=created_by,
            )

    _print_result(_run(_execute()))


@app.command()
def runs(
    project_id: str | None = typer.Option(None, "--project", help="Project ID"),
    category_l1: str | None = typer.Option(None, "--category-l1", help="L1 category"),
    limit: int = typer.Option(20, "--limit", min=1),
    offset: int = typer.Option(0, "--offset", min=0),
):
    """List calculation runs, newest first."""

    async def _list():
        async with get_session() as session:
            ledger = RunLedger(session)
            return await ledger.list_runs(project_id, category_l1, limit, offset), await ledger.run_statistics()

    page, stats = _run(_list())

    table = Table(title=f"Runs ({page.offset + 1}-{page.offset + len(page.items)} of {page.total})")
    table.add_column("Run ID", style="cyan")
    table.add_column("Created")
    table.add_column("Project")
    table.add_column("L1")
    table.add_column("Rule Set")
    table.add_column("Status")
    table.add_column("Lines", justify="right")
    table.add_column("ms", justify="right")

    for item in page.items:
        style = _STATUS_STYLE.get(item.status, "white")
        summary = item.result_summary or {}
        table.add_row(
            str(item.run_id),
            item.created_at.strftime("%Y-%m-%d %H:%M:%S") if item.created_at else "-",
            item.project_id or "-",
            item.category_l1,
            item.rule_set_version,
            f"[{style}]{item.status.value}[/{style}]",
            str(summary.get("line_count", "-")),
            str(item.duration_ms) if item.duration_ms is not None else "-",
        )
    console.print(table)

    if stats:
        console.print(
            "  ".join(f"{status}: {count}" for status, count in stats.items() if count)
            or "No runs yet"
        )


@app.command(name="show-run")
def show_run(run_id: UUID = typer.Argument(..., help="Run ID")):
    """Replay a persisted run."""

    async def _show():
        async with get_session() as session:
            return await RunLedger(session).get_run_result(run_id)

    _print_result(_run(_show()))


@app.command()
def rulesets():
    """List rule set versions."""

    async def _list():
        async with get_session() as session:
            return await RuleSetRegistry(session).list_rule_sets()

    rule_sets = _run(_list())

    table = Table(title="Rule Sets")
    table.add_column("Version", style="cyan")
    table.add_column("Name")
    table.add_column("Effective From")
    table.add_column("Effective To")
    table.add_column("Current", justify="center")

    for rule_set in rule_sets:
        table.add_row(
            rule_set.version,
            rule_set.name,
            rule_set.effective_from.date().isoformat(),
            rule_set.effective_to.date().isoformat() if rule_set.effective_to else "-",
            "[bold green]✓[/bold green]" if rule_set.is_current else "",
        )
    console.print(table)


@app.command(name="set-current")
def set_current(
    version: str = typer.Argument(..., help="Rule set version"),
    updated_by: str = typer.Option("cli", "--by", help="Changed by user/system"),
):
    """Make a rule set version current."""

    async def _set():
        async with get_session() as session:
            return await RuleSetRegistry(session).set_current(version, updated_by=updated_by)

    rule_set = _run(_set())
    console.print(f"[bold green]✓[/bold green] Current rule set is now {rule_set.version} ({rule_set.name})")


@app.command()
def convert(
    material_id: UUID = typer.Argument(..., help="Material ID"),
    from_unit: str = typer.Argument(..., help="Source unit"),
    to_unit: str = typer.Argument(..., help="Target unit"),
    value: float = typer.Argument(..., help="Quantity in the source unit"),
):
    """Convert a material quantity between units."""

    async def _convert():
        async with get_session() as session:
            return await UnitConversionResolver(session).convert(material_id, from_unit, to_unit, value)

    result = _run(_convert())
    console.print(f"{result.formula}  [dim]({result.direction})[/dim]")


@app.command()
def estimate(
    structure: StructureType = typer.Option(..., "--structure", help="Structure type"),
    floors: int = typer.Option(..., "--floors", min=1, max=100, help="Above-ground floors"),
    area: float = typer.Option(..., "--area", min=1, help="Floor area per floor (m²)"),
    basements: int = typer.Option(0, "--basements", min=0, help="Basement floors"),
    profile: str | None = typer.Option(None, "--profile", help="Building profile code"),
    save: bool = typer.Option(False, "--save", help="Persist the estimate"),
):
    """Legacy floor-area estimate."""
    request = LegacyCalculateRequest(
        structure_type=structure,
        floor_count=floors,
        basement_count=basements,
        floor_area=area,
        profile_code=profile,
    )

    async def _estimate():
        async with get_session() as session:
            return await FloorAreaEstimator(session).calculate(request, save=save)

    result = _run(_estimate())

    console.print(
        f"[bold]Profile:[/bold] {result.profile_used.code} {result.profile_used.name}  "
        f"[bold]Total area:[/bold] {result.total_area:,.2f} m² ({result.total_area_ping:,.2f} 坪)"
    )

    table = Table(title="Estimate")
    table.add_column("Material", style="cyan")
    table.add_column("Quantity", justify="right", style="green")
    table.add_column("Unit")
    table.add_column("Per m²", justify="right")
    for material in (result.rebar, result.concrete, result.formwork, result.steel, result.mortar):
        if material is None:
            continue
        table.add_row(
            material.category,
            f"{material.quantity:,.2f}",
            material.unit,
            f"{material.per_sqm}" if material.per_sqm is not None else "-",
        )
    console.print(table)

    if result.result_id:
        console.print(f"[bold green]✓[/bold green] Saved as {result.result_id}")


@app.command()
def validate():
    """Run startup validations."""
    from cmmcalc.startup_validation import StartupValidationError, run_all_validations

    async def _validate():
        async with get_session() as session:
            await run_all_validations(session)

    try:
        _run(_validate())
    except StartupValidationError as e:
        console.print(f"[bold red]✗ Startup validation failed:[/bold red] {e}")
        raise typer.Exit(code=1) from e
    console.print("[bold green]✓[/bold green] All startup validations passed")


@web_cli.command("serve")
def web_serve(
    host: str = typer.Option("0.0.0.0", help="Host to bind"),
    port: int = typer.Option(8001, help="Port to bind"),
    reload: bool = typer.Option(False, help="Enable autoreload (dev only)"),
):
    """Run the FastAPI app."""
    import uvicorn

    typer.echo(f"Starting CMM Calc API on http://{host}:{port}")
    uvicorn.run("cmmcalc.web.app:app", host=host, port=port, reload=reload, workers=1)


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
