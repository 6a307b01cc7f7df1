# -*- coding: utf-8 -*-
"""
carbonledger - command line interface

Commands:
    carbonledger standards                      List the supported standards
    carbonledger requirements STANDARD          Show one standard's fields
    carbonledger overlap STANDARD_A STANDARD_B  Compare two standards
    carbonledger calculate ACTIVITIES.yaml      Import, calculate, summarise
"""

import json
import logging
from pathlib import Path
from typing import Optional

import typer
import yaml
from rich import box
from rich.console import Console
from rich.table import Table

from carbonledger.config import get_config
from carbonledger.exceptions import CarbonLedgerException
from carbonledger.models import Scope
from carbonledger.setup import CarbonLedgerService

app = typer.Typer(help="GHG emissions calculation and regulatory reporting")
console = Console()


def _service(factors: Optional[Path] = None, year: Optional[int] = None) -> CarbonLedgerService:
    return CarbonLedgerService(factors_path=factors, default_year=year)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """CarbonLedger command line interface."""
    level = "DEBUG" if verbose else get_config().log_level
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def standards():
    """List the supported reporting standards."""
    table = Table(title="Reporting Standards", box=box.ROUNDED)
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Region")
    table.add_column("Mandatory")
    table.add_column("Signature")
    table.add_column("Required", justify="right")

    for summary in _service().list_standards():
        table.add_row(
            summary["standard_id"],
            summary["name"],
            summary["region"],
            summary["mandatory_date"] or "-",
            "yes" if summary["signature_required"] else "no",
            str(summary["required_field_count"]),
        )
    console.print(table)


@app.command()
def requirements(
    standard: str = typer.Argument(..., help="Standard id, e.g. eu_cbam"),
):
    """Show the fields and sections of one standard."""
    try:
        definition = _service().get_standard_requirements(standard)
    except CarbonLedgerException as exc:
        console.print(f"[red]{exc.message}[/red]")
        raise typer.Exit(1)

    console.print(f"[bold]{definition.full_name}[/bold] ({definition.authority})")
    table = Table(box=box.SIMPLE)
    table.add_column("Field", style="cyan")
    table.add_column("Kind")
    for field in definition.required_fields:
        table.add_row(field, "[green]required[/green]")
    for field in definition.optional_fields:
        table.add_row(field, "optional")
    for field in definition.unique_fields:
        table.add_row(field, "[magenta]standard-specific[/magenta]")
    console.print(table)
    console.print(f"Sections: {', '.join(definition.sections)}")
    if definition.signature_required:
        roles = ", ".join(r.value for r in definition.authorized_roles)
        console.print(
            f"Signature required: {definition.required_signatures} "
            f"signature(s) by {roles}"
        )


@app.command()
def overlap(
    standard_a: str = typer.Argument(..., help="First standard id"),
    standard_b: str = typer.Argument(..., help="Second standard id"),
):
    """Compare the fields of two standards."""
    try:
        result = _service().get_standard_overlap(standard_a, standard_b)
    except CarbonLedgerException as exc:
        console.print(f"[red]{exc.message}[/red]")
        raise typer.Exit(1)

    console.print(
        f"[bold]{result.standard_a.value}[/bold] / [bold]{result.standard_b.value}[/bold]: "
        f"{result.percentage}% overlap"
    )
    console.print(f"Common required: {', '.join(result.common_required) or '-'}")
    console.print(f"Common optional: {', '.join(result.common_optional) or '-'}")
    console.print(f"Can share data: {'yes' if result.can_share_data else 'no'}")
    console.print(f"[dim]{result.recommended_workflow}[/dim]")


@app.command()
def calculate(
    activities: Path = typer.Argument(..., exists=True, help="Activities YAML or JSON file"),
    factors: Optional[Path] = typer.Option(None, "--factors", "-f", help="Factor table YAML"),
    year: Optional[int] = typer.Option(None, "--year", "-y", help="Default factor year"),
    project: str = typer.Option("default", "--project", "-p", help="Project id"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write totals as JSON"),
):
    """Import activities, calculate them and print totals and hotspots.

    The input is either a list of activity rows or a mapping with
    ``project_id`` and ``activities``.
    """
    with open(activities, "r", encoding="utf-8") as f:
        data = json.load(f) if activities.suffix == ".json" else yaml.safe_load(f)

    if isinstance(data, dict):
        project = data.get("project_id", project)
        rows = data.get("activities") or []
    else:
        rows = data or []

    service = _service(factors, year)
    imported = service.import_activities(rows, project)
    for error in imported.errors:
        console.print(f"[yellow]Row {error.row}: {error.field or '-'}: {error.message}[/yellow]")

    batch = service.calculate_all(project)
    for error in batch.errors:
        console.print(f"[red]{error.activity_id}: {error.message}[/red]")

    totals = service.get_totals(project)
    table = Table(title=f"Footprint - {project}", box=box.ROUNDED)
    table.add_column("Scope", style="cyan")
    table.add_column("kgCO2e", justify="right")
    table.add_column("Share", justify="right")
    for scope in Scope:
        table.add_row(
            scope.value,
            f"{totals.scope_total(scope):,.2f}",
            f"{totals.scope_share(scope)}%",
        )
    table.add_row("[bold]total[/bold]", f"[bold]{totals.grand_total:,.2f}[/bold]", "100%")
    console.print(table)

    hotspots = service.get_hotspots(project, limit=5)
    if hotspots.hotspots:
        top = Table(title="Top hotspots", box=box.SIMPLE)
        top.add_column("#", justify="right")
        top.add_column("Source")
        top.add_column("Scope")
        top.add_column("kgCO2e", justify="right")
        top.add_column("%", justify="right")
        for hotspot in hotspots.hotspots:
            top.add_row(
                str(hotspot.rank),
                hotspot.source,
                hotspot.scope.value,
                f"{hotspot.emissions:,.2f}",
                str(hotspot.percent_of_total),
            )
        if hotspots.other_group_count:
            top.add_row(
                "",
                f"other ({hotspots.other_group_count})",
                "",
                f"{hotspots.other_emissions:,.2f}",
                str(hotspots.other_percent),
            )
        console.print(top)

    console.print(
        f"[green]✓[/green] {batch.calculated_count} calculated, "
        f"{batch.failed_count} failed, {len(imported.errors)} rejected rows"
    )
    if output is not None:
        output.write_text(totals.model_dump_json(indent=2), encoding="utf-8")
        console.print(f"Totals written to {output}")

    if batch.failed_count or imported.errors:
        raise typer.Exit(2)


if __name__ == "__main__":
    app()
