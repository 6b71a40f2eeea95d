"""
CLI: ``parcelspine timeline`` and ``parcelspine template`` - timeline administration.
"""

from __future__ import annotations

import typer

from parcelspine.cli.utils import console, execute, output_result, print_table

app = typer.Typer(no_args_is_help=True)
templates_app = typer.Typer(no_args_is_help=True)

PERIOD_COLUMNS = ["number", "key", "label", "due_date", "active", "amount"]


@app.command("create")
def create_timeline(
    cadence: str = typer.Option(..., "--cadence", "-c", help="yearly|monthly|weekly|daily|hourly|minute"),
    duration: int = typer.Option(..., "--duration", "-n", help="Number of periods"),
    start: str = typer.Option(..., "--start", help="Start instant (ISO 8601)"),
    mode: str = typer.Option("auto", "--mode", help="auto|manual"),
    simulation_date: str | None = typer.Option(None, "--simulation-date", help="Required in manual mode"),
    holiday: list[int] = typer.Option([], "--holiday", help="Holiday period number (repeatable)"),
    total_amount: float = typer.Option(0, "--total-amount"),
    name: str = typer.Option("", "--name"),
    timeline_id: str = typer.Option("", "--id", help="Timeline ID (generated when omitted)"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Create (replace) the active timeline."""
    from parcelspine.ops import create_active_timeline
    from parcelspine.requests import CreateTimelineRequest

    request = CreateTimelineRequest(
        cadence=cadence,
        duration=duration,
        start_date=start,
        mode=mode,
        simulation_date=simulation_date,
        holidays=tuple(holiday),
        total_amount=total_amount,
        name=name,
        id=timeline_id,
    )
    result = execute(database, lambda c: create_active_timeline(c, request))
    if json_out or not result.success:
        output_result(result, as_json=json_out)
        return
    timeline = result.data
    console.print(f"[green]Timeline created[/green] {timeline.id} ({timeline.cadence.value} x {timeline.duration})")
    print_table(list(timeline.periods.values()), title="Periods", columns=PERIOD_COLUMNS)


@app.command("show")
def show_timeline(
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show the active timeline and its periods."""
    from parcelspine.ops import get_active_timeline

    result = execute(database, get_active_timeline)
    if json_out or not result.success:
        output_result(result, as_json=json_out)
        return
    timeline = result.data
    console.print(f"[bold]{timeline.name}[/bold] ({timeline.id})")
    console.print(f"  [cyan]cadence[/cyan]: {timeline.cadence.value}  [cyan]mode[/cyan]: {timeline.mode.value}")
    if timeline.simulation_date:
        console.print(f"  [cyan]simulation_date[/cyan]: {timeline.simulation_date.isoformat()}")
    if timeline.periods:
        print_table(list(timeline.periods.values()), title="Periods", columns=PERIOD_COLUMNS)


@app.command("delete")
def delete_timeline(
    purge: bool = typer.Option(False, "--purge", help="Also delete package data and reset priorities"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Delete the active timeline."""
    from parcelspine.ops import delete_active_timeline

    if purge and not yes:
        typer.confirm("Delete the timeline and all of its package data?", abort=True)
    result = execute(database, lambda c: delete_active_timeline(c, purge_packages=purge))
    output_result(result, as_json=json_out, title="Timeline Deleted")


@app.command("simulate")
def simulate(
    instant: str = typer.Argument(..., help="Simulated now (ISO 8601)"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Set the simulation date of a manual-mode timeline."""
    from parcelspine.ops import set_simulation_date

    result = execute(database, lambda c: set_simulation_date(c, instant))
    if json_out or not result.success:
        output_result(result, as_json=json_out)
        return
    console.print(f"[green]Simulation date set[/green] {result.data.simulation_date.isoformat()}")


@app.command("generate")
def generate(
    timeline_id: str = typer.Argument(..., help="Active timeline ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Create missing pending packages for every user."""
    from parcelspine.ops import generate_packages_for_timeline

    result = execute(database, lambda c: generate_packages_for_timeline(c, timeline_id))
    if json_out or not result.success:
        output_result(result, as_json=json_out)
        return
    console.print(f"[green]Generated[/green] {result.data} package(s)")


@app.command("reset")
def reset(
    timeline_id: str = typer.Argument(..., help="Active timeline ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Delete every package of the timeline, keeping the timeline."""
    from parcelspine.ops import reset_timeline_packages

    if not yes:
        typer.confirm(f"Delete all packages of {timeline_id}?", abort=True)
    result = execute(database, lambda c: reset_timeline_packages(c, timeline_id))
    if json_out or not result.success:
        output_result(result, as_json=json_out)
        return
    console.print(f"[green]Deleted[/green] {result.data} package(s)")


# ── Templates ────────────────────────────────────────────────────────────


@templates_app.command("create")
def create_template(
    name: str = typer.Argument(..., help="Template name"),
    cadence: str = typer.Option(..., "--cadence", "-c"),
    duration: int = typer.Option(..., "--duration", "-n"),
    base_weight: float = typer.Option(0, "--base-weight"),
    delivery_day: list[int] = typer.Option([], "--delivery-day", help="Delivery day (repeatable)"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Save a reusable timeline template."""
    from parcelspine.ops import create_timeline_template
    from parcelspine.requests import CreateTemplateRequest

    request = CreateTemplateRequest(
        name=name,
        cadence=cadence,
        duration=duration,
        base_weight=base_weight,
        delivery_days=list(delivery_day),
    )
    result = execute(database, lambda c: create_timeline_template(c, request))
    output_result(result, as_json=json_out, title="Template Created")


@templates_app.command("list")
def list_templates(
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List timeline templates."""
    from parcelspine.ops import list_timeline_templates

    result = execute(database, list_timeline_templates)
    output_result(
        result,
        as_json=json_out,
        title="Templates",
        columns=["id", "name", "cadence", "duration", "base_weight"],
    )
