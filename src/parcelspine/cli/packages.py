"""
CLI: ``parcelspine packages`` and ``parcelspine users`` - package status and user commands.
"""

from __future__ import annotations

import typer

from parcelspine.cli.utils import console, execute, output_result, print_table

app = typer.Typer(no_args_is_help=True)
users_app = typer.Typer(no_args_is_help=True)

RECORD_COLUMNS = ["period", "period_label", "delivery_date", "status", "stored_status", "persisted", "weight"]
BY_PERIOD_COLUMNS = ["user_id", "package_id", "status", "delivery_date", "pickup_date", "access_method"]


@app.command("history")
def history(
    user_id: str = typer.Argument(..., help="User ID"),
    refresh: bool = typer.Option(False, "--refresh", help="Go through the throttled refresh path"),
    force: bool = typer.Option(False, "--force", help="With --refresh: bypass throttle and caches"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show a user's packages under the active timeline."""
    from parcelspine.ops import get_user_package_history, refresh_user_packages

    if refresh:
        result = execute(database, lambda c: refresh_user_packages(c, user_id, force=force))
    else:
        result = execute(database, lambda c: get_user_package_history(c, user_id))
    if json_out or not result.success:
        output_result(result, as_json=json_out)
        return
    for warning in result.warnings:
        console.print(f"[yellow]Warning[/yellow]: {warning}")
    records = result.data.records
    if not records:
        console.print("[dim]No active periods.[/dim]")
        return
    print_table(records, title=f"Packages: {user_id}", columns=RECORD_COLUMNS)


@app.command("update")
def update(
    timeline_id: str = typer.Argument(..., help="Timeline ID"),
    period_key: str = typer.Argument(..., help="Period key, e.g. period_3"),
    user_id: str = typer.Argument(..., help="User ID"),
    status: str | None = typer.Option(None, "--status", help="pending|delivered|picked_up|returned"),
    notes: str | None = typer.Option(None, "--notes"),
    weight: float | None = typer.Option(None, "--weight"),
    dimensions: str | None = typer.Option(None, "--dimensions"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Update (or create) one package."""
    from parcelspine.ops import update_user_package_status

    fields = {"status": status, "notes": notes, "weight": weight, "dimensions": dimensions}
    patch = {k: v for k, v in fields.items() if v is not None}
    result = execute(
        database, lambda c: update_user_package_status(c, timeline_id, period_key, user_id, patch)
    )
    output_result(result, as_json=json_out, title="Package Updated")


@app.command("pickup")
def pickup(
    timeline_id: str = typer.Argument(..., help="Timeline ID"),
    period_key: str = typer.Argument(..., help="Period key"),
    user_id: str = typer.Argument(..., help="User ID"),
    method: str = typer.Option("qr_code", "--method", "-m", help="Access method"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Record a package pickup."""
    from parcelspine.ops import process_package_pickup

    result = execute(
        database, lambda c: process_package_pickup(c, timeline_id, period_key, user_id, method)
    )
    output_result(result, as_json=json_out, title="Picked Up")


@app.command("summary")
def summary(
    user_id: str = typer.Argument(..., help="User ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Counts and weights of a user's packages."""
    from parcelspine.ops import get_package_summary, get_user_package_history

    result = execute(database, lambda c: get_user_package_history(c, user_id))
    if not result.success:
        output_result(result, as_json=json_out)
        return
    output_result(get_package_summary(result.data.records), as_json=json_out, title=f"Summary: {user_id}")


@app.command("by-period")
def by_period(
    timeline_id: str = typer.Argument(..., help="Timeline ID"),
    period_key: str = typer.Argument(..., help="Period key"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List stored packages of one period."""
    from parcelspine.ops import get_packages_by_period

    result = execute(database, lambda c: get_packages_by_period(c, timeline_id, period_key))
    output_result(result, as_json=json_out, title=f"{timeline_id} / {period_key}", columns=BY_PERIOD_COLUMNS)


# ── Users ────────────────────────────────────────────────────────────────


@users_app.command("priority")
def priority(
    user_id: str = typer.Argument(..., help="User ID"),
    set_to: str | None = typer.Option(None, "--set", help="normal|high"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show or change a user's priority."""
    from parcelspine.ops import get_user_priority, update_user_priority

    if set_to is None:
        result = execute(database, lambda c: get_user_priority(c, user_id))
    else:
        result = execute(database, lambda c: update_user_priority(c, user_id, set_to))
    if json_out or not result.success:
        output_result(result, as_json=json_out)
        return
    console.print(f"{user_id}: [bold]{result.data.value}[/bold]")


@users_app.command("add")
def add_user(
    user_id: str = typer.Argument(..., help="User ID"),
    name: str = typer.Option("", "--name"),
    role: str = typer.Option("user", "--role", help="Only 'user' accounts receive packages"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Register a user document."""
    from parcelspine.store.base import user_path

    async def _add(container) -> None:
        store = container.timelines.require_store()
        await store.create(
            user_path(user_id),
            {"id": user_id, "name": name or user_id, "role": role, "priority": "normal"},
        )

    execute(database, _add)
    console.print(f"[green]User added[/green] {user_id} ({role})")
