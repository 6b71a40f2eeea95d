"""
CLI utility helpers - output formatting and container management.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from dataclasses import asdict
from pathlib import Path
from typing import Any, TypeVar

import typer
from rich.console import Console
from rich.table import Table

from parcelspine.container import ParcelContainer
from parcelspine.core.errors import ValidationError
from parcelspine.core.result import OperationResult
from parcelspine.core.settings import ParcelSettings, get_settings

console = Console()
err_console = Console(stderr=True)

T = TypeVar("T")


# ── Container helper ─────────────────────────────────────────────────────


def make_settings(database: str | None = None) -> ParcelSettings:
    """Configured settings, with ``--database`` overriding the store path."""
    settings = get_settings()
    if database:
        settings = settings.model_copy(update={"database_path": Path(database)})
    return settings


def execute(database: str | None, fn: Callable[[ParcelContainer], Awaitable[T]]) -> T:
    """Run ``fn(container)`` against the SQLite store and close it afterwards.

    Validation errors become a red message and exit code 2.
    """

    async def _run() -> T:
        async with ParcelContainer(make_settings(database)) as container:
            return await fn(container)

    try:
        return asyncio.run(_run())
    except ValidationError as e:
        err_console.print(f"[bold red]Invalid input[/bold red] ({e.field or 'value'}): {e.message}")
        raise typer.Exit(code=2) from e


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert a model / dataclass / dict to a plain dict."""
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": getattr(obj, "value", obj)}


def output_result(
    result: OperationResult,
    *,
    as_json: bool = False,
    title: str = "",
    columns: list[str] | None = None,
) -> None:
    """Render an ``OperationResult`` to the terminal."""
    if not result.success:
        err = result.error
        msg = err.message if err else "Unknown error"
        code = err.code if err else "ERROR"
        err_console.print(f"[bold red]Error[/bold red] ({code}): {msg}")
        raise typer.Exit(code=1)

    for warning in result.warnings:
        err_console.print(f"[yellow]Warning[/yellow]: {warning}")

    data = result.data

    if as_json:
        payload = [_to_dict(d) for d in data] if isinstance(data, list | tuple) else _to_dict(data)
        console.print_json(json.dumps(payload, default=str))
        return

    if isinstance(data, list):
        if not data:
            console.print("[dim]No items.[/dim]")
            return
        print_table(data, title=title, columns=columns)
    else:
        _print_dict(_to_dict(data), title=title)


def print_table(items: list, *, title: str = "", columns: list[str] | None = None) -> None:
    """Render a list of models/dicts as a Rich table."""
    rows = [_to_dict(item) for item in items]
    cols = columns or list(rows[0])
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in cols:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(*("" if row.get(c) is None else str(row.get(c)) for c in cols))
    console.print(table)


def _print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")
