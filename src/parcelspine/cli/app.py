"""
Root Typer application for the parcel-spine CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

app = Typer(
    name="parcelspine",
    help="parcel-spine - delivery timelines and package status.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from parcelspine import __version__

        typer.echo(f"parcelspine {__version__}")
        raise typer.Exit()


def resolve_logging(log_level: str | None, log_json: bool | None) -> tuple[str, bool]:
    """Command-line flags win; ``PARCEL_LOG_LEVEL`` / ``PARCEL_LOG_FORMAT`` fill the gaps."""
    from parcelspine.core.settings import get_settings

    settings = get_settings()
    level = (log_level or settings.log_level).upper()
    json_format = settings.log_format == "json" if log_json is None else log_json
    return level, json_format


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str | None = typer.Option(
        None, "--log-level", help="DEBUG, INFO, WARNING or ERROR (default: PARCEL_LOG_LEVEL)"
    ),
    log_json: bool | None = typer.Option(
        None, "--log-json/--log-console", help="Log format (default: PARCEL_LOG_FORMAT)"
    ),
) -> None:
    """parcel-spine CLI - manage timelines, packages and user priorities."""
    from parcelspine.core.logging import configure_logging

    level, json_format = resolve_logging(log_level, log_json)
    configure_logging(level=level, json_format=json_format)


# ── Sub-command registration ─────────────────────────────────────────────

from parcelspine.cli.packages import app as packages_app  # noqa: E402
from parcelspine.cli.packages import users_app  # noqa: E402
from parcelspine.cli.timeline import app as timeline_app  # noqa: E402
from parcelspine.cli.timeline import templates_app  # noqa: E402

app.add_typer(timeline_app, name="timeline", help="Active timeline administration.")
app.add_typer(templates_app, name="template", help="Timeline templates.")
app.add_typer(packages_app, name="packages", help="Package history and status.")
app.add_typer(users_app, name="users", help="User priorities.")
