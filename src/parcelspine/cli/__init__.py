"""
CLI layer for parcel-spine.

Provides a Typer application with sub-commands that delegate to the
operations layer (``parcelspine.ops``). All business logic lives in ops;
this package handles only terminal transport: argument parsing, coloured
output and table formatting.

Entry point::

    parcelspine --help
"""

from parcelspine.cli.app import app

__all__ = ["app"]
