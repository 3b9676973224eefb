"""Shared Typer option definitions for CLI commands."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer


INPUTS_PANEL = "Input Handling"
COLLATION_PANEL = "Collation"
OUTPUT_PANEL = "Output"
DIAGNOSTICS_PANEL = "Diagnostics"

InputPathArgument = Annotated[
    Path,
    typer.Argument(
        metavar="INPUT",
        help="Directory of Markdown pages, or a single Markdown (.md) file.",
        exists=True,
        file_okay=True,
        dir_okay=True,
        readable=True,
        resolve_path=True,
        rich_help_panel=INPUTS_PANEL,
    ),
]

ConfigFileOption = Annotated[
    Path | None,
    typer.Option(
        "--config",
        "-f",
        help="Options file (.pdfsmith.yml) with render_options and session_options.",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
        rich_help_panel=INPUTS_PANEL,
    ),
]

ExplicitOption = Annotated[
    bool,
    typer.Option(
        "--explicit",
        "-e",
        help="Only render pages that opt in with a directive or front matter.",
        rich_help_panel=INPUTS_PANEL,
    ),
]

CollateOption = Annotated[
    bool,
    typer.Option(
        "--collate",
        "-c",
        help="Merge every rendered page into a single PDF instead of one file per page.",
        rich_help_panel=COLLATION_PANEL,
    ),
]

CollateNameOption = Annotated[
    str | None,
    typer.Option(
        "--collate-name",
        help="File name of the merged PDF written by --collate (default: collate.pdf).",
        rich_help_panel=COLLATION_PANEL,
    ),
]

OutputDirOption = Annotated[
    Path | None,
    typer.Option(
        "--output",
        "-o",
        help="Directory receiving the PDF files (defaults to the input directory).",
        file_okay=False,
        dir_okay=True,
        resolve_path=True,
        rich_help_panel=OUTPUT_PANEL,
    ),
]

HtmlOption = Annotated[
    bool,
    typer.Option(
        "--html",
        help="Keep the intermediate HTML site in the output directory.",
        rich_help_panel=OUTPUT_PANEL,
    ),
]

WatchOption = Annotated[
    bool,
    typer.Option(
        "--watch",
        "-w",
        help="Keep running and re-render pages whose sources change.",
        rich_help_panel=OUTPUT_PANEL,
    ),
]

VerboseOption = Annotated[
    int,
    typer.Option(
        "--verbose",
        "-v",
        count=True,
        help="Increase CLI verbosity. Combine multiple times for additional diagnostics.",
        rich_help_panel=DIAGNOSTICS_PANEL,
    ),
]

DebugOption = Annotated[
    bool,
    typer.Option(
        "--debug",
        help="Show full tracebacks when an unexpected error occurs.",
        rich_help_panel=DIAGNOSTICS_PANEL,
    ),
]


def _print_version(value: bool) -> None:
    if not value:
        return
    from pdfsmith.version import get_version

    typer.echo(get_version())
    raise typer.Exit()


VersionOption = Annotated[
    bool,
    typer.Option(
        "--version",
        help="Show the pdfsmith version and exit.",
        callback=_print_version,
        is_eager=True,
        rich_help_panel=DIAGNOSTICS_PANEL,
    ),
]


__all__ = [
    "COLLATION_PANEL",
    "DIAGNOSTICS_PANEL",
    "INPUTS_PANEL",
    "OUTPUT_PANEL",
    "CollateNameOption",
    "CollateOption",
    "ConfigFileOption",
    "DebugOption",
    "ExplicitOption",
    "HtmlOption",
    "InputPathArgument",
    "OutputDirOption",
    "VerboseOption",
    "VersionOption",
    "WatchOption",
]
