"""Rich-aware presenters for CLI output."""

from __future__ import annotations

from collections.abc import Collection, Sequence
from pathlib import Path
from typing import TYPE_CHECKING

from rich import box
from rich.table import Table
import typer

from .state import CLIState


if TYPE_CHECKING:  # pragma: no cover - typing only
    from rich.console import Console


def _get_console(state: CLIState) -> Console | None:
    """Return the stdout console when it is attached to a terminal."""
    console = state.console
    if getattr(console, "is_terminal", False):
        return console
    return None


def _size_details(path: Path) -> str:
    """Return a human-readable size for a file if it exists."""
    try:
        size = path.stat().st_size
    except OSError:
        return ""
    if size >= 1024 * 1024:
        return f"{size / (1024 * 1024):.2f} MiB"
    if size >= 1024:
        return f"{size / 1024:.1f} KiB"
    return f"{size} B"


def _display_path(path: Path, base: Path | None) -> str:
    if base is not None:
        try:
            return str(path.relative_to(base))
        except ValueError:
            pass
    return str(path)


def present_written(
    state: CLIState,
    written: Sequence[Path],
    *,
    output_dir: Path | None = None,
    collated: Collection[Path] = (),
) -> None:
    """Display the PDF files produced by a build.

    Paths listed in ``collated`` are labelled as merged documents.
    """
    if not written:
        typer.echo("No PDF file was written.")
        return

    merged = set(collated)
    rows = [
        (
            "collated" if path in merged else "page",
            _display_path(path, output_dir),
            _size_details(path),
        )
        for path in written
    ]

    console = _get_console(state)
    if console is not None:
        table = Table(box=box.SQUARE, header_style="bold cyan")
        table.title = f"PDF files in {output_dir}" if output_dir else "PDF files"
        table.add_column("Artifact", style="cyan")
        table.add_column("Location")
        table.add_column("Filesize", style="magenta", justify="right", no_wrap=True)
        for artifact, location, size in rows:
            table.add_row(artifact, location, size)
        console.print(table)
        return

    for artifact, location, size in rows:
        suffix = f" ({size})" if size else ""
        typer.echo(f"- {artifact}: {location}{suffix}")


__all__ = ["present_written"]
