"""Render progress reporting for the command-line interface."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from rich.text import Text

from pdfsmith.core.diagnostics import format_event_message

from .state import CLIState, emit_error, emit_warning, get_cli_state, render_message


_WRITE_EVENTS = {
    "pdf_written": ("page", "bright_green"),
    "collation_written": ("collated", "magenta"),
}


def _write_line(name: str, data: Mapping[str, Any]) -> Text:
    label, style = _WRITE_EVENTS[name]
    text = Text.assemble((f"{label:<9}", "bold"), (str(data.get("output") or "?"), style))
    if name == "collation_written":
        members = [str(member) for member in data.get("members") or []]
        if members:
            text.append(f" <- {', '.join(members)}", style="dim")
    elif data.get("source"):
        text.append(f" <- {data['source']}", style="dim")
    return text


class CliEmitter:
    """Report render progress and pipeline diagnostics on the CLI consoles.

    Every event is recorded on the CLI state, which lets the final summary
    tell merged documents apart from single pages. Progress lines are only
    printed with ``--verbose``.
    """

    def __init__(self, state: CLIState | None = None) -> None:
        self._state = state or get_cli_state()

    @property
    def debug_enabled(self) -> bool:
        return self._state.show_tracebacks

    def warning(self, message: str, exc: BaseException | None = None) -> None:
        emit_warning(message, exception=exc)

    def error(self, message: str, exc: BaseException | None = None) -> None:
        emit_error(message, exception=exc)

    def event(self, name: str, payload: Mapping[str, Any]) -> None:
        data = dict(payload)
        self._state.record_event(name, data)
        if self._state.verbosity < 1:
            return
        if name in _WRITE_EVENTS:
            self._state.console.log(_write_line(name, data), soft_wrap=True)
            return
        message = format_event_message(name, data)
        if message:
            render_message("info", message)


__all__ = ["CliEmitter"]
