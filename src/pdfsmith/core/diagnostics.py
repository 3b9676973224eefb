"""Diagnostic abstractions shared across the rendering pipeline."""

from __future__ import annotations

from collections.abc import Mapping
import logging
from typing import Any, Protocol, runtime_checkable


logger = logging.getLogger(__name__)


@runtime_checkable
class DiagnosticEmitter(Protocol):
    """Interface used to surface warnings, errors, and structured events."""

    debug_enabled: bool

    def warning(self, message: str, exc: BaseException | None = None) -> None: ...

    def error(self, message: str, exc: BaseException | None = None) -> None: ...

    def event(self, name: str, payload: Mapping[str, Any]) -> None: ...


class NullEmitter:
    """Emitter that ignores every diagnostic."""

    debug_enabled: bool = False

    def warning(self, message: str, exc: BaseException | None = None) -> None:
        return

    def error(self, message: str, exc: BaseException | None = None) -> None:
        return

    def event(self, name: str, payload: Mapping[str, Any]) -> None:
        return


class LoggingEmitter:
    """Emitter that forwards diagnostics to the standard logging module."""

    def __init__(
        self,
        *,
        logger_obj: logging.Logger | logging.LoggerAdapter | None = None,
        debug_enabled: bool = False,
    ) -> None:
        self._logger = logger_obj or logger
        self.debug_enabled = debug_enabled

    def warning(self, message: str, exc: BaseException | None = None) -> None:
        if exc is not None:
            self._logger.warning(message, exc_info=exc)
        else:
            self._logger.warning(message)

    def error(self, message: str, exc: BaseException | None = None) -> None:
        if exc is not None:
            self._logger.error(message, exc_info=exc)
        else:
            self._logger.error(message)

    def event(self, name: str, payload: Mapping[str, Any]) -> None:
        message = format_event_message(name, payload)
        if message:
            self._logger.info(message)
            return
        self._logger.debug("diagnostic event %s: %s", name, dict(payload))


def format_event_message(name: str, payload: Mapping[str, Any]) -> str | None:
    """Return a human-friendly summary for selected diagnostic events."""
    data = dict(payload)

    if name == "backend_ready":
        port = data.get("port") or "?"
        root = data.get("root")
        suffix = f" serving {root}" if root else ""
        return f"Render backend listening on 127.0.0.1:{port}{suffix}"

    if name == "pdf_written":
        output = data.get("output") or "<unknown>"
        source = data.get("source")
        suffix = f" (from {source})" if source else ""
        return f"Wrote PDF: {output}{suffix}"

    if name == "collation_written":
        output = data.get("output") or "<unknown>"
        members = data.get("members") or []
        return f"Wrote collated PDF: {output} ({len(members)} pages merged)"

    if name == "target_refreshed":
        source = data.get("source") or "<unknown>"
        return f"Re-rendering stale page: {source}"

    if name == "pass_skipped":
        reason = data.get("reason") or "dry run"
        return f"PDF generation skipped ({reason})"

    return None


__all__ = [
    "DiagnosticEmitter",
    "LoggingEmitter",
    "NullEmitter",
    "format_event_message",
]
