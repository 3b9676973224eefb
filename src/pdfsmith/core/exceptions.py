"""Exception hierarchy for the PDF rendering pipeline."""

from __future__ import annotations

from pathlib import PurePath


class PdfsmithError(RuntimeError):
    """Base exception for pdfsmith failures."""


class ConfigError(PdfsmithError):
    """Raised when configuration files, options or flags are invalid."""


class DirectiveError(ConfigError):
    """Raised when a page directive is unknown or receives invalid arguments."""


class PortExhaustionError(PdfsmithError):
    """Raised when no loopback port is free for the content server."""


class RenderFailure(PdfsmithError):
    """Raised when the rendering backend fails to produce a PDF for a page."""

    def __init__(self, message: str, *, input_path: str | None = None) -> None:
        super().__init__(message)
        self.input_path = input_path


class MergeFailure(PdfsmithError):
    """Raised when PDF buffers cannot be merged into a collated document."""

    def __init__(self, message: str, *, output_path: PurePath | str | None = None) -> None:
        super().__init__(message)
        self.output_path = output_path


class FilesystemError(PdfsmithError):
    """Raised when reading sources or writing rendered documents fails."""


def exception_messages(exc: BaseException) -> list[str]:
    """Return the collected message chain for an exception and its causes."""
    messages: list[str] = []
    visited: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in visited:
        visited.add(id(current))
        text = str(current).strip()
        if text:
            first_line = text.splitlines()[0].strip()
            if first_line:
                messages.append(first_line)
        current = current.__cause__ or current.__context__
    return messages


def exception_hint(exc: BaseException) -> str | None:
    """Return the most specific message available for an exception chain."""
    messages = exception_messages(exc)
    return messages[-1] if messages else None


__all__ = [
    "ConfigError",
    "DirectiveError",
    "FilesystemError",
    "MergeFailure",
    "PdfsmithError",
    "PortExhaustionError",
    "RenderFailure",
    "exception_hint",
    "exception_messages",
]
