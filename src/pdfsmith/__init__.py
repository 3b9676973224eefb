"""Primary public API for pdfsmith."""

from __future__ import annotations

from pdfsmith.adapters.render import RenderBackend, merge_pdf_buffers
from pdfsmith.core import (
    BaseConfig,
    CliConfig,
    CollationGroup,
    ConfigError,
    DirectiveError,
    FilesystemError,
    MergeFailure,
    Orchestrator,
    PdfsmithError,
    PortExhaustionError,
    RenderFailure,
    RenderOptions,
    RenderTarget,
    SessionOptions,
    build_collation,
    load_config_file,
)
from pdfsmith.version import get_version


__version__ = get_version()

__all__ = [
    "BaseConfig",
    "CliConfig",
    "CollationGroup",
    "ConfigError",
    "DirectiveError",
    "FilesystemError",
    "MergeFailure",
    "Orchestrator",
    "PdfsmithError",
    "PortExhaustionError",
    "RenderBackend",
    "RenderFailure",
    "RenderOptions",
    "RenderTarget",
    "SessionOptions",
    "__version__",
    "build_collation",
    "get_version",
    "load_config_file",
    "merge_pdf_buffers",
]
