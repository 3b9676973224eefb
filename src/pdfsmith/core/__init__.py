"""Core orchestration of page renders, caching and collation."""

from __future__ import annotations

from .collation import CollationGroup, build_collation
from .config import BaseConfig, CliConfig, RenderOptions, SessionOptions, load_config_file
from .diagnostics import DiagnosticEmitter, LoggingEmitter, NullEmitter
from .exceptions import (
    ConfigError,
    DirectiveError,
    FilesystemError,
    MergeFailure,
    PdfsmithError,
    PortExhaustionError,
    RenderFailure,
)
from .orchestrator import Orchestrator, Phase
from .targets import RenderTarget


__all__ = [
    "BaseConfig",
    "CliConfig",
    "CollationGroup",
    "ConfigError",
    "DiagnosticEmitter",
    "DirectiveError",
    "FilesystemError",
    "LoggingEmitter",
    "MergeFailure",
    "NullEmitter",
    "Orchestrator",
    "PdfsmithError",
    "Phase",
    "PortExhaustionError",
    "RenderFailure",
    "RenderOptions",
    "RenderTarget",
    "SessionOptions",
    "build_collation",
    "load_config_file",
]
