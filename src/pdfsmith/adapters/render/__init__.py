"""Headless rendering, content serving and PDF merging."""

from __future__ import annotations

from .backend import RenderBackend
from .merge import merge_pdf_buffers
from .server import DEFAULT_BASE_PORT, DEFAULT_PORT_WINDOW, ContentServer, bind_first_free


__all__ = [
    "DEFAULT_BASE_PORT",
    "DEFAULT_PORT_WINDOW",
    "ContentServer",
    "RenderBackend",
    "bind_first_free",
    "merge_pdf_buffers",
]
