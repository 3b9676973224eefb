"""MkDocs plugin entry point for pdfsmith."""

from __future__ import annotations

from .plugin import PdfPlugin


__all__ = ["PdfPlugin"]
