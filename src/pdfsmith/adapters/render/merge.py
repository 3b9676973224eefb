"""Merge rendered PDF buffers with pypdf."""

from __future__ import annotations

from collections.abc import Sequence
from io import BytesIO

from pypdf import PdfReader, PdfWriter
from pypdf.errors import PyPdfError

from pdfsmith.core.exceptions import MergeFailure


def _read(buffer: bytes, index: int) -> PdfReader:
    try:
        return PdfReader(BytesIO(buffer))
    except (PyPdfError, ValueError, OSError) as exc:
        raise MergeFailure(f"Document #{index + 1} is not a readable PDF: {exc}") from exc


def merge_pdf_buffers(buffers: Sequence[bytes]) -> bytes:
    """Append the pages of every buffer, in order, to the first document.

    Pages are neither reordered nor deduplicated.
    """
    if not buffers:
        raise MergeFailure("There are no documents to merge.")

    base = _read(buffers[0], 0)
    try:
        writer = PdfWriter(clone_from=base)
        for index, buffer in enumerate(buffers[1:], start=1):
            reader = _read(buffer, index)
            for page in reader.pages:
                writer.add_page(page)
        output = BytesIO()
        writer.write(output)
    except MergeFailure:
        raise
    except (PyPdfError, ValueError, KeyError) as exc:
        raise MergeFailure(f"Unable to merge PDF documents: {exc}") from exc
    return output.getvalue()


__all__ = ["merge_pdf_buffers"]
