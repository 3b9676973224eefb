"""Helpers that inspect and patch the HTML handed to the renderer."""

from __future__ import annotations

from pathlib import PurePosixPath
import re

from .config import PDF_SUFFIX


CLASS_NO_PRINT = "pdfsmith-no-print"
CLASS_PAGE_BREAK = "pdfsmith-page-break"
STYLE_MARKER = "data-pdfsmith"
PRINT_CSS = f"""<style {STYLE_MARKER}>
    @media print {{
        div.{CLASS_PAGE_BREAK} {{
            page-break-after: always !important;
        }}
        .{CLASS_NO_PRINT} {{
            display: none !important;
        }}
    }}
</style>
"""

_HEAD_OPEN = re.compile(r"<head(\s[^>]*)?>", re.IGNORECASE)
_HEAD_CLOSE = re.compile(r"</head\s*>", re.IGNORECASE)


def is_markup(payload: str) -> bool:
    """Return True when ``payload`` is HTML rather than a relative URL."""
    return payload.lstrip().startswith("<")


def inject_print_styles(html: str) -> str:
    """Insert the page-break and no-print rules before ``</head>``."""
    if not html or STYLE_MARKER in html:
        return html
    match = _HEAD_CLOSE.search(html)
    if match is None:
        return html
    return f"{html[: match.start()]}{PRINT_CSS}{html[match.start():]}"


def with_base_href(html: str, base_url: str) -> str:
    """Anchor relative links of ``html`` on ``base_url`` with a ``<base>`` tag."""
    tag = f'<base href="{base_url}">'
    match = _HEAD_OPEN.search(html)
    if match is None:
        return f"{tag}{html}"
    return f"{html[: match.end()]}{tag}{html[match.end():]}"


def pdf_output_path(dest_path: str | PurePosixPath) -> PurePosixPath:
    """Rewrite a built page path to its PDF counterpart."""
    return PurePosixPath(str(dest_path).replace("\\", "/")).with_suffix(PDF_SUFFIX)


__all__ = [
    "CLASS_NO_PRINT",
    "CLASS_PAGE_BREAK",
    "PRINT_CSS",
    "inject_print_styles",
    "is_markup",
    "pdf_output_path",
    "with_base_href",
]
