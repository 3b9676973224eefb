from __future__ import annotations

from collections.abc import Collection, Mapping
from concurrent.futures import Future
from io import BytesIO
from pathlib import Path
from typing import Any

from pypdf import PdfReader, PdfWriter
import pytest

from pdfsmith.adapters.render.merge import merge_pdf_buffers
from pdfsmith.core.config import RenderOptions, SessionOptions
from pdfsmith.core.exceptions import RenderFailure


def blank_pdf(width: int, height: int = 200, pages: int = 1) -> bytes:
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=width, height=height)
    buffer = BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def page_widths(data: bytes) -> list[int]:
    reader = PdfReader(BytesIO(data))
    return [round(float(page.mediabox.width)) for page in reader.pages]


class FakeBackend:
    """In-process render backend producing one blank page per source.

    Every distinct source gets its own page width so merged output can be
    traced back to the pages it was built from.
    """

    def __init__(
        self,
        *,
        fail: Collection[str] = (),
        corrupt: Collection[str] = (),
        port: int = 44154,
    ) -> None:
        self.fail = set(fail)
        self.corrupt = set(corrupt)
        self.port = port
        self.serve_calls = 0
        self.close_calls = 0
        self.submitted: list[str] = []
        self.published: dict[str, str] = {}
        self.merged: list[int] = []
        self.widths: dict[str, int] = {}

    def width_of(self, source: str) -> int:
        return self.widths.setdefault(source, 100 + 10 * len(self.widths))

    def serve(self) -> None:
        self.serve_calls += 1

    def submit(
        self,
        source: str,
        is_url: bool,
        render_options: RenderOptions,
        session_options: SessionOptions,
    ) -> Future[bytes]:
        self.submitted.append(source)
        future: Future[bytes] = Future()
        key = source if is_url else "<markup>"
        if key in self.fail:
            future.set_exception(RenderFailure(f"cannot render {key}"))
        elif key in self.corrupt:
            future.set_result(b"not a pdf")
        else:
            future.set_result(blank_pdf(self.width_of(key)))
        return future

    def merge(self, buffers: list[bytes]) -> bytes:
        self.merged.append(len(buffers))
        return merge_pdf_buffers(buffers)

    def publish(self, url: str, markup: str) -> None:
        self.published[url] = markup

    def url_for(self, url: str) -> str:
        return f"http://127.0.0.1:{self.port}/{url.lstrip('/')}"

    def close(self) -> None:
        self.close_calls += 1

    def submissions(self, source: str) -> int:
        return self.submitted.count(source)


class RecordingEmitter:
    debug_enabled = False

    def __init__(self) -> None:
        self.warnings: list[str] = []
        self.errors: list[str] = []
        self.events: list[tuple[str, dict[str, Any]]] = []

    def warning(self, message: str, exc: BaseException | None = None) -> None:
        self.warnings.append(message)

    def error(self, message: str, exc: BaseException | None = None) -> None:
        self.errors.append(message)

    def event(self, name: str, payload: Mapping[str, Any]) -> None:
        self.events.append((name, dict(payload)))

    def event_names(self) -> list[str]:
        return [name for name, _ in self.events]


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def page_html(title: str, body: str = "") -> str:
    return (
        f"<!DOCTYPE html><html><head><title>{title}</title></head>"
        f"<body><h1>{title}</h1>{body}</body></html>"
    )


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def emitter() -> RecordingEmitter:
    return RecordingEmitter()


@pytest.fixture
def docs_dir(tmp_path: Path) -> Path:
    root = tmp_path / "docs"
    root.mkdir()
    (root / "index.md").write_text("# Home\n\nWelcome.\n", encoding="utf-8")
    (root / "a.md").write_text("# Page A\n\nAlpha.\n", encoding="utf-8")
    (root / "b.md").write_text("# Page B\n\nBravo.\n", encoding="utf-8")
    return root


class BackendRecorder:
    """Stand-in for ``RenderBackend`` recording every backend it builds."""

    def __init__(self) -> None:
        self.fail: set[str] = set()
        self.instances: list[FakeBackend] = []
        self.kwargs: list[dict[str, Any]] = []

    def __call__(self, **kwargs: Any) -> FakeBackend:
        backend = FakeBackend(fail=self.fail)
        self.kwargs.append(kwargs)
        self.instances.append(backend)
        return backend


@pytest.fixture
def backends(monkeypatch: pytest.MonkeyPatch) -> BackendRecorder:
    from mkdocs_plugin_pdfsmith import plugin as plugin_module

    recorder = BackendRecorder()
    monkeypatch.setattr(plugin_module, "RenderBackend", recorder)
    monkeypatch.delenv(plugin_module.DRY_RUN_ENV, raising=False)
    return recorder


@pytest.fixture(autouse=True)
def _reset_mkdocs_plugin_cache() -> None:
    # MkDocs keeps plugin instances alive for the whole process; give each
    # test a fresh plugin as a separate ``mkdocs`` invocation would.
    from mkdocs.config.defaults import MkDocsConfig

    MkDocsConfig.plugins.plugin_cache.clear()
