"""Per-page render cache with staleness bookkeeping."""

from __future__ import annotations

from concurrent.futures import Future
from pathlib import Path, PurePosixPath
import threading
import time
from typing import Protocol

from .config import RenderOptions, SessionOptions
from .exceptions import RenderFailure
from .markup import is_markup


class RenderSubmitter(Protocol):
    """Callable scheduling a render and returning its pending result."""

    def __call__(
        self,
        source: str,
        is_url: bool,
        render_options: RenderOptions,
        session_options: SessionOptions,
    ) -> Future[bytes]: ...


class RenderTarget:
    """Cache the latest PDF rendering of one page.

    The first render is issued as soon as the target is constructed so that the
    write phase rarely has to wait. At most one render is in flight at any
    time: ``refresh`` calls made while a render is pending return the pending
    future instead of scheduling another one.
    """

    def __init__(
        self,
        input_path: str,
        output_path: PurePosixPath,
        source: str,
        *,
        submit: RenderSubmitter,
        render_options: RenderOptions | None = None,
        session_options: SessionOptions | None = None,
        source_file: Path | None = None,
    ) -> None:
        self.input_path = input_path
        self.output_path = output_path
        self.source = source
        self.is_url = not is_markup(source)
        self.render_options = render_options or RenderOptions()
        self.session_options = session_options or SessionOptions()
        self.source_file = source_file
        self.cached: bytes | None = None
        self.pending: Future[bytes] | None = None
        self.render_count = 0
        self.write_count = 0
        self.last_written_at: float | None = None
        self._submit = submit
        self._lock = threading.RLock()
        self.refresh()

    def __repr__(self) -> str:
        kind = "url" if self.is_url else "markup"
        return f"RenderTarget({self.input_path!r} -> {str(self.output_path)!r}, {kind})"

    @property
    def in_flight(self) -> bool:
        """Return whether a render is currently pending."""
        pending = self.pending
        return pending is not None and not pending.done()

    def update_source(self, source: str) -> None:
        """Replace the payload used by the next render without rendering."""
        if (not is_markup(source)) != self.is_url:
            kind = "URL" if self.is_url else "markup"
            raise ValueError(f"Render target '{self.input_path}' only accepts {kind} payloads.")
        with self._lock:
            self.source = source

    def refresh(self, source: str | None = None) -> Future[bytes]:
        """Schedule a new render unless one is already in flight."""
        with self._lock:
            if self.in_flight:
                assert self.pending is not None
                return self.pending
            if source is not None:
                self.update_source(source)
            future = self._submit(
                self.source, self.is_url, self.render_options, self.session_options
            )
            self.pending = future
            self.render_count += 1
        future.add_done_callback(self._settle)
        return future

    def result(self) -> bytes:
        """Block until the pending render settles and return its buffer."""
        future = self.pending
        if future is None:
            raise RenderFailure(
                f"No render was scheduled for '{self.input_path}'.", input_path=self.input_path
            )
        try:
            data = future.result()
        except RenderFailure:
            raise
        except Exception as exc:
            raise RenderFailure(
                f"Rendering '{self.input_path}' failed: {exc}", input_path=self.input_path
            ) from exc
        self._store(future, data)
        return data

    def source_mtime(self) -> float | None:
        """Return the modification time of the source file, if known."""
        if self.source_file is None:
            return None
        try:
            return self.source_file.stat().st_mtime
        except OSError:
            return None

    def is_stale(self, reference: float | None) -> bool:
        """Return True when the target must be (re)written against ``reference``."""
        if self.cached is None or self.write_count == 0 or reference is None:
            return True
        mtime = self.source_mtime()
        return mtime is not None and mtime > reference

    def mark_written(self, at: float | None = None) -> None:
        self.write_count += 1
        self.last_written_at = time.time() if at is None else at

    def _settle(self, future: Future[bytes]) -> None:
        if future.cancelled() or future.exception() is not None:
            return
        self._store(future, future.result())

    def _store(self, future: Future[bytes], data: bytes) -> None:
        with self._lock:
            # A replaced future never overwrites the buffer of its successor.
            if future is self.pending:
                self.cached = data


__all__ = ["RenderSubmitter", "RenderTarget"]
