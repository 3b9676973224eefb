"""Playwright rendering session shared by every page of a build."""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine, Sequence
from concurrent.futures import Future
import logging
import os
from pathlib import Path
import threading
from typing import Any, TypeVar

from pdfsmith.core.config import RenderOptions, SessionOptions
from pdfsmith.core.exceptions import RenderFailure

from .merge import merge_pdf_buffers
from .server import DEFAULT_BASE_PORT, DEFAULT_PORT_WINDOW, ContentServer


logger = logging.getLogger(__name__)

T = TypeVar("T")

_PLAYWRIGHT_APT_PACKAGES = ("libnss3", "libatk-bridge2.0-0", "libgbm1", "libasound2")
_LAUNCH_TIMEOUT = 120


def _playwright_dependency_hint() -> str:
    packages = " ".join(_PLAYWRIGHT_APT_PACKAGES)
    return (
        "Install the browser with `playwright install chromium` and its system "
        f"dependencies with `playwright install-deps` (Debian/Ubuntu: `sudo apt-get install {packages}`)."
    )


class _EventLoopThread:
    """Run an asyncio event loop on a dedicated daemon thread."""

    def __init__(self, name: str = "pdfsmith-render-loop") -> None:
        self._name = name
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._loop is not None

    def start(self) -> asyncio.AbstractEventLoop:
        if self._loop is not None:
            return self._loop
        loop = asyncio.new_event_loop()
        ready = threading.Event()

        def target() -> None:
            asyncio.set_event_loop(loop)
            loop.call_soon(ready.set)
            loop.run_forever()

        self._thread = threading.Thread(target=target, name=self._name, daemon=True)
        self._thread.start()
        ready.wait()
        self._loop = loop
        return loop

    def submit(self, coro: Coroutine[Any, Any, T]) -> Future[T]:
        if self._loop is None:
            coro.close()
            raise RuntimeError("The render event loop is not running.")
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def stop(self) -> None:
        loop, self._loop = self._loop, None
        if loop is None:
            return
        loop.call_soon_threadsafe(loop.stop)
        if self._thread is not None:
            self._thread.join(timeout=10)
            self._thread = None
        loop.close()


class RenderBackend:
    """Own a headless Chromium session and the content server it reads from.

    Every render runs in its own browser context on a shared asyncio loop, so
    many pages are rendered concurrently without interfering with each other.
    The backend must be served before rendering and closed exactly once per
    invocation; persistent sessions reuse it across build passes.
    """

    def __init__(
        self,
        serve_path: Path | None = None,
        *,
        path_prefix: str = "",
        session_options: SessionOptions | None = None,
        base_port: int = DEFAULT_BASE_PORT,
        port_window: int = DEFAULT_PORT_WINDOW,
    ) -> None:
        self.session_options = session_options or SessionOptions()
        self.serve_path = Path(serve_path) if serve_path is not None else None
        self.path_prefix = path_prefix or self.session_options.path_prefix
        self.server = ContentServer(
            self.serve_path,
            path_prefix=self.path_prefix,
            base_port=base_port,
            port_window=port_window,
        )
        self._loop = _EventLoopThread()
        self._playwright: Any = None
        self._browser: Any = None
        self._semaphore: asyncio.Semaphore | None = None

    @property
    def port(self) -> int | None:
        return self.server.port

    @property
    def serving(self) -> bool:
        return self._browser is not None

    def serve(self) -> None:
        """Bind the content server and launch the browser session."""
        if self.serving:
            return
        self.server.start()
        self._loop.start()
        try:
            self._loop.submit(self._launch()).result(timeout=_LAUNCH_TIMEOUT)
        except BaseException:
            self.close()
            raise
        logger.debug("render backend ready on port %s", self.port)

    async def _launch(self) -> None:
        try:
            from playwright.async_api import Error as PlaywrightError
            from playwright.async_api import async_playwright
        except ModuleNotFoundError as exc:  # pragma: no cover - dependency missing
            raise RenderFailure(
                "The 'playwright' package is required to render PDFs."
            ) from exc

        # Silence Node.js deprecation spew emitted by the Playwright driver.
        existing_node_opts = os.environ.get("NODE_OPTIONS", "")
        if "--no-deprecation" not in existing_node_opts:
            os.environ["NODE_OPTIONS"] = (existing_node_opts + " --no-deprecation").strip()

        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.session_options.headless
            )
        except PlaywrightError as exc:
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
            message = str(exc).strip() or exc.__class__.__name__
            raise RenderFailure(
                f"Unable to launch headless Chromium: {message}. {_playwright_dependency_hint()}"
            ) from exc
        self._semaphore = asyncio.Semaphore(self.session_options.max_concurrency)

    def url_for(self, url: str) -> str:
        return self.server.url_for(url)

    def publish(self, url: str, markup: str) -> None:
        self.server.publish(url, markup)

    def unpublish(self, url: str) -> None:
        self.server.unpublish(url)

    def submit(
        self,
        source: str,
        is_url: bool,
        render_options: RenderOptions,
        session_options: SessionOptions,
    ) -> Future[bytes]:
        """Schedule :meth:`render` on the backend loop and return its future."""
        if not self.serving:
            raise RenderFailure("The render backend is not serving; call serve() first.")
        return self._loop.submit(self.render(source, is_url, render_options, session_options))

    async def render(
        self,
        source: str,
        is_url: bool,
        render_options: RenderOptions,
        session_options: SessionOptions,
    ) -> bytes:
        """Render a URL below the content server, or literal markup, to PDF."""
        from playwright.async_api import Error as PlaywrightError

        assert self._semaphore is not None
        async with self._semaphore:
            context = await self._browser.new_context()
            try:
                page = await context.new_page()
                if is_url:
                    await page.goto(
                        self.url_for(source),
                        wait_until=session_options.wait_until,
                        timeout=session_options.timeout,
                    )
                else:
                    await page.set_content(
                        source,
                        wait_until=session_options.wait_until,
                        timeout=session_options.timeout,
                    )
                if session_options.wait_before_capture:
                    await page.wait_for_timeout(session_options.wait_before_capture)
                return await page.pdf(**render_options.to_playwright())
            except PlaywrightError as exc:
                target = source if is_url else "inline markup"
                message = str(exc).strip().splitlines()[0] if str(exc).strip() else type(exc).__name__
                raise RenderFailure(f"Rendering {target} failed: {message}") from exc
            finally:
                await context.close()

    def merge(self, buffers: Sequence[bytes]) -> bytes:
        return merge_pdf_buffers(buffers)

    def close(self) -> None:
        """Stop the content server and the browser session; idempotent."""
        if self._loop.running:
            try:
                self._loop.submit(self._shutdown()).result(timeout=30)
            except Exception:  # noqa: BLE001 - teardown must reach the loop shutdown
                logger.debug("render backend shutdown raised", exc_info=True)
            self._loop.stop()
        self.server.stop()

    async def _shutdown(self) -> None:
        browser, self._browser = self._browser, None
        playwright, self._playwright = self._playwright, None
        if browser is not None:
            await browser.close()
        if playwright is not None:
            await playwright.stop()


__all__ = ["RenderBackend"]
