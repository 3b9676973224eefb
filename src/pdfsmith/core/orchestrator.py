"""Build-lifecycle orchestration of page renders and PDF writes.

The orchestrator is driven entirely by the static-site builder's events:

``begin_build``
: A pass starts. The render backend is created and served on the first pass
  that actually writes output; dry runs never start it.

``include`` / ``ignore`` / ``add_collation``
: Declarations made by page directives and front matter.

``transform``
: A page was rendered to HTML. Eligible pages get a render target which starts
  rendering immediately.

``finish_build``
: The pass ends. Pending renders are awaited, then stale pages are written and
  stale collated documents merged. Persistent sessions keep the backend for
  the next pass; one-shot runs close it.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import Future
import enum
from pathlib import Path, PurePosixPath
import time
from typing import Any, Protocol

from .collation import CollationGroup
from .config import BaseConfig, RenderOptions, SessionOptions, normalise_collate_name
from .diagnostics import DiagnosticEmitter, NullEmitter
from .exceptions import FilesystemError, MergeFailure, PdfsmithError, RenderFailure
from .markup import inject_print_styles, is_markup, pdf_output_path, with_base_href
from .targets import RenderTarget


HTML_SUFFIX = ".html"


class RenderBackendProtocol(Protocol):
    """Subset of the render backend used by the orchestrator."""

    @property
    def port(self) -> int | None: ...

    def serve(self) -> None: ...

    def submit(
        self,
        source: str,
        is_url: bool,
        render_options: RenderOptions,
        session_options: SessionOptions,
    ) -> Future[bytes]: ...

    def merge(self, buffers: Sequence[bytes]) -> bytes: ...

    def publish(self, url: str, markup: str) -> None: ...

    def url_for(self, url: str) -> str: ...

    def close(self) -> None: ...


BackendFactory = Callable[[], RenderBackendProtocol]


class Phase(enum.Enum):
    IDLE = "idle"
    SERVING = "serving"
    COLLECTING = "collecting"
    FINALIZING = "finalizing"
    CLOSED = "closed"


Doc = str | CollationGroup


class Orchestrator:
    """Decide which pages render, cache their output and sequence the writes."""

    def __init__(
        self,
        *,
        backend_factory: BackendFactory,
        output_dir: Path,
        base_config: BaseConfig | None = None,
        standalone: bool = False,
        explicit: bool | None = None,
        collate_all: bool = False,
        collate_name: str | None = None,
        persistent: bool = False,
        emitter: DiagnosticEmitter | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.backend_factory = backend_factory
        self.output_dir = Path(output_dir)
        self.base_config = base_config or BaseConfig()
        self.standalone = standalone
        # Standalone runs render every page unless told otherwise; embedded
        # plugin runs only render pages that opt in.
        self.explicit = (not standalone) if explicit is None else explicit
        self.collate_all = collate_all
        self.collate_name = normalise_collate_name(collate_name) if collate_all else None
        self.persistent = persistent
        self.emitter = emitter or NullEmitter()
        self._clock = clock

        self.phase = Phase.IDLE
        self.backend: RenderBackendProtocol | None = None
        self.targets: dict[str, RenderTarget] = {}
        self.docs: dict[Any, Doc] = {}
        self.includes: set[str] = set()
        self.ignores: set[str] = set()
        self.registered: set[str] = set()
        self.written_groups: set[PurePosixPath] = set()
        self.pass_count = 0
        self.reference: float | None = None
        self.dry_run = False
        self._pass_started_at: float | None = None

    @property
    def implicit(self) -> bool:
        return not self.explicit

    # -- Lifecycle ---------------------------------------------------------

    def begin_build(self, *, dry_run: bool = False) -> None:
        """Start a build pass, serving the backend when output is written."""
        if self.phase is Phase.CLOSED:
            raise PdfsmithError("The render session has already been closed.")
        self.dry_run = dry_run
        self._pass_started_at = self._clock()
        self.docs = {}
        self.includes = set()
        self.ignores = set()
        self.registered = set()
        if dry_run:
            self.emitter.event("pass_skipped", {"reason": "dry run"})
            self.phase = Phase.COLLECTING
            return
        if self.backend is None:
            backend = self.backend_factory()
            self.backend = backend
            self.phase = Phase.SERVING
            backend.serve()
            self.emitter.event("backend_ready", {"port": backend.port})
        self.phase = Phase.COLLECTING

    def include(self, input_path: str) -> None:
        self.includes.add(input_path)

    def ignore(self, input_path: str) -> None:
        self.ignores.add(input_path)

    def add_collation(self, group: CollationGroup) -> None:
        self.docs[("collate", group.output_path)] = group

    def is_eligible(self, input_path: str, output_path: str | PurePosixPath | None) -> bool:
        """Return whether a built page can be rendered to PDF at all."""
        if self.dry_run or output_path is None:
            return False
        if not str(output_path).endswith(HTML_SUFFIX):
            return False
        return input_path not in self.ignores

    def is_requested(self, input_path: str) -> bool:
        """Return whether a page was asked for, implicitly or explicitly."""
        if self.implicit or input_path in self.includes:
            return True
        return any(
            input_path in doc.members
            for doc in self.docs.values()
            if isinstance(doc, CollationGroup)
        )

    def transform(
        self,
        input_path: str,
        output_path: str | PurePosixPath | None,
        content: str,
        *,
        source_file: Path | None = None,
        page_options: Mapping[str, Any] | None = None,
        call_options: Mapping[str, Any] | None = None,
    ) -> str:
        """Register the built HTML of a page and return it with print styles."""
        content = inject_print_styles(content)
        if not content or not self.is_eligible(input_path, output_path):
            return content
        if not self.is_requested(input_path):
            return content
        assert output_path is not None
        self._register(
            input_path,
            PurePosixPath(str(output_path).replace("\\", "/")),
            content,
            source_file=source_file,
            options=self.base_config.layered(page_options, call_options),
        )
        self.registered.add(input_path)
        if self.implicit or input_path in self.includes:
            self.docs[input_path] = input_path
        return content

    def finish_build(self) -> list[Path]:
        """Await pending renders and write every stale document of the pass."""
        if self.dry_run:
            return []
        if self.phase is not Phase.COLLECTING:
            raise PdfsmithError(f"Cannot finish a build while {self.phase.value}.")
        self.phase = Phase.FINALIZING
        succeeded = False
        try:
            written = self._finalize()
            succeeded = True
            return written
        finally:
            if self.persistent:
                if succeeded:
                    self.pass_count += 1
                    self.reference = self._pass_started_at
                self.phase = Phase.COLLECTING
            else:
                self.shutdown()

    def shutdown(self) -> None:
        """Close the render backend; safe to call more than once."""
        backend, self.backend = self.backend, None
        if backend is not None:
            backend.close()
        self.phase = Phase.CLOSED

    # -- Internals ---------------------------------------------------------

    def _register(
        self,
        input_path: str,
        html_path: PurePosixPath,
        content: str,
        *,
        source_file: Path | None,
        options: BaseConfig,
    ) -> RenderTarget:
        backend = self._require_backend()
        session = options.session_options
        if session.load_via == "server":
            url = html_path.as_posix()
            backend.publish(url, content)
            source = url
        else:
            parent = html_path.parent.as_posix()
            base = "" if parent == "." else f"{parent}/"
            source = with_base_href(content, backend.url_for(base))

        existing = self.targets.get(input_path)
        if existing is not None and existing.is_url == (not is_markup(source)):
            existing.render_options = options.render_options
            existing.session_options = session
            existing.source_file = source_file
            if self.persistent and self.pass_count > 0:
                # Known pages only re-render when stale, decided in finish_build.
                existing.update_source(source)
            else:
                existing.refresh(source)
            return existing

        target = RenderTarget(
            input_path,
            pdf_output_path(html_path),
            source,
            submit=backend.submit,
            render_options=options.render_options,
            session_options=session,
            source_file=source_file,
        )
        if existing is not None:
            target.write_count = existing.write_count
            target.last_written_at = existing.last_written_at
        self.targets[input_path] = target
        return target

    def _finalize(self) -> list[Path]:
        backend = self._require_backend()
        reference = self.reference
        # Targets cached by earlier passes stay dormant unless this pass registered them.
        active = {
            path: self.targets[path]
            for path in self.targets
            if path in self.registered and path not in self.ignores
        }

        if self.persistent and self.pass_count > 0:
            for target in active.values():
                if target.is_stale(reference):
                    self.emitter.event("target_refreshed", {"source": target.input_path})
                    target.refresh()

        # Render-then-write barrier: nothing is written before every render settled.
        for target in active.values():
            target.result()

        docs = self._resolve_docs(active)
        stale = {
            path: target.is_stale(reference) or not self._output_exists(target.output_path)
            for path, target in active.items()
        }
        written: list[Path] = []
        written_targets: set[str] = set()
        failures: list[MergeFailure] = []

        for doc in docs:
            if isinstance(doc, CollationGroup):
                first_pass = doc.output_path not in self.written_groups
                rewrite = first_pass or not self._output_exists(doc.output_path)
                if not doc.is_stale(active, reference, first_pass=rewrite):
                    continue
                try:
                    merged = backend.merge(doc.buffers(active))
                except MergeFailure as exc:
                    exc.output_path = doc.output_path
                    self.emitter.error(f"Unable to merge '{doc.output_path}': {exc}", exc)
                    failures.append(exc)
                    continue
                written.append(self._write(doc.output_path, merged))
                self.written_groups.add(doc.output_path)
                written_targets.update(doc.members)
                self.emitter.event(
                    "collation_written",
                    {"output": str(doc.output_path), "members": list(doc.members)},
                )
                continue

            target = active[doc]
            if not stale[doc]:
                continue
            written.append(self._write(target.output_path, target.result()))
            written_targets.add(doc)
            self.emitter.event(
                "pdf_written", {"output": str(target.output_path), "source": doc}
            )

        now = self._clock()
        for input_path in written_targets:
            self.targets[input_path].mark_written(now)

        if failures:
            first = failures[0]
            for extra in failures[1:]:
                first.add_note(f"also failed: {extra.output_path}: {extra}")
            raise first
        return written

    def _resolve_docs(self, active: Mapping[str, RenderTarget]) -> list[CollationGroup | str]:
        singles = [doc for doc in self.docs.values() if isinstance(doc, str) and doc in active]
        if self.collate_all:
            assert self.collate_name is not None
            if not singles:
                return []
            return [CollationGroup(PurePosixPath(self.collate_name), singles)]

        resolved: list[CollationGroup | str] = []
        for doc in self.docs.values():
            if isinstance(doc, str):
                if doc in active:
                    resolved.append(doc)
                continue
            missing = [member for member in doc.members if member not in active]
            missing = [member for member in missing if member not in self.ignores]
            if missing:
                self.emitter.warning(
                    f"Collated file '{doc.output_path}' skips pages that were not rendered: "
                    + ", ".join(missing)
                )
            group = doc.without(self.ignores.union(missing))
            if group is None:
                self.emitter.warning(f"Collated file '{doc.output_path}' has no page to merge.")
                continue
            resolved.append(group)
        return resolved

    def _output_exists(self, relative: PurePosixPath) -> bool:
        return (self.output_dir / Path(*relative.parts)).is_file()

    def _write(self, relative: PurePosixPath, data: bytes) -> Path:
        target = self.output_dir / Path(*relative.parts)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            raise FilesystemError(f"Unable to write '{target}': {exc}") from exc
        return target

    def _require_backend(self) -> RenderBackendProtocol:
        if self.backend is None:
            raise PdfsmithError("The render backend is not running; call begin_build() first.")
        return self.backend


__all__ = ["BackendFactory", "Orchestrator", "Phase", "RenderBackendProtocol"]
