from __future__ import annotations

from collections.abc import Mapping
import os
from pathlib import Path
from typing import Any

from mkdocs.config import config_options
from mkdocs.config.defaults import MkDocsConfig
from mkdocs.exceptions import PluginError
from mkdocs.plugins import BasePlugin, get_plugin_logger
from mkdocs.structure.files import Files
from mkdocs.structure.pages import Page
from pdfsmith.adapters.render import RenderBackend
from pdfsmith.core.config import BaseConfig
from pdfsmith.core.diagnostics import DiagnosticEmitter, LoggingEmitter
from pdfsmith.core.directives import PageContext, apply_directives
from pdfsmith.core.exceptions import ConfigError, PdfsmithError
from pdfsmith.core.markup import pdf_output_path
from pdfsmith.core.orchestrator import Orchestrator
from pydantic import ValidationError


log = get_plugin_logger(__name__)

FRONT_MATTER_KEY = "pdfsmith"
DRY_RUN_ENV = "PDFSMITH_DRY_RUN"


class PdfPlugin(BasePlugin):
    """MkDocs plugin rendering built pages to PDF with a headless browser."""

    config_scheme = (
        ("enabled", config_options.Type(bool, default=True)),
        ("standalone", config_options.Type(bool, default=False)),
        ("explicit", config_options.Type((bool, type(None)), default=None)),
        ("collate", config_options.Type(bool, default=False)),
        ("collate_name", config_options.Type((str, type(None)), default=None)),
        ("output_dir", config_options.Type((str, type(None)), default=None)),
        ("dry_run", config_options.Type(bool, default=False)),
        ("render_options", config_options.Type(dict, default={})),
        ("session_options", config_options.Type(dict, default={})),
    )

    def __init__(self) -> None:
        self._enabled = True
        self._is_serve = False
        self._dry_run = False
        self._base_config: BaseConfig | None = None
        self._orchestrator: Orchestrator | None = None
        self._site_dir: Path | None = None
        self._page_options: dict[str, dict[str, Any]] = {}
        self.emitter: DiagnosticEmitter | None = None
        self.written: list[Path] = []

    @property
    def orchestrator(self) -> Orchestrator | None:
        return self._orchestrator

    # -- MkDocs lifecycle -------------------------------------------------

    def on_startup(self, *, command: str, dirty: bool) -> None:  # noqa: ARG002
        self._is_serve = command == "serve"

    def on_config(self, config: MkDocsConfig) -> MkDocsConfig:
        self._enabled = bool(self.config.get("enabled", True))
        if not self._enabled:
            return config

        self._dry_run = bool(self.config.get("dry_run")) or self._env_flag_enabled(
            os.environ.get(DRY_RUN_ENV)
        )
        self._site_dir = Path(config.site_dir).resolve()
        try:
            self._base_config = BaseConfig.model_validate(
                {
                    "render_options": dict(self.config.get("render_options") or {}),
                    "session_options": dict(self.config.get("session_options") or {}),
                }
            )
        except ValidationError as exc:
            raise PluginError(f"pdfsmith: invalid plugin options: {exc}") from exc

        if self._orchestrator is None:
            self._orchestrator = self._build_orchestrator(config)
        else:
            # Persistent sessions keep the orchestrator (and its backend) alive.
            self._orchestrator.base_config = self._base_config
        return config

    def on_pre_build(self, *, config: MkDocsConfig) -> None:  # noqa: ARG002
        if not self._enabled or self._orchestrator is None:
            return
        self._page_options = {}
        self.written = []
        try:
            self._orchestrator.begin_build(dry_run=self._dry_run)
        except PdfsmithError as exc:
            raise PluginError(f"pdfsmith: {exc}") from exc

    def on_page_markdown(
        self,
        markdown: str,
        *,
        page: Page,
        config: MkDocsConfig,  # noqa: ARG002
        files: Files,
    ) -> str:
        orchestrator = self._orchestrator
        if not self._enabled or orchestrator is None:
            return markdown

        src_path = page.file.src_uri
        try:
            self._apply_front_matter(src_path, page.meta)
            context = PageContext(
                input_path=src_path,
                output_path=pdf_output_path(page.file.dest_uri),
                available=[file.src_uri for file in files.documentation_pages()],
            )
            return apply_directives(markdown, context, orchestrator)
        except ConfigError as exc:
            raise PluginError(f"pdfsmith: {src_path}: {exc}") from exc

    def on_post_page(self, output: str, *, page: Page, config: MkDocsConfig) -> str:  # noqa: ARG002
        orchestrator = self._orchestrator
        if not self._enabled or orchestrator is None:
            return output

        src_path = page.file.src_uri
        try:
            return orchestrator.transform(
                src_path,
                page.file.dest_uri,
                output,
                source_file=Path(page.file.abs_src_path) if page.file.abs_src_path else None,
                page_options=self._page_options.get(src_path),
            )
        except PdfsmithError as exc:
            raise PluginError(f"pdfsmith: {src_path}: {exc}") from exc

    def on_post_build(self, *, config: MkDocsConfig) -> None:  # noqa: ARG002
        orchestrator = self._orchestrator
        if not self._enabled or orchestrator is None:
            return
        try:
            self.written = orchestrator.finish_build()
        except PdfsmithError as exc:
            raise PluginError(f"pdfsmith: {exc}") from exc
        if self.written:
            log.info("Generated %d PDF file(s) in %s", len(self.written), orchestrator.output_dir)

    def on_build_error(self, *, error: Exception) -> None:  # noqa: ARG002
        if self._orchestrator is not None and not self._is_serve:
            self._orchestrator.shutdown()

    def on_shutdown(self) -> None:
        if self._orchestrator is not None:
            self._orchestrator.shutdown()

    # -- Helpers ----------------------------------------------------------

    @staticmethod
    def _env_flag_enabled(raw: str | None) -> bool:
        if raw is None:
            return False
        normalised = raw.strip().lower()
        return normalised not in {"", "0", "false", "no", "off"}

    def _build_orchestrator(self, config: MkDocsConfig) -> Orchestrator:
        assert self._base_config is not None
        site_dir = self._site_dir or Path(config.site_dir).resolve()
        output_setting = self.config.get("output_dir")
        if output_setting:
            output_dir = Path(output_setting)
            if not output_dir.is_absolute():
                config_path = Path(config.config_file_path or "mkdocs.yml")
                output_dir = (config_path.parent / output_dir).resolve()
        else:
            output_dir = site_dir
        session_options = self._base_config.session_options

        def backend_factory() -> RenderBackend:
            return RenderBackend(
                serve_path=site_dir,
                path_prefix=session_options.path_prefix,
                session_options=session_options,
            )

        return Orchestrator(
            backend_factory=backend_factory,
            output_dir=output_dir,
            base_config=self._base_config,
            standalone=bool(self.config.get("standalone")),
            explicit=self.config.get("explicit"),
            collate_all=bool(self.config.get("collate")),
            collate_name=self.config.get("collate_name"),
            persistent=self._is_serve,
            emitter=self.emitter or LoggingEmitter(logger_obj=log, debug_enabled=self._is_serve),
        )

    def _apply_front_matter(self, src_path: str, meta: Mapping[str, Any] | None) -> None:
        orchestrator = self._orchestrator
        assert orchestrator is not None
        value = (meta or {}).get(FRONT_MATTER_KEY)
        if value is None:
            return
        if isinstance(value, bool):
            if value:
                orchestrator.include(src_path)
            else:
                orchestrator.ignore(src_path)
            return
        if not isinstance(value, Mapping):
            raise ConfigError(
                f"Front matter '{FRONT_MATTER_KEY}' must be a boolean or a mapping."
            )
        unknown = set(value) - {"include", "ignore", "render_options", "session_options"}
        if unknown:
            raise ConfigError(
                f"Unknown front matter option(s) under '{FRONT_MATTER_KEY}': "
                + ", ".join(sorted(unknown))
            )
        if value.get("ignore"):
            orchestrator.ignore(src_path)
        if value.get("include"):
            orchestrator.include(src_path)
        overrides = {
            key: value[key] for key in ("render_options", "session_options") if key in value
        }
        if overrides:
            self._page_options[src_path] = overrides


__all__ = ["PdfPlugin", "log"]
