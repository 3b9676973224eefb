"""Implementation of the primary ``pdfsmith`` CLI command."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from mkdocs.exceptions import MkDocsException
from pydantic import ValidationError
import typer

from pdfsmith.core.config import (
    DEFAULT_CONFIG_NAME,
    BaseConfig,
    CliConfig,
    load_config_file,
)
from pdfsmith.core.diagnostics import DiagnosticEmitter
from pdfsmith.core.exceptions import ConfigError, PdfsmithError, exception_hint

from .._options import (
    CollateNameOption,
    CollateOption,
    ConfigFileOption,
    DebugOption,
    ExplicitOption,
    HtmlOption,
    InputPathArgument,
    OutputDirOption,
    VerboseOption,
    VersionOption,
    WatchOption,
)
from ..diagnostics import CliEmitter
from ..presenter import present_written
from ..state import configure_logging, emit_error, set_cli_state
from ..workspace import CliWorkspace


PLUGIN_NAME = "pdfsmith"


def resolve_base_config(input_path: Path, config_file: Path | None) -> BaseConfig:
    """Load the options file given on the command line or found beside the input."""
    if config_file is not None:
        return load_config_file(config_file)
    root = input_path if input_path.is_dir() else input_path.parent
    candidate = root / DEFAULT_CONFIG_NAME
    if candidate.is_file():
        return load_config_file(candidate)
    return BaseConfig()


def plugin_options(
    cli_config: CliConfig, base_config: BaseConfig, output_dir: Path
) -> dict[str, Any]:
    """Translate command-line flags into ``pdfsmith`` plugin options."""
    return {
        "standalone": True,
        "explicit": cli_config.explicit,
        "collate": cli_config.collate,
        "collate_name": cli_config.collate_name,
        "output_dir": str(output_dir),
        "render_options": base_config.render_options.model_dump(exclude_none=True),
        "session_options": base_config.session_options.model_dump(),
    }


def build_workspace(workspace: CliWorkspace, emitter: DiagnosticEmitter) -> list[Path]:
    """Run a single MkDocs build of the workspace and return the written PDFs."""
    from mkdocs.commands.build import build as mkdocs_build
    from mkdocs.config import load_config

    config = load_config(config_file=str(workspace.config_file))
    plugin = config.plugins.get(PLUGIN_NAME)
    if plugin is None:  # pragma: no cover - entry point missing from the install
        raise ConfigError("The 'pdfsmith' MkDocs plugin is not installed.")
    plugin.emitter = emitter
    config.plugins.on_startup(command="build", dirty=False)
    try:
        mkdocs_build(config)
    finally:
        config.plugins.on_shutdown()
    return list(plugin.written)


def serve_workspace(workspace: CliWorkspace) -> None:
    """Rebuild the workspace whenever a source changes until interrupted."""
    from mkdocs.commands.serve import serve as mkdocs_serve

    mkdocs_serve(config_file=str(workspace.config_file), livereload=True)


def _failure_message(exc: BaseException) -> tuple[str, BaseException]:
    current: BaseException | None = exc
    visited: set[int] = set()
    while current is not None and id(current) not in visited:
        visited.add(id(current))
        if isinstance(current, PdfsmithError):
            return str(current), current
        current = current.__cause__ or current.__context__
    return exception_hint(exc) or type(exc).__name__, exc


def convert(
    input_path: InputPathArgument = Path("."),
    output: OutputDirOption = None,
    collate: CollateOption = False,
    collate_name: CollateNameOption = None,
    explicit: ExplicitOption = False,
    config_file: ConfigFileOption = None,
    watch: WatchOption = False,
    html: HtmlOption = False,
    verbose: VerboseOption = 0,
    debug: DebugOption = False,
    version: VersionOption = False,  # noqa: ARG001
) -> None:
    """Render Markdown pages to PDF through a headless browser."""
    state = set_cli_state(verbosity=verbose, debug=debug)
    state.events.clear()
    configure_logging(state)

    try:
        base_config = resolve_base_config(input_path, config_file)
        cli_config = CliConfig(
            output=output,
            explicit=explicit,
            collate=collate,
            collate_name=collate_name,
            watch=watch,
            html=html,
        )
    except ValidationError as exc:
        emit_error(f"Invalid command-line options: {exc}", exception=exc)
        raise typer.Exit(code=1) from exc
    except ConfigError as exc:
        emit_error(str(exc), exception=exc)
        raise typer.Exit(code=1) from exc

    docs_dir = input_path if input_path.is_dir() else input_path.parent
    output_dir = (cli_config.output or docs_dir).resolve()
    options = plugin_options(cli_config, base_config, output_dir)

    written: list[Path] = []
    try:
        with CliWorkspace(
            input_path,
            output_dir=output_dir,
            plugin_options=options,
            keep_html=cli_config.html and not cli_config.watch,
        ) as workspace:
            if cli_config.watch:
                serve_workspace(workspace)
                return
            written = build_workspace(workspace, CliEmitter(state))
    except (PdfsmithError, MkDocsException) as exc:
        message, cause = _failure_message(exc)
        emit_error(message, exception=cause)
        raise typer.Exit(code=1) from exc

    collated = [
        output_dir / Path(event["output"]) for event in state.consume_events("collation_written")
    ]
    present_written(state, written, output_dir=output_dir, collated=collated)


__all__ = ["build_workspace", "convert", "plugin_options", "resolve_base_config", "serve_workspace"]
