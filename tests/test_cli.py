from __future__ import annotations

import importlib
import logging
from pathlib import Path

import pytest
from rich.logging import RichHandler
import typer
from typer.testing import CliRunner

from conftest import BackendRecorder, page_widths
from pdfsmith.core.config import BaseConfig, CliConfig
from pdfsmith.core.exceptions import ConfigError
from pdfsmith.ui.cli import app, main
from pdfsmith.ui.cli import workspace as workspace_module
from pdfsmith.ui.cli.state import LOGGER_NAMES
from pdfsmith.ui.cli.workspace import CliWorkspace
from pdfsmith.version import get_version


app_module = importlib.import_module("pdfsmith.ui.cli.app")
convert_module = importlib.import_module("pdfsmith.ui.cli.commands.convert")


runner = CliRunner()


@pytest.fixture(autouse=True)
def _detach_rich_handlers():
    yield
    for name in LOGGER_NAMES:
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            if isinstance(handler, RichHandler):
                logger.removeHandler(handler)
        logger.setLevel(logging.NOTSET)


@pytest.fixture
def workspaces(monkeypatch: pytest.MonkeyPatch) -> list[Path]:
    created: list[Path] = []
    original = workspace_module.tempfile.mkdtemp

    def recording_mkdtemp(*args, **kwargs) -> str:
        path = original(*args, **kwargs)
        created.append(Path(path))
        return path

    monkeypatch.setattr(workspace_module.tempfile, "mkdtemp", recording_mkdtemp)
    return created


def _pdf_names(directory: Path) -> list[str]:
    return sorted(path.name for path in directory.glob("*.pdf"))


def test_cli_version_flag() -> None:
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0, result.output
    assert result.stdout.strip() == get_version()


def test_cli_renders_every_page(
    tmp_path: Path, docs_dir: Path, backends: BackendRecorder, workspaces: list[Path]
) -> None:
    out = tmp_path / "out"

    result = runner.invoke(app, [str(docs_dir), "--output", str(out)])

    assert result.exit_code == 0, result.output
    assert _pdf_names(out) == ["a.pdf", "b.pdf", "index.pdf"]
    assert "a.pdf" in result.output
    assert len(backends.instances) == 1
    assert backends.instances[0].close_calls == 1
    assert workspaces and not any(path.exists() for path in workspaces)


def test_cli_defaults_output_to_input_directory(
    docs_dir: Path, backends: BackendRecorder
) -> None:
    result = runner.invoke(app, [str(docs_dir)])

    assert result.exit_code == 0, result.output
    assert _pdf_names(docs_dir) == ["a.pdf", "b.pdf", "index.pdf"]


def test_cli_collates_into_named_document(
    tmp_path: Path, docs_dir: Path, backends: BackendRecorder
) -> None:
    out = tmp_path / "out"

    result = runner.invoke(
        app, [str(docs_dir), "-c", "--collate-name", "handbook.txt", "-o", str(out)]
    )

    assert result.exit_code == 0, result.output
    assert _pdf_names(out) == ["handbook.pdf"]
    assert len(page_widths((out / "handbook.pdf").read_bytes())) == 3
    assert "handbook.pdf" in result.output


def test_cli_summary_labels_directive_collations(
    tmp_path: Path, docs_dir: Path, backends: BackendRecorder
) -> None:
    (docs_dir / "index.md").write_text(
        "# Home\n\n[Book](<!-- pdfsmith collate book b.md a.md -->)\n", encoding="utf-8"
    )
    out = tmp_path / "out"

    result = runner.invoke(app, [str(docs_dir), "-o", str(out)])

    assert result.exit_code == 0, result.output
    assert _pdf_names(out) == ["a.pdf", "b.pdf", "book.pdf", "index.pdf"]
    book_lines = [line for line in result.output.splitlines() if "book.pdf" in line]
    assert book_lines and all("collated" in line for line in book_lines)
    page_lines = [line for line in result.output.splitlines() if "a.pdf" in line]
    assert page_lines and all("collated" not in line for line in page_lines)


def test_cli_single_markdown_file(
    tmp_path: Path, docs_dir: Path, backends: BackendRecorder
) -> None:
    out = tmp_path / "out"

    result = runner.invoke(app, [str(docs_dir / "b.md"), "-o", str(out)])

    assert result.exit_code == 0, result.output
    assert _pdf_names(out) == ["b.pdf"]


def test_cli_explicit_mode_renders_opted_in_pages(
    tmp_path: Path, docs_dir: Path, backends: BackendRecorder
) -> None:
    (docs_dir / "a.md").write_text("<!-- pdfsmith -->\n# Page A\n", encoding="utf-8")
    out = tmp_path / "out"

    result = runner.invoke(app, [str(docs_dir), "--explicit", "-o", str(out)])

    assert result.exit_code == 0, result.output
    assert _pdf_names(out) == ["a.pdf"]


def test_cli_discovers_config_file(
    tmp_path: Path, docs_dir: Path, backends: BackendRecorder
) -> None:
    (docs_dir / ".pdfsmith.yml").write_text(
        "session_options:\n  wait_before_capture: 250\n", encoding="utf-8"
    )

    result = runner.invoke(app, [str(docs_dir), "-o", str(tmp_path / "out")])

    assert result.exit_code == 0, result.output
    assert backends.kwargs[0]["session_options"].wait_before_capture == 250


def test_cli_rejects_badly_named_config_before_rendering(
    tmp_path: Path, docs_dir: Path, backends: BackendRecorder, workspaces: list[Path]
) -> None:
    config = tmp_path / "settings.yml"
    config.write_text("render_options: {format: A4}\n", encoding="utf-8")

    result = runner.invoke(app, [str(docs_dir), "--config", str(config)])

    assert result.exit_code == 1
    assert "must be named" in result.output
    assert backends.instances == []
    assert workspaces == []


def test_cli_reports_render_failures_and_cleans_up(
    tmp_path: Path, docs_dir: Path, backends: BackendRecorder, workspaces: list[Path]
) -> None:
    backends.fail.add("b.html")
    out = tmp_path / "out"

    result = runner.invoke(app, [str(docs_dir), "-o", str(out)])

    assert result.exit_code == 1
    assert "cannot render b.html" in result.output
    assert _pdf_names(out) == []
    assert workspaces and not any(path.exists() for path in workspaces)


def test_cli_keeps_html_outside_of_input(
    tmp_path: Path, docs_dir: Path, backends: BackendRecorder
) -> None:
    out = tmp_path / "out"

    result = runner.invoke(app, [str(docs_dir), "--html", "-o", str(out)])

    assert result.exit_code == 0, result.output
    assert (out / "site" / "a.html").is_file()
    assert _pdf_names(out) == ["a.pdf", "b.pdf", "index.pdf"]


def test_cli_refuses_html_inside_input(docs_dir: Path, backends: BackendRecorder) -> None:
    result = runner.invoke(app, [str(docs_dir), "--html"])

    assert result.exit_code == 1
    assert "--html needs an output directory" in result.output
    assert backends.instances == []


def test_cli_watch_serves_the_workspace(
    docs_dir: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    served: list[Path] = []

    def fake_serve(workspace: CliWorkspace) -> None:
        assert workspace.config_file.is_file()
        served.append(workspace.config_file)

    monkeypatch.setattr(convert_module, "serve_workspace", fake_serve)

    result = runner.invoke(app, [str(docs_dir), "--watch"])

    assert result.exit_code == 0, result.output
    assert len(served) == 1
    assert not served[0].exists()


def test_plugin_options_follow_flags(tmp_path: Path) -> None:
    options = convert_module.plugin_options(
        CliConfig(explicit=True, collate=True, collate_name="book"),
        BaseConfig(),
        tmp_path,
    )

    assert options["standalone"] is True
    assert options["explicit"] is True
    assert options["collate"] is True
    assert options["collate_name"] == "book.pdf"
    assert options["output_dir"] == str(tmp_path)
    assert options["session_options"]["load_via"] == "server"


def test_workspace_for_single_file(tmp_path: Path, docs_dir: Path) -> None:
    workspace = CliWorkspace(
        docs_dir / "a.md", output_dir=tmp_path / "out", plugin_options={"standalone": True}
    )

    with workspace:
        config = workspace.mkdocs_config()
        root = workspace.root
        assert root is not None and workspace.config_file.is_file()

    assert config["docs_dir"] == str(docs_dir.resolve())
    assert config["exclude_docs"] == "*\n!/a.md\n"
    assert config["use_directory_urls"] is False
    assert config["plugins"] == [{"pdfsmith": {"standalone": True}}]
    assert not root.exists()
    workspace.teardown()


def test_workspace_rejects_html_inside_docs(docs_dir: Path) -> None:
    workspace = CliWorkspace(
        docs_dir, output_dir=docs_dir, plugin_options={}, keep_html=True
    )

    with pytest.raises(ConfigError):
        workspace.__enter__()
    assert workspace.root is None


def test_main_reports_interrupts(monkeypatch: pytest.MonkeyPatch) -> None:
    def interrupted() -> None:
        raise KeyboardInterrupt

    monkeypatch.setattr(app_module, "app", interrupted)

    with pytest.raises(typer.Exit) as excinfo:
        main()
    assert excinfo.value.exit_code == 1


def test_main_reports_unexpected_errors(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    def broken() -> None:
        raise ValueError("unexpected state")

    monkeypatch.setattr(app_module, "app", broken)

    with pytest.raises(typer.Exit):
        main()
    assert "unexpected state" in capsys.readouterr().err
