from __future__ import annotations

from pathlib import Path

import pytest

from pdfsmith.core.config import (
    DEFAULT_COLLATE_NAME,
    BaseConfig,
    CliConfig,
    RenderOptions,
    SessionOptions,
    is_config_file_name,
    load_config_file,
    merge_options,
    normalise_collate_name,
)
from pdfsmith.core.exceptions import ConfigError


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (None, DEFAULT_COLLATE_NAME),
        ("", DEFAULT_COLLATE_NAME),
        ("   ", DEFAULT_COLLATE_NAME),
        ("report", "report.pdf"),
        ("report.pdf", "report.pdf"),
        ("Report.PDF", "Report.PDF"),
        ("report.txt", "report.pdf"),
        ("out/dir/report", "report.pdf"),
        ("..\\report", "report.pdf"),
        (".hidden", ".hidden.pdf"),
    ],
)
def test_normalise_collate_name(raw: str | None, expected: str) -> None:
    assert normalise_collate_name(raw) == expected


def test_normalise_collate_name_rejects_non_strings() -> None:
    with pytest.raises(ConfigError):
        normalise_collate_name(12)  # type: ignore[arg-type]


def test_cli_config_only_names_collation_when_collating() -> None:
    assert CliConfig(collate_name="report").collate_name is None
    assert CliConfig(collate=True).collate_name == DEFAULT_COLLATE_NAME
    assert CliConfig(collate=True, collate_name="report").collate_name == "report.pdf"


def test_render_options_defaults_match_playwright_keywords() -> None:
    options = RenderOptions()
    payload = options.to_playwright()

    assert payload["format"] == "Letter"
    assert payload["print_background"] is True
    assert payload["margin"] == {"top": ".25in", "right": ".25in", "bottom": ".25in", "left": ".25in"}
    assert "width" not in payload
    assert "header_template" not in payload


def test_options_reject_unknown_keys() -> None:
    with pytest.raises(ValueError):
        RenderOptions.model_validate({"colour": "blue"})
    with pytest.raises(ValueError):
        SessionOptions.model_validate({"load_via": "carrier-pigeon"})


def test_merge_options_is_deep_and_non_destructive() -> None:
    base = {"margin": {"top": "1in", "left": "1in"}, "format": "A4"}
    merged = merge_options(base, {"margin": {"top": "2in"}, "landscape": True})

    assert merged == {"margin": {"top": "2in", "left": "1in"}, "format": "A4", "landscape": True}
    assert base["margin"]["top"] == "1in"


def test_layered_applies_overrides_in_order() -> None:
    base = BaseConfig.model_validate({"render_options": {"format": "A4"}})

    layered = base.layered(
        {"render_options": {"margin": {"top": "1in"}}, "session_options": {"wait_before_capture": 500}},
        None,
        {"render_options": {"landscape": True, "margin": {"top": "2in"}}},
    )

    assert layered.render_options.format == "A4"
    assert layered.render_options.landscape is True
    assert layered.render_options.margin.top == "2in"
    assert layered.render_options.margin.left == ".25in"
    assert layered.session_options.wait_before_capture == 500
    assert base.render_options.margin.top == ".25in"


@pytest.mark.parametrize(
    "override",
    [
        {"render_options": {"scale": 5}},
        {"render_options": "A4"},
        ["render_options"],
    ],
)
def test_layered_rejects_invalid_overrides(override) -> None:
    with pytest.raises(ConfigError):
        BaseConfig().layered(override)


def test_config_file_suffix_is_enforced(tmp_path: Path) -> None:
    wrong = tmp_path / "settings.yml"
    wrong.write_text("render_options: {format: A4}\n", encoding="utf-8")

    assert not is_config_file_name(wrong)
    with pytest.raises(ConfigError, match="must be named"):
        load_config_file(wrong)


def test_load_config_file(tmp_path: Path) -> None:
    path = tmp_path / "book.pdfsmith.yml"
    path.write_text(
        "render_options:\n"
        "  format: A4\n"
        "  margin:\n"
        "    top: 1cm\n"
        "session_options:\n"
        "  wait_before_capture: 250\n"
        "  load_via: content\n",
        encoding="utf-8",
    )

    config = load_config_file(path)

    assert config.render_options.format == "A4"
    assert config.render_options.margin.top == "1cm"
    assert config.session_options.wait_before_capture == 250
    assert config.session_options.load_via == "content"


def test_empty_config_file_uses_defaults(tmp_path: Path) -> None:
    path = tmp_path / ".pdfsmith.yaml"
    path.write_text("", encoding="utf-8")

    assert load_config_file(path) == BaseConfig()


@pytest.mark.parametrize(
    ("content", "message"),
    [
        ("render_options: [unclosed\n", "not valid YAML"),
        ("- a\n- b\n", "mapping at the top level"),
        ("render_options:\n  paper: A4\n", "Invalid configuration"),
    ],
)
def test_load_config_file_errors(tmp_path: Path, content: str, message: str) -> None:
    path = tmp_path / ".pdfsmith.yml"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(ConfigError, match=message):
        load_config_file(path)
