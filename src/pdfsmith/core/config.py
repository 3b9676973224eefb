"""Configuration models used by the PDF renderer.

RenderOptions

Keyword arguments forwarded to Playwright's `page.pdf()`.

`format` (`str | None`)
: Paper format such as `Letter`, `Legal` or `A4`. Ignored when `width` and
  `height` are supplied.

`print_background` (`bool`)
: Print background graphics (defaults to `True`).

`margin` (`PdfMargin`)
: Page margins as CSS lengths, `.25in` on every side by default.

SessionOptions

Options that control how a page is loaded before capture.

`wait_before_capture` (`int`)
: Milliseconds to wait after the page finished loading. Use it for pages that
  finish rendering client-side (diagrams, math, charts).

`wait_until` (`str`)
: Playwright load state awaited before capture.

`load_via` (`str`)
: `server` renders pages through the loopback content server so relative
  assets and scripts resolve against the built site; `content` injects the
  markup directly.

`max_concurrency` (`int`)
: Upper bound of pages rendered at the same time by one backend.

CliConfig

`collate` (`bool`)
: Merge every rendered page into a single document.

`collate_name` (`str | None`)
: File name of the merged document, `collate.pdf` when omitted.

`explicit` (`bool`)
: Only render pages that opt in with a directive or front-matter flag.
"""

from __future__ import annotations

from collections.abc import Mapping
import copy
from pathlib import Path, PurePosixPath
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
import yaml

from .exceptions import ConfigError


CONFIG_SUFFIXES = (".pdfsmith.yml", ".pdfsmith.yaml")
DEFAULT_CONFIG_NAME = ".pdfsmith.yml"
DEFAULT_COLLATE_NAME = "collate.pdf"
PDF_SUFFIX = ".pdf"


class PdfMargin(BaseModel):
    """Page margins expressed as CSS lengths."""

    model_config = ConfigDict(extra="forbid")

    top: str | None = ".25in"
    right: str | None = ".25in"
    bottom: str | None = ".25in"
    left: str | None = ".25in"


class RenderOptions(BaseModel):
    """PDF layout options passed to the rendering backend."""

    model_config = ConfigDict(extra="forbid")

    format: str | None = "Letter"
    width: str | None = None
    height: str | None = None
    landscape: bool = False
    print_background: bool = True
    scale: float = Field(default=1.0, ge=0.1, le=2.0)
    margin: PdfMargin = Field(default_factory=PdfMargin)
    page_ranges: str | None = None
    prefer_css_page_size: bool = False
    display_header_footer: bool = False
    header_template: str | None = None
    footer_template: str | None = None

    def to_playwright(self) -> dict[str, Any]:
        """Return keyword arguments accepted by ``Page.pdf``."""
        return self.model_dump(exclude_none=True)


class SessionOptions(BaseModel):
    """Options controlling how pages are loaded before capture."""

    model_config = ConfigDict(extra="forbid")

    wait_before_capture: int = Field(default=0, ge=0)
    wait_until: Literal["load", "domcontentloaded", "networkidle", "commit"] = "networkidle"
    timeout: float = Field(default=30_000, gt=0)
    headless: bool = True
    max_concurrency: int = Field(default=4, ge=1)
    load_via: Literal["server", "content"] = "server"
    path_prefix: str = ""


class BaseConfig(BaseModel):
    """Global render and session defaults."""

    model_config = ConfigDict(extra="forbid")

    render_options: RenderOptions = Field(default_factory=RenderOptions)
    session_options: SessionOptions = Field(default_factory=SessionOptions)

    def layered(self, *overrides: Mapping[str, Any] | None) -> BaseConfig:
        """Return a copy with each override mapping merged on top, in order."""
        payload = self.model_dump()
        for override in overrides:
            if not override:
                continue
            if not isinstance(override, Mapping):
                raise ConfigError(
                    f"Option overrides must be mappings, got {type(override).__name__}."
                )
            for key in ("render_options", "session_options"):
                section = override.get(key)
                if section is None:
                    continue
                if not isinstance(section, Mapping):
                    raise ConfigError(f"'{key}' must be a mapping.")
                payload[key] = merge_options(payload[key], section)
        try:
            return BaseConfig.model_validate(payload)
        except ValidationError as exc:
            raise ConfigError(f"Invalid page options: {exc}") from exc


class CliConfig(BaseModel):
    """Flags collected from a command-line invocation."""

    model_config = ConfigDict(extra="forbid")

    output: Path | None = None
    explicit: bool = False
    collate: bool = False
    collate_name: str | None = None
    watch: bool = False
    html: bool = False

    @model_validator(mode="after")
    def _normalise_collate_name(self) -> CliConfig:
        if self.collate:
            self.collate_name = normalise_collate_name(self.collate_name)
        else:
            self.collate_name = None
        return self


def merge_options(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Deep-merge ``override`` into a copy of ``base``."""
    merged = copy.deepcopy(dict(base))
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = merge_options(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def normalise_collate_name(name: str | None) -> str:
    """Return a bare file name ending in ``.pdf`` for a collated document."""
    if name is None:
        return DEFAULT_COLLATE_NAME
    if not isinstance(name, str):
        raise ConfigError("The collated document name must be a string.")
    cleaned = PurePosixPath(name.strip().replace("\\", "/")).name
    if not cleaned:
        return DEFAULT_COLLATE_NAME
    stem, dot, suffix = cleaned.rpartition(".")
    if dot and stem:
        if suffix.lower() == "pdf":
            return cleaned
        return f"{stem}{PDF_SUFFIX}"
    return f"{cleaned}{PDF_SUFFIX}"


def is_config_file_name(path: Path) -> bool:
    """Return True when ``path`` carries a recognised config file suffix."""
    return path.name.endswith(CONFIG_SUFFIXES)


def load_config_file(path: Path) -> BaseConfig:
    """Load and validate a ``*.pdfsmith.yml`` configuration file."""
    if not is_config_file_name(path):
        expected = " or ".join(f"'*{suffix}'" for suffix in CONFIG_SUFFIXES)
        raise ConfigError(f"Config file '{path}' must be named {expected}.")
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Unable to read config file '{path}': {exc}") from exc
    try:
        payload = yaml.safe_load(raw) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Config file '{path}' is not valid YAML: {exc}") from exc
    if not isinstance(payload, Mapping):
        raise ConfigError(f"Config file '{path}' must contain a mapping at the top level.")
    try:
        return BaseConfig.model_validate(dict(payload))
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration in '{path}': {exc}") from exc


__all__ = [
    "CONFIG_SUFFIXES",
    "DEFAULT_COLLATE_NAME",
    "DEFAULT_CONFIG_NAME",
    "PDF_SUFFIX",
    "BaseConfig",
    "CliConfig",
    "PdfMargin",
    "RenderOptions",
    "SessionOptions",
    "is_config_file_name",
    "load_config_file",
    "merge_options",
    "normalise_collate_name",
]
