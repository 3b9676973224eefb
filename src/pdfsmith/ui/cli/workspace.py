"""Temporary MkDocs project wrapping a command-line invocation."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
import shutil
import signal
import tempfile
import threading
from types import FrameType
from typing import Any

import yaml

from pdfsmith.core.exceptions import ConfigError


THEME_DIR = Path(__file__).resolve().parent / "theme"
MKDOCS_CONFIG_NAME = "mkdocs.yml"


def _interrupt(signum: int, frame: FrameType | None) -> None:  # noqa: ARG001
    raise KeyboardInterrupt


class CliWorkspace:
    """Generate an MkDocs configuration around an input directory or file.

    The workspace lives in a temporary directory that is removed when the
    context exits, including on ``SIGINT``/``SIGTERM`` or an uncaught error.
    When ``keep_html`` is set the built site is written to ``output_dir/site``
    instead of the temporary directory.
    """

    def __init__(
        self,
        input_path: Path,
        *,
        output_dir: Path,
        plugin_options: Mapping[str, Any],
        keep_html: bool = False,
    ) -> None:
        self.input_path = Path(input_path).resolve()
        if self.input_path.is_dir():
            self.docs_dir = self.input_path
            self.single_page: str | None = None
        else:
            self.docs_dir = self.input_path.parent
            self.single_page = self.input_path.name
        self.output_dir = Path(output_dir).resolve()
        self.plugin_options = dict(plugin_options)
        self.keep_html = keep_html
        self.root: Path | None = None
        self._previous_handler: Any = None

    @property
    def config_file(self) -> Path:
        if self.root is None:
            raise RuntimeError("The workspace has not been created.")
        return self.root / MKDOCS_CONFIG_NAME

    @property
    def site_dir(self) -> Path:
        if self.keep_html:
            return self.output_dir / "site"
        if self.root is None:
            raise RuntimeError("The workspace has not been created.")
        return self.root / "site"

    def __enter__(self) -> CliWorkspace:
        if self.keep_html and self.site_dir.is_relative_to(self.docs_dir):
            raise ConfigError(
                f"--html needs an output directory outside of '{self.docs_dir}', "
                "otherwise MkDocs would rebuild its own output."
            )
        self.root = Path(tempfile.mkdtemp(prefix="pdfsmith-"))
        self._install_signal_handler()
        try:
            self.config_file.write_text(
                yaml.safe_dump(self.mkdocs_config(), sort_keys=False),
                encoding="utf-8",
            )
        except BaseException:
            self.teardown()
            raise
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.teardown()

    def mkdocs_config(self) -> dict[str, Any]:
        """Return the MkDocs configuration mapping for this invocation."""
        config: dict[str, Any] = {
            "site_name": self.input_path.stem or "pdfsmith",
            "docs_dir": str(self.docs_dir),
            "site_dir": str(self.site_dir),
            "use_directory_urls": False,
            "theme": {"name": None, "custom_dir": str(THEME_DIR)},
            "plugins": [{"pdfsmith": self.plugin_options}],
        }
        if self.single_page is not None:
            config["exclude_docs"] = f"*\n!/{self.single_page}\n"
        return config

    def teardown(self) -> None:
        self._restore_signal_handler()
        root, self.root = self.root, None
        if root is not None:
            shutil.rmtree(root, ignore_errors=True)

    def _install_signal_handler(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            return
        self._previous_handler = signal.signal(signal.SIGTERM, _interrupt)

    def _restore_signal_handler(self) -> None:
        previous, self._previous_handler = self._previous_handler, None
        if previous is not None:
            signal.signal(signal.SIGTERM, previous)


__all__ = ["CliWorkspace", "THEME_DIR"]
