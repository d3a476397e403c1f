#!/usr/bin/env python3
"""mdmindmap: view a markdown file as a live mind map and export it to HTML."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from PySide6.QtCore import QObject, QUrl
from PySide6.QtGui import QDesktopServices
from PySide6.QtWidgets import QApplication, QFileDialog, QMessageBox

from mdmindmap.assets import AssetCatalog, AssetResolver
from mdmindmap.documents import DocumentManager
from mdmindmap.log import configure_logging, get_logger
from mdmindmap.session import MindmapSession
from mdmindmap.settings import SettingsStore
from mdmindmap.transform import Transformer
from mdmindmap.view import MindmapWindow

logger = get_logger(__name__)

MARKDOWN_SUFFIXES = {".md", ".markdown", ".mdown", ".mkd"}
MARKDOWN_FILE_FILTER = "Markdown (*.md *.markdown *.mdown *.mkd);;All files (*)"


class MindmapApplication(QObject):
    """Owns shared services and every open mind map window."""

    def __init__(self, settings: SettingsStore | None = None, parent=None):
        super().__init__(parent)
        self.settings = settings or SettingsStore()
        self.documents = DocumentManager(parent=self)
        self.transformer = Transformer()
        self.catalog = AssetCatalog()
        self.resolver = AssetResolver()
        self.windows: list[MindmapWindow] = []
        self.settings.start()

    def focused_document_path(self) -> Path | None:
        window = QApplication.activeWindow()
        if isinstance(window, MindmapWindow):
            return window.session.path
        return None

    def open_as_mindmap(self, path: Path | None = None) -> MindmapWindow | None:
        """Open a mind map view; defaults to the document in the focused window."""
        if path is None:
            path = self.focused_document_path()
        if path is None:
            logger.info("Open as mind map: no target document")
            return None

        try:
            document = self.documents.open(path)
        except OSError as exc:
            QMessageBox.critical(None, "Cannot open file", f"Could not open:\n{path}\n\n{exc}")
            return None

        def build_session(window: MindmapWindow) -> MindmapSession:
            return MindmapSession(
                document,
                self.documents,
                self.settings,
                window,
                self.transformer,
                self.catalog,
                self.resolver,
                self.open_path,
            )

        window = MindmapWindow(build_session, self.prompt_and_open)
        window.closed.connect(self._on_window_closed)
        self.windows.append(window)
        window.show()
        logger.info("Opened mind map for %s", window.session.path)
        return window

    def prompt_and_open(self) -> MindmapWindow | None:
        start_dir = ""
        current = self.focused_document_path()
        if current is not None:
            start_dir = str(current.parent)
        path_text, _ = QFileDialog.getOpenFileName(None, "Open as Mind Map", start_dir, MARKDOWN_FILE_FILTER)
        if not path_text:
            return None
        return self.open_as_mindmap(Path(path_text))

    def open_path(self, path: Path) -> None:
        """Open a file linked from a mind map: markdown in a new view, anything else externally."""
        if path.suffix.lower() in MARKDOWN_SUFFIXES and path.is_file():
            self.open_as_mindmap(path)
            return
        if not QDesktopServices.openUrl(QUrl.fromLocalFile(str(path))):
            logger.warning("No application could open %s", path)

    def _on_window_closed(self, window: MindmapWindow) -> None:
        if window in self.windows:
            self.windows.remove(window)


def main() -> int:
    parser = argparse.ArgumentParser(
        prog="mdmindmap",
        description="Open a markdown file as a live mind map.",
    )
    parser.add_argument(
        "path",
        nargs="?",
        default=None,
        help="Markdown file to open (default: prompt for one).",
    )
    parser.add_argument("--verbose", action="store_true", help="Log debug output, including renderer console.")
    args = parser.parse_args()
    configure_logging(args.verbose)

    path = Path(args.path).expanduser() if args.path is not None else None
    if path is not None and not path.is_file():
        print(f"Not a file: {path}", file=sys.stderr)
        return 2

    app = QApplication(sys.argv)
    app.setApplicationName("mdmindmap")
    mindmaps = MindmapApplication()

    window = mindmaps.open_as_mindmap(path) if path is not None else mindmaps.prompt_and_open()
    if window is None:
        return 0
    return app.exec()


if __name__ == "__main__":
    raise SystemExit(main())
