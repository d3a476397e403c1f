"""Open markdown documents shared between mind map views and text editors."""

from __future__ import annotations

from pathlib import Path

from PySide6.QtCore import QObject, QTimer, Signal
from PySide6.QtGui import QFont, QTextDocument
from PySide6.QtWidgets import QApplication, QPlainTextDocumentLayout, QPlainTextEdit

from mdmindmap.log import get_logger

logger = get_logger(__name__)

FILE_CHANGE_WATCH_INTERVAL_MS = 1200


def _path_key(path: Path) -> str:
    try:
        return str(path.resolve())
    except OSError:
        return str(path)


class MarkdownEditor(QPlainTextEdit):
    """Plain-text editor bound to a shared markdown document."""

    def __init__(self, document: QTextDocument, parent=None):
        super().__init__(parent)
        self.setDocument(document)
        font = QFont("Monospace")
        font.setStyleHint(QFont.StyleHint.TypeWriter)
        self.setFont(font)
        self.setLineWrapMode(QPlainTextEdit.LineWrapMode.NoWrap)

    def active_line(self) -> int:
        return self.textCursor().blockNumber()


class _OpenDocument:
    def __init__(self, path: Path, document: QTextDocument, signature: tuple[int, int] | None):
        self.path = path
        self.document = document
        self.signature = signature
        self.refcount = 0


class DocumentManager(QObject):
    """Owns one QTextDocument per file and tracks editor focus and selection."""

    selection_changed = Signal()
    document_reloaded = Signal(object)

    def __init__(self, poll_interval_ms: int = FILE_CHANGE_WATCH_INTERVAL_MS, parent=None):
        super().__init__(parent)
        self._open: dict[str, _OpenDocument] = {}
        self._watch_timer = QTimer(self)
        self._watch_timer.setInterval(poll_interval_ms)
        self._watch_timer.timeout.connect(self._on_file_change_watch_tick)
        self._watch_timer.start()

    def open(self, path: Path) -> QTextDocument:
        """Return the shared document for `path`, loading it on first use."""
        key = _path_key(path)
        entry = self._open.get(key)
        if entry is None:
            resolved = Path(key)
            text = resolved.read_text(encoding="utf-8", errors="replace")
            document = QTextDocument(self)
            document.setDocumentLayout(QPlainTextDocumentLayout(document))
            document.setPlainText(text)
            document.setModified(False)
            entry = _OpenDocument(resolved, document, self._signature(resolved))
            self._open[key] = entry
            logger.debug("Opened %s", resolved)
        entry.refcount += 1
        return entry.document

    def release(self, document: QTextDocument) -> None:
        entry = self._entry_for(document)
        if entry is None:
            return
        entry.refcount -= 1
        if entry.refcount <= 0:
            del self._open[_path_key(entry.path)]
            document.deleteLater()
            logger.debug("Closed %s", entry.path)

    def view_count(self, document: QTextDocument) -> int:
        entry = self._entry_for(document)
        return entry.refcount if entry is not None else 0

    def path_for(self, document: QTextDocument) -> Path | None:
        entry = self._entry_for(document)
        return entry.path if entry is not None else None

    def save(self, document: QTextDocument) -> Path:
        entry = self._entry_for(document)
        if entry is None:
            raise KeyError("document is not managed")
        entry.path.write_text(document.toPlainText(), encoding="utf-8")
        document.setModified(False)
        entry.signature = self._signature(entry.path)
        return entry.path

    def create_editor(self, document: QTextDocument, parent=None) -> MarkdownEditor:
        editor = MarkdownEditor(document, parent)
        editor.cursorPositionChanged.connect(self.selection_changed)
        return editor

    def active_line(self, document: QTextDocument) -> int | None:
        """Cursor line of the focused editor, only if it shows `document`."""
        widget = QApplication.focusWidget()
        if isinstance(widget, MarkdownEditor) and widget.document() is document:
            return widget.active_line()
        return None

    def _entry_for(self, document: QTextDocument) -> _OpenDocument | None:
        for entry in self._open.values():
            if entry.document is document:
                return entry
        return None

    def _signature(self, path: Path) -> tuple[int, int] | None:
        try:
            stat = path.stat()
        except OSError:
            return None
        return stat.st_mtime_ns, stat.st_size

    def _on_file_change_watch_tick(self) -> None:
        """Reload documents edited on disk unless they hold unsaved changes."""
        for entry in list(self._open.values()):
            signature = self._signature(entry.path)
            # File may be temporarily inaccessible while external tools save.
            if signature is None or signature == entry.signature:
                continue
            entry.signature = signature
            if entry.document.isModified():
                logger.info("%s changed on disk; keeping unsaved edits", entry.path)
                continue
            try:
                text = entry.path.read_text(encoding="utf-8", errors="replace")
            except OSError as exc:
                logger.warning("Cannot reload %s: %s", entry.path, exc)
                continue
            if text == entry.document.toPlainText():
                continue
            entry.document.setPlainText(text)
            entry.document.setModified(False)
            logger.debug("Reloaded %s", entry.path)
            self.document_reloaded.emit(entry.document)
