"""Mind map window: the sandboxed web renderer plus a side-by-side text pane."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

from PySide6.QtCore import QObject, Qt, QUrl, Signal, Slot
from PySide6.QtGui import QAction, QDesktopServices, QKeySequence
from PySide6.QtWebChannel import QWebChannel
from PySide6.QtWebEngineCore import QWebEnginePage, QWebEngineSettings
from PySide6.QtWebEngineWidgets import QWebEngineView
from PySide6.QtWidgets import QFileDialog, QMainWindow, QMessageBox, QSplitter

from mdmindmap.log import RENDERER_LOGGER_NAME, get_logger
from mdmindmap.messages import Message
from mdmindmap.session import MindmapSession, SessionView

logger = get_logger(__name__)
renderer_logger = get_logger(RENDERER_LOGGER_NAME)

BRIDGE_OBJECT_NAME = "hostBridge"


class _JsBridge(QObject):
    """Receives messages posted by view.js over the web channel."""

    messageReceived = Signal(str)

    @Slot(str)
    def postMessage(self, raw: str) -> None:
        self.messageReceived.emit(raw)


class MindmapPage(QWebEnginePage):
    """Keeps link navigation out of the renderer page."""

    linkActivated = Signal(QUrl)

    def acceptNavigationRequest(self, url, nav_type, is_main_frame):
        if nav_type == QWebEnginePage.NavigationType.NavigationTypeLinkClicked:
            if url.scheme() in ("http", "https"):
                QDesktopServices.openUrl(url)
                return False
            self.linkActivated.emit(url)
            return False
        return super().acceptNavigationRequest(url, nav_type, is_main_frame)

    def javaScriptConsoleMessage(self, level, message, line_number, source_id):
        renderer_logger.debug("console %s:%s: %s", source_id, line_number, message)


class RendererChannel(QObject):
    """Asynchronous message channel to the page running in a QWebEngineView.

    Messages posted before the page has finished loading are queued and
    delivered in order once it has.
    """

    message_received = Signal(str)

    def __init__(self, view: QWebEngineView, parent=None):
        super().__init__(parent)
        self._view = view
        self._ready = False
        self._pending: list[str] = []
        page = MindmapPage(view)
        view.setPage(page)
        settings = view.settings()
        settings.setAttribute(QWebEngineSettings.WebAttribute.LocalContentCanAccessRemoteUrls, True)
        settings.setAttribute(QWebEngineSettings.WebAttribute.LocalContentCanAccessFileUrls, True)
        settings.setAttribute(QWebEngineSettings.WebAttribute.JavascriptEnabled, True)
        self._bridge = _JsBridge(self)
        self._bridge.messageReceived.connect(self.message_received)
        self._web_channel = QWebChannel(page)
        self._web_channel.registerObject(BRIDGE_OBJECT_NAME, self._bridge)
        page.setWebChannel(self._web_channel)
        page.loadFinished.connect(self._on_load_finished)

    @property
    def page(self) -> MindmapPage:
        return self._view.page()

    def load(self, html_doc: str, base_url: QUrl) -> None:
        self._ready = False
        self._view.setHtml(html_doc, base_url)

    def post(self, message: Message) -> None:
        # Encoded before queueing, so flushing never raises.
        payload = message.to_json()
        if not self._ready:
            self._pending.append(payload)
            return
        self._deliver(payload)

    def _deliver(self, payload: str) -> None:
        self._view.page().runJavaScript(f"window.mindmapView && window.mindmapView.receive({payload});")

    def _on_load_finished(self, ok: bool) -> None:
        if not ok:
            logger.warning("Mind map page failed to load")
            return
        self._ready = True
        pending, self._pending = self._pending, []
        for payload in pending:
            self._deliver(payload)


class MindmapWindow(QMainWindow, SessionView):
    """One mind map view of a document, with its own session."""

    closed = Signal(object)

    def __init__(self, build_session: Callable[["MindmapWindow"], MindmapSession], open_dialog: Callable[[], None]):
        super().__init__()
        self.resize(1280, 860)

        self.preview = QWebEngineView()
        self.preview.setContextMenuPolicy(Qt.ContextMenuPolicy.NoContextMenu)
        self.channel = RendererChannel(self.preview, self)
        self.message_received = self.channel.message_received

        self.session = build_session(self)
        self.document = self.session.document
        self.editor = self.session.documents.create_editor(self.document)
        self.editor.hide()
        self.channel.page.linkActivated.connect(self._on_link_activated)

        self.splitter = QSplitter(Qt.Orientation.Horizontal)
        self.splitter.addWidget(self.editor)
        self.splitter.addWidget(self.preview)
        self.splitter.setStretchFactor(0, 1)
        self.splitter.setStretchFactor(1, 1)
        self.setCentralWidget(self.splitter)

        self._build_actions(open_dialog)
        self.document.modificationChanged.connect(self._update_title)
        self._update_title()

        self.channel.load(self.session.build_view_page(), QUrl.fromLocalFile(str(self.session.path)))
        self.session.start()
        self.statusBar().showMessage("Ready", 2000)

    def _build_actions(self, open_dialog: Callable[[], None]) -> None:
        toolbar = self.addToolBar("Mind map")
        toolbar.setMovable(False)

        refresh_action = QAction("Refresh", self)
        refresh_action.setShortcut(QKeySequence(Qt.Key.Key_F5))
        refresh_action.triggered.connect(self.session.on_refresh)

        edit_action = QAction("Edit as Text", self)
        edit_action.triggered.connect(self.session.on_edit_as_text)

        export_action = QAction("Export as HTML", self)
        export_action.setShortcut(QKeySequence("Ctrl+E"))
        export_action.triggered.connect(self.session.on_export_as_html)

        save_action = QAction("Save", self)
        save_action.setShortcut(QKeySequence.StandardKey.Save)
        save_action.triggered.connect(self.save_document)

        open_action = QAction("Open as Mind Map...", self)
        open_action.setShortcut(QKeySequence.StandardKey.Open)
        open_action.triggered.connect(open_dialog)

        for action in (open_action, save_action, refresh_action, edit_action, export_action):
            toolbar.addAction(action)
            self.addAction(action)

    def _update_title(self, *args) -> None:
        marker = "*" if self.document.isModified() else ""
        self.setWindowTitle(f"{marker}{self.session.title} - mdmindmap")

    def save_document(self) -> bool:
        try:
            path = self.session.documents.save(self.document)
        except OSError as exc:
            QMessageBox.critical(self, "Save failed", f"Could not save file:\n{self.session.path}\n\n{exc}")
            self.statusBar().showMessage(f"Save failed: {exc}", 5000)
            return False
        self.statusBar().showMessage(f"Saved {path.name}", 3000)
        return True

    def _on_link_activated(self, url: QUrl) -> None:
        if url.isLocalFile():
            self.session.on_open_file(url.toLocalFile())

    # SessionView

    def post_message(self, message: Message) -> None:
        self.channel.post(message)

    def show_text_editor(self) -> None:
        self.editor.show()
        self.editor.setFocus()

    def choose_export_destination(self, suggested: Path) -> Path | None:
        path_text, _ = QFileDialog.getSaveFileName(self, "Export", str(suggested), "HTML (*.html)")
        if not path_text:
            return None
        return Path(path_text)

    def show_error(self, title: str, message: str) -> None:
        QMessageBox.critical(self, title, message)

    def show_status(self, message: str, timeout_ms: int = 0) -> None:
        self.statusBar().showMessage(message, timeout_ms)

    def closeEvent(self, event) -> None:
        last_view = self.session.documents.view_count(self.document) <= 1
        if last_view and self.document.isModified():
            reply = QMessageBox.question(
                self,
                "Unsaved changes",
                f"Save changes to {self.session.title} before closing?",
                QMessageBox.StandardButton.Save
                | QMessageBox.StandardButton.Discard
                | QMessageBox.StandardButton.Cancel,
                QMessageBox.StandardButton.Save,
            )
            if reply == QMessageBox.StandardButton.Cancel:
                event.ignore()
                return
            if reply == QMessageBox.StandardButton.Save and not self.save_document():
                event.ignore()
                return
        self.session.close()
        self.closed.emit(self)
        super().closeEvent(event)
