"""Host-side controller for one open mind map view."""

from __future__ import annotations

from contextlib import ExitStack
from pathlib import Path
from typing import Callable

from PySide6.QtGui import QTextDocument

from mdmindmap.assets import AssetCatalog, AssetResolver, ResolveMode, merge_assets
from mdmindmap.documents import DocumentManager
from mdmindmap.export import ExportOutcome, ExportPipeline, ExportState
from mdmindmap.log import RENDERER_LOGGER_NAME, get_logger
from mdmindmap.messages import Message, MessageHandlers, MessageRouter
from mdmindmap.pipeline import SessionState, UpdatePipeline, subscribe
from mdmindmap.settings import SettingsStore
from mdmindmap.template import build_view_html
from mdmindmap.transform import Transformer

logger = get_logger(__name__)
renderer_logger = get_logger(RENDERER_LOGGER_NAME)


class SessionView:
    """What a session needs from the window hosting it.

    Implementations also expose `message_received`, a signal carrying each
    raw message the renderer posts.
    """

    def post_message(self, message: Message) -> None:
        raise NotImplementedError

    def show_text_editor(self) -> None:
        raise NotImplementedError

    def choose_export_destination(self, suggested: Path) -> Path | None:
        raise NotImplementedError

    def show_error(self, title: str, message: str) -> None:
        raise NotImplementedError

    def show_status(self, message: str, timeout_ms: int = 0) -> None:
        raise NotImplementedError


class MindmapSession(MessageHandlers):
    """Binds a document, its renderer and the user settings for one view.

    Every subscription is registered in one scope and released together by
    `close()`, so nothing outlives the view.
    """

    def __init__(
        self,
        document: QTextDocument,
        documents: DocumentManager,
        settings: SettingsStore,
        view: SessionView,
        transformer: Transformer,
        catalog: AssetCatalog,
        resolver: AssetResolver,
        open_path: Callable[[Path], None],
    ):
        self.document = document
        self.path = documents.path_for(document) or Path("untitled.md")
        self.documents = documents
        self._settings = settings
        self._view = view
        self._catalog = catalog
        self._resolver = resolver
        self._open_path = open_path
        self._scope = ExitStack()
        self._closed = False

        self.state = SessionState.from_settings(settings.snapshot)
        self.router = MessageRouter(self, view.post_message)
        self.pipeline = UpdatePipeline(document, self.state, transformer, self.router.send, documents.active_line)
        self.exporter = ExportPipeline(
            transformer,
            catalog,
            resolver,
            self._choose_export_destination,
            view.show_error,
        )

    @property
    def title(self) -> str:
        return self.path.name

    def build_view_page(self) -> str:
        manifest = merge_assets(
            self._catalog.base_assets(view=True),
            self._catalog.feature_assets(None),
            self._catalog.toolbar_assets(),
        )
        return build_view_html(self._resolver.resolve(manifest, ResolveMode.LIVE_REFERENCE), self.title)

    def start(self) -> None:
        self.pipeline.attach(self._scope, self.documents.selection_changed)
        subscribe(self._scope, self._settings.changed, self._on_settings_changed)
        subscribe(self._scope, self._view.message_received, self.router.dispatch)
        subscribe(self._scope, self.exporter.finished, self._on_export_finished)
        subscribe(self._scope, self.exporter.started, self._on_export_started)
        self.pipeline.update()
        self.pipeline.push_css()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._scope.close()
        self.documents.release(self.document)
        logger.debug("Closed mind map session for %s", self.path)

    def _on_settings_changed(self, keys) -> None:
        self.pipeline.apply_settings(self._settings.snapshot, frozenset(keys))

    def _choose_export_destination(self) -> Path | None:
        return self._view.choose_export_destination(self.path.with_suffix(".html"))

    def _on_export_started(self, destination) -> None:
        self._view.show_status(f"Exporting {Path(destination).name}...")

    def _on_export_finished(self, outcome: ExportOutcome) -> None:
        if outcome.state is ExportState.WRITTEN:
            self._view.show_status(f"Exported mind map: {outcome.path}", 5000)
        elif outcome.state is ExportState.FAILED:
            self._view.show_status(f"Export failed: {outcome.error}", 5000)

    # Renderer message handlers

    def on_refresh(self) -> None:
        self.pipeline.update()

    def on_edit_as_text(self) -> None:
        self._view.show_text_editor()

    def on_export_as_html(self) -> None:
        self.exporter.start(self.document.toPlainText, self.state, self.title)

    def on_open_file(self, path: str) -> None:
        target = (self.path.parent / path).resolve()
        self._open_path(target)

    def on_log(self, line: str) -> None:
        renderer_logger.info(line)
