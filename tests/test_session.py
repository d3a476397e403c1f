"""Integration tests for one mind map session against a fake window."""
import json
import tempfile
import unittest
from pathlib import Path

from tests.qt_support import ensure_app, replace_text, wait_until

from PySide6.QtCore import QObject, Signal

from mdmindmap.assets import AssetCatalog, AssetResolver
from mdmindmap.documents import DocumentManager
from mdmindmap.export import ExportState
from mdmindmap.messages import MessageKind
from mdmindmap.session import MindmapSession, SessionView
from mdmindmap.settings import SettingsStore
from mdmindmap.transform import Transformer


class FakeView(QObject, SessionView):
    message_received = Signal(str)

    def __init__(self, destination=None):
        super().__init__()
        self.posted: list = []
        self.editor_shown = 0
        self.destination = destination
        self.suggested: list = []
        self.errors: list = []
        self.statuses: list = []

    def post_message(self, message) -> None:
        self.posted.append(message)

    def show_text_editor(self) -> None:
        self.editor_shown += 1

    def choose_export_destination(self, suggested):
        self.suggested.append(suggested)
        return self.destination

    def show_error(self, title, message) -> None:
        self.errors.append((title, message))

    def show_status(self, message, timeout_ms=0) -> None:
        self.statuses.append(message)


class MindmapSessionTest(unittest.TestCase):
    def setUp(self) -> None:
        ensure_app()
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name).resolve()
        self.path = self.tmp / "plan.md"
        self.path.write_text("# Plan\n## Build\n", encoding="utf-8")
        self.config = self.tmp / "config.json"
        self.config.write_text(json.dumps({"customCSS": "svg { color: red; }"}), encoding="utf-8")

        self.settings = SettingsStore(self.config)
        self.documents = DocumentManager(poll_interval_ms=60_000)
        self.document = self.documents.open(self.path)
        self.opened: list = []
        self.view = FakeView()
        self.session = self.make_session(self.view)

    def tearDown(self) -> None:
        self.session.close()
        self._tmp.cleanup()

    def make_session(self, view) -> MindmapSession:
        vendor_dir = self.tmp / "vendor"
        return MindmapSession(
            self.document,
            self.documents,
            self.settings,
            view,
            Transformer(),
            AssetCatalog([vendor_dir]),
            AssetResolver(),
            self.opened.append,
        )

    def kinds(self) -> list:
        return [message.kind for message in self.view.posted]

    def test_start_pushes_initial_render_and_css(self) -> None:
        self.session.start()
        self.assertEqual(self.kinds(), [MessageKind.SET_DATA, MessageKind.SET_CSS])
        self.assertEqual(self.view.posted[0].data["root"]["content"], "Plan")
        self.assertEqual(self.view.posted[1].data, {"css": "svg { color: red; }"})

    def test_view_page_loads_bridge_and_every_feature(self) -> None:
        page = self.session.build_view_page()
        self.assertIn("qrc:///qtwebchannel/qwebchannel.js", page)
        self.assertIn("view.js", page)
        self.assertIn("katex", page)
        self.assertIn("highlight", page)
        self.assertIn("<title>plan.md</title>", page)

    def test_renderer_messages_reach_handlers(self) -> None:
        self.session.start()
        self.view.posted.clear()
        self.view.message_received.emit(json.dumps({"type": "editAsText"}))
        self.view.message_received.emit(json.dumps({"type": "refresh"}))
        self.view.message_received.emit(json.dumps({"type": "bogus"}))
        self.assertEqual(self.view.editor_shown, 1)
        self.assertEqual(self.kinds(), [MessageKind.SET_DATA])

    def test_open_file_resolves_against_document(self) -> None:
        self.session.start()
        self.view.message_received.emit(json.dumps({"type": "openFile", "data": {"path": "sub/other.md"}}))
        self.assertEqual(self.opened, [self.tmp / "sub" / "other.md"])

    def test_renderer_log_goes_to_renderer_logger(self) -> None:
        self.session.start()
        with self.assertLogs("mdmindmap.renderer", level="INFO") as logs:
            self.view.message_received.emit(json.dumps({"type": "log", "data": {"line": "ready"}}))
        self.assertTrue(any("ready" in entry for entry in logs.output))

    def test_settings_change_pushes_css(self) -> None:
        self.session.start()
        self.view.posted.clear()
        self.config.write_text(json.dumps({"customCSS": "svg { color: blue; }"}), encoding="utf-8")
        self.settings.reload()
        self.assertEqual(self.kinds(), [MessageKind.SET_CSS])
        self.assertEqual(self.view.posted[0].data, {"css": "svg { color: blue; }"})

    def test_edits_reach_renderer_after_debounce(self) -> None:
        self.session.start()
        self.view.posted.clear()
        replace_text(self.document, "# Renamed\n")
        self.assertTrue(wait_until(lambda: self.view.posted, timeout_ms=3000))
        self.assertEqual(self.view.posted[0].data["root"]["content"], "Renamed")

    def test_cancelled_export_is_silent(self) -> None:
        self.session.start()
        self.view.message_received.emit(json.dumps({"type": "exportAsHtml"}))
        self.assertEqual(self.view.suggested, [self.tmp / "plan.html"])
        self.assertEqual(self.view.errors, [])
        self.assertEqual(self.view.statuses, [])

    def test_failed_export_reports_through_view(self) -> None:
        view = FakeView(destination=self.tmp / "missing-dir" / "plan.html")
        session = self.make_session(view)
        self.documents.open(self.path)
        outcomes: list = []
        session.exporter.finished.connect(outcomes.append)
        session.start()
        session.on_export_as_html()
        self.assertTrue(wait_until(lambda: outcomes, timeout_ms=5000))
        session.close()
        self.assertIs(outcomes[0].state, ExportState.FAILED)
        self.assertEqual(len(view.errors), 1)
        self.assertEqual(view.errors[0][0], "Export failed")

    def test_close_releases_everything(self) -> None:
        self.session.start()
        self.assertEqual(self.documents.view_count(self.document), 1)
        self.session.close()
        self.session.close()
        self.view.posted.clear()
        self.config.write_text(json.dumps({"customCSS": "p {}"}), encoding="utf-8")
        self.settings.reload()
        self.view.message_received.emit(json.dumps({"type": "refresh"}))
        self.assertEqual(self.view.posted, [])
        self.assertEqual(self.documents.view_count(self.document), 0)


if __name__ == "__main__":
    unittest.main()
