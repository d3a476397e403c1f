"""Unit tests for shared documents and on-disk change tracking."""
import tempfile
import unittest
from pathlib import Path

from tests.qt_support import ensure_app, replace_text

from PySide6.QtGui import QTextCursor

from mdmindmap.documents import DocumentManager, MarkdownEditor


class DocumentManagerTest(unittest.TestCase):
    def setUp(self) -> None:
        ensure_app()
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "notes.md"
        self.path.write_text("# Notes\n", encoding="utf-8")
        self.manager = DocumentManager(poll_interval_ms=60_000)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_views_share_one_document(self) -> None:
        first = self.manager.open(self.path)
        second = self.manager.open(self.path)
        self.assertIs(first, second)
        self.assertEqual(self.manager.view_count(first), 2)
        self.manager.release(first)
        self.assertEqual(self.manager.view_count(first), 1)
        self.manager.release(first)
        self.assertEqual(self.manager.view_count(first), 0)
        self.assertIsNone(self.manager.path_for(first))

    def test_missing_file_raises(self) -> None:
        with self.assertRaises(OSError):
            self.manager.open(self.path.with_name("absent.md"))

    def test_save_writes_text_and_clears_modified(self) -> None:
        document = self.manager.open(self.path)
        replace_text(document, "# Changed\n")
        self.assertTrue(document.isModified())
        self.assertEqual(self.manager.save(document), self.path.resolve())
        self.assertEqual(self.path.read_text(encoding="utf-8"), "# Changed\n")
        self.assertFalse(document.isModified())

    def test_external_edit_reloads_clean_document(self) -> None:
        document = self.manager.open(self.path)
        reloaded: list = []
        self.manager.document_reloaded.connect(reloaded.append)
        self.path.write_text("# Notes\n## Added elsewhere\n", encoding="utf-8")
        self.manager._on_file_change_watch_tick()
        self.assertEqual(document.toPlainText(), "# Notes\n## Added elsewhere\n")
        self.assertEqual(reloaded, [document])

    def test_external_edit_keeps_unsaved_changes(self) -> None:
        document = self.manager.open(self.path)
        replace_text(document, "# Local edit\n")
        self.path.write_text("# Notes\n## Added elsewhere\n", encoding="utf-8")
        self.manager._on_file_change_watch_tick()
        self.assertEqual(document.toPlainText(), "# Local edit\n")

    def test_active_line_requires_focused_editor(self) -> None:
        document = self.manager.open(self.path)
        editor = self.manager.create_editor(document)
        self.assertIsInstance(editor, MarkdownEditor)
        self.assertIs(editor.document(), document)
        self.assertIsNone(self.manager.active_line(document))

    def test_editor_cursor_moves_signal_selection_change(self) -> None:
        document = self.manager.open(self.path)
        replace_text(document, "# A\n## B\n")
        editor = self.manager.create_editor(document)
        moves: list = []
        self.manager.selection_changed.connect(lambda: moves.append(True))
        cursor = editor.textCursor()
        cursor.movePosition(QTextCursor.MoveOperation.NextBlock)
        editor.setTextCursor(cursor)
        self.assertTrue(moves)
        self.assertEqual(editor.active_line(), 1)


if __name__ == "__main__":
    unittest.main()
