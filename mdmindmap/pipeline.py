"""Keeps the renderer in sync with a live document and the user settings."""

from __future__ import annotations

import enum
from contextlib import ExitStack
from dataclasses import dataclass, field
from typing import Any, Callable

from PySide6.QtCore import QObject, QTimer
from PySide6.QtGui import QTextDocument

from mdmindmap.log import get_logger
from mdmindmap.messages import Message, set_css, set_cursor, set_data
from mdmindmap.options import frontmatter_options, load_default_options, merge_options
from mdmindmap.settings import CUSTOM_CSS_KEY, DEFAULT_OPTIONS_KEY, SettingsSnapshot
from mdmindmap.transform import Transformer

logger = get_logger(__name__)

UPDATE_DEBOUNCE_MS = 300
CURSOR_DEBOUNCE_MS = 300


class Facet(enum.Enum):
    OPTIONS = "options"
    CSS = "css"


class Debouncer(QObject):
    """Restartable single-shot timer: only the last trigger in a quiet window fires."""

    def __init__(self, delay_ms: int, callback: Callable[[], None], parent=None):
        super().__init__(parent)
        self._callback = callback
        self._timer = QTimer(self)
        self._timer.setSingleShot(True)
        self._timer.setInterval(delay_ms)
        self._timer.timeout.connect(self._fire)

    @property
    def pending(self) -> bool:
        return self._timer.isActive()

    def trigger(self, *args) -> None:
        # Signal arguments are ignored; the callback re-reads current state.
        self._timer.start()

    def cancel(self) -> None:
        self._timer.stop()

    def _fire(self) -> None:
        self._callback()


class Subscription:
    """A signal connection that can be disposed exactly once."""

    def __init__(self, signal, slot: Callable):
        self._signal = signal
        self._slot = slot
        signal.connect(slot)
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def dispose(self) -> None:
        if not self._active:
            return
        self._active = False
        try:
            self._signal.disconnect(self._slot)
        except (RuntimeError, TypeError) as exc:
            # Sender already destroyed; the connection went with it.
            logger.debug("Subscription already gone: %s", exc)


def subscribe(scope: ExitStack, signal, slot: Callable) -> Subscription:
    """Connect `slot` and register its release with `scope`."""
    subscription = Subscription(signal, slot)
    scope.callback(subscription.dispose)
    return subscription


@dataclass
class SessionState:
    """Per-view state that outlives a single update."""

    default_options: dict[str, Any] | None = None
    custom_css: str | None = None
    settings: SettingsSnapshot = field(default_factory=SettingsSnapshot)

    @classmethod
    def from_settings(cls, snapshot: SettingsSnapshot) -> "SessionState":
        state = cls()
        state.apply(snapshot, frozenset({DEFAULT_OPTIONS_KEY, CUSTOM_CSS_KEY}))
        return state

    def apply(self, snapshot: SettingsSnapshot, keys: frozenset[str]) -> set[Facet]:
        """The only mutation point: adopt changed settings, return affected facets."""
        facets: set[Facet] = set()
        self.settings = snapshot
        if DEFAULT_OPTIONS_KEY in keys:
            self.default_options = load_default_options(snapshot.default_options_raw)
            facets.add(Facet.OPTIONS)
        if CUSTOM_CSS_KEY in keys:
            self.custom_css = snapshot.custom_css or None
            facets.add(Facet.CSS)
        return facets

    def effective_options(self, frontmatter: dict[str, Any] | None) -> dict[str, Any]:
        return merge_options(self.default_options, frontmatter_options(frontmatter))


@dataclass(frozen=True)
class RenderPayload:
    root: dict[str, Any]
    json_options: dict[str, Any]

    def to_message(self) -> Message:
        return set_data(self.root, self.json_options)


class UpdatePipeline(QObject):
    """Recomputes and pushes render data and cursor position for one view.

    Content edits and selection moves each run through their own debouncer,
    so a burst of keystrokes never holds back cursor feedback and vice versa.
    Settings changes bypass debouncing and push immediately.
    """

    def __init__(
        self,
        document: QTextDocument,
        state: SessionState,
        transformer: Transformer,
        post: Callable[[Message], None],
        active_line: Callable[[QTextDocument], int | None],
        update_delay_ms: int = UPDATE_DEBOUNCE_MS,
        cursor_delay_ms: int = CURSOR_DEBOUNCE_MS,
        parent=None,
    ):
        super().__init__(parent)
        self.document = document
        self.state = state
        self._transformer = transformer
        self._post = post
        self._active_line = active_line
        self._update_debouncer = Debouncer(update_delay_ms, self.update, self)
        self._cursor_debouncer = Debouncer(cursor_delay_ms, self.update_cursor, self)

    def attach(self, scope: ExitStack, selection_changed) -> None:
        """Subscribe to document edits and selection moves for the life of `scope`."""
        subscribe(scope, self.document.contentsChanged, self._update_debouncer.trigger)
        subscribe(scope, selection_changed, self._cursor_debouncer.trigger)
        scope.callback(self.dispose)

    def schedule_update(self) -> None:
        self._update_debouncer.trigger()

    def schedule_cursor(self) -> None:
        self._cursor_debouncer.trigger()

    def compute_payload(self) -> RenderPayload:
        result = self._transformer.transform(self.document.toPlainText())
        return RenderPayload(root=result.root, json_options=self.state.effective_options(result.frontmatter))

    def update(self) -> RenderPayload | None:
        """Recompute the tree and options, push them, then sync the cursor."""
        try:
            payload = self.compute_payload()
            self._post(payload.to_message())
        except Exception:
            # Keep the last good render on screen; the next edit retries.
            logger.exception("Render update failed; keeping the previous mind map")
            return None
        self.update_cursor()
        return payload

    def update_cursor(self) -> int | None:
        line = self._active_line(self.document)
        if line is None:
            return None
        self._post(set_cursor(line))
        return line

    def push_css(self) -> None:
        self._post(set_css(self.state.custom_css))

    def apply_settings(self, snapshot: SettingsSnapshot, keys: frozenset[str]) -> set[Facet]:
        facets = self.state.apply(snapshot, keys)
        if Facet.OPTIONS in facets:
            self.update()
        if Facet.CSS in facets:
            self.push_css()
        return facets

    def dispose(self) -> None:
        self._update_debouncer.cancel()
        self._cursor_debouncer.cancel()
