"""Typed message protocol between the host window and the mind map renderer."""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from mdmindmap.log import get_logger

logger = get_logger(__name__)


class MessageKind(str, enum.Enum):
    # renderer -> host
    REFRESH = "refresh"
    EDIT_AS_TEXT = "editAsText"
    EXPORT_AS_HTML = "exportAsHtml"
    OPEN_FILE = "openFile"
    LOG = "log"
    # host -> renderer
    SET_DATA = "setData"
    SET_CURSOR = "setCursor"
    SET_CSS = "setCSS"


# Inbound kind -> (handler method, required string field in data).
INBOUND_HANDLERS: dict[MessageKind, tuple[str, str | None]] = {
    MessageKind.REFRESH: ("on_refresh", None),
    MessageKind.EDIT_AS_TEXT: ("on_edit_as_text", None),
    MessageKind.EXPORT_AS_HTML: ("on_export_as_html", None),
    MessageKind.OPEN_FILE: ("on_open_file", "path"),
    MessageKind.LOG: ("on_log", "line"),
}
INBOUND_KINDS = frozenset(INBOUND_HANDLERS)
OUTBOUND_KINDS = frozenset({MessageKind.SET_DATA, MessageKind.SET_CURSOR, MessageKind.SET_CSS})


@dataclass(frozen=True)
class Message:
    kind: MessageKind
    data: Any = None

    def to_json(self) -> str:
        payload: dict[str, Any] = {"type": self.kind.value}
        if self.data is not None:
            payload["data"] = self.data
        return json.dumps(payload, ensure_ascii=False)


def parse_message(raw: str | Mapping[str, Any]) -> Message | None:
    """Decode an inbound message; anything unrecognised yields None."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug("Dropping non-JSON renderer message")
            return None
    if not isinstance(raw, Mapping):
        return None
    try:
        kind = MessageKind(raw.get("type"))
    except ValueError:
        return None
    if kind not in INBOUND_KINDS:
        return None
    return Message(kind, raw.get("data"))


def set_data(root: dict[str, Any], json_options: dict[str, Any]) -> Message:
    return Message(MessageKind.SET_DATA, {"root": root, "jsonOptions": json_options})


def set_cursor(line: int) -> Message:
    return Message(MessageKind.SET_CURSOR, {"line": line})


def set_css(css: str | None) -> Message:
    return Message(MessageKind.SET_CSS, {"css": css})


def _field(data: Any, key: str) -> str | None:
    if isinstance(data, Mapping):
        data = data.get(key)
    if isinstance(data, str):
        return data
    return None


class MessageHandlers:
    """Host-side reactions to renderer messages; one method per inbound kind."""

    def on_refresh(self) -> None:
        raise NotImplementedError

    def on_edit_as_text(self) -> None:
        raise NotImplementedError

    def on_export_as_html(self) -> None:
        raise NotImplementedError

    def on_open_file(self, path: str) -> None:
        raise NotImplementedError

    def on_log(self, line: str) -> None:
        raise NotImplementedError


class MessageRouter:
    """Dispatches inbound messages to handlers and sends outbound ones."""

    def __init__(self, handlers: MessageHandlers, post: Callable[[Message], None]):
        self._post = post
        self._table: dict[MessageKind, tuple[Callable[..., None], str | None]] = {}
        missing: list[str] = []
        for kind, (method_name, field_name) in INBOUND_HANDLERS.items():
            method = getattr(handlers, method_name, None)
            if not callable(method):
                missing.append(method_name)
                continue
            self._table[kind] = (method, field_name)
        if missing:
            raise TypeError(f"{type(handlers).__name__} lacks handlers: {', '.join(missing)}")

    def dispatch(self, message: Message | str | Mapping[str, Any] | None) -> bool:
        """Invoke the handler for `message`; returns False when nothing handled it."""
        if message is None:
            return False
        if not isinstance(message, Message):
            message = parse_message(message)
            if message is None:
                return False
        entry = self._table.get(message.kind)
        if entry is None:
            return False
        handler, field_name = entry
        if field_name is None:
            handler()
            return True
        value = _field(message.data, field_name)
        if value is None:
            logger.debug("Dropping %s message without %r", message.kind.value, field_name)
            return False
        handler(value)
        return True

    def send(self, message: Message) -> None:
        if message.kind not in OUTBOUND_KINDS:
            raise ValueError(f"{message.kind.value} is not a host-to-renderer message")
        self._post(message)
