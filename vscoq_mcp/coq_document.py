"""In-memory live documents: text, cursor, highlight marks and events."""

import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

EVENTS = ("cursor_moved", "changed", "closed")


@dataclass(frozen=True)
class Mark:
    """A highlighted region; bounds are (row, col) str positions."""
    start: tuple[int, int]
    end: tuple[int, int]
    style: str
    priority: int = 0


class Subscription:
    """Handle returned by Document.subscribe(); cancel() unregisters."""

    def __init__(self, document: "Document", event: str, callback: Callable):
        self.document = document
        self.event = event
        self.callback = callback
        self.active = True

    def cancel(self):
        if self.active:
            self.document._listeners[self.event].remove(self)
            self.active = False


def _split_lines(text: str) -> list[str]:
    return text.replace("\r\n", "\n").split("\n")


def content_hash(text: str) -> str:
    """sha256 of ``text`` with line endings normalized, as Document stores it."""
    return hashlib.sha256("\n".join(_split_lines(text)).encode()).hexdigest()


class Document:
    """A mutable text buffer identified by URI.

    Every edit bumps ``version`` (sent to the server with didChange).
    Listeners are called synchronously with the document as sole argument.
    """

    def __init__(self, uri: str, text: str = "", language_id: str = "coq"):
        self.uri = uri
        self.language_id = language_id
        self.version = 0
        self._lines = _split_lines(text)
        self._cursor = (0, 0)
        self._marks: dict[str, list[Mark]] = {}
        self._listeners: dict[str, list[Subscription]] = {event: [] for event in EVENTS}
        self.closed = False

    @classmethod
    def from_file(cls, path: Path) -> "Document":
        path = Path(path).resolve()
        return cls(path.as_uri(), path.read_text())

    def __repr__(self):
        return f"Document({self.uri!r}, version={self.version})"

    # -- text

    @property
    def text(self) -> str:
        return "\n".join(self._lines)

    @property
    def line_count(self) -> int:
        return len(self._lines)

    @property
    def content_hash(self) -> str:
        return content_hash(self.text)

    def line(self, row: int) -> str | None:
        """Text of line ``row`` (0-indexed), or None if it doesn't exist."""
        if 0 <= row < len(self._lines):
            return self._lines[row]
        return None

    def set_text(self, text: str):
        """Replace the whole content. Marks are left alone; the server re-sends them."""
        self._lines = _split_lines(text)
        self.version += 1
        self._cursor = self._clamp(*self._cursor)
        self._emit("changed")

    # -- cursor

    @property
    def cursor(self) -> tuple[int, int]:
        return self._cursor

    def _clamp(self, row: int, col: int) -> tuple[int, int]:
        row = max(0, min(row, len(self._lines) - 1))
        col = max(0, min(col, len(self._lines[row])))
        return (row, col)

    def set_cursor(self, row: int, col: int):
        """Move the cursor (clamped to the text) and notify listeners."""
        self._cursor = self._clamp(row, col)
        self._emit("cursor_moved")

    # -- marks

    def marks(self, namespace: str) -> list[Mark]:
        return list(self._marks.get(namespace, []))

    def set_marks(self, namespace: str, marks: list[Mark]):
        """Replace every mark in ``namespace`` at once."""
        if marks:
            self._marks[namespace] = list(marks)
        else:
            self._marks.pop(namespace, None)

    def clear_marks(self, namespace: str):
        self._marks.pop(namespace, None)

    # -- events

    def subscribe(self, event: str, callback: Callable) -> Subscription:
        if event not in self._listeners:
            raise ValueError(f"Unknown document event: {event!r}")
        subscription = Subscription(self, event, callback)
        self._listeners[event].append(subscription)
        return subscription

    def close(self):
        """Close the buffer; listeners of 'closed' run once."""
        if self.closed:
            return
        self.closed = True
        self._emit("closed")

    def _emit(self, event: str):
        # Snapshot: a listener may cancel subscriptions while we iterate.
        for subscription in list(self._listeners[event]):
            if subscription.active:
                subscription.callback(self)
