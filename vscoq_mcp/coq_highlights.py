"""Apply vscoq/updateHighlights ranges to a document as marks."""

from .coq_document import Document, Mark
from .coq_position import DEFAULT_ENCODING, range_to_addressable

CHECKED = "checked"
SENT = "sent"

HIGHLIGHT_STYLES = {
    SENT: "CoqtailSent",
    CHECKED: "CoqtailChecked",
}

# Checked wins over sent where they overlap.
USER_PRIORITY = 200
_PRIORITY = {SENT: 0, CHECKED: 1}


def highlights_from_notification(params: dict) -> dict[str, list[dict]]:
    """Build a highlight set (status -> LSP ranges) from notification params."""
    return {
        CHECKED: list(params.get("processedRange") or []),
        SENT: list(params.get("parsedRange") or []),
    }


class HighlightReconciler:
    """Owns one mark namespace and rewrites it wholesale on each update.

    Nothing is diffed: every apply() drops all previous marks of the
    namespace, so the marks always reflect exactly the last notification.
    Ranges are converted when applied, against the current text.
    """

    def __init__(self, namespace: str = "vscoq-progress"):
        self.namespace = namespace

    def apply(self, document: Document, highlights: dict[str, list[dict]], encoding: str = DEFAULT_ENCODING):
        entries = []
        for status, ranges in highlights.items():
            if status not in HIGHLIGHT_STYLES:
                raise ValueError(f"Unknown highlight status: {status!r}")
            for rng in ranges:
                start, end = range_to_addressable(document, rng, encoding)
                entries.append((start, end, _PRIORITY[status], status))
        entries.sort()
        marks = [
            Mark(start, end, HIGHLIGHT_STYLES[status], USER_PRIORITY + priority)
            for start, end, priority, status in entries
        ]
        document.set_marks(self.namespace, marks)

    def clear(self, document: Document):
        document.clear_marks(self.namespace)

    def marks(self, document: Document) -> list[Mark]:
        return document.marks(self.namespace)
