"""Per-server proof session: attached documents, panels, notifications."""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from .coq_config import ProofMode, cursor_sticky, deep_merge, make_config, proof_mode
from .coq_document import Document, Subscription
from .coq_highlights import HighlightReconciler, highlights_from_notification
from .coq_lsp import LspResponseError
from .coq_panel import Panel
from .coq_position import DEFAULT_ENCODING, to_addressable, to_protocol
from .coq_pp import (
    parse_proof_view, parse_search_result, render_proof_view,
    render_query_result, render_search_result,
)
from .coq_query import QUERY, SEARCH, QueryTracker

logger = logging.getLogger(__name__)

QUERY_KINDS = ("about", "check", "print", "locate")
STEP_METHODS = {
    "forward": "vscoq/stepForward",
    "backward": "vscoq/stepBackward",
    "end": "vscoq/interpretToEnd",
}


class AttachmentError(RuntimeError):
    """attach() on an attached document, or detach() on a detached one."""
    pass


@dataclass
class Notice:
    """A failed request, kept for the user to see."""
    method: str
    params: Any
    message: str
    time: float = field(default_factory=time.time)

    def __str__(self):
        return f"{self.method} failed: {self.message} (params: {json.dumps(self.params, default=str)})"


@dataclass
class Attachment:
    """What a session holds for one attached document."""
    document: Document
    subscriptions: list[Subscription] = field(default_factory=list)


class CoqSession:
    """Client side of one vscoqtop connection.

    ``server`` provides notify(), async request(), on_notification() and
    position_encoding (see CoqLanguageServer).

    The proof panel and the query panel belong to the session, not to a
    document: vscoq/proofView does not say which document it is about, so
    there is one proof view for everything attached here.
    """

    def __init__(self, server, config: dict | None = None, namespace: str = "vscoq-progress"):
        self.server = server
        self.config = make_config(config)
        self.proof_panel = Panel("coq-goals")
        self.query_panel = Panel("coq-infos")
        self.queries = QueryTracker()
        self.highlights = HighlightReconciler(namespace)
        self.notices: list[Notice] = []
        self._attachments: dict[str, Attachment] = {}
        self._active: str | None = None
        self._shown_search: int | None = None  # search whose results fill the query panel

        server.on_notification("vscoq/updateHighlights", self.on_update_highlights)
        server.on_notification("vscoq/moveCursor", self.on_move_cursor)
        server.on_notification("vscoq/proofView", self.on_proof_view)
        server.on_notification("vscoq/searchResult", self.on_search_result)

    # -- state

    @property
    def proof_mode(self) -> ProofMode:
        return proof_mode(self.config)

    @property
    def encoding(self) -> str:
        return getattr(self.server, "position_encoding", None) or DEFAULT_ENCODING

    @property
    def documents(self) -> list[Document]:
        return [a.document for a in self._attachments.values()]

    @property
    def active_document(self) -> Document | None:
        attachment = self._attachments.get(self._active) if self._active else None
        return attachment.document if attachment else None

    def is_attached(self, document: Document) -> bool:
        return document.uri in self._attachments

    def get_document(self, uri: str) -> Document | None:
        attachment = self._attachments.get(uri)
        return attachment.document if attachment else None

    # -- attach / detach

    def attach(self, document: Document):
        if document.uri in self._attachments:
            raise AttachmentError(f"Already attached: {document.uri}")
        attachment = Attachment(document)
        attachment.subscriptions = [
            document.subscribe("cursor_moved", self._on_cursor_moved),
            document.subscribe("changed", self._on_changed),
            document.subscribe("closed", self.close),
        ]
        self._attachments[document.uri] = attachment
        self._active = document.uri
        logger.debug("Attached %s", document.uri)

        if self.proof_mode is ProofMode.CONTINUOUS:
            self.interpret_to_point(document)

    def detach(self, document: Document):
        attachment = self._attachments.pop(document.uri, None)
        if attachment is None:
            raise AttachmentError(f"Not attached: {document.uri}")
        self.highlights.clear(document)
        for subscription in attachment.subscriptions:
            subscription.cancel()
        if self._active == document.uri:
            self._active = None
        logger.debug("Detached %s", document.uri)

    def open(self, document: Document):
        """didOpen the document, then attach it."""
        if self.is_attached(document):
            raise AttachmentError(f"Already attached: {document.uri}")
        self.server.notify("textDocument/didOpen", {
            "textDocument": {
                "uri": document.uri,
                "languageId": document.language_id,
                "version": document.version,
                "text": document.text,
            },
        })
        self.attach(document)

    def close(self, document: Document):
        """Detach the document, then didClose it."""
        self.detach(document)
        self.server.notify("textDocument/didClose", {"textDocument": {"uri": document.uri}})

    def shutdown(self):
        """Detach everything and empty the panels."""
        for document in self.documents:
            self.detach(document)
        self.proof_panel.clear()
        self.query_panel.clear()

    # -- document events

    def _on_cursor_moved(self, document: Document):
        self._active = document.uri
        if self.proof_mode is ProofMode.CONTINUOUS:
            # TODO: debounce; each call is a full interpretToPoint round.
            self.interpret_to_point(document)

    def _on_changed(self, document: Document):
        self.server.notify("textDocument/didChange", {
            "textDocument": self._text_document(document),
            "contentChanges": [{"text": document.text}],
        })

    # -- requests

    def _text_document(self, document: Document) -> dict:
        return {"uri": document.uri, "version": document.version}

    def _position(self, document: Document, position: tuple[int, int] | None) -> dict:
        return to_protocol(document, position or document.cursor, self.encoding)

    def _report(self, method: str, params: Any, message: str):
        notice = Notice(method, params, message)
        self.notices.append(notice)
        logger.warning("%s", notice)

    def interpret_to_point(self, document: Document, position: tuple[int, int] | None = None):
        """Ask the server to check up to ``position`` (default: the cursor)."""
        self.server.notify("vscoq/interpretToPoint", {
            "textDocument": self._text_document(document),
            "position": self._position(document, position),
        })

    def step(self, document: Document, direction: str):
        """direction: "forward", "backward" or "end"."""
        if direction not in STEP_METHODS:
            raise ValueError(f"direction must be one of {', '.join(STEP_METHODS)}, got {direction!r}")
        self.server.notify(STEP_METHODS[direction], {"textDocument": self._text_document(document)})

    def step_forward(self, document: Document):
        self.step(document, "forward")

    def step_backward(self, document: Document):
        self.step(document, "backward")

    def interpret_to_end(self, document: Document):
        self.step(document, "end")

    async def _request(self, method: str, params: dict, timeout: float | None) -> tuple[bool, Any]:
        """Send a request; an error or a timeout becomes a notice."""
        try:
            return True, await self.server.request(method, params, timeout=timeout)
        except LspResponseError as e:
            self._report(e.method, e.params, e.message)
        except asyncio.TimeoutError:
            self._report(method, params, f"no response within {timeout}s")
        except RuntimeError as e:
            # Server gone; see CoqLanguageServer.is_running
            self._report(method, params, str(e))
        return False, None

    def _show_search(self, query_id: int):
        if self._shown_search != query_id:
            self._shown_search = query_id
            self.query_panel.clear()

    async def search(self, document: Document, pattern: str, position: tuple[int, int] | None = None,
                     timeout: float | None = None) -> bool:
        """Start a search. Results stream into the query panel.

        The panel keeps its content until the first result of this search
        arrives or the server accepts the request, whichever comes first.
        Results of earlier searches arriving later are dropped. Returns
        False if the request failed (see notices); the panel is untouched.
        """
        query_id = self.queries.issue(SEARCH)
        params = {
            "id": str(query_id),
            "textDocument": self._text_document(document),
            "position": self._position(document, position),
            "pattern": pattern,
        }
        ok, _ = await self._request("vscoq/search", params, timeout)
        if not ok:
            return False
        if self.queries.accept(SEARCH, query_id):
            self._show_search(query_id)
        return True

    async def query(self, kind: str, document: Document, pattern: str,
                    position: tuple[int, int] | None = None, timeout: float | None = None) -> bool:
        """Run About/Check/Print/Locate and show the answer in the query panel.

        Returns False on a server error or timeout, or when a newer query
        overtook this one (its answer is then discarded).
        """
        if kind not in QUERY_KINDS:
            raise ValueError(f"kind must be one of {', '.join(QUERY_KINDS)}, got {kind!r}")
        query_id = self.queries.issue(QUERY)
        params = {
            "textDocument": self._text_document(document),
            "position": self._position(document, position),
            "pattern": pattern,
        }
        ok, result = await self._request(f"vscoq/{kind}", params, timeout)
        if not ok:
            return False
        if not self.queries.accept(QUERY, query_id):
            logger.debug("Dropping stale %s result (query %d)", kind, query_id)
            return False
        self.query_panel.replace(render_query_result(result))
        return True

    async def about(self, document: Document, pattern: str, position=None, timeout=None) -> bool:
        return await self.query("about", document, pattern, position, timeout)

    async def check(self, document: Document, pattern: str, position=None, timeout=None) -> bool:
        return await self.query("check", document, pattern, position, timeout)

    async def print(self, document: Document, pattern: str, position=None, timeout=None) -> bool:
        return await self.query("print", document, pattern, position, timeout)

    async def locate(self, document: Document, pattern: str, position=None, timeout=None) -> bool:
        return await self.query("locate", document, pattern, position, timeout)

    async def reset(self, document: Document, timeout: float | None = None) -> bool:
        """Restart the Coq document state on the server side."""
        ok, _ = await self._request("vscoq/resetCoq", {"textDocument": self._text_document(document)}, timeout)
        return ok

    # -- configuration

    def update_config(self, partial: dict):
        """Merge ``partial`` into the settings and push them to the server.

        Switching from manual to continuous interprets the active document.
        """
        previous = self.proof_mode
        self.config = deep_merge(self.config, partial)
        self.server.notify("workspace/didChangeConfiguration", {"settings": self.config})
        if previous is ProofMode.MANUAL and self.proof_mode is ProofMode.CONTINUOUS:
            if document := self.active_document:
                self.interpret_to_point(document)

    def toggle_manual(self) -> ProofMode:
        self.update_config({"proof": {"mode": int(1 - self.proof_mode)}})
        return self.proof_mode

    # -- notifications

    def _attached_document(self, params: dict, method: str) -> Document | None:
        document = self.get_document(params["uri"])
        if document is None:
            logger.debug("%s for unattached document %s", method, params["uri"])
        return document

    def on_update_highlights(self, params: dict):
        document = self._attached_document(params, "updateHighlights")
        if document:
            self.highlights.apply(document, highlights_from_notification(params), self.encoding)

    def on_move_cursor(self, params: dict):
        document = self._attached_document(params, "moveCursor")
        if document is None:
            return
        if self.proof_mode is ProofMode.MANUAL and cursor_sticky(self.config):
            row, col = to_addressable(document, params["range"]["end"], self.encoding)
            document.set_cursor(row, col)

    def on_proof_view(self, params: dict):
        self.proof_panel.replace(render_proof_view(parse_proof_view(params)))

    def on_search_result(self, params: dict):
        result = parse_search_result(params)
        if not self.queries.accept(SEARCH, result.id):
            logger.debug("Dropping stale search result (query %d)", result.id)
            return
        self._show_search(result.id)
        # Each notification carries a single item.
        self.query_panel.append(render_search_result(result))
