"""Pytest fixtures for vscoq tests."""

import shutil

import pytest
from pathlib import Path

from vscoq_mcp.coq_document import Document
from vscoq_mcp.coq_session import CoqSession


FIXTURES_DIR = Path(__file__).parent / "fixtures"


class FakeServer:
    """Stands in for CoqLanguageServer: records traffic, replays notifications."""

    def __init__(self, position_encoding: str = "utf-16"):
        self.position_encoding = position_encoding
        self.notifications: list[tuple[str, object]] = []
        self.requests: list[tuple[str, object]] = []
        self.handlers = {}
        self.responses = {}  # method -> result, or an exception to raise
        self.is_running = True

    def on_notification(self, method, handler):
        self.handlers[method] = handler

    def notify(self, method, params=None):
        self.notifications.append((method, params))

    async def request(self, method, params=None, timeout=None):
        self.requests.append((method, params))
        response = self.responses.get(method)
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(params)
        return response

    async def stop(self):
        self.is_running = False

    def send(self, method, params):
        """Deliver a server notification to the registered handler."""
        self.handlers[method](params)

    def sent(self, method):
        return [params for m, params in self.notifications if m == method]


@pytest.fixture
def server():
    return FakeServer()


@pytest.fixture
def manual_session(server):
    return CoqSession(server, {"proof": {"mode": 0}})


@pytest.fixture
def continuous_session(server):
    return CoqSession(server)


@pytest.fixture
def document():
    return Document("file:///tmp/Test.v", "Lemma foo : True.\nProof.\n  trivial.\nQed.\n")


@pytest.fixture
def coq_file(tmp_path: Path) -> Path:
    """A copy of the fixture .v file in a temp directory."""
    target = tmp_path / "Simple.v"
    shutil.copy(FIXTURES_DIR / "Simple.v", target)
    return target
