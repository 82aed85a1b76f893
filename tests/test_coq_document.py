"""Tests for the in-memory document model."""

import pytest

from vscoq_mcp.coq_document import Document, Mark, content_hash


def test_lines_and_text(document):
    assert document.line(0) == "Lemma foo : True."
    assert document.line(4) == ""
    assert document.line(5) is None
    assert document.line(-1) is None
    assert document.line_count == 5


def test_set_text_bumps_version_and_clamps_cursor(document):
    document.set_cursor(3, 2)
    document.set_text("Qed.")
    assert document.version == 1
    assert document.cursor == (0, 2)


def test_cursor_clamped(document):
    document.set_cursor(100, 100)
    assert document.cursor == (4, 0)
    document.set_cursor(0, 100)
    assert document.cursor == (0, 17)


def test_events(document):
    seen = []
    sub = document.subscribe("cursor_moved", lambda d: seen.append(d.cursor))
    document.set_cursor(1, 1)
    sub.cancel()
    sub.cancel()
    document.set_cursor(2, 2)
    assert seen == [(1, 1)]


def test_close_fires_once(document):
    seen = []
    document.subscribe("closed", seen.append)
    document.close()
    document.close()
    assert seen == [document]


def test_unknown_event(document):
    with pytest.raises(ValueError):
        document.subscribe("saved", print)


def test_marks(document):
    document.set_marks("ns", [Mark((0, 0), (0, 5), "X")])
    assert document.marks("ns") == [Mark((0, 0), (0, 5), "X")]
    document.set_marks("ns", [])
    assert document.marks("ns") == []


def test_from_file(coq_file):
    document = Document.from_file(coq_file)
    assert document.uri == coq_file.resolve().as_uri()
    assert "Definition λ_id" in document.text
    assert len(document.content_hash) == 64


def test_content_hash_matches_stored_text(document):
    assert content_hash(document.text) == document.content_hash
    assert content_hash(document.text.replace("\n", "\r\n")) == document.content_hash
    document.set_text(document.text + "Check foo.\n")
    assert content_hash("Lemma foo : True.\n") != document.content_hash
