"""Tests for query id tracking."""

from vscoq_mcp.coq_query import QUERY, SEARCH, QueryTracker


def test_ids_increase_across_channels():
    tracker = QueryTracker()
    assert tracker.issue(SEARCH) == 1
    assert tracker.issue(QUERY) == 2
    assert tracker.issue(SEARCH) == 3
    assert tracker.latest(SEARCH) == 3
    assert tracker.latest(QUERY) == 2


def test_stale_results_rejected():
    tracker = QueryTracker()
    for _ in range(4):
        tracker.issue(QUERY)
    assert tracker.issue(SEARCH) == 5
    assert tracker.accept(SEARCH, 3) is False
    assert tracker.accept(SEARCH, 5) is True
    # Streaming: the same id keeps being accepted
    assert tracker.accept(SEARCH, 5) is True


def test_channels_do_not_interfere():
    tracker = QueryTracker()
    search_id = tracker.issue(SEARCH)
    tracker.issue(QUERY)
    assert tracker.accept(SEARCH, search_id) is True


def test_unissued_channel_accepts():
    assert QueryTracker().accept(SEARCH, 1) is True
