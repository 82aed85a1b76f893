"""Tests for settings handling."""

from vscoq_mcp.coq_config import DEFAULT_CONFIG, ProofMode, deep_merge, make_config, proof_mode


def test_defaults_are_continuous():
    assert proof_mode(make_config()) is ProofMode.CONTINUOUS


def test_deep_merge_does_not_mutate():
    base = {"proof": {"mode": 1, "cursor": {"sticky": True}}}
    merged = deep_merge(base, {"proof": {"cursor": {"sticky": False}}})
    assert merged == {"proof": {"mode": 1, "cursor": {"sticky": False}}}
    assert base["proof"]["cursor"]["sticky"] is True


def test_non_dict_replaces():
    assert deep_merge({"a": {"b": 1}}, {"a": 2}) == {"a": 2}


def test_make_config_copies_defaults():
    config = make_config({"proof": {"mode": 0}})
    config["goals"]["display"] = "Tabs"
    assert DEFAULT_CONFIG["goals"]["display"] == "List"
    assert proof_mode(config) is ProofMode.MANUAL
