"""Test the VSCoq MCP server tools against the fake vscoqtop."""

import shlex
import sys

import pytest
from pathlib import Path

from vscoq_mcp import coq_lsp
from vscoq_mcp.coq_mcp_server import (
    _sessions,
    _truncate_output,
    coq_start as _coq_start,
    coq_sessions as _coq_sessions,
    coq_stop as _coq_stop,
    coq_open as _coq_open,
    coq_close as _coq_close,
    coq_reload as _coq_reload,
    coq_goto as _coq_goto,
    coq_interpret_to_point as _coq_interpret_to_point,
    coq_step as _coq_step,
    coq_proof_view as _coq_proof_view,
    coq_search as _coq_search,
    coq_query as _coq_query,
    coq_reset as _coq_reset,
    coq_highlights as _coq_highlights,
    coq_config as _coq_config,
)

# Unwrap FunctionTool to get actual functions
coq_start = _coq_start.fn
coq_sessions = _coq_sessions.fn
coq_stop = _coq_stop.fn
coq_open = _coq_open.fn
coq_close = _coq_close.fn
coq_reload = _coq_reload.fn
coq_goto = _coq_goto.fn
coq_interpret_to_point = _coq_interpret_to_point.fn
coq_step = _coq_step.fn
coq_proof_view = _coq_proof_view.fn
coq_search = _coq_search.fn
coq_query = _coq_query.fn
coq_reset = _coq_reset.fn
coq_highlights = _coq_highlights.fn
coq_config = _coq_config.fn

FAKE_SERVER = shlex.join([sys.executable, str(Path(__file__).parent / "fixtures" / "fake_vscoqtop.py")])


@pytest.fixture(autouse=True)
async def fake_vscoqtop(monkeypatch):
    """Point sessions at the fake server and stop them after each test."""
    monkeypatch.setattr(coq_lsp, "VSCOQTOP", FAKE_SERVER)
    yield
    for name in list(_sessions):
        await coq_stop(session=name)


def test_truncate_output():
    assert _truncate_output("abc", 10) == "abc"
    assert _truncate_output("abcdef", 3).startswith("abc\n\n[TRUNCATED: 6 chars")
    assert _truncate_output("abc", 0).startswith("ERROR")


async def test_session_lifecycle(tmp_path):
    result = await coq_start(workdir=str(tmp_path), name="test")
    assert "Session 'test' started" in result
    assert "fake-vscoqtop" in result

    result = await coq_start(workdir=str(tmp_path), name="test")
    assert "already running" in result

    result = await coq_sessions()
    assert "test" in result
    assert "running" in result
    assert "continuous" in result

    result = await coq_stop(session="test")
    assert "Session 'test' stopped" in result
    assert await coq_sessions() == "No active sessions."
    assert "not found" in await coq_stop(session="test")


async def test_start_bad_workdir(tmp_path):
    result = await coq_start(workdir=str(tmp_path / "missing"))
    assert result.startswith("ERROR")


async def test_open_missing_file(tmp_path):
    result = await coq_open(file=str(tmp_path / "Nope.v"))
    assert result.startswith("ERROR: File not found")


async def test_goto_returns_proof_view(coq_file):
    result = await coq_goto(file=str(coq_file), line=5, col=3)
    assert "Goal 1 (1 / 1)" in result
    assert "n : nat" in result
    assert "n + 0 = n (line 4)" in result

    highlights = await coq_highlights(file=str(coq_file))
    assert highlights == "1:1-5:1 CoqtailChecked"

    assert "n + 0 = n (line 4)" in await coq_proof_view()


async def test_manual_mode_goto_only_moves_cursor(coq_file, tmp_path):
    await coq_start(workdir=str(tmp_path), config={"proof": {"mode": 0}})
    result = await coq_goto(file=str(coq_file), line=4, col=1)
    assert "manual mode" in result

    result = await coq_interpret_to_point(file=str(coq_file), line=6)
    assert "(line 5)" in result
    # Sticky cursor follows the server
    document = _sessions["default"].documents[coq_file.resolve()]
    assert document.cursor == (5, 2)


async def test_step(coq_file):
    result = await coq_step(file=str(coq_file), direction="forward")
    assert "stepped" in result
    assert (await coq_step(file=str(coq_file), direction="up")).startswith("ERROR")


async def test_search_collects_results(coq_file):
    result = await coq_search(file=str(coq_file), pattern="_ + 0", wait=0.5)
    assert "Nat.add_0_r:" in result
    assert "plus_n_O:" in result
    assert "  forall n : nat, n + 0 = n" in result


async def test_query(coq_file):
    result = await coq_query(kind="check", file=str(coq_file), pattern="nat")
    assert result == "nat\n     : Set"

    result = await coq_query(kind="about", file=str(coq_file), pattern="nat")
    assert result.startswith("ERROR: vscoq/about failed: not supported")
    assert '"pattern": "nat"' in result

    result = await coq_query(kind="explain", file=str(coq_file), pattern="nat")
    assert result.startswith("ERROR: kind must be one of")


async def test_reset_error_is_reported(coq_file):
    result = await coq_reset(file=str(coq_file))
    assert result.startswith("ERROR: vscoq/resetCoq failed")


async def test_reload_and_close(coq_file):
    await coq_open(file=str(coq_file))
    assert (await coq_reload(file=str(coq_file))).startswith("Unchanged")

    coq_file.write_text(coq_file.read_text() + "\nCheck λ_id.\n")
    result = await coq_reload(file=str(coq_file))
    assert "version 1" in result

    result = await coq_close(file=str(coq_file))
    assert result.startswith("Closed")
    assert await coq_highlights(file=str(coq_file)) == (
        f"ERROR: {coq_file} is not open in session 'default'."
    )
    assert (await coq_close(file=str(coq_file))).startswith("ERROR")


async def test_config_toggle(coq_file):
    await coq_open(file=str(coq_file))
    assert await coq_config(update={"proof": {"mode": 0}}) == "Proof mode: manual"
    assert await coq_config(toggle_manual=True) == "Proof mode: continuous"
    assert (await coq_config(session="nope")).startswith("ERROR")


async def test_query_timeout_is_reported(coq_file):
    result = await coq_query(kind="check", file=str(coq_file), pattern="hang", timeout=0.5)
    assert result.startswith("ERROR: vscoq/check failed: no response within 0.5s")

