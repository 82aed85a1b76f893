#!/usr/bin/env python3
"""VSCoq MCP Server - drives vscoqtop and shows proof state as text.

Sessions are in-memory only. They live as long as the MCP server process.
"""

import asyncio
import sys
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from fastmcp import FastMCP

from .coq_config import ProofMode
from .coq_document import Document, content_hash
from .coq_lsp import CoqLanguageServer
from .coq_session import QUERY_KINDS, STEP_METHODS, CoqSession


DEFAULT_MAX_OUTPUT = 4096
DEFAULT_WAIT = 5.0  # seconds to wait for a proofView after a navigation command
DEFAULT_TIMEOUT = 10.0  # seconds to wait for a request (search, query, reset) to be answered


def _truncate_output(output: str, max_output: int) -> str:
    """Truncate output to max_output characters, showing the head."""
    if max_output < 1:
        return f"ERROR: max_output must be positive (got {max_output})"
    if len(output) > max_output:
        return f"{output[:max_output]}\n\n[TRUNCATED: {len(output)} chars, showing first {max_output}]"
    return output


@dataclass
class SessionEntry:
    """Registry entry for a vscoqtop session."""
    server: CoqLanguageServer
    session: CoqSession
    started: datetime
    workdir: Path
    documents: dict[Path, Document] = field(default_factory=dict)
    last_used: float = 0.0  # time.time() of last activity

    def __post_init__(self):
        if self.last_used == 0.0:
            self.last_used = time.time()


mcp = FastMCP("coq", instructions="""Coq proof assistant (vscoqtop) - proof development workflow:

1. coq_goto(file, line, col): move the cursor; in continuous mode the proof
   state at the cursor is computed and returned (auto-starts and opens file)
2. Edit the file on disk, then coq_reload(file) so the server sees the change
3. coq_search / coq_query (about, check, print, locate) for lemmas and definitions
4. coq_highlights(file) shows how far the file has been checked

Positions are 1-indexed line and column.
""")
_sessions: dict[str, SessionEntry] = {}


def _get_entry(name: str) -> Optional[SessionEntry]:
    entry = _sessions.get(name)
    if entry:
        entry.last_used = time.time()
    return entry


def _session_age(entry: SessionEntry) -> str:
    secs = int((datetime.now() - entry.started).total_seconds())
    if secs < 60:
        return f"{secs}s"
    elif secs < 3600:
        return f"{secs // 60}m"
    else:
        return f"{secs / 3600:.1f}h"


def _position(line: int, col: int) -> tuple[int, int]:
    """1-indexed tool coordinates -> 0-indexed (row, col)."""
    return (max(line, 1) - 1, max(col, 1) - 1)


def _last_notice(session: CoqSession) -> str:
    return f"ERROR: {session.notices[-1]}" if session.notices else "ERROR: request failed"


def _format_proof_view(session: CoqSession) -> str:
    text = session.proof_panel.text
    return text if text.strip() else "No goals"


async def _wait_proof_view(session: CoqSession, since: int, timeout: float) -> str:
    if not await session.proof_panel.wait_changed(since, timeout):
        return f"(no proof view from server within {timeout}s)\n\n{_format_proof_view(session)}"
    return _format_proof_view(session)


async def _open_document(file: str, session: str, workdir: str = None) -> tuple[Optional[SessionEntry], Optional[Document], str]:
    """Find or open ``file`` in a session, starting the session if needed.

    Returns (entry, document, error); error is "" on success.
    """
    file_path = Path(file).resolve()
    if not file_path.exists():
        return None, None, f"ERROR: File not found: {file}"

    entry = _get_entry(session)
    if not entry or not entry.server.is_running:
        start_result = await coq_start.fn(workdir=workdir or str(file_path.parent), name=session)
        if start_result.startswith("ERROR"):
            return None, None, start_result
        entry = _get_entry(session)

    document = entry.documents.get(file_path)
    if document is None:
        document = Document.from_file(file_path)
        entry.documents[file_path] = document
        since = entry.session.proof_panel.revision
        entry.session.open(document)
        # Continuous mode interprets on open; let that proof view land first
        # so it isn't mistaken for the answer to the caller's command.
        if entry.session.proof_mode is ProofMode.CONTINUOUS:
            await entry.session.proof_panel.wait_changed(since, DEFAULT_WAIT)
    return entry, document, ""


@mcp.tool()
async def coq_start(workdir: str, name: str = "default", config: dict = None, env: dict = None) -> str:
    """Start a vscoqtop session.

    Idempotent - returns existing session if already running.
    Usually called automatically by the file tools.

    Args:
        workdir: Working directory (should contain _CoqProject)
        name: Session identifier (e.g., "main")
        config: Optional vscoq settings overriding the defaults
                (e.g. {"proof": {"mode": 0}} for manual mode)
        env: Optional environment variables for the server process

    Returns: Session status
    """
    if name in _sessions:
        if _sessions[name].server.is_running:
            return f"Session '{name}' already running."
        # Dead session - clean up
        del _sessions[name]

    workdir_path = Path(workdir).resolve()
    if not workdir_path.exists():
        return f"ERROR: Working directory does not exist: {workdir}"

    server = CoqLanguageServer(str(workdir_path), env=env)
    session = CoqSession(server, config)
    try:
        result = await server.start(session.config)
    except Exception as e:
        await server.stop()
        return f"ERROR starting vscoqtop: {e}"

    _sessions[name] = SessionEntry(server, session, datetime.now(), workdir_path)
    return f"Session '{name}' started. {result}\nWorkdir: {workdir_path}"


@mcp.tool()
async def coq_sessions() -> str:
    """List all vscoqtop sessions with their workdir, age, status and open files."""
    if not _sessions:
        return "No active sessions."

    lines = ["SESSION      WORKDIR                                    AGE     STATUS   MODE        FILES"]
    lines.append("-" * 100)
    for name, entry in _sessions.items():
        status = "running" if entry.server.is_running else "dead"
        workdir_str = str(entry.workdir)
        if len(workdir_str) > 40:
            workdir_str = "..." + workdir_str[-37:]
        mode = entry.session.proof_mode.name.lower()
        files = ", ".join(p.name for p in entry.documents) or "(none)"
        lines.append(f"{name:<12} {workdir_str:<42} {_session_age(entry):<7} {status:<8} {mode:<11} {files}")
    return "\n".join(lines)


@mcp.tool()
async def coq_stop(session: str = "default") -> str:
    """Terminate a vscoqtop session.

    Args:
        session: Session name (default: "default")

    Returns: Confirmation message
    """
    entry = _sessions.pop(session, None)
    if not entry:
        return f"Session '{session}' not found."
    entry.session.shutdown()
    await entry.server.stop()
    return f"Session '{session}' stopped."


@mcp.tool()
async def coq_open(file: str, workdir: str = None, session: str = "default") -> str:
    """Open a .v file in the session (auto-starts the session).

    Args:
        file: Path to the .v file
        workdir: Working directory for vscoqtop (default: file's directory)
        session: Session name (default: "default")

    Returns: Confirmation with line count and proof mode
    """
    entry, document, error = await _open_document(file, session, workdir)
    if error:
        return error
    mode = entry.session.proof_mode.name.lower()
    return f"Opened {document.uri} ({document.line_count} lines, {mode} mode)"


@mcp.tool()
async def coq_close(file: str, session: str = "default") -> str:
    """Close a file: drop its highlights and tell the server.

    Args:
        file: Path to the .v file
        session: Session name (default: "default")
    """
    entry = _get_entry(session)
    file_path = Path(file).resolve()
    if not entry or file_path not in entry.documents:
        return f"ERROR: {file} is not open in session '{session}'."
    document = entry.documents.pop(file_path)
    document.close()
    return f"Closed {document.uri}"


@mcp.tool()
async def coq_reload(file: str, session: str = "default") -> str:
    """Re-read a file from disk and send the new text to the server.

    Call after editing the file. Does nothing if the content is unchanged.

    Args:
        file: Path to the .v file
        session: Session name (default: "default")
    """
    entry = _get_entry(session)
    file_path = Path(file).resolve()
    if not entry or file_path not in entry.documents:
        return f"ERROR: {file} is not open in session '{session}'. Use coq_open first."
    document = entry.documents[file_path]
    try:
        content = file_path.read_text()
    except FileNotFoundError:
        return f"ERROR: File not found: {file}"
    if content_hash(content) == document.content_hash:
        return f"Unchanged (version {document.version})"
    document.set_text(content)
    return f"Reloaded {file_path.name} (version {document.version}, {document.line_count} lines)"


@mcp.tool()
async def coq_goto(
    file: str,
    line: int,
    col: int = 1,
    timeout: float = DEFAULT_WAIT,
    max_output: int = DEFAULT_MAX_OUTPUT,
    session: str = "default",
) -> str:
    """Move the cursor to a position.

    In continuous mode the server checks the file up to the cursor and the
    proof state there is returned. In manual mode only the cursor moves.

    Args:
        file: Path to the .v file (opened automatically)
        line: 1-indexed line number
        col: 1-indexed column number (default 1)
        timeout: Seconds to wait for the proof view (default 5)
        max_output: Max characters of output (default 4096)
        session: Session name (default: "default")

    Returns: Proof view (goals, messages) at the cursor
    """
    entry, document, error = await _open_document(file, session)
    if error:
        return error
    since = entry.session.proof_panel.revision
    document.set_cursor(*_position(line, col))
    if entry.session.proof_mode is not ProofMode.CONTINUOUS:
        row, column = document.cursor
        return f"Cursor at {row + 1}:{column + 1} (manual mode, use coq_interpret_to_point)"
    return _truncate_output(await _wait_proof_view(entry.session, since, timeout), max_output)


@mcp.tool()
async def coq_interpret_to_point(
    file: str,
    line: int = None,
    col: int = 1,
    timeout: float = DEFAULT_WAIT,
    max_output: int = DEFAULT_MAX_OUTPUT,
    session: str = "default",
) -> str:
    """Check the file up to a position and return the proof state there.

    Args:
        file: Path to the .v file (opened automatically)
        line: 1-indexed line (default: the cursor)
        col: 1-indexed column (default 1)
        timeout: Seconds to wait for the proof view (default 5)
        max_output: Max characters of output (default 4096)
        session: Session name (default: "default")
    """
    entry, document, error = await _open_document(file, session)
    if error:
        return error
    since = entry.session.proof_panel.revision
    position = _position(line, col) if line is not None else None
    entry.session.interpret_to_point(document, position)
    return _truncate_output(await _wait_proof_view(entry.session, since, timeout), max_output)


@mcp.tool()
async def coq_step(
    file: str,
    direction: str = "forward",
    timeout: float = DEFAULT_WAIT,
    max_output: int = DEFAULT_MAX_OUTPUT,
    session: str = "default",
) -> str:
    """Step through the file one sentence at a time.

    Args:
        file: Path to the .v file (opened automatically)
        direction: "forward", "backward" or "end" (check the whole file)
        timeout: Seconds to wait for the proof view (default 5)
        max_output: Max characters of output (default 4096)
        session: Session name (default: "default")
    """
    if direction not in STEP_METHODS:
        return f"ERROR: direction must be one of {', '.join(STEP_METHODS)}, got '{direction}'"
    entry, document, error = await _open_document(file, session)
    if error:
        return error
    since = entry.session.proof_panel.revision
    entry.session.step(document, direction)
    return _truncate_output(await _wait_proof_view(entry.session, since, timeout), max_output)


@mcp.tool()
async def coq_proof_view(max_output: int = DEFAULT_MAX_OUTPUT, session: str = "default") -> str:
    """Show the last proof view the server sent (goals, messages).

    Args:
        max_output: Max characters of output (default 4096)
        session: Session name (default: "default")
    """
    entry = _get_entry(session)
    if not entry:
        return f"ERROR: Session '{session}' not found."
    return _truncate_output(_format_proof_view(entry.session), max_output)


@mcp.tool()
async def coq_search(
    file: str,
    pattern: str,
    line: int = None,
    col: int = 1,
    wait: float = 1.0,
    timeout: float = DEFAULT_TIMEOUT,
    max_output: int = DEFAULT_MAX_OUTPUT,
    session: str = "default",
) -> str:
    """Search for lemmas matching a pattern (Coq's Search command).

    Args:
        file: Path to the .v file providing the context (opened automatically)
        pattern: Search pattern, e.g. "(_ + 0)"
        line: 1-indexed line giving the context (default: the cursor)
        col: 1-indexed column (default 1)
        wait: Seconds to keep collecting streamed results after the request
              returns (default 1)
        timeout: Seconds to wait for the server to accept the search (default 10)
        max_output: Max characters of output (default 4096)
        session: Session name (default: "default")
    """
    entry, document, error = await _open_document(file, session)
    if error:
        return error
    position = _position(line, col) if line is not None else None
    if not await entry.session.search(document, pattern, position, timeout):
        return _last_notice(entry.session)
    if wait > 0:
        await asyncio.sleep(wait)
    text = entry.session.query_panel.text
    return _truncate_output(text if text.strip() else "No results", max_output)


@mcp.tool()
async def coq_query(
    kind: str,
    file: str,
    pattern: str,
    line: int = None,
    col: int = 1,
    timeout: float = DEFAULT_TIMEOUT,
    max_output: int = DEFAULT_MAX_OUTPUT,
    session: str = "default",
) -> str:
    """Run About, Check, Print or Locate.

    Args:
        kind: "about", "check", "print" or "locate"
        file: Path to the .v file providing the context (opened automatically)
        pattern: Term or identifier, e.g. "Nat.add_comm"
        line: 1-indexed line giving the context (default: the cursor)
        col: 1-indexed column (default 1)
        timeout: Seconds to wait for the answer (default 10)
        max_output: Max characters of output (default 4096)
        session: Session name (default: "default")
    """
    if kind not in QUERY_KINDS:
        return f"ERROR: kind must be one of {', '.join(QUERY_KINDS)}, got '{kind}'"
    entry, document, error = await _open_document(file, session)
    if error:
        return error
    position = _position(line, col) if line is not None else None
    if not await entry.session.query(kind, document, pattern, position, timeout):
        return _last_notice(entry.session)
    return _truncate_output(entry.session.query_panel.text, max_output)


@mcp.tool()
async def coq_reset(file: str, timeout: float = DEFAULT_TIMEOUT, session: str = "default") -> str:
    """Reset the server-side Coq state of a file.

    Args:
        file: Path to the .v file (opened automatically)
        timeout: Seconds to wait for the server (default 10)
        session: Session name (default: "default")
    """
    entry, document, error = await _open_document(file, session)
    if error:
        return error
    if not await entry.session.reset(document, timeout):
        return _last_notice(entry.session)
    return f"Reset {document.uri}"


@mcp.tool()
async def coq_highlights(file: str, session: str = "default") -> str:
    """List the checked / sent regions of a file.

    Args:
        file: Path to the .v file
        session: Session name (default: "default")

    Returns: One region per line, "start-end style", 1-indexed line:col
    """
    entry = _get_entry(session)
    file_path = Path(file).resolve()
    if not entry or file_path not in entry.documents:
        return f"ERROR: {file} is not open in session '{session}'."
    marks = entry.session.highlights.marks(entry.documents[file_path])
    if not marks:
        return "No highlights."
    return "\n".join(
        f"{m.start[0] + 1}:{m.start[1] + 1}-{m.end[0] + 1}:{m.end[1] + 1} {m.style}"
        for m in marks
    )


@mcp.tool()
async def coq_config(update: dict = None, toggle_manual: bool = False, session: str = "default") -> str:
    """Change vscoq settings (deep-merged) and send them to the server.

    Example: coq_config({"proof": {"mode": 0}}) switches to manual mode.

    Args:
        update: Partial settings to merge
        toggle_manual: Flip between manual and continuous proof mode
        session: Session name (default: "default")

    Returns: The resulting proof mode
    """
    entry = _get_entry(session)
    if not entry:
        return f"ERROR: Session '{session}' not found."
    if update:
        try:
            entry.session.update_config(update)
        except (KeyError, TypeError, ValueError) as e:
            return f"ERROR: invalid settings: {e}"
    if toggle_manual:
        entry.session.toggle_manual()
    return f"Proof mode: {entry.session.proof_mode.name.lower()}"


def main():
    """CLI entry point for the VSCoq MCP server."""
    import argparse
    import logging

    parser = argparse.ArgumentParser(description="VSCoq MCP Server")
    subparsers = parser.add_subparsers(dest="command")

    serve_parser = subparsers.add_parser("serve", help="Run the MCP server (default)")
    serve_parser.add_argument(
        "--transport",
        choices=["stdio", "http", "sse"],
        default="stdio",
        help="Transport protocol (default: stdio)",
    )
    serve_parser.add_argument("--port", type=int, default=8000, help="Port for HTTP/SSE (default: 8000)")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Host for HTTP/SSE (default: 127.0.0.1)")
    serve_parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    # Also allow serve options at top level
    parser.add_argument("--transport", choices=["stdio", "http", "sse"], default="stdio", help=argparse.SUPPRESS)
    parser.add_argument("--port", type=int, default=8000, help=argparse.SUPPRESS)
    parser.add_argument("--host", default="127.0.0.1", help=argparse.SUPPRESS)
    parser.add_argument("-v", "--verbose", action="store_true", help=argparse.SUPPRESS)

    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
            stream=sys.stderr,
        )
        logging.getLogger("mcp").setLevel(logging.DEBUG)

    if args.transport == "stdio":
        mcp.run(show_banner=False)
    else:
        print(f"VSCoq MCP server starting on {args.host}:{args.port} ({args.transport})", file=sys.stderr)
        mcp.run(transport=args.transport, host=args.host, port=args.port, show_banner=False)


if __name__ == "__main__":
    main()
