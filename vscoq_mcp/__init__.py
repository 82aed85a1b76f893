"""VSCoq MCP server and client library."""

from .coq_config import DEFAULT_CONFIG, ProofMode, deep_merge, make_config
from .coq_document import Document, Mark
from .coq_highlights import HighlightReconciler
from .coq_lsp import CoqLanguageServer, LspResponseError
from .coq_pp import PpParseError, parse_pp, render, render_proof_view
from .coq_query import QueryTracker
from .coq_session import AttachmentError, CoqSession
from .coq_mcp_server import mcp, _sessions, SessionEntry

__all__ = [
    "DEFAULT_CONFIG", "ProofMode", "deep_merge", "make_config",
    "Document", "Mark",
    "HighlightReconciler",
    "CoqLanguageServer", "LspResponseError",
    "PpParseError", "parse_pp", "render", "render_proof_view",
    "QueryTracker",
    "AttachmentError", "CoqSession",
    "mcp", "_sessions", "SessionEntry",
]
