"""vscoqtop subprocess and LSP (JSON-RPC over stdio) plumbing."""

import asyncio
import itertools
import json
import logging
import os
import shlex
import signal
from pathlib import Path
from typing import Any, Callable

from .coq_config import VSCOQTOP
from .coq_position import DEFAULT_ENCODING, ENCODINGS

logger = logging.getLogger(__name__)

# JSON-RPC error codes
METHOD_NOT_FOUND = -32601

# Server -> client requests we answer with a null result.
_HOUSEKEEPING_REQUESTS = (
    "window/workDoneProgress/create",
    "client/registerCapability",
    "client/unregisterCapability",
)


class LspResponseError(Exception):
    """A request came back with an error payload."""

    def __init__(self, method: str, params: Any, error: dict):
        self.method = method
        self.params = params
        self.code = error.get("code")
        self.message = error.get("message", "")
        self.data = error.get("data")
        super().__init__(f"{method} failed ({self.code}): {self.message}")


def encode_message(message: dict) -> bytes:
    """Frame a JSON-RPC message: Content-Length header (bytes) + UTF-8 body."""
    body = json.dumps(message).encode("utf-8")
    return f"Content-Length: {len(body)}\r\n\r\n".encode("ascii") + body


async def read_message(reader: asyncio.StreamReader) -> dict | None:
    """Read one framed message. Returns None at end of stream."""
    headers = {}
    while True:
        line = await reader.readline()
        if not line:
            return None
        line = line.decode("ascii").strip()
        if not line:
            if headers:
                break
            continue
        key, _, value = line.partition(":")
        headers[key.strip().lower()] = value.strip()

    if "content-length" not in headers:
        raise ValueError(f"Missing Content-Length header: {headers}")
    body = await reader.readexactly(int(headers["content-length"]))
    return json.loads(body.decode("utf-8"))


class CoqLanguageServer:
    """Run vscoqtop and talk LSP to it.

    All I/O happens on the running event loop. Notification handlers are
    plain functions called from the reader task, in arrival order.
    """

    def __init__(self, workdir: str = ".", command: list[str] | None = None, env: dict | None = None,
                 position_encodings: tuple[str, ...] = (DEFAULT_ENCODING,)):
        self.workdir = Path(workdir)
        self.command = command or shlex.split(VSCOQTOP)
        self.env = env  # Extra env vars to merge with os.environ
        self.position_encodings = position_encodings
        self.position_encoding = DEFAULT_ENCODING
        self.server_info: dict | None = None
        self.capabilities: dict = {}
        self.process: asyncio.subprocess.Process | None = None
        self._ids = itertools.count(1)
        self._pending: dict[int, tuple[str, Any, asyncio.Future]] = {}
        self._handlers: dict[str, Callable[[Any], None]] = {}
        self._tasks: list[asyncio.Task] = []
        self._reading = False

    @property
    def is_running(self) -> bool:
        """Process alive and its output still being read."""
        return self.process is not None and self.process.returncode is None and self._reading

    def on_notification(self, method: str, handler: Callable[[Any], None]):
        self._handlers[method] = handler

    async def start(self, initialization_options: dict | None = None, timeout: float = 30) -> str:
        """Spawn vscoqtop and run the initialize handshake."""
        if self.is_running:
            return "vscoqtop already running"

        proc_env = os.environ.copy()
        if self.env:
            proc_env.update(self.env)

        self.process = await asyncio.create_subprocess_exec(
            *self.command,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=self.workdir,
            env=proc_env,
            start_new_session=True,  # New process group for clean kill
        )
        self._reading = True
        self._tasks = [
            asyncio.create_task(self._read_loop()),
            asyncio.create_task(self._stderr_loop()),
        ]

        result = await self.request("initialize", {
            "processId": os.getpid(),
            "clientInfo": {"name": "vscoq-mcp"},
            "rootUri": self.workdir.resolve().as_uri(),
            "workspaceFolders": [
                {"uri": self.workdir.resolve().as_uri(), "name": self.workdir.resolve().name},
            ],
            "capabilities": {
                "general": {"positionEncodings": list(self.position_encodings)},
                "textDocument": {"publishDiagnostics": {}},
                "window": {"workDoneProgress": False},
            },
            "initializationOptions": initialization_options or {},
        }, timeout=timeout)

        self.capabilities = result.get("capabilities", {}) if result else {}
        self.server_info = result.get("serverInfo") if result else None
        encoding = self.capabilities.get("positionEncoding") or DEFAULT_ENCODING
        if encoding not in ENCODINGS:
            raise RuntimeError(f"Server chose unsupported position encoding {encoding!r}")
        self.position_encoding = encoding
        self.notify("initialized", {})

        name = (self.server_info or {}).get("name", "vscoqtop")
        version = (self.server_info or {}).get("version")
        label = f"{name} {version}" if version else name
        return f"{label} started (PID {self.process.pid}, {self.position_encoding})"

    # -- writing

    def _write(self, message: dict):
        if not self.is_running:
            raise RuntimeError("vscoqtop not running")
        logger.debug("--> %s", message.get("method", message.get("id")))
        self.process.stdin.write(encode_message(message))

    def notify(self, method: str, params: Any = None):
        """Send a notification. Fire and forget."""
        self._write({"jsonrpc": "2.0", "method": method, "params": params})

    async def request(self, method: str, params: Any = None, timeout: float | None = None) -> Any:
        """Send a request and wait for its result.

        Raises LspResponseError if the server answers with an error. On
        timeout the request is cancelled and asyncio.TimeoutError propagates.
        """
        request_id = next(self._ids)
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = (method, params, future)
        try:
            self._write({"jsonrpc": "2.0", "id": request_id, "method": method, "params": params})
            await self.process.stdin.drain()
            response = await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            self.cancel(request_id)
            raise
        finally:
            self._pending.pop(request_id, None)

        if "error" in response and response["error"] is not None:
            raise LspResponseError(method, params, response["error"])
        return response.get("result")

    def cancel(self, request_id: int):
        """Ask the server to drop a request. Advisory: a response may still come."""
        self._pending.pop(request_id, None)
        if self.is_running:
            self.notify("$/cancelRequest", {"id": request_id})

    def _respond(self, request_id, result=None, error: dict | None = None):
        message = {"jsonrpc": "2.0", "id": request_id}
        if error is not None:
            message["error"] = error
        else:
            message["result"] = result
        self._write(message)

    # -- reading

    async def _read_loop(self):
        try:
            while True:
                message = await read_message(self.process.stdout)
                if message is None:
                    break
                self._dispatch(message)
        except asyncio.IncompleteReadError:
            logger.warning("vscoqtop closed stdout mid-message")
        except Exception:
            # Framing is lost; nothing after this can be trusted.
            logger.exception("Unreadable message from vscoqtop")
        finally:
            self._reading = False
            self._fail_pending(RuntimeError("lost connection to vscoqtop"))

    async def _stderr_loop(self):
        while True:
            line = await self.process.stderr.readline()
            if not line:
                break
            logger.warning("vscoqtop: %s", line.decode("utf-8", errors="replace").rstrip())

    def _dispatch(self, message: dict):
        method = message.get("method")
        if method is None:
            entry = self._pending.get(message.get("id"))
            if entry:
                future = entry[2]
                if not future.done():
                    future.set_result(message)
            else:
                logger.debug("Dropping response to unknown request %s", message.get("id"))
            return

        if "id" in message:
            self._on_server_request(message)
            return

        handler = self._handlers.get(method)
        if handler is None:
            logger.debug("Unhandled notification %s", method)
            return
        logger.debug("<-- %s", method)
        try:
            handler(message.get("params"))
        except Exception:
            logger.exception("Error handling %s", method)

    def _on_server_request(self, message: dict):
        method = message["method"]
        if method in _HOUSEKEEPING_REQUESTS:
            self._respond(message["id"], None)
        elif method == "workspace/configuration":
            items = (message.get("params") or {}).get("items", [])
            self._respond(message["id"], [None for _ in items])
        else:
            self._respond(message["id"], error={
                "code": METHOD_NOT_FOUND,
                "message": f"Unsupported method: {method}",
            })

    def _fail_pending(self, exc: Exception):
        for _, _, future in list(self._pending.values()):
            if not future.done():
                future.set_exception(exc)
        self._pending.clear()

    # -- shutdown

    async def stop(self):
        """Polite shutdown/exit, then kill the process group if needed."""
        if self.is_running:
            try:
                await self.request("shutdown", None, timeout=5)
                self.notify("exit")
                await asyncio.wait_for(self.process.wait(), timeout=5)
            except (asyncio.TimeoutError, LspResponseError, RuntimeError, ConnectionError):
                logger.debug("vscoqtop did not exit cleanly, killing")
        if self.process is not None and self.process.returncode is None:
            try:
                os.killpg(os.getpgid(self.process.pid), signal.SIGTERM)
            except (ProcessLookupError, PermissionError):
                pass
            try:
                await asyncio.wait_for(self.process.wait(), timeout=5)
            except asyncio.TimeoutError:
                self.process.kill()
                await self.process.wait()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self._fail_pending(RuntimeError("vscoqtop stopped"))
        self.process = None

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()
