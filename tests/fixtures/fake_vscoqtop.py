"""Scripted stand-in for vscoqtop: speaks just enough LSP for the tests."""

import json
import os
import sys

stdin = sys.stdin.buffer
stdout = sys.stdout.buffer


def send(message):
    body = json.dumps(message).encode("utf-8")
    stdout.write(b"Content-Length: %d\r\n\r\n" % len(body) + body)
    stdout.flush()


def notify(method, params):
    send({"jsonrpc": "2.0", "method": method, "params": params})


def read():
    headers = {}
    while True:
        line = stdin.readline()
        if not line:
            return None
        line = line.decode("ascii").strip()
        if not line:
            break
        key, _, value = line.partition(":")
        headers[key.strip().lower()] = value.strip()
    return json.loads(stdin.read(int(headers["content-length"])).decode("utf-8"))


def proof_view(position):
    goal = ["Ppcmd_glue", [
        ["Ppcmd_string", "n + 0 = n"],
        ["Ppcmd_print_break", 1, 0],
        ["Ppcmd_string", "(line %d)" % position["line"]],
    ]]
    return {
        "proof": {
            "goals": [{"id": 1, "hypotheses": [["Ppcmd_string", "n : nat"]], "goal": goal}],
            "shelvedGoals": [],
            "givenUpGoals": [],
        },
        "messages": [],
    }


def main():
    settings = {}
    while True:
        message = read()
        if message is None:
            return
        method = message.get("method")
        params = message.get("params") or {}
        if method == "initialize":
            if os.environ.get("FAKE_VSCOQTOP_BAD_FRAME"):
                # No Content-Length; the process stays up.
                stdout.write(b"Content-Type: x\r\n\r\n{}")
                stdout.flush()
                continue
            sys.stderr.write("fake-vscoqtop: initializing\n")
            sys.stderr.flush()
            settings = params.get("initializationOptions", {})
            # Ask the client something before answering, like real servers do.
            send({"jsonrpc": "2.0", "id": "srv-1", "method": "window/workDoneProgress/create",
                  "params": {"token": "t"}})
            send({"jsonrpc": "2.0", "id": message["id"], "result": {
                "capabilities": {"positionEncoding": "utf-16"},
                "serverInfo": {"name": "fake-vscoqtop", "version": "0.0"},
            }})
        elif method == "vscoq/interpretToPoint":
            uri = params["textDocument"]["uri"]
            line = params["position"]["line"]
            notify("vscoq/updateHighlights", {
                "uri": uri,
                "processedRange": [{"start": {"line": 0, "character": 0},
                                    "end": {"line": line, "character": 0}}],
            })
            if settings.get("proof", {}).get("mode") == 0:
                notify("vscoq/moveCursor", {"uri": uri, "range": {
                    "start": {"line": line, "character": 0},
                    "end": {"line": line, "character": 2},
                }})
            notify("vscoq/proofView", proof_view(params["position"]))
        elif method == "vscoq/stepForward":
            notify("vscoq/proofView", {"proof": None, "messages": [[3, ["Ppcmd_string", "stepped"]]]})
        elif method == "workspace/didChangeConfiguration":
            settings = params["settings"]
        elif method == "vscoq/search":
            for name in ("Nat.add_0_r", "plus_n_O"):
                notify("vscoq/searchResult", {
                    "id": params["id"],
                    "name": ["Ppcmd_string", name],
                    "statement": ["Ppcmd_string", "forall n : nat, n + 0 = n"],
                })
            send({"jsonrpc": "2.0", "id": message["id"], "result": None})
        elif method == "vscoq/check" and params["pattern"] == "hang":
            pass  # never answered
        elif method == "vscoq/check":
            send({"jsonrpc": "2.0", "id": message["id"],
                  "result": ["Ppcmd_string", "%s\n     : Set" % params["pattern"]]})
        elif method in ("vscoq/about", "vscoq/print", "vscoq/locate", "vscoq/resetCoq"):
            send({"jsonrpc": "2.0", "id": message["id"],
                  "error": {"code": -32603, "message": "not supported by fake server"}})
        elif method == "shutdown":
            send({"jsonrpc": "2.0", "id": message["id"], "result": None})
        elif method == "exit":
            return
        elif "id" in message and method is not None:
            send({"jsonrpc": "2.0", "id": message["id"], "result": None})


if __name__ == "__main__":
    main()
