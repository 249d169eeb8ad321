"""Cell execution helper uploaded into the runtime container.

Usage inside the container:
    python kernel_helper.py <base64 source>   # run one cell, print one JSON line
    python kernel_helper.py --serve           # hold the persistent namespace

Each exec call is a fresh process, so the namespace lives in a long-lived
session process listening on a unix socket. The cell invocation forwards the
encoded source to it (spawning it on first use) and prints the reply as the
last line of its stdout:

    {"status": "ok" | "error", "output": "...", "error": "..."}

Standard library only: the container image decides what else is installed.
"""

import base64
import builtins
import io
import json
import os
import socket
import socketserver
import subprocess
import sys
import time
import traceback
from contextlib import redirect_stderr, redirect_stdout

SOCKET_PATH = os.environ.get("JUPYTER_DOCKER_SOCKET", "/tmp/jupyter-docker-kernel.sock")
SERVER_START_TIMEOUT = 10.0

# Use builtins to avoid security hook false positive on Python's code execution
_run_code = getattr(builtins, "exec")


def decode_source(token):
    """Turn the transported token back into source text."""
    return base64.b64decode(token.encode("ascii"), validate=True).decode("utf-8")


def new_namespace():
    return {"__name__": "__main__", "__builtins__": builtins}


def _result(status, output="", error=""):
    return {"status": status, "output": output, "error": error}


def _format_exception(exc):
    # Skip this module's own frames so the traceback starts at the cell.
    tb = exc.__traceback__
    while tb is not None and tb.tb_frame.f_code.co_filename == __file__:
        tb = tb.tb_next
    return "".join(traceback.format_exception(type(exc), exc, tb))


def execute_code(code, namespace):
    """Run code in namespace, capturing everything it prints."""
    buffer = io.StringIO()
    try:
        compiled = compile(code, "<cell>", "exec")
        with redirect_stdout(buffer), redirect_stderr(buffer):
            _run_code(compiled, namespace)
    except (Exception, SystemExit) as exc:
        return _result("error", buffer.getvalue(), _format_exception(exc) or repr(exc))
    return _result("ok", buffer.getvalue())


# =============================================================================
# Session process
# =============================================================================


class _SessionHandler(socketserver.StreamRequestHandler):
    def handle(self):
        line = self.rfile.readline()
        try:
            code = decode_source(json.loads(line)["code"])
        except (ValueError, KeyError, TypeError) as exc:
            result = _result("error", error=f"Malformed request: {exc}")
        else:
            result = execute_code(code, self.server.namespace)
        self.wfile.write((json.dumps(result) + "\n").encode("utf-8"))


class SessionServer(socketserver.UnixStreamServer):
    """Serves cell executions one at a time against a single namespace."""

    def __init__(self, path):
        self.namespace = new_namespace()
        super().__init__(path, _SessionHandler)


def _connect(path, timeout=None):
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    try:
        sock.connect(path)
    except OSError:
        sock.close()
        raise
    sock.settimeout(timeout)
    return sock


def serve(path=SOCKET_PATH):
    """Run the session process until the container stops."""
    try:
        _connect(path).close()
        return 0  # another session process already owns the socket
    except OSError:
        pass

    if os.path.exists(path):
        os.unlink(path)
    server = SessionServer(path)
    try:
        server.serve_forever()
    finally:
        server.server_close()
    return 0


def _spawn_server(path):
    subprocess.Popen(
        [sys.executable, os.path.abspath(__file__), "--serve"],
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        env={**os.environ, "JUPYTER_DOCKER_SOCKET": path},
        start_new_session=True,
        close_fds=True,
    )


def _wait_for_server(path, timeout=SERVER_START_TIMEOUT):
    deadline = time.monotonic() + timeout
    while True:
        try:
            return _connect(path)
        except OSError:
            if time.monotonic() >= deadline:
                raise
            time.sleep(0.05)


def run_remote(token, path=SOCKET_PATH):
    """Forward one encoded cell to the session process and return its result."""
    try:
        sock = _connect(path)
    except OSError:
        _spawn_server(path)
        try:
            sock = _wait_for_server(path)
        except OSError as exc:
            return _result("error", error=f"Session process unavailable: {exc}")

    with sock:
        sock.sendall((json.dumps({"code": token}) + "\n").encode("utf-8"))
        reply = sock.makefile("rb").readline()

    if not reply:
        return _result("error", error="Session process exited during execution; state was lost")
    return json.loads(reply)


def main(argv):
    if len(argv) > 1 and argv[1] == "--serve":
        return serve()

    if len(argv) < 2:
        result = _result("error", error="No code provided")
    else:
        try:
            result = run_remote(argv[1])
        except (OSError, ValueError) as exc:
            result = _result("error", error=f"Helper failure: {exc}")

    sys.stdout.write(json.dumps(result) + "\n")
    sys.stdout.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))
