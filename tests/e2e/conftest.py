import os
import sys
import textwrap

import pytest

from companion_sdk.config import settings

FAKE_SERVICE_MODULE = "fake_companion"

FAKE_SERVICE_SOURCE = textwrap.dedent(
    """
    import json
    import os
    import signal
    from http.server import BaseHTTPRequestHandler, HTTPServer


    class Handler(BaseHTTPRequestHandler):
        def do_GET(self):
            if self.path.startswith("/api/health"):
                body = json.dumps({"ok": True}).encode("utf-8")
                self.send_response(200)
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                self.wfile.write(body)
            else:
                self.send_response(404)
                self.end_headers()

        def log_message(self, *args):
            pass


    if os.environ.get("FAKE_COMPANION_IGNORE_SIGTERM") == "1":
        signal.signal(signal.SIGTERM, signal.SIG_IGN)

    host = os.environ["PROVIDER_SERVICE_HOST"]
    port = int(os.environ["PROVIDER_SERVICE_PORT"])
    print(f"fake companion listening on {host}:{port}", flush=True)
    HTTPServer((host, port), Handler).serve_forever()
    """
)


@pytest.fixture
def fake_service(tmp_path):
    """A runnable stand-in for the companion service, spawned as ``python -m fake_companion``."""
    if os.name != "posix":
        pytest.skip("Process signal semantics are only exercised on POSIX")

    service_dir = tmp_path / "companion"
    service_dir.mkdir()
    (service_dir / f"{FAKE_SERVICE_MODULE}.py").write_text(FAKE_SERVICE_SOURCE)

    settings.supervisor.app_root = str(tmp_path)
    settings.supervisor.cwd = None
    settings.supervisor.external_base_url = None
    settings.supervisor.python_command = sys.executable
    settings.supervisor.module = FAKE_SERVICE_MODULE
    settings.supervisor.health_poll_interval = 0.05
    settings.supervisor.start_timeout = 15.0
    settings.supervisor.shutdown_grace_period = 0.5
    settings.connection.host = "127.0.0.1"
    settings.connection.port = 0
    return service_dir
