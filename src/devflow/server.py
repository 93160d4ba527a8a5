"""Static file server over the generated site, with live reload.

HTML pages get a small client script injected that listens on a
server-sent events stream and reloads the page (or shows a toast) when
the NotificationChannel publishes.
"""

from __future__ import annotations

import json
import queue
import threading
from pathlib import Path

from flask import Flask, Response, abort, send_from_directory
from werkzeug.serving import make_server

from .logging import get_logger
from .notify import NotificationChannel


log = get_logger("devflow.server")

EVENTS_PATH = "/__devflow/events"
CLIENT_PATH = "/__devflow/client.js"
SNIPPET = f'<script async src="{CLIENT_PATH}"></script>'

CLIENT_JS = """(function () {
  var source = new EventSource("%s");
  source.addEventListener("reload", function () {
    window.location.reload();
  });
  source.addEventListener("message", function (e) {
    var box = document.getElementById("__devflow-notify");
    if (!box) {
      box = document.createElement("div");
      box.id = "__devflow-notify";
      box.style.cssText = "position:fixed;top:0;right:0;z-index:9999;" +
        "padding:12px 16px;font:14px sans-serif;color:#fff;" +
        "background:rgba(27,32,50,.85);border-bottom-left-radius:5px;";
      document.body.appendChild(box);
    }
    box.textContent = JSON.parse(e.data);
    box.style.display = "block";
    clearTimeout(box._hide);
    box._hide = setTimeout(function () { box.style.display = "none"; }, 2000);
  });
})();
""" % EVENTS_PATH


def inject_snippet(html: str) -> str:
    idx = html.lower().rfind("</body>")
    if idx < 0:
        return html + SNIPPET
    return html[:idx] + SNIPPET + html[idx:]


def _format_event(event) -> str:
    return f"event: {event.kind.value}\ndata: {json.dumps(event.payload)}\n\n"


def create_app(
    site_dir: str | Path, channel: NotificationChannel, keepalive: float = 15.0
) -> Flask:
    site_dir = Path(site_dir).resolve()
    app = Flask(__name__, static_folder=None)

    @app.route(CLIENT_PATH)
    def client_js():
        return Response(CLIENT_JS, mimetype="application/javascript")

    @app.route(EVENTS_PATH)
    def events():
        q = channel.subscribe()

        def stream():
            try:
                yield "retry: 1000\n\n"
                while True:
                    try:
                        event = q.get(timeout=keepalive)
                    except queue.Empty:
                        yield ": keep-alive\n\n"
                        continue
                    yield _format_event(event)
            finally:
                channel.unsubscribe(q)

        return Response(
            stream(),
            mimetype="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    @app.route("/", defaults={"path": ""})
    @app.route("/<path:path>")
    def static_file(path: str):
        target = _resolve(site_dir, path)
        if target is None:
            missing = site_dir / "404.html"
            if missing.is_file():
                return _serve_html(missing, status=404)
            abort(404)
        if target.suffix.lower() in (".html", ".htm"):
            return _serve_html(target)
        return send_from_directory(site_dir, target.relative_to(site_dir).as_posix())

    return app


def _resolve(site_dir: Path, path: str) -> Path | None:
    candidate = (site_dir / path).resolve()
    try:
        candidate.relative_to(site_dir)
    except ValueError:
        return None
    if candidate.is_dir():
        candidate = candidate / "index.html"
    elif not candidate.exists() and not candidate.suffix:
        # Jekyll permalinks without extension
        candidate = candidate.with_suffix(".html")
    return candidate if candidate.is_file() else None


def _serve_html(path: Path, status: int = 200) -> Response:
    html = path.read_text(encoding="utf-8", errors="replace")
    resp = Response(inject_snippet(html), status=status, mimetype="text/html")
    resp.headers["Cache-Control"] = "no-cache"
    return resp


class LiveReloadServer:
    """Runs the Flask app on a werkzeug server in a daemon thread."""

    def __init__(
        self,
        site_dir: str | Path,
        channel: NotificationChannel,
        host: str = "127.0.0.1",
        port: int = 3000,
    ):
        self.app = create_app(site_dir, channel)
        self.host = host
        self.port = port
        self._server = None
        self._thread: threading.Thread | None = None

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}/"

    def start(self) -> None:
        self._server = make_server(self.host, self.port, self.app, threaded=True)
        self.port = self._server.server_port
        self._thread = threading.Thread(
            target=self._server.serve_forever, name="devflow-server", daemon=True
        )
        self._thread.start()
        log.info("Serving %s", self.url)

    def stop(self) -> None:
        if self._server is None:
            return
        self._server.shutdown()
        if self._thread is not None:
            self._thread.join(timeout=5)
        self._server = None
        self._thread = None
