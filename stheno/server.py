"""Development server for Stheno.

Serves the target directory and keeps browsers in sync with the sources:
- Paths that don't exist are retried with a ``.html`` suffix, so ``/about``
  serves ``about.html``.
- ``/_events/`` is a server-sent events stream that emits one ``data`` frame
  per successful rebuild.
- A DebouncedWatcher rebuilds the site whenever the sources change.

Key classes:
- DevServer: Runs the watcher and the HTTP server.
- _SiteHandler: Static file handler with the .html fallback and the SSE endpoint.
"""

from __future__ import annotations

import functools
import logging
import os
import queue
import select
import socket
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

from .broker import EventBroker
from .config import Config
from .errors import ConfigError
from .processors import EVENTS_PATH
from .watcher import DebouncedWatcher

logger = logging.getLogger(__name__)


class _SiteHandler(SimpleHTTPRequestHandler):
    """HTTP request handler serving the built site.

    Attributes:
        broker: Broker feeding the SSE endpoint; None disables the endpoint.
        poll_interval: Seconds between client disconnect checks while streaming.
    """

    broker: EventBroker | None = None
    poll_interval = 0.5
    _streaming = False

    def end_headers(self):
        if not self._streaming:
            self.send_header("Cache-Control", "no-cache, no-store, must-revalidate")
        super().end_headers()

    def log_message(self, format, *args):
        logger.debug("%s - %s", self.address_string(), format % args)

    def translate_path(self, path):
        resolved = super().translate_path(path)
        if (
            not os.path.exists(resolved)
            and not resolved.endswith("/")
            and os.path.isfile(resolved + ".html")
        ):
            return resolved + ".html"
        return resolved

    def do_GET(self):
        if self.broker is not None and self.path.startswith(EVENTS_PATH):
            self._stream_events()
            return
        super().do_GET()

    def _stream_events(self) -> None:
        """Forward broker events to the client until it disconnects."""
        subscription = self.broker.subscribe()
        logger.debug("events client %d connected", subscription.id)
        self._streaming = True
        try:
            self.send_response(200)
            self.send_header("Content-Type", "text/event-stream")
            self.send_header("Connection", "keep-alive")
            self.send_header("Cache-Control", "no-cache")
            self.send_header("Access-Control-Allow-Origin", "*")
            self.end_headers()
            self.wfile.flush()
            # set after the keep-alive header, which resets it
            self.close_connection = True
            while True:
                try:
                    event = subscription.get(timeout=self.poll_interval)
                except queue.Empty:
                    if self._client_disconnected():
                        break
                    continue
                if event is None:
                    break
                # an empty, unnamed event: the client only ever reloads
                self.wfile.write(b"data\n\n")
                self.wfile.flush()
        except (BrokenPipeError, ConnectionResetError) as exc:
            logger.debug("events client %d dropped: %s", subscription.id, exc)
        finally:
            self.broker.unsubscribe(subscription.id)
            logger.debug("events client %d disconnected", subscription.id)

    def _client_disconnected(self) -> bool:
        """Whether the peer closed the connection (readable with no data)."""
        try:
            readable, _, _ = select.select([self.connection], [], [], 0)
            if not readable:
                return False
            return self.connection.recv(1, socket.MSG_PEEK) == b""
        except OSError:
            return True


def make_handler(directory: Path, broker: EventBroker | None = None):
    """Return a request handler factory serving ``directory``."""
    handler_cls = type("_SiteHandlerWithBroker", (_SiteHandler,), {"broker": broker})
    return functools.partial(handler_cls, directory=str(directory))


class DevServer:
    """Development server with live reload.

    Attributes:
        config: Development configuration (see ``load_dev_config``).
        broker: Broker connecting the watcher to SSE clients.
    """

    def __init__(self, config: Config, broker: EventBroker | None = None):
        self.config = config
        self.broker = broker or EventBroker()
        self._watcher: DebouncedWatcher | None = None
        self._httpd: ThreadingHTTPServer | None = None

    @property
    def url(self) -> str:
        return f"http://{self.config.server_host}:{self.config.server_port}"

    def create_http_server(self) -> ThreadingHTTPServer:
        broker = self.broker if self.config.live_reload else None
        handler = make_handler(self.config.target_dir, broker)
        address = (self.config.server_host, self.config.server_port)
        return ThreadingHTTPServer(address, handler)

    def start(self) -> None:
        """Build, watch and serve until interrupted."""
        config = self.config
        if not config.src_dir.is_dir():
            raise ConfigError(config.src_dir, "missing src directory")
        config.target_dir.mkdir(parents=True, exist_ok=True)

        self._watcher = DebouncedWatcher(config, self.broker)
        self._watcher.start()
        self._httpd = self.create_http_server()
        logger.info("serving %s at %s", config.target_dir, self.url)
        try:
            self._httpd.serve_forever()
        except KeyboardInterrupt:
            logger.info("shutting down")
        finally:
            self.stop()

    def stop(self) -> None:
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None
        if self._httpd is not None:
            self._httpd.server_close()
            self._httpd = None
