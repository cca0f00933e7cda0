"""
PineProxy Acceptor
==================
Owns the listening socket and hands every accepted connection to a
:class:`Connection` running on its own thread.

Usage::

    proxy = ProxyServer("0.0.0.0", 8080, pipeline=loader.pipeline(), logger=log)
    result = proxy.start()
    ...
    proxy.stop()

``stop()`` only closes the listener. Connections already accepted keep
running until they finish or fail on their own.
"""

from __future__ import annotations

import logging
import threading
from socketserver import StreamRequestHandler, ThreadingTCPServer
from typing import Any, Dict, Optional

from pineproxy.core.connection import Connection, Connector
from pineproxy.core.interceptors import InterceptorPipeline


# ── Connection Handler ───────────────────────────────────────────────────────

class _ConnectionHandler(StreamRequestHandler):
    """Adapts a socketserver request to a :class:`Connection`."""

    def handle(self):
        proxy: ProxyServer = self.server._proxy  # type: ignore
        connection = Connection(
            self.rfile,
            self.wfile,
            self.client_address,
            pipeline=proxy.pipeline,
            logger=proxy.logger,
            connector=proxy.connector,
        )
        connection.serve()


# ── Listening Server ─────────────────────────────────────────────────────────

class _ListeningServer(ThreadingTCPServer):
    """Threaded TCP server with a proxy reference."""
    allow_reuse_address = True
    daemon_threads = True

    def __init__(self, addr, handler, proxy: "ProxyServer"):
        self._proxy = proxy
        super().__init__(addr, handler)

    def get_request(self):
        # socketserver drops OSError from accept() silently and keeps polling
        try:
            return super().get_request()
        except OSError as e:
            raise RuntimeError(f"accept() failed: {e}") from e

    def handle_error(self, request, client_address):
        self._proxy.logger.error(
            f"Unhandled error serving {client_address[0]}", exc_info=True
        )


# ── Proxy Server ─────────────────────────────────────────────────────────────

class ProxyServer:
    """
    Forwarding HTTP proxy.

    The accept loop runs on one background thread; each accepted connection
    gets its own daemon thread. There is no connection limit.
    """

    def __init__(
        self,
        address: str = "0.0.0.0",
        port: int = 8080,
        pipeline: Optional[InterceptorPipeline] = None,
        logger: Optional[logging.Logger] = None,
        connector: Optional[Connector] = None,
    ):
        self.address = address
        self.port = port
        self.pipeline = pipeline if pipeline is not None else InterceptorPipeline()
        self.logger = logger or logging.getLogger(__name__)
        self.connector = connector
        self.is_running = False
        self._server: Optional[_ListeningServer] = None
        self._thread: Optional[threading.Thread] = None

    # ── Lifecycle ────────────────────────────────────────────────────────

    def start(self) -> Dict[str, Any]:
        """Bind the listening socket and start accepting.

        Returns:
            Status dict with ``ok`` and either the bound address or an error.
        """
        if self.is_running:
            return {"ok": False, "error": f"Proxy already running on port {self.port}"}

        try:
            self._server = _ListeningServer((self.address, self.port), _ConnectionHandler, self)
        except OSError as e:
            self.logger.error(f"Error starting proxy: {e}")
            return {"ok": False, "error": f"Cannot bind {self.address}:{self.port}: {e}"}

        self.port = self._server.server_address[1]
        self._thread = threading.Thread(
            target=self._accept_loop,
            daemon=True,
            name=f"pineproxy-{self.port}",
        )
        self.is_running = True
        self._thread.start()
        return {
            "ok": True,
            "address": self.address,
            "port": self.port,
            "message": f"HTTP proxy listening on {self.address}:{self.port}",
        }

    def stop(self) -> Dict[str, Any]:
        """Close the listening socket. In-flight connections are left alone."""
        if not self.is_running or self._server is None:
            return {"ok": False, "error": "Proxy is not running"}

        self.is_running = False
        try:
            self._server.shutdown()
            self._server.server_close()
        except OSError as e:
            self.logger.debug(f"Error during proxy shutdown: {e}")
        if self._thread is not None:
            self._thread.join(timeout=5)

        self.logger.debug("Proxy stopped")
        return {"ok": True, "message": "Proxy stopped"}

    # ── Accept Loop ──────────────────────────────────────────────────────

    def _accept_loop(self) -> None:
        self.logger.info(f"Server started on {self.address}:{self.port} ...")
        try:
            self._server.serve_forever()
        except Exception as e:
            self.logger.error(f"Error while accepting connection: {e}")
            self.is_running = False
            self._server.server_close()
