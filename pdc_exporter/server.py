"""HTTP server module.

This module handles:
- Routing scrape, health and landing page requests (WSGI)
- Serving the application from a background thread, one thread per request
"""

import logging
import threading
from typing import Callable, Iterable, List, Tuple
from wsgiref.simple_server import WSGIRequestHandler, make_server

from prometheus_client.exposition import ThreadingWSGIServer

from pdc_exporter.exporter import PDCExporter

# Configure module logger
logger = logging.getLogger(__name__)

LANDING_PAGE = """<html>
<head><title>power-datacenter Exporter</title></head>
<body>
<h1>power-datacenter Exporter</h1>
<p><a href="{metrics_path}">Metrics</a></p>
</body>
</html>
"""


class _LoggingHandler(WSGIRequestHandler):
    """Request handler that logs through the module logger instead of stderr."""

    def log_message(self, format, *args):
        logger.debug(f"{self.address_string()} {format % args}")


def _respond(
    start_response: Callable,
    status: str,
    body: bytes,
    content_type: str = "text/plain; charset=utf-8"
) -> List[bytes]:
    start_response(status, [
        ("Content-Type", content_type),
        ("Content-Length", str(len(body))),
    ])
    return [body]


def create_app(exporter: PDCExporter, metrics_path: str = "/metrics") -> Callable:
    """Build the WSGI application.

    Routes:
        GET <metrics_path>: Prometheus text exposition of the registry
        GET /healthz: Always 200 "OK"
        GET /: Static landing page linking to the metrics path
        other methods on these paths: 405
        anything else: 404

    Args:
        exporter: Exporter whose registry is rendered
        metrics_path: Path under which metrics are exposed

    Returns:
        WSGI application callable
    """
    landing_page = LANDING_PAGE.format(metrics_path=metrics_path).encode("utf-8")

    def app(environ: dict, start_response: Callable) -> Iterable[bytes]:
        path = environ.get("PATH_INFO", "/") or "/"
        method = environ.get("REQUEST_METHOD", "GET")

        if path not in (metrics_path, "/healthz", "/"):
            return _respond(start_response, "404 Not Found", b"Not Found\n")

        if method != "GET":
            return _respond(start_response, "405 Method Not Allowed", b"Method Not Allowed\n")

        if path == metrics_path:
            return exporter.serve_metrics(environ, start_response)

        if path == "/healthz":
            return _respond(start_response, "200 OK", b"OK\n")

        return _respond(start_response, "200 OK", landing_page, "text/html; charset=utf-8")

    return app


def parse_listen_address(address: str) -> Tuple[str, int]:
    """Split a listen address such as ":8080" or "127.0.0.1:9120".

    Args:
        address: host:port string, host may be empty

    Returns:
        Tuple of (host, port)

    Raises:
        ValueError: If the port is missing or not a number
    """
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"Invalid listen address: {address!r}")
    return host.strip("[]"), int(port)


def start_server(app: Callable, host: str, port: int) -> Tuple[ThreadingWSGIServer, threading.Thread]:
    """Start serving the application in a daemon thread.

    Args:
        app: WSGI application
        host: Address to bind, empty for all interfaces
        port: Port to bind, 0 picks a free port

    Returns:
        Tuple of (server, thread)
    """
    httpd = make_server(host, port, app, ThreadingWSGIServer, handler_class=_LoggingHandler)
    thread = threading.Thread(target=httpd.serve_forever, name="http-server", daemon=True)
    thread.start()
    logger.info(f"Serving HTTP on {host or '0.0.0.0'}:{httpd.server_port}")
    return httpd, thread
