import json
import logging
import threading
from http.cookies import SimpleCookie
from urllib.parse import parse_qs
from wsgiref.simple_server import WSGIRequestHandler, make_server

import pytest

from pdc_exporter.session import PATH_LOGIN, PATH_WORK_INFO


class _QuietHandler(WSGIRequestHandler):
    def log_message(self, format, *args):
        pass


class StubPortal:
    """Minimal stand-in for the vendor portal.

    Login sets a JSESSIONID cookie only for the password "secret"; work info
    answers with ``work_info`` as JSON, or with ``work_info_status`` when that
    is not 200.
    """

    def __init__(self):
        self.session_id = "stub-session"
        self.work_info = {}
        self.work_info_status = "200 OK"
        self.requests = []

    def __call__(self, environ, start_response):
        path = environ["PATH_INFO"]
        query = parse_qs(environ.get("QUERY_STRING", ""))
        cookies = SimpleCookie(environ.get("HTTP_COOKIE", ""))
        self.requests.append((path, query, {k: v.value for k, v in cookies.items()}))

        if path == PATH_LOGIN:
            size = int(environ.get("CONTENT_LENGTH") or 0)
            form = parse_qs(environ["wsgi.input"].read(size).decode())
            headers = [("Content-Type", "text/html")]
            if form.get("password") == ["secret"]:
                headers.append(("Set-Cookie", f"JSESSIONID={self.session_id}; Path=/"))
            start_response("200 OK", headers)
            return [b"<html></html>"]

        if path == PATH_WORK_INFO:
            if self.work_info_status != "200 OK":
                start_response(self.work_info_status, [("Content-Type", "text/plain")])
                return [b"upstream failure"]
            start_response("200 OK", [("Content-Type", "application/json")])
            return [json.dumps(self.work_info).encode()]

        start_response("404 Not Found", [("Content-Type", "text/plain")])
        return [b"not found"]


@pytest.fixture
def portal():
    stub = StubPortal()
    httpd = make_server("127.0.0.1", 0, stub, handler_class=_QuietHandler)
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    stub.base_url = f"http://127.0.0.1:{httpd.server_port}"
    yield stub
    httpd.shutdown()
    httpd.server_close()


@pytest.fixture
def restore_logging():
    """Undo root logger changes made by code that calls basicConfig."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
