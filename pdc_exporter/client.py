"""HTTP request helpers for the Power Datacenter web API.

This module handles:
- Sending form-encoded, empty-body and JSON-body POST requests
- Attaching the JSESSIONID session cookie when a token is known
- Converting unexpected status codes and transport failures into PDC errors
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional

import requests

from pdc_exporter.errors import PDCConnectionError, PDCHTTPError

# Configure module logger
logger = logging.getLogger(__name__)

SESSION_COOKIE = "JSESSIONID"
DEFAULT_TIMEOUT = 20  # seconds

OK_STATUSES = (200,)
OK_STATUSES_JSON = (200, 204)


@dataclass
class PDCResponse:
    """A fully drained API response.

    Attributes:
        status_code: HTTP status code
        body: Raw response body
        cookies: Cookies set by the response, by name
    """
    status_code: int
    body: bytes
    cookies: Dict[str, str] = field(default_factory=dict)

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


class PDCClient:
    """Thin wrapper around requests for the Power Datacenter API.

    Every request is sent to ``base_url + path``. A fresh requests session is
    used per request unless one is supplied, so cookies never leak between
    calls; the session token is always passed explicitly.

    Attributes:
        base_url: Scheme and host of the Power Datacenter portal
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        base_url: str,
        timeout: Optional[float] = None,
        http: Optional[requests.Session] = None
    ):
        """Initialize the client.

        Args:
            base_url: Portal base URL, e.g. http://www.dessmonitor.com
            timeout: Request timeout in seconds (default 20 when unset or 0)
            http: Optional requests session, mainly for testing
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout if timeout else DEFAULT_TIMEOUT
        self._http = http

    def send(
        self,
        method: str,
        path: str,
        session_token: str = "",
        *,
        params: Optional[Dict[str, str]] = None,
        form: Optional[Dict[str, str]] = None,
        json_body: Optional[str] = None,
        ok_statuses: Iterable[int] = OK_STATUSES
    ) -> PDCResponse:
        """Send a request and return the drained response.

        Args:
            method: HTTP method
            path: Path relative to the base URL
            session_token: JSESSIONID value, attached as a cookie if non-empty
            params: Optional query parameters
            form: Optional form fields, sent url-encoded
            json_body: Optional pre-encoded JSON document
            ok_statuses: Status codes treated as success

        Returns:
            PDCResponse with the full body and response cookies

        Raises:
            PDCConnectionError: If the request could not be built or sent
            PDCHTTPError: If the status code is not in ok_statuses
        """
        url = self.base_url + path
        kwargs: Dict[str, Any] = {"timeout": self.timeout}

        if params:
            kwargs["params"] = params
        if session_token:
            kwargs["cookies"] = {SESSION_COOKIE: session_token}
        if form is not None:
            kwargs["data"] = form
        elif json_body is not None:
            kwargs["data"] = json_body.encode("utf-8")
            kwargs["headers"] = {"Content-Type": "application/json"}

        logger.debug(f"{method} {url}")

        try:
            if self._http is not None:
                response = self._http.request(method, url, **kwargs)
            else:
                with requests.Session() as http:
                    response = http.request(method, url, **kwargs)
        except requests.RequestException as e:
            raise PDCConnectionError(f"{method} {url} failed: {e}") from e

        try:
            body = response.content
        except requests.RequestException as e:
            raise PDCConnectionError(f"Reading response from {url} failed: {e}") from e
        finally:
            response.close()

        if response.status_code not in ok_statuses:
            raise PDCHTTPError(
                response.status_code,
                response.reason,
                body.decode("utf-8", errors="replace")
            )

        return PDCResponse(
            status_code=response.status_code,
            body=body,
            cookies={cookie.name: cookie.value for cookie in response.cookies},
        )

    def post_form(
        self,
        path: str,
        session_token: str,
        values: Dict[str, str],
        params: Optional[Dict[str, str]] = None
    ) -> PDCResponse:
        """POST url-encoded form values."""
        return self.send("POST", path, session_token, params=params, form=values)

    def post_empty(
        self,
        path: str,
        session_token: str,
        params: Optional[Dict[str, str]] = None
    ) -> PDCResponse:
        """POST with no body."""
        return self.send("POST", path, session_token, params=params)

    def post_json(
        self,
        path: str,
        session_token: str,
        json_string: str,
        params: Optional[Dict[str, str]] = None
    ) -> PDCResponse:
        """POST a JSON document. 204 No Content also counts as success."""
        return self.send(
            "POST",
            path,
            session_token,
            params=params,
            json_body=json_string,
            ok_statuses=OK_STATUSES_JSON
        )
