"""
Client implementation for the Redmine REST API.

This module defines the :class:`Redmine` class which sends
authenticated requests to a Redmine server and hands the parsed
response, or an error, to a completion callback.  Every call runs on
a small worker pool owned by the client, so the callback always fires
on a different thread than the one that issued the request.

Usage
-----

.. code-block:: python

    from redmine_api_client import Redmine

    redmine = Redmine("redmine.example.com", api_key="0123456789abcdef")

    def on_issue(err, data):
        if err:
            print("request failed:", err)
            return
        print(data["issue"]["subject"])

    redmine.get_issue_by_id(42, {"include": "journals"}, on_issue)

Each call also returns a :class:`concurrent.futures.Future` that
resolves with the same data, or raises the same error, that the
callback received.

Requests use the ``<resource>.<format>`` path convention of Redmine
(``/issues/42.json``) and authenticate with the ``X-Redmine-API-Key``
header.  When no API key is configured, the username and password are
sent using HTTP Basic authentication.

Reference: https://www.redmine.org/projects/redmine/wiki/Rest_api
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple
from urllib.parse import quote, urlencode

import requests

from .exceptions import (
    ApiError,
    ConfigurationError,
    RedmineError,
    TransportError,
    ValidationError,
)
from .formats import CONTENT_TYPES, FORMATS, decode_body, encode_body

logger = logging.getLogger(__name__)

Callback = Callable[[Optional[RedmineError], Any], None]

METHODS = frozenset({"GET", "POST", "PUT", "DELETE"})
SUCCESS_STATUSES = frozenset({200, 201})
API_KEY_HEADER = "X-Redmine-API-Key"


def _query_value(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return [_query_value(item) for item in value]
    return value


def _query_pairs(key: str, value: Any) -> List[Tuple[str, Any]]:
    if isinstance(value, Mapping):
        pairs: List[Tuple[str, Any]] = []
        for sub_key, sub_value in value.items():
            pairs.extend(_query_pairs(f"{key}[{sub_key}]", sub_value))
        return pairs
    return [(key, _query_value(value))]


def encode_url(path: str, params: Optional[Mapping[str, Any]] = None) -> str:
    """Fold query parameters into a resource path.

    A leading ``/`` is added when ``path`` lacks one.  Parameters are
    percent-encoded in the insertion order of ``params`` and joined
    with ``&``; list values become repeated keys (``k=a&k=b``) and
    nested mappings use Rails brackets (``{"op": {"status_id": "o"}}``
    becomes ``op[status_id]=o``).  When there is nothing to encode the
    path is returned unchanged.

    >>> encode_url("issues.json", {"project_id": 1, "status_id": "open"})
    '/issues.json?project_id=1&status_id=open'
    """
    if not path.startswith("/"):
        path = "/" + path
    if not params:
        return path
    pairs = [
        pair for key, value in params.items() for pair in _query_pairs(str(key), value)
    ]
    query = urlencode(pairs, doseq=True, quote_via=quote)
    if query:
        path = f"{path}?{query}"
    return path


@dataclass
class RedmineConfig:
    """Connection settings of a :class:`Redmine` client.

    The fields may be reassigned after construction; they are read
    again on every request.  Only the constructor validates them.
    """

    host: str
    api_key: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    format: str = "json"
    timeout: Optional[float] = None


class _Completion:
    """Delivers the outcome of one request to its callback, once."""

    def __init__(self, callback: Optional[Callback]) -> None:
        self._callback = callback
        self._settled = False
        self._lock = threading.Lock()

    def settle(self, error: Optional[RedmineError], data: Any) -> bool:
        with self._lock:
            if self._settled:
                return False
            self._settled = True
            callback, self._callback = self._callback, None
        if callback is not None:
            callback(error, data)
        return True


class Redmine:
    """A client for the Redmine REST API.

    Parameters
    ----------
    host : str
        Hostname of the Redmine server, optionally with a scheme, port
        and base path (``"https://example.com/redmine"``).  Plain
        hostnames are contacted over ``http``.
    config : mapping, optional
        Settings given as a mapping, e.g. ``{"apiKey": "...",
        "format": "xml"}``.  Both ``apiKey`` and ``api_key`` are
        accepted.  Keyword arguments take precedence over the mapping.
    api_key : str, optional
        Redmine API access key.  When present, ``username`` and
        ``password`` are ignored.
    username, password : str, optional
        Login credentials, used when no API key is configured.
    format : str, optional
        ``"json"`` (default) or ``"xml"``.
    timeout : float, optional
        Timeout in seconds for connecting and for each read.  A timeout
        is reported as a :class:`TransportError`.
    max_workers : int, optional
        Size of the worker pool that runs requests.  Defaults to 4.

    Raises
    ------
    ConfigurationError
        If the host is missing or not a string, if neither an API key
        nor a username and password are given, or if the format is not
        ``json`` or ``xml``.
    """

    def __init__(
        self,
        host: str,
        config: Optional[Mapping[str, Any]] = None,
        *,
        api_key: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        format: Optional[str] = None,
        timeout: Optional[float] = None,
        max_workers: int = 4,
    ) -> None:
        if not host:
            raise ConfigurationError("host must be provided")
        if not isinstance(host, str):
            raise ConfigurationError("host must be a string, got %r" % type(host).__name__)

        settings = dict(config or {})
        api_key = api_key or settings.get("api_key") or settings.get("apiKey")
        username = username or settings.get("username")
        password = password or settings.get("password")
        format = format or settings.get("format") or "json"
        if timeout is None:
            timeout = settings.get("timeout")

        if not (api_key or (username and password)):
            raise ConfigurationError("an API key or a username and password must be provided")
        if format not in FORMATS:
            raise ConfigurationError(
                "format must be either 'json' or 'xml', got %r" % format
            )

        self.config = RedmineConfig(
            host=host,
            api_key=api_key,
            username=username,
            password=password,
            format=format,
            timeout=timeout,
        )
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="redmine"
        )

    # ------------------------------------------------------------------
    # Configuration accessors
    # ------------------------------------------------------------------
    @property
    def host(self) -> str:
        return self.config.host

    @host.setter
    def host(self, host: str) -> None:
        self.config.host = host

    @property
    def api_key(self) -> Optional[str]:
        return self.config.api_key

    @api_key.setter
    def api_key(self, api_key: Optional[str]) -> None:
        self.config.api_key = api_key

    @property
    def username(self) -> Optional[str]:
        return self.config.username

    @username.setter
    def username(self, username: Optional[str]) -> None:
        self.config.username = username

    @property
    def format(self) -> str:
        return self.config.format

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def close(self) -> None:
        """Wait for in-flight requests and shut down the worker pool."""
        self._executor.shutdown(wait=True)

    def __enter__(self) -> "Redmine":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # HTTP request helpers
    # ------------------------------------------------------------------
    def _prepare_url(self, path: str) -> str:
        """Join a request path onto the configured host."""
        host = self.config.host
        if not (host.startswith("http://") or host.startswith("https://")):
            host = f"http://{host}"
        return f"{host.rstrip('/')}{path}"

    def _credentials(self) -> Tuple[Dict[str, str], Optional[Tuple[str, str]]]:
        """Return the auth headers and the Basic auth pair for a request."""
        if self.config.api_key:
            return {API_KEY_HEADER: self.config.api_key}, None
        return {}, (self.config.username or "", self.config.password or "")

    def request(
        self,
        method: str,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        callback: Optional[Callback] = None,
    ) -> "Future[Any]":
        """Send one request to the Redmine server.

        Parameters
        ----------
        method : str
            ``"GET"``, ``"POST"``, ``"PUT"`` or ``"DELETE"``.
        path : str
            Resource path without the format suffix, e.g.
            ``"/issues/42"``.  The suffix (``.json`` or ``.xml``) is
            appended here.
        params : mapping, optional
            Query parameters for GET, request body for the other
            methods.
        callback : callable, optional
            Invoked exactly once as ``callback(error, data)`` from a
            worker thread.  On success ``error`` is ``None`` and
            ``data`` is the decoded body, or
            ``{"statusCode": ..., "statusMessage": ...}`` when the body
            is empty.  On failure ``data`` is ``None`` and ``error`` is
            an :class:`ApiError`, :class:`TransportError` or
            :class:`MalformedResponseError`.

        Returns
        -------
        concurrent.futures.Future
            Resolves with the data passed to the callback, or raises
            the error passed to it.  An exception raised by the
            callback itself also surfaces here.

        Raises
        ------
        ValidationError
            If the method is not supported or the body cannot be
            serialised.  Nothing is sent in that case.
        """
        method = method.upper()
        if method not in METHODS:
            raise ValidationError(
                "method must be one of %s, got %r" % (", ".join(sorted(METHODS)), method)
            )
        params = params or {}
        fmt = self.config.format
        resource = f"{path}.{fmt}"

        headers, auth = self._credentials()
        body: Optional[bytes] = None
        if method == "GET":
            target = encode_url(resource, params)
        else:
            target = encode_url(resource)
            body = encode_body(fmt, params)
            headers["Content-Type"] = CONTENT_TYPES[fmt]
            headers["Content-Length"] = str(len(body))

        url = self._prepare_url(target)
        completion = _Completion(callback)
        return self._executor.submit(
            self._round_trip, method, url, headers, auth, body, fmt, completion
        )

    def _round_trip(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        auth: Optional[Tuple[str, str]],
        body: Optional[bytes],
        fmt: str,
        completion: _Completion,
    ) -> Any:
        try:
            data = self._send(method, url, headers, auth, body, fmt)
        except RedmineError as exc:
            completion.settle(exc, None)
            raise
        except Exception as exc:
            logger.exception("%s %s failed unexpectedly", method, url)
            error = RedmineError(f"Unexpected failure while requesting {url}: {exc!r}")
            error.__cause__ = exc
            completion.settle(error, None)
            raise error
        completion.settle(None, data)
        return data

    def _send(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        auth: Optional[Tuple[str, str]],
        body: Optional[bytes],
        fmt: str,
    ) -> Any:
        """Perform the HTTP exchange and classify its outcome.

        The status is checked as soon as the headers arrive; the body
        is only pulled from the connection for 200 and 201 responses.
        """
        logger.debug("%s %s", method, url)
        try:
            response = requests.request(
                method=method,
                url=url,
                headers=headers,
                data=body,
                auth=auth,
                timeout=self.config.timeout,
                stream=True,
            )
        except requests.RequestException as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            raise TransportError(f"Failed to connect to {url}: {exc}") from exc

        with response:
            status_code = response.status_code
            reason = response.reason or ""
            if status_code not in SUCCESS_STATUSES:
                logger.warning("%s %s returned %s %s", method, url, status_code, reason)
                raise ApiError(status_code, reason)
            try:
                content = b"".join(
                    chunk for chunk in response.iter_content(chunk_size=8192) if chunk
                )
            except requests.RequestException as exc:
                logger.warning("%s %s failed while reading the body: %s", method, url, exc)
                raise TransportError(f"Connection to {url} failed mid-response: {exc}") from exc

        logger.debug("%s %s -> %s (%d bytes)", method, url, status_code, len(content))
        # Redmine answers some updates and deletions with a single space
        if not content.strip():
            return {"statusCode": status_code, "statusMessage": reason}
        return decode_body(fmt, content)

    # ------------------------------------------------------------------
    # Public convenience methods
    # ------------------------------------------------------------------
    def get(self, path: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        """Perform a GET request and wait for the decoded response.

        See :meth:`request` for full parameter documentation.  Errors
        are raised instead of being passed to a callback.
        """
        return self.request("GET", path, params).result()

    def post(self, path: str, body: Optional[Mapping[str, Any]] = None) -> Any:
        """Perform a POST request and wait for the decoded response."""
        return self.request("POST", path, body).result()

    def put(self, path: str, body: Optional[Mapping[str, Any]] = None) -> Any:
        """Perform a PUT request and wait for the decoded response."""
        return self.request("PUT", path, body).result()

    def delete(self, path: str) -> Any:
        """Perform a DELETE request and wait for the response."""
        return self.request("DELETE", path).result()

    # ------------------------------------------------------------------
    # Issues
    # https://www.redmine.org/projects/redmine/wiki/Rest_Issues
    # ------------------------------------------------------------------
    @staticmethod
    def _check_id(value: Any, name: str) -> int:
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ValidationError(f"{name} must be an integer above 0, got {value!r}")
        return value

    def issues(
        self, params: Optional[Mapping[str, Any]] = None, callback: Optional[Callback] = None
    ) -> "Future[Any]":
        """List issues.

        Redmine paginates the listing (``offset``/``limit``) and returns
        open issues only unless ``status_id`` says otherwise.
        """
        return self.request("GET", "/issues", params, callback)

    def get_issue_by_id(
        self,
        issue_id: int,
        params: Optional[Mapping[str, Any]] = None,
        callback: Optional[Callback] = None,
    ) -> "Future[Any]":
        """Show a single issue, e.g. with ``{"include": "journals"}``."""
        issue_id = self._check_id(issue_id, "Issue ID")
        return self.request("GET", f"/issues/{issue_id}", params, callback)

    def create_issue(
        self, issue: Mapping[str, Any], callback: Optional[Callback] = None
    ) -> "Future[Any]":
        """Create an issue from ``{"issue": {"project_id": ..., "subject": ...}}``."""
        return self.request("POST", "/issues", issue, callback)

    def update_issue(
        self, issue_id: int, issue: Mapping[str, Any], callback: Optional[Callback] = None
    ) -> "Future[Any]":
        issue_id = self._check_id(issue_id, "Issue ID")
        return self.request("PUT", f"/issues/{issue_id}", issue, callback)

    def delete_issue(self, issue_id: int, callback: Optional[Callback] = None) -> "Future[Any]":
        issue_id = self._check_id(issue_id, "Issue ID")
        return self.request("DELETE", f"/issues/{issue_id}", {}, callback)

    def add_watcher(
        self, issue_id: int, params: Mapping[str, Any], callback: Optional[Callback] = None
    ) -> "Future[Any]":
        """Add a watcher; ``params`` must carry the ``user_id`` to add."""
        issue_id = self._check_id(issue_id, "Issue ID")
        if not params or not params.get("user_id"):
            raise ValidationError("user_id (required): id of the user to add as a watcher")
        return self.request("POST", f"/issues/{issue_id}/watchers", params, callback)

    def remove_watcher(
        self, issue_id: int, user_id: int, callback: Optional[Callback] = None
    ) -> "Future[Any]":
        issue_id = self._check_id(issue_id, "Issue ID")
        user_id = self._check_id(user_id, "User ID")
        return self.request("DELETE", f"/issues/{issue_id}/watchers/{user_id}", {}, callback)
