"""
fluent_http/utils/http_client.py

WHAT THIS FILE IS FOR
---------------------
This module provides the *transport* layer used by RequestBuilder:
a very thin adapter that takes a parameter set

    {"json" | "form_params" | "body": <body>,
     "headers": {...}, "debug": False | True | <sink>, ...options}

and turns it into exactly one call on a real HTTP library.

Two backends exist:
- HttpxTransport    (httpx.Client)     -> default
- RequestsTransport (requests.Session) -> transport_backend="requests"

Both expose the same two methods:
- request(method, uri, parameters) -> library response object
- close()

RECOGNISED PARAMETER KEYS
-------------------------
    json             body serialized as JSON
    form_params      mapping, URL-form-encoded
    body             raw str/bytes body (empty mapping / None -> no body)
    headers          mapping; list/tuple values become repeated headers
    debug            False, True (stdout) or a writable sink -> WireTrace
    query            mapping or string; replaces the URI's query string
    timeout          overall timeout (seconds)
    connect_timeout  connect timeout (seconds)
    allow_redirects  follow redirects or not
    http_errors      raise on 4xx/5xx responses
    auth             (username, password) basic auth
    cookies          mapping of cookies for this request

Unknown keys are ignored (logged at debug level).

WHAT THIS FILE IS NOT FOR
-------------------------
This module is NOT responsible for:
- Retry logic
- Response parsing (callers get the library's response object)
- Error translation: httpx.HTTPError / requests.RequestException
  propagate to the caller unmodified

BASE URI JOINING
----------------
Relative URIs are appended to the base URI path:

    base_uri="https://api.example.com/v1"  +  "users?id=1"
        -> https://api.example.com/v1/users?id=1

This is httpx's rule; RequestsTransport applies the same rule through
join_uri() so both backends resolve URIs identically. Absolute URIs are
used as-is.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple
from urllib.parse import urlencode, urlsplit, urlunsplit

import httpx
import requests
import structlog

from fluent_http.utils.errors import UnsupportedBodyError
from fluent_http.utils.settings import Settings
from fluent_http.utils.wire_trace import WireTrace

logger = structlog.get_logger(__name__)

ParameterSet = Dict[str, Any]

BODY_KEYS = ("json", "form_params", "body")

KNOWN_KEYS = frozenset(
    BODY_KEYS
    + (
        "headers",
        "debug",
        "query",
        "timeout",
        "connect_timeout",
        "allow_redirects",
        "http_errors",
        "auth",
        "cookies",
    )
)


class Transport(Protocol):
    def request(self, method: str, uri: str, parameters: ParameterSet) -> Any: ...

    def close(self) -> None: ...


# ---------------------------------------------------------------------------
# Shared parameter helpers
# ---------------------------------------------------------------------------
def join_uri(base_uri: Optional[str], uri: str) -> str:
    if not base_uri or urlsplit(uri).scheme:
        return uri
    base = base_uri if base_uri.endswith("/") else base_uri + "/"
    return base + uri.lstrip("/")


def apply_query(uri: str, query: Any) -> str:
    """Replace the query string of `uri` with `query` (mapping or pre-encoded str)."""
    if query is None:
        return uri
    encoded = query if isinstance(query, str) else urlencode(query, doseq=True)
    parts = urlsplit(uri)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, encoded, parts.fragment))


def header_items(headers: Optional[Mapping[str, Any]]) -> List[Tuple[str, str]]:
    items: List[Tuple[str, str]] = []
    for name, value in (headers or {}).items():
        values = value if isinstance(value, (list, tuple)) else [value]
        items.extend((str(name), str(v)) for v in values)
    return items


def raw_content(body: Any) -> Optional[bytes]:
    """Encode a raw `body` parameter; None means "send no body"."""
    if body is None:
        return None
    if isinstance(body, bytes):
        return body
    if isinstance(body, str):
        return body.encode("utf-8")
    if isinstance(body, Mapping):
        if not body:
            return None
        raise UnsupportedBodyError(
            "A mapping body cannot be sent as a raw string body; "
            "select as_json() or as_form_params() first"
        )
    return str(body).encode("utf-8")


def form_fields(form: Any) -> Dict[str, Any]:
    if form is None:
        return {}
    if not isinstance(form, Mapping):
        raise UnsupportedBodyError(
            f"form_params must be a mapping, got {type(form).__name__}; "
            "use as_string() to send a raw body"
        )
    return dict(form)


def _client_timeout(settings: Settings) -> httpx.Timeout:
    # connect=None would disable the connect timeout in httpx, so only pass it when set
    if settings.connect_timeout_seconds is None:
        return httpx.Timeout(settings.timeout_seconds)
    return httpx.Timeout(settings.timeout_seconds, connect=settings.connect_timeout_seconds)


def _drop_unknown(params: ParameterSet) -> ParameterSet:
    kept: ParameterSet = {}
    for key, value in params.items():
        if key in KNOWN_KEYS:
            kept[key] = value
        else:
            logger.debug("transport_option_ignored", option=key)
    return kept


# ---------------------------------------------------------------------------
# httpx backend
# ---------------------------------------------------------------------------
class HttpxTransport:
    """
    Transport backed by a single httpx.Client (one connection pool).

    `transport` lets callers inject an httpx transport, e.g.
    httpx.MockTransport in tests.
    """

    def __init__(
        self,
        settings: Settings,
        base_uri: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_uri = base_uri
        self._http_errors = settings.http_errors
        self._allow_redirects = settings.allow_redirects
        self._timeout = _client_timeout(settings)
        self._client = httpx.Client(
            base_url=base_uri or "",
            timeout=self._timeout,
            follow_redirects=settings.allow_redirects,
            verify=settings.verify_ssl,
            headers={"User-Agent": settings.user_agent},
            transport=transport,
        )

    def request(self, method: str, uri: str, parameters: ParameterSet) -> httpx.Response:
        params = _drop_unknown(parameters)
        trace = WireTrace.for_debug(params.pop("debug", False))
        http_errors = params.pop("http_errors", self._http_errors)
        follow_redirects = params.pop("allow_redirects", self._allow_redirects)
        auth = params.pop("auth", None)

        request = self._client.build_request(
            method,
            apply_query(uri, params.pop("query", None)),
            **self._build_kwargs(params),
        )

        if trace:
            trace.request(request.method, str(request.url), request.headers.multi_items(), request.content)

        try:
            response = self._client.send(
                request,
                auth=tuple(auth) if auth else httpx.USE_CLIENT_DEFAULT,
                follow_redirects=follow_redirects,
            )
        except httpx.HTTPError as exc:
            if trace:
                trace.error(exc)
            raise

        if trace:
            trace.response(
                response.http_version,
                response.status_code,
                response.reason_phrase,
                response.headers.multi_items(),
            )

        if http_errors and response.is_error:
            response.raise_for_status()

        return response

    def close(self) -> None:
        self._client.close()

    def _build_kwargs(self, params: ParameterSet) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"headers": header_items(params.get("headers"))}

        if "json" in params:
            kwargs["json"] = params["json"]
        if "form_params" in params:
            kwargs["data"] = form_fields(params["form_params"])
        if "body" in params:
            content = raw_content(params["body"])
            if content is not None:
                kwargs["content"] = content

        if params.get("cookies") is not None:
            kwargs["cookies"] = params["cookies"]
        if "timeout" in params:
            timeout = params["timeout"]
            kwargs["timeout"] = httpx.Timeout(timeout, connect=params.get("connect_timeout", timeout))
        elif "connect_timeout" in params:
            # only the connect phase changes; read/write/pool keep the client defaults
            kwargs["timeout"] = httpx.Timeout(
                connect=params["connect_timeout"],
                read=self._timeout.read,
                write=self._timeout.write,
                pool=self._timeout.pool,
            )

        return kwargs


# ---------------------------------------------------------------------------
# requests backend
# ---------------------------------------------------------------------------
_REQUESTS_HTTP_VERSIONS = {10: "HTTP/1.0", 11: "HTTP/1.1", 20: "HTTP/2"}


class RequestsTransport:
    """Transport backed by a requests.Session."""

    def __init__(self, settings: Settings, base_uri: Optional[str] = None):
        self.base_uri = base_uri
        self._http_errors = settings.http_errors
        self._allow_redirects = settings.allow_redirects
        self._verify = settings.verify_ssl
        self._timeout: Tuple[float, float] = (
            settings.connect_timeout_seconds or settings.timeout_seconds,
            settings.timeout_seconds,
        )
        self._session = requests.Session()
        self._session.headers["User-Agent"] = settings.user_agent

    def request(self, method: str, uri: str, parameters: ParameterSet) -> requests.Response:
        params = _drop_unknown(parameters)
        trace = WireTrace.for_debug(params.pop("debug", False))
        http_errors = params.pop("http_errors", self._http_errors)
        allow_redirects = params.pop("allow_redirects", self._allow_redirects)

        prepared = self._session.prepare_request(
            requests.Request(
                method,
                apply_query(join_uri(self.base_uri, uri), params.pop("query", None)),
                **self._build_kwargs(params),
            )
        )

        if trace:
            body = prepared.body.encode("utf-8") if isinstance(prepared.body, str) else prepared.body
            trace.request(prepared.method or method, prepared.url or uri, prepared.headers.items(), body)

        env = self._session.merge_environment_settings(prepared.url, {}, None, self._verify, None)
        try:
            response = self._session.send(
                prepared,
                timeout=self._timeout_for(params),
                allow_redirects=allow_redirects,
                **env,
            )
        except requests.RequestException as exc:
            if trace:
                trace.error(exc)
            raise

        if trace:
            raw_version = getattr(getattr(response, "raw", None), "version", 11)
            trace.response(
                _REQUESTS_HTTP_VERSIONS.get(raw_version, "HTTP/1.1"),
                response.status_code,
                response.reason or "",
                response.headers.items(),
            )

        if http_errors and response.status_code >= 400:
            response.raise_for_status()

        return response

    def close(self) -> None:
        self._session.close()

    def _timeout_for(self, params: ParameterSet) -> Tuple[Optional[float], Optional[float]]:
        default_connect, default_read = self._timeout
        read = params.get("timeout", default_read)
        connect = params.get("connect_timeout", params["timeout"] if "timeout" in params else default_connect)
        return connect, read

    @staticmethod
    def _build_kwargs(params: ParameterSet) -> Dict[str, Any]:
        # requests wants a plain dict; repeated headers are folded into one value
        headers: Dict[str, str] = {}
        for name, value in header_items(params.get("headers")):
            headers[name] = f"{headers[name]}, {value}" if name in headers else value
        kwargs: Dict[str, Any] = {"headers": headers}

        if "json" in params:
            kwargs["json"] = params["json"]
        if "form_params" in params:
            kwargs["data"] = form_fields(params["form_params"])
        if "body" in params:
            content = raw_content(params["body"])
            if content is not None:
                kwargs["data"] = content

        if params.get("cookies") is not None:
            kwargs["cookies"] = params["cookies"]
        if params.get("auth"):
            kwargs["auth"] = tuple(params["auth"])

        return kwargs


def create_transport(settings: Settings, base_uri: Optional[str] = None) -> Transport:
    """Build the transport selected by settings.transport_backend."""
    logger.debug("transport_created", backend=settings.transport_backend, base_uri=base_uri)
    if settings.transport_backend == "requests":
        return RequestsTransport(settings, base_uri=base_uri)
    return HttpxTransport(settings, base_uri=base_uri)
