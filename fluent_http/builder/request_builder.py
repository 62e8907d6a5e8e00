"""
fluent_http/builder/request_builder.py

WHAT THIS FILE IS FOR
---------------------
This module defines RequestBuilder, a fluent facade over an HTTP transport:

    builder = RequestBuilder().make("https://httpbin.org")
    response = (
        builder.to("post?source=cli")
        .with_body({"foo": "bar"})
        .add_headers({"X-Correlation-Id": "corr-123"})
        .as_json()
        .post()
    )

Every configuration method returns the builder itself; the dispatch
methods (get/post/put/patch/delete/request) return the transport's
response object.

STATE MODEL
-----------
Retained across dispatches (until explicitly changed):
    uri, body, headers, options, format

Single-shot (reset after every dispatch, success OR failure):
    debug sink

DISPATCH PARAMETER SET
----------------------
Each dispatch hands the transport:

    {<format>: body, "headers": headers, "debug": debug, **options}

`options` are merged last, so an option named "headers", "debug", "json",
"form_params" or "body" replaces the builder's own value.

ERRORS
------
- InvalidMethodError     request() with a verb outside GET/POST/PUT/PATCH/DELETE
- BodyTypeMismatchError  add_body() mixing a mapping and a string
- Transport errors (httpx.HTTPError / requests.RequestException) propagate
  unmodified; nothing is retried or wrapped here.

THREADING
---------
A builder is mutable and meant for a single owner. Do not share one
instance between threads.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Mapping, Optional

import structlog

from fluent_http.builder.body_format import BodyFormat, BodyValue, merge_body
from fluent_http.utils.errors import InvalidMethodError
from fluent_http.utils.http_client import ParameterSet, Transport, create_transport
from fluent_http.utils.settings import Settings, get_settings
from fluent_http.utils.wire_trace import DebugSink, resolve_sink

logger = structlog.get_logger(__name__)

ALLOWED_METHODS = ("get", "post", "put", "patch", "delete")

TransportFactory = Callable[[Optional[str]], Transport]


class RequestBuilder:
    """
    Mutable, chainable request configuration plus dispatch.

    `transport_factory(base_uri)` builds the transport; it is called once at
    construction (base_uri=None) and again on every make(). Defaults to
    create_transport() driven by Settings.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport_factory: Optional[TransportFactory] = None,
    ) -> None:
        if transport_factory is None:
            resolved = settings or get_settings()
            transport_factory = lambda base_uri: create_transport(resolved, base_uri=base_uri)  # noqa: E731

        self._transport_factory = transport_factory
        self._transport: Transport = transport_factory(None)

        self._uri: Optional[str] = None
        self._body: BodyValue = {}
        self._headers: Dict[str, Any] = {}
        self._options: Dict[str, Any] = {}
        self._format: BodyFormat = BodyFormat.BODY
        self._debug: DebugSink = False

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "RequestBuilder":
        """Builder bound to settings.base_uri when one is configured."""
        settings = settings or get_settings()
        builder = cls(settings=settings)
        if settings.base_uri:
            builder.make(settings.base_uri)
        return builder

    # ------------------------------------------------------------------ #
    # Transport / target
    # ------------------------------------------------------------------ #
    @property
    def transport(self) -> Transport:
        return self._transport

    def make(self, base_uri: str) -> "RequestBuilder":
        """
        Replace the transport with a new one rooted at `base_uri`.

        The previous transport (and its connection pool) is closed.
        The URI itself is not validated here.
        """
        if not isinstance(base_uri, str) or not base_uri:
            raise ValueError("base_uri must be a non-empty string")

        previous = self._transport
        self._transport = self._transport_factory(base_uri)
        previous.close()
        return self

    def to(self, uri: str) -> "RequestBuilder":
        self._uri = uri
        return self

    # ------------------------------------------------------------------ #
    # Payload
    # ------------------------------------------------------------------ #
    def with_(
        self,
        body: Optional[BodyValue] = None,
        headers: Optional[Mapping[str, Any]] = None,
        options: Optional[Mapping[str, Any]] = None,
    ) -> "RequestBuilder":
        """Replace body, headers and options in one call."""
        self.with_body(body)
        self.with_headers(headers)
        self.with_options(options)
        return self

    def with_body(self, body: Optional[BodyValue] = None) -> "RequestBuilder":
        if body is None:
            body = {}
        self._body = dict(body) if isinstance(body, Mapping) else body
        return self

    def add_body(self, body: BodyValue) -> "RequestBuilder":
        self._body = merge_body(self._body, body)
        return self

    def get_body(self) -> BodyValue:
        return dict(self._body) if isinstance(self._body, Mapping) else self._body

    def with_headers(self, headers: Optional[Mapping[str, Any]] = None) -> "RequestBuilder":
        self._headers = dict(headers or {})
        return self

    def add_headers(self, headers: Mapping[str, Any]) -> "RequestBuilder":
        self._headers = {**self._headers, **headers}
        return self

    def get_headers(self) -> Dict[str, Any]:
        return dict(self._headers)

    def with_options(self, options: Optional[Mapping[str, Any]] = None) -> "RequestBuilder":
        self._options = dict(options or {})
        return self

    def add_options(self, options: Mapping[str, Any]) -> "RequestBuilder":
        self._options = {**self._options, **options}
        return self

    def get_options(self) -> Dict[str, Any]:
        return dict(self._options)

    # ------------------------------------------------------------------ #
    # Encoding
    # ------------------------------------------------------------------ #
    def as_form_params(self) -> "RequestBuilder":
        self._format = BodyFormat.FORM_PARAMS
        return self

    def as_json(self) -> "RequestBuilder":
        self._format = BodyFormat.JSON
        return self

    def as_string(self) -> "RequestBuilder":
        self._format = BodyFormat.BODY
        return self

    @property
    def format(self) -> BodyFormat:
        return self._format

    def debug(self, sink: DebugSink = True) -> "RequestBuilder":
        """
        Arm a wire trace for the next dispatch only.

        sink:
            True            -> trace to stdout
            file-like       -> trace written there (caller opens/closes it)
            False           -> disarm

        The trace is disarmed by the next dispatch attempt, including one
        that fails before reaching the transport (e.g. no URI set).
        """
        resolve_sink(sink)  # fail fast on a non-writable object
        self._debug = sink
        return self

    # ------------------------------------------------------------------ #
    # Dispatch
    # ------------------------------------------------------------------ #
    def get(self) -> Any:
        return self._send("GET")

    def post(self) -> Any:
        return self._send("POST")

    def put(self) -> Any:
        return self._send("PUT")

    def patch(self) -> Any:
        return self._send("PATCH")

    def delete(self) -> Any:
        return self._send("DELETE")

    def request(self, method: str) -> Any:
        if not isinstance(method, str) or method.lower() not in ALLOWED_METHODS:
            raise InvalidMethodError(str(method), ALLOWED_METHODS)
        return self._send(method.upper())

    def build_parameters(self) -> ParameterSet:
        """The parameter set the next dispatch would hand to the transport."""
        parameters: ParameterSet = {
            self._format.value: self._body,
            "headers": self._headers,
            "debug": self._debug,
        }
        return {**parameters, **self._options}

    def _send(self, method: str) -> Any:
        try:
            return self._dispatch(method)
        finally:
            self._debug = False

    def _dispatch(self, method: str) -> Any:
        if self._uri is None:
            raise ValueError("No URI set; call to(uri) before dispatching a request")

        parameters = self.build_parameters()
        logger.info(
            "request_dispatch",
            method=method,
            uri=self._uri,
            format=self._format.value,
            debug=bool(self._debug),
        )

        try:
            response = self._transport.request(method, self._uri, parameters)
        except Exception as exc:
            logger.warning(
                "request_dispatch_failed",
                method=method,
                uri=self._uri,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise

        logger.info(
            "request_dispatch_completed",
            method=method,
            uri=self._uri,
            status_code=getattr(response, "status_code", None),
        )
        return response

    # ------------------------------------------------------------------ #
    # Resource handling
    # ------------------------------------------------------------------ #
    def close(self) -> None:
        self._transport.close()

    def __enter__(self) -> "RequestBuilder":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
