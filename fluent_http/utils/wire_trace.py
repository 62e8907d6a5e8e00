"""
fluent_http/utils/wire_trace.py

Debug capture for a single request, in a curl --verbose like layout:

    * Trying POST https://httpbin.org/post
    > POST /post HTTP/1.1
    > Content-Type: application/json
    >
    > {"foo": "bar"}
    < HTTP/1.1 200 OK
    < Content-Type: application/json
    <

The sink is caller-owned: this module writes to it and flushes it,
never opens or closes it.
"""

from __future__ import annotations

import sys
from typing import Any, Iterable, Optional, Tuple, Union
from urllib.parse import urlsplit

DebugSink = Union[bool, Any]

# request bodies longer than this are cut in the trace
BODY_PREVIEW_LIMIT = 2048


def resolve_sink(debug: DebugSink) -> Optional[Any]:
    """Map the `debug` parameter to a writable object, or None when off."""
    if debug is None or debug is False:
        return None
    if debug is True:
        return sys.stdout
    if not hasattr(debug, "write"):
        raise TypeError(f"debug must be a bool or a writable file-like object, got {type(debug).__name__}")
    return debug


class WireTrace:
    def __init__(self, sink: Any):
        self._sink = sink
        mode = getattr(sink, "mode", "")
        self._binary = isinstance(mode, str) and "b" in mode

    @classmethod
    def for_debug(cls, debug: DebugSink) -> Optional["WireTrace"]:
        sink = resolve_sink(debug)
        return cls(sink) if sink is not None else None

    def request(
        self,
        method: str,
        url: str,
        headers: Iterable[Tuple[str, str]],
        body: Optional[bytes] = None,
    ) -> None:
        parts = urlsplit(url)
        target = parts.path or "/"
        if parts.query:
            target = f"{target}?{parts.query}"

        lines = [f"* Trying {method} {url}", f"> {method} {target} HTTP/1.1"]
        lines.extend(f"> {name}: {value}" for name, value in headers)
        lines.append(">")
        if body:
            preview = body[:BODY_PREVIEW_LIMIT].decode("utf-8", errors="replace")
            if len(body) > BODY_PREVIEW_LIMIT:
                preview += f" ... [{len(body) - BODY_PREVIEW_LIMIT} more bytes]"
            lines.append(f"> {preview}")
        self._write(lines)

    def response(
        self,
        http_version: str,
        status_code: int,
        reason: str,
        headers: Iterable[Tuple[str, str]],
    ) -> None:
        lines = [f"< {http_version} {status_code} {reason}".rstrip()]
        lines.extend(f"< {name}: {value}" for name, value in headers)
        lines.append("<")
        self._write(lines)

    def error(self, exc: BaseException) -> None:
        self._write([f"* Error: {type(exc).__name__}: {exc}"])

    def _write(self, lines: list[str]) -> None:
        text = "\n".join(lines) + "\n"
        self._sink.write(text.encode("utf-8") if self._binary else text)
        flush = getattr(self._sink, "flush", None)
        if callable(flush):
            flush()
