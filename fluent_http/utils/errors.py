"""
fluent_http/utils/errors.py

Exceptions raised by the builder layer itself.

Transport failures (httpx.HTTPError, requests.RequestException) are NOT
defined here: they propagate from the HTTP library unmodified.
"""

from __future__ import annotations

from typing import Iterable


class FluentHttpError(Exception):
    """Base class for errors raised by fluent_http (not by the HTTP library)."""


class InvalidMethodError(FluentHttpError, ValueError):
    def __init__(self, method: str, allowed: Iterable[str]):
        self.method = method
        self.allowed = tuple(allowed)
        names = [m.upper() for m in self.allowed]
        super().__init__(
            f"The specified method must be either {', '.join(names[:-1])} or {names[-1]} "
            f"(got {method!r})"
        )


class BodyTypeMismatchError(FluentHttpError, TypeError):
    def __init__(self, current: object, fragment: object):
        self.current_type = type(current).__name__
        self.fragment_type = type(fragment).__name__
        super().__init__(
            f"Cannot add a {self.fragment_type} fragment to a {self.current_type} body; "
            "use with_body() to replace it"
        )


class UnsupportedBodyError(FluentHttpError, ValueError):
    """Body value cannot be encoded with the selected format."""
