"""
fluent_http/builder/body_format.py

Body encoding tag and the homogeneous merge rule used by add_body().

A request body is one of two shapes:
- Mapping[str, Any]  -> structured, encoded as JSON or form params
- str                -> raw, sent verbatim

Merging is only defined between two values of the same shape.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Mapping, Union

from fluent_http.utils.errors import BodyTypeMismatchError

BodyValue = Union[Mapping[str, Any], str]


class BodyFormat(str, Enum):
    # values double as the parameter-set key the body is sent under
    FORM_PARAMS = "form_params"
    JSON = "json"
    BODY = "body"


def merge_body(current: BodyValue, fragment: BodyValue) -> BodyValue:
    """
    Merge `fragment` into `current` and return the new body.

    - mapping + mapping -> shallow merge, keys from `fragment` win
    - str + str         -> concatenation
    - anything else     -> BodyTypeMismatchError
    """
    if isinstance(current, Mapping) and isinstance(fragment, Mapping):
        merged: Dict[str, Any] = {**current, **fragment}
        return merged

    if isinstance(current, str) and isinstance(fragment, str):
        return current + fragment

    raise BodyTypeMismatchError(current, fragment)
