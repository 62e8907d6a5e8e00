"""
fluent_http/utils/settings.py

WHAT THIS FILE IS FOR
---------------------
This module defines the *single source of truth* for runtime configuration
of the fluent_http request builder.

It is responsible for:
- Defining all supported configuration fields (via Pydantic BaseSettings)
- Loading default values from parameters/parameters.yaml
- Overriding defaults with environment variables (FLUENT_HTTP_*)
- Exposing a cached, fully-validated Settings object

LOAD & PRECEDENCE MODEL
-----------------------
Configuration is loaded in the following order (last wins):

1) YAML defaults from:
       parameters/parameters.yaml
2) Environment variables:
       FLUENT_HTTP_*

Per-request values passed through RequestBuilder.with_options() always win
over anything configured here.

WHAT THIS FILE IS NOT FOR
-------------------------
This module is NOT responsible for:
- Building or sending requests
- Choosing request bodies, headers or formats

It should only define *configuration structure and loading rules*.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import structlog
import yaml
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger(__name__)

PARAMETERS_PATH = Path(__file__).resolve().parents[2] / "parameters" / "parameters.yaml"


class Settings(BaseSettings):
    """
    Runtime settings for fluent_http transports.

    Load order / precedence:
        1) YAML defaults (parameters/parameters.yaml)
        2) Environment variables (FLUENT_HTTP_*), overriding YAML
    """

    model_config = SettingsConfigDict(
        env_prefix="FLUENT_HTTP_",
        extra="ignore",
    )

    # Base URI used by RequestBuilder.from_settings(); None -> unbound transport
    base_uri: Optional[str] = None

    # Which HTTP library performs the actual I/O
    transport_backend: Literal["httpx", "requests"] = "httpx"

    # Socket-level timeouts, passed straight to the HTTP library
    # - timeout_seconds: overall / read timeout
    # - connect_timeout_seconds: None -> same as timeout_seconds
    timeout_seconds: float = 60.0
    connect_timeout_seconds: Optional[float] = None

    # Default transport behavior (overridable per request via options)
    http_errors: bool = Field(
        default=True,
        description="If true, 4xx/5xx responses raise the HTTP library's status error.",
    )
    allow_redirects: bool = True
    verify_ssl: bool = True

    user_agent: str = "fluent-http/1.0"


@lru_cache(maxsize=1)
def _load_yaml_parameters() -> Dict[str, Any]:
    """
    Load base configuration from parameters/parameters.yaml.

    The file is optional; a missing or malformed file yields no defaults.
    """
    if not PARAMETERS_PATH.exists():
        logger.debug("parameters_yaml_missing", expected=str(PARAMETERS_PATH))
        return {}

    try:
        with PARAMETERS_PATH.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            logger.warning(
                "parameters_yaml_not_dict",
                path=str(PARAMETERS_PATH),
                type=type(data).__name__,
            )
            return {}
        logger.info("parameters_yaml_loaded", path=str(PARAMETERS_PATH))
        return data
    except Exception as exc:  # noqa: BLE001
        logger.error("parameters_yaml_load_error", path=str(PARAMETERS_PATH), error=str(exc))
        return {}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Construct and return the final validated Settings object.

    Cached (singleton per process). Call get_settings.cache_clear()
    after changing the environment in tests.
    """
    # 1) YAML defaults
    yaml_data = _load_yaml_parameters()

    # 2) env overrides (partial)
    try:
        env_settings = Settings()
        env_data = env_settings.model_dump(exclude_unset=True)
    except ValidationError as exc:
        logger.warning("settings_env_validation_error", errors=exc.errors())
        env_data = {}

    # 3) merge + final validation
    merged: Dict[str, Any] = {**yaml_data, **env_data}
    settings = Settings.model_validate(merged)

    logger.info(
        "settings_loaded",
        base_uri=settings.base_uri,
        transport_backend=settings.transport_backend,
        timeout_seconds=settings.timeout_seconds,
        http_errors=settings.http_errors,
        allow_redirects=settings.allow_redirects,
    )

    return settings
