"""User options: defaults, XCEDECTL_* environment variables, then explicit overrides."""

from __future__ import annotations

import os
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

ENV_PREFIX = "XCEDECTL_"


class ConfigError(ValueError):
    """Raised when options fail validation."""
    pass


class Options(BaseModel):
    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    executable: str = "xcede"
    beautifier: str = "xcbeautify"
    xcbeautify: bool = True  # pipe build/test output through the beautifier if installed

    notify_on_success: bool = True
    notify_on_failure: bool = True

    shell: str = "/bin/sh"
    grace_period: float = Field(default=3.0, ge=0)  # seconds before status returns to idle
    kill_timeout: float = Field(default=5.0, gt=0)  # seconds between SIGTERM and SIGKILL


def _from_env(environ: Mapping[str, str]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for name in Options.model_fields:
        raw = environ.get(ENV_PREFIX + name.upper())
        if raw is not None:
            # pydantic coerces "0"/"false"/"2.5" etc.
            values[name] = raw
    return values


def load_options(
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Options:
    """
    Build Options from defaults, the environment and `overrides`.

    Overrides whose value is None are ignored so unset CLI flags fall
    through to the environment.

    Raises:
        ConfigError: a value could not be validated.
    """
    values = _from_env(os.environ if environ is None else environ)
    for k, v in (overrides or {}).items():
        if v is not None:
            values[k] = v
    try:
        return Options(**values)
    except ValidationError as e:
        raise ConfigError(str(e)) from e
