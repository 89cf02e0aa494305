from __future__ import annotations

import os

PRIMARY_PREFIX = "BOWING_TRACKER_"


def get_env(name: str, default: str | None = None) -> str | None:
    """
    Resolve configuration environment variables.

    Looks up `BOWING_TRACKER_<name>` so deployments can namespace their
    settings; returns `default` when the variable is unset.
    """
    value = os.getenv(f"{PRIMARY_PREFIX}{name}")
    if value is not None:
        return value
    return default
