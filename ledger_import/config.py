"""Runtime settings read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

ENV_API_URL = "LEDGER_IMPORT_API_URL"
ENV_API_KEY = "LEDGER_IMPORT_API_KEY"
ENV_TIMEOUT = "LEDGER_IMPORT_TIMEOUT"
ENV_OUTPUT_STAMP = "LEDGER_IMPORT_OUTPUT_STAMP"

DEFAULT_TIMEOUT = 30.0


@dataclass(frozen=True)
class Settings:
    api_url: Optional[str] = None
    api_key: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT
    output_stamp: Optional[str] = None

    def masked_key(self) -> Optional[str]:
        if not self.api_key:
            return None
        if len(self.api_key) <= 4:
            return "*" * len(self.api_key)
        return "*" * (len(self.api_key) - 4) + self.api_key[-4:]

    def as_dict(self) -> dict[str, Any]:
        return {
            "api_url": self.api_url,
            "api_key": self.masked_key(),
            "timeout": self.timeout,
            "output_stamp": self.output_stamp,
        }


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    env = os.environ if env is None else env
    raw_timeout = env.get(ENV_TIMEOUT, "").strip()
    if raw_timeout:
        try:
            timeout = float(raw_timeout)
        except ValueError:
            raise ValueError(f"{ENV_TIMEOUT} must be a number of seconds, got '{raw_timeout}'") from None
        if timeout <= 0:
            raise ValueError(f"{ENV_TIMEOUT} must be positive, got '{raw_timeout}'")
    else:
        timeout = DEFAULT_TIMEOUT
    return Settings(
        api_url=env.get(ENV_API_URL) or None,
        api_key=env.get(ENV_API_KEY) or None,
        timeout=timeout,
        output_stamp=env.get(ENV_OUTPUT_STAMP) or None,
    )


def timestamp_token(settings: Optional[Settings] = None) -> str:
    settings = settings or load_settings()
    if settings.output_stamp:
        return settings.output_stamp
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
