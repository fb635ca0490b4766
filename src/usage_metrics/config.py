from __future__ import annotations
import os
from dataclasses import dataclass, replace
from typing import Optional

from dotenv import load_dotenv

from .errors import ConfigError

DEFAULT_SOURCE = "docs/usage-metrics.csv"
DEFAULT_OUT_DIR = "dashboard"
DEFAULT_TIMEOUT = 30.0


@dataclass(frozen=True)
class DashboardConfig:
    """Where to read the CSV from, where to write charts, and how long to wait."""
    source: str = DEFAULT_SOURCE
    out_dir: str = DEFAULT_OUT_DIR
    timeout: float = DEFAULT_TIMEOUT
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "DashboardConfig":
        """
        Read USAGE_METRICS_CSV, USAGE_METRICS_OUT, USAGE_METRICS_TIMEOUT and
        USAGE_METRICS_LOG_FILE, after loading a .env file if one is present.
        """
        if dotenv:
            load_dotenv()
        return cls(
            source=os.getenv("USAGE_METRICS_CSV") or DEFAULT_SOURCE,
            out_dir=os.getenv("USAGE_METRICS_OUT") or DEFAULT_OUT_DIR,
            timeout=parse_timeout(os.getenv("USAGE_METRICS_TIMEOUT"), DEFAULT_TIMEOUT),
            log_file=os.getenv("USAGE_METRICS_LOG_FILE") or None,
        )

    def override(self, **values) -> "DashboardConfig":
        # None means "not given on the command line"
        return replace(self, **{k: v for k, v in values.items() if v is not None})


def parse_timeout(raw: Optional[str], default: float) -> float:
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigError(f"timeout must be a number, got {raw!r}") from e
    if value <= 0:
        raise ConfigError(f"timeout must be positive, got {value}")
    return value
