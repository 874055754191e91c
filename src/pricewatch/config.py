from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Literal, Optional

from pricewatch.lookup.dexscreener import DexScreenerConfig
from pricewatch.lookup.dexscreener import config_from_env as dexscreener_config_from_env
from pricewatch.monitor.cycle import CycleConfig
from pricewatch.storage.alert_store import ALERTS_KEY

StoreBackend = Literal["redis", "memory"]


@dataclass(slots=True)
class Settings:
    """
    Process settings, read from the environment (.env is loaded by main).
    Telegram settings are resolved separately by notify.telegram.config_from_env().
    """
    redis_url: str = "redis://localhost:6379/0"
    alerts_key: str = ALERTS_KEY
    store_backend: StoreBackend = "redis"
    check_interval_s: float = 300.0
    http_host: str = "0.0.0.0"
    http_port: int = 8080
    api_token: Optional[str] = None
    log_level: str = "INFO"
    cycle: CycleConfig = field(default_factory=CycleConfig)
    lookup: DexScreenerConfig = field(default_factory=DexScreenerConfig)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def settings_from_env() -> Settings:
    backend = os.getenv("STORE_BACKEND", "redis").strip().lower()
    if backend not in ("redis", "memory"):
        raise ValueError(f"STORE_BACKEND must be 'redis' or 'memory', got {backend!r}")
    return Settings(
        redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
        alerts_key=os.getenv("ALERTS_KEY", ALERTS_KEY),
        store_backend=backend,  # type: ignore[arg-type]
        check_interval_s=_env_float("CHECK_INTERVAL_S", 300.0),
        http_host=os.getenv("HTTP_HOST", "0.0.0.0"),
        http_port=int(_env_float("HTTP_PORT", 8080)),
        api_token=os.getenv("API_TOKEN") or None,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        cycle=CycleConfig(pacing_s=_env_float("LOOKUP_PACING_S", 0.2)),
        lookup=dexscreener_config_from_env(),
    )
