# src/rscscan/config.py
"""
Runtime configuration for the scanner service, read from RSCSCAN_* environment variables.
"""

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name, "").strip().lower()
    if not value:
        return default
    return value in ("1", "true", "yes", "on")


@dataclass
class Settings:
    database_url: str = "sqlite:///./rscscan.db"
    cache_ttl_seconds: int = 3600
    fingerprint_timeout: float = 10.0
    probe_timeout: float = 15.0
    max_workers: int = 8
    rate_limit_requests: int = 5
    rate_limit_window: float = 10.0
    resolve_hosts: bool = True
    verify_tls: bool = True
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        defaults = cls()
        return cls(
            database_url=os.environ.get("RSCSCAN_DATABASE_URL", defaults.database_url),
            cache_ttl_seconds=int(os.environ.get("RSCSCAN_CACHE_TTL_SECONDS", defaults.cache_ttl_seconds)),
            fingerprint_timeout=float(os.environ.get("RSCSCAN_FINGERPRINT_TIMEOUT", defaults.fingerprint_timeout)),
            probe_timeout=float(os.environ.get("RSCSCAN_PROBE_TIMEOUT", defaults.probe_timeout)),
            max_workers=int(os.environ.get("RSCSCAN_MAX_WORKERS", defaults.max_workers)),
            rate_limit_requests=int(os.environ.get("RSCSCAN_RATE_LIMIT_REQUESTS", defaults.rate_limit_requests)),
            rate_limit_window=float(os.environ.get("RSCSCAN_RATE_LIMIT_WINDOW", defaults.rate_limit_window)),
            resolve_hosts=_env_bool("RSCSCAN_RESOLVE_HOSTS", defaults.resolve_hosts),
            verify_tls=_env_bool("RSCSCAN_VERIFY_TLS", defaults.verify_tls),
            log_level=os.environ.get("RSCSCAN_LOG_LEVEL", defaults.log_level).upper(),
            host=os.environ.get("RSCSCAN_HOST", defaults.host),
            port=int(os.environ.get("RSCSCAN_PORT", defaults.port)),
        )
