"""Startup-time helper for safe config logging."""

from rentmatch.common.config import EngineSettings
from rentmatch.common.logging import logger

SECRET_MARKERS = ("key", "secret", "password", "token", "dsn")


def _safe_value(name: str, value) -> str:
    """Return a printable value, redacting secret-like settings."""

    if value is None:
        return "<unset>"
    if any(marker in name.lower() for marker in SECRET_MARKERS):
        return "<redacted>"
    return str(value)


def log_startup_config(settings: EngineSettings, keys: list[str]) -> None:
    """Log selected settings for quick troubleshooting."""

    config = {"service": settings.service_name}
    for key in keys:
        config[key] = _safe_value(key, getattr(settings, key, None))
    logger.info("startup_config=%s", config)
