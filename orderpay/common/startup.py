"""Startup-time helpers for safe config logging."""

from orderpay.common.config import CommonSettings
from orderpay.common.logging import logger

SECRET_MARKERS = ("key", "secret", "password", "token", "dsn")


def _safe_value(name: str, value) -> str:
    """Render one setting, redacting anything that may carry credentials."""

    if value is None:
        return "<unset>"
    if any(marker in name.lower() for marker in SECRET_MARKERS):
        return "<redacted>"
    return str(value)


def log_startup_config(config: CommonSettings, fields: list[str]) -> None:
    """Log the effective value of selected settings for quick troubleshooting."""

    rendered = {"service": config.service_name}
    for field in fields:
        rendered[field] = _safe_value(field, getattr(config, field, None))
    logger.info("startup_config=%s", rendered)
