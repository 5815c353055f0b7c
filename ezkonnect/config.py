"""Load ezkonnect configuration from ``EZKONNECT_*`` environment variables.

Numeric values are clamped into their allowed range instead of rejected;
enumerated values that do not match a known member raise ``ValueError``.
"""

from __future__ import annotations

import os

from ezkonnect.models.config import (
    AnnotateConfig,
    APIConfig,
    ConfirmationMode,
    EzKonnectConfig,
    KubeConfig,
    LogConfig,
)

_PREFIX = "EZKONNECT_"

_TRUTHY: frozenset[str] = frozenset({"1", "true", "yes", "on"})
_FALSY: frozenset[str] = frozenset({"0", "false", "no", "off", ""})

_VALID_LOG_LEVELS: frozenset[str] = frozenset({"debug", "info", "warning", "error", "critical"})


def _env(name: str) -> str | None:
    return os.environ.get(_PREFIX + name)


def _env_str(name: str, default: str) -> str:
    value = _env(name)
    return value.strip() if value is not None else default


def _env_int(name: str, default: int, minimum: int, maximum: int) -> int:
    raw = _env(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError as exc:
        raise ValueError(f"{_PREFIX}{name} must be an integer, got: {raw!r}") from exc
    return max(minimum, min(maximum, value))


def _env_bool(name: str, default: bool) -> bool:
    raw = _env(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    raise ValueError(f"{_PREFIX}{name} must be a boolean, got: {raw!r}")


def load_config() -> EzKonnectConfig:
    """Build an :class:`EzKonnectConfig` from the current environment."""
    level = _env_str("LOG_LEVEL", "info").lower()
    if level not in _VALID_LOG_LEVELS:
        raise ValueError(f"{_PREFIX}LOG_LEVEL must be one of {sorted(_VALID_LOG_LEVELS)}, got: {level!r}")

    mode_raw = _env_str("CONFIRMATION_MODE", ConfirmationMode.COUNTED.value).lower()
    try:
        mode = ConfirmationMode(mode_raw)
    except ValueError as exc:
        valid = [m.value for m in ConfirmationMode]
        raise ValueError(f"{_PREFIX}CONFIRMATION_MODE must be one of {valid}, got: {mode_raw!r}") from exc

    return EzKonnectConfig(
        api=APIConfig(port=_env_int("API_PORT", 5050, 1024, 65535)),
        log=LogConfig(level=level),
        annotate=AnnotateConfig(
            timeout_seconds=_env_int("ANNOTATE_TIMEOUT", 15, 1, 300),
            confirmation_mode=mode,
        ),
        kube=KubeConfig(kubeconfig=_env_str("KUBECONFIG", "")),
        metrics_enabled=_env_bool("METRICS_ENABLED", True),
    )
