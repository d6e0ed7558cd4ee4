from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class Settings:
    requests_dir: Path = Path("requests")
    default_kubeconfig: Path = Path("/var/secrets/kubeconfig")
    vcluster_bin: str = "vcluster"
    kubectl_bin: str = "kubectl"
    # Rough upper bound on control plane start-up before the secret is worth polling.
    settle_delay: float = 60.0
    secret_poll_interval: float = 15.0
    secret_poll_timeout: float = 180.0
    endpoint_poll_interval: float = 10.0
    endpoint_poll_timeout: float = 180.0
    debug: bool = True
    cors_origins: tuple[str, ...] = ("*",)
    host: str = "0.0.0.0"
    port: int = 8081

    def __post_init__(self) -> None:
        for name in ("secret_poll_interval", "endpoint_poll_interval"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc
    if value < 0:
        raise ValueError(f"{name} must not be negative, got {raw!r}")
    return value


def _env_positive_float(name: str, default: float) -> float:
    value = _env_float(name, default)
    if value == 0:
        raise ValueError(f"{name} must be positive, got {os.getenv(name)!r}")
    return value


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


def get_settings() -> Settings:
    defaults = Settings()
    origins = os.getenv("VCLUSTER_CORS_ORIGINS")
    return Settings(
        requests_dir=Path(os.getenv("VCLUSTER_REQUESTS_DIR", str(defaults.requests_dir))),
        default_kubeconfig=Path(os.getenv("VCLUSTER_DEFAULT_KUBECONFIG", str(defaults.default_kubeconfig))),
        vcluster_bin=os.getenv("VCLUSTER_BIN", defaults.vcluster_bin),
        kubectl_bin=os.getenv("VCLUSTER_KUBECTL_BIN", defaults.kubectl_bin),
        settle_delay=_env_float("VCLUSTER_SETTLE_DELAY", defaults.settle_delay),
        secret_poll_interval=_env_positive_float("VCLUSTER_SECRET_POLL_INTERVAL", defaults.secret_poll_interval),
        secret_poll_timeout=_env_float("VCLUSTER_SECRET_POLL_TIMEOUT", defaults.secret_poll_timeout),
        endpoint_poll_interval=_env_positive_float("VCLUSTER_ENDPOINT_POLL_INTERVAL", defaults.endpoint_poll_interval),
        endpoint_poll_timeout=_env_float("VCLUSTER_ENDPOINT_POLL_TIMEOUT", defaults.endpoint_poll_timeout),
        debug=_env_bool("VCLUSTER_DEBUG", defaults.debug),
        cors_origins=(
            tuple(origin.strip() for origin in origins.split(",") if origin.strip())
            if origins is not None
            else defaults.cors_origins
        ),
        host=os.getenv("VCLUSTER_HOST", defaults.host),
        port=_env_int("VCLUSTER_PORT", defaults.port),
    )
