from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from dotenv import load_dotenv
from platformdirs import user_data_dir

DEFAULT_UPC_BASE_URL = "https://api.upcitemdb.com/prod/trial"
APP_NAME = "intellistock"
APP_AUTHOR = "IntelliStock"


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class ClientConfig:
    env_name: str
    inventory_base_url: str
    user_base_url: str
    upc_base_url: str = DEFAULT_UPC_BASE_URL
    timeout_seconds: float = 10.0
    retries: int = 1
    retry_backoff_seconds: float = 0.3
    max_connections: int = 20
    verify_ssl: bool = True
    data_dir: Path | None = None
    credential_key: str | None = None
    persist_cache: bool = True

    @property
    def normalized_env(self) -> str:
        return self.env_name.lower().strip()

    @property
    def storage_dir(self) -> Path:
        if self.data_dir is not None:
            return self.data_dir
        return Path(user_data_dir(APP_NAME, APP_AUTHOR))


def _require(values: dict[str, str | None], required: Iterable[str]) -> None:
    missing = [key for key in required if not values.get(key)]
    if missing:
        raise ConfigError(f"Missing required config values: {', '.join(missing)}")


def _coerce_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _read_float(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid {name}: expected a number, got {raw!r}") from exc


def _read_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid {name}: expected an integer, got {raw!r}") from exc


def _validate(condition: bool, message: str) -> None:
    if not condition:
        raise ConfigError(message)


def _read_url(name: str, env_key: str) -> str:
    return (
        (os.getenv(f"{name}_{env_key}") or "").strip()
        or (os.getenv(name) or "").strip()
    )


def load_config(env_file: str | None = None) -> ClientConfig:
    """Load config from environment with optional .env override."""
    load_dotenv(env_file)

    env_name = (os.getenv("INTELLISTOCK_ENV") or "dev").strip()
    env_key = env_name.upper()

    inventory_base_url = _read_url("INTELLISTOCK_INVENTORY_BASE_URL", env_key)
    _require({"INTELLISTOCK_INVENTORY_BASE_URL": inventory_base_url}, ["INTELLISTOCK_INVENTORY_BASE_URL"])
    # the user service historically shared the inventory host
    user_base_url = _read_url("INTELLISTOCK_USER_BASE_URL", env_key) or inventory_base_url
    upc_base_url = (os.getenv("INTELLISTOCK_UPC_BASE_URL") or "").strip() or DEFAULT_UPC_BASE_URL

    timeout_seconds = _read_float("INTELLISTOCK_TIMEOUT_SECONDS", "10")
    _validate(
        timeout_seconds > 0,
        f"Invalid INTELLISTOCK_TIMEOUT_SECONDS: expected > 0, got {timeout_seconds}",
    )

    retries = _read_int("INTELLISTOCK_RETRIES", "1")
    _validate(retries >= 0, f"Invalid INTELLISTOCK_RETRIES: expected >= 0, got {retries}")

    retry_backoff_seconds = _read_float("INTELLISTOCK_RETRY_BACKOFF_SECONDS", "0.3")
    _validate(
        retry_backoff_seconds >= 0,
        (
            "Invalid INTELLISTOCK_RETRY_BACKOFF_SECONDS: "
            f"expected >= 0, got {retry_backoff_seconds}"
        ),
    )

    max_connections = _read_int("INTELLISTOCK_MAX_CONNECTIONS", "20")
    _validate(
        max_connections >= 1,
        f"Invalid INTELLISTOCK_MAX_CONNECTIONS: expected >= 1, got {max_connections}",
    )

    verify_ssl = _coerce_bool(os.getenv("INTELLISTOCK_VERIFY_SSL"), True)
    persist_cache = _coerce_bool(os.getenv("INTELLISTOCK_PERSIST_CACHE"), True)

    raw_data_dir = (os.getenv("INTELLISTOCK_DATA_DIR") or "").strip()
    credential_key = (os.getenv("INTELLISTOCK_CREDENTIAL_KEY") or "").strip() or None

    return ClientConfig(
        env_name=env_name,
        inventory_base_url=inventory_base_url.rstrip("/"),
        user_base_url=user_base_url.rstrip("/"),
        upc_base_url=upc_base_url.rstrip("/"),
        timeout_seconds=timeout_seconds,
        retries=retries,
        retry_backoff_seconds=retry_backoff_seconds,
        max_connections=max_connections,
        verify_ssl=verify_ssl,
        data_dir=Path(raw_data_dir) if raw_data_dir else None,
        credential_key=credential_key,
        persist_cache=persist_cache,
    )
