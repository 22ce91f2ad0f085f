from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "info"
    workers: int = 1
    cors_origins: list[str] = ["*"]


class KeydashConfig(BaseModel):
    server: ServerConfig = ServerConfig()
    store_backend: Literal["sqlite", "memory"] = "sqlite"
    key_store_dir: str | None = None
    seed_default_key: bool = False
    generate_max_attempts: int = 5


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _parse_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def load_config() -> KeydashConfig:
    config_path = Path(os.environ.get("KEYDASH_CONFIG", "/etc/keydash/config.yaml"))

    data: dict = {}
    if config_path.is_file():
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

    env_overrides: dict[str, tuple[list[str], type]] = {
        "KEYDASH_HOST": (["server", "host"], str),
        "KEYDASH_PORT": (["server", "port"], int),
        "KEYDASH_LOG_LEVEL": (["server", "log_level"], str),
        "KEYDASH_WORKERS": (["server", "workers"], int),
        "KEYDASH_CORS_ORIGINS": (["server", "cors_origins"], _parse_list),
        "KEYDASH_STORE_BACKEND": (["store_backend"], str),
        "KEYDASH_KEY_STORE_DIR": (["key_store_dir"], str),
        "KEYDASH_SEED_DEFAULT_KEY": (["seed_default_key"], _parse_bool),
        "KEYDASH_GENERATE_MAX_ATTEMPTS": (["generate_max_attempts"], int),
    }

    for env_var, (key_path, cast) in env_overrides.items():
        value = os.environ.get(env_var)
        if value is None:
            continue

        target = data
        for key in key_path[:-1]:
            if key not in target:
                target[key] = {}
            target = target[key]
        target[key_path[-1]] = cast(value)

    return KeydashConfig(**data)
