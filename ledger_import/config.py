from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path

import yaml

ENV_PREFIX = "LEDGER_IMPORT_"


@dataclass(frozen=True)
class Settings:
    # API
    base_url: str | None = None
    api_key: str | None = None
    timeout_seconds: float = 20.0
    retries: int = 3
    retry_backoff_seconds: float = 0.5
    tls_skip_verify: bool = False
    ca_file: str | None = None

    # Import
    csv_file: str | None = None
    csv_delimiter: str = ","
    validate_coa: bool = False
    auto_approve: bool = False

    # Paths / logging
    log_dir: str = "./logs"
    report_dir: str = "./reports"
    log_level: str = "INFO"
    report_items_limit: int = 200


@dataclass(frozen=True)
class LoadedSettings:
    settings: Settings
    sources_used: list[str]


BOOL_FIELDS = {"tls_skip_verify", "validate_coa", "auto_approve"}
INT_FIELDS = {"retries", "report_items_limit"}
FLOAT_FIELDS = {"timeout_seconds", "retry_backoff_seconds"}


def _read_yaml_config(path: Path) -> dict:
    if not path.exists() or not path.is_file():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            return {}
        return data


def _env_get(name: str) -> str | None:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return None
    return v.strip()


def parse_bool(v: str) -> bool:
    vv = v.strip().lower()
    if vv in ("1", "true", "yes", "y"):
        return True
    if vv in ("0", "false", "no", "n"):
        return False
    raise ValueError(f"Invalid boolean env value: {v}")


def _coerce(name: str, value):
    if value is None:
        return None
    if name in BOOL_FIELDS:
        return value if isinstance(value, bool) else parse_bool(str(value))
    if name in INT_FIELDS:
        return int(value)
    if name in FLOAT_FIELDS:
        return float(value)
    return value


def load_settings(
    config_path: str | None,
    cli_overrides: dict,
) -> LoadedSettings:
    """
    Priority: CLI > ENV > config > defaults

    ENV: LEDGER_IMPORT_<FIELD> (например, LEDGER_IMPORT_BASE_URL, LEDGER_IMPORT_API_KEY).
    """
    sources: list[str] = []
    names = [f.name for f in fields(Settings)]
    merged: dict = {f.name: f.default for f in fields(Settings)}

    # 1) config file
    if config_path:
        cfg = _read_yaml_config(Path(config_path))
        if cfg:
            sources.append("config")
        for name in names:
            if name in cfg:
                merged[name] = _coerce(name, cfg[name])

    # 2) env
    env = {name: _env_get(f"{ENV_PREFIX}{name.upper()}") for name in names}
    if any(v is not None for v in env.values()):
        sources.append("env")
    for name, value in env.items():
        if value is not None:
            merged[name] = _coerce(name, value)

    # 3) CLI overrides (only those explicitly passed)
    if any(v is not None for v in cli_overrides.values()):
        sources.append("cli")
    for k, v in cli_overrides.items():
        if v is None:
            continue
        merged[k] = _coerce(k, v)

    return LoadedSettings(settings=Settings(**merged), sources_used=sources)
