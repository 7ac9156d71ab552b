from __future__ import annotations

import tomllib
from dataclasses import dataclass
from pathlib import Path

from .errors import ComputationError, ValidationError
from .pricing import DEFAULT_PRICING, PricingTable


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class DbConfig:
    host: str
    port: int
    name: str
    user: str
    password: str
    sslmode: str = "disable"


@dataclass(frozen=True)
class AppConfig:
    name: str
    log_level: str
    db: DbConfig
    pricing: PricingTable


def _load_pricing(section: dict) -> PricingTable:
    if not isinstance(section, dict):
        raise ConfigError("Invalid [pricing] section: expected a table.")
    if not section:
        return DEFAULT_PRICING
    fees = section.get("diagnostic_fees")
    if fees is not None and not isinstance(fees, dict):
        raise ConfigError("Invalid [pricing] section: diagnostic_fees must be a table.")
    try:
        return PricingTable.tiered(
            version=str(section["version"]),
            base=section.get("labor_base", 110),
            step=section.get("labor_step", 40),
            max_level=int(section.get("max_labor_level", 10)),
            diagnostic_fees=fees,
            default_markup=section.get("default_markup", 75),
        )
    except (ValidationError, ComputationError) as e:
        raise ConfigError(f"Invalid [pricing] section: {e}") from e


def load_config(path: str | Path) -> AppConfig:
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Config file not found: {p.resolve()}")

    try:
        data = tomllib.loads(p.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Failed to read config TOML: {e}") from e

    try:
        app = data["app"]
        db = data["db"]
        return AppConfig(
            name=str(app.get("name", "RepairDesk")),
            log_level=str(app.get("log_level", "INFO")).upper(),
            db=DbConfig(
                host=str(db["host"]),
                port=int(db.get("port", 5432)),
                name=str(db["name"]),
                user=str(db["user"]),
                password=str(db["password"]),
                sslmode=str(db.get("sslmode", "disable")),
            ),
            pricing=_load_pricing(data.get("pricing", {})),
        )
    except KeyError as e:
        raise ConfigError(f"Missing config key: {e}") from e
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid config values: {e}") from e
