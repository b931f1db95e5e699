"""Configuration loading utilities for YAML-based application settings."""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
import os
from pathlib import Path
from typing import Any, Optional, Union

import yaml

from microlend.models.enums import CollectionSortKey, RepaymentMethod

from .logging_config import get_logger


logger = get_logger(__name__)
_BASE_DIR = Path(__file__).resolve().parent.parent
_CONFIG_PATH = _BASE_DIR / "config.yml"
CONFIG_ENV_VAR = "MICROLEND_CONFIG"


@dataclass(frozen=True)
class AppSettings:
    """Application settings loaded from YAML configuration file."""

    app_name: str = "Microlend API"
    debug: bool = False
    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"
    firebase_enabled: bool = False
    firebase_project_id: Optional[str] = None
    firebase_credentials_path: Optional[str] = None
    firebase_loans_collection: str = "loans"
    firebase_payments_collection: str = "payments"
    firebase_customers_collection: str = "customers"
    currency: str = "LKR"
    penalty_rate: Decimal = Decimal("0")
    grace_period_days: int = 0
    min_loan_amount: Decimal = Decimal("1000")
    max_loan_amount: Decimal = Decimal("5000000")
    max_duration_weeks: int = 52
    max_interest_rate: Decimal = Decimal("100")
    default_method: RepaymentMethod = RepaymentMethod.FLAT
    collections_default_sort: CollectionSortKey = CollectionSortKey.PRIORITY


def _to_bool(value: Any, default: bool = False) -> bool:
    """Convert value to bool with a default fallback."""
    try:
        if isinstance(value, bool):
            return value
        return value.strip().lower() in {"1", "true", "yes", "on"}
    except (AttributeError, ValueError):
        logger.warning("Invalid boolean value '%s'. Using default=%s", value, default)
        return default


def _to_int(value: Any, default: int) -> int:
    """Convert value to int with a default fallback."""
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid integer value '%s'. Using default=%s", value, default)
        return default


def _to_decimal(value: Any, default: Decimal) -> Decimal:
    """Convert value to a finite Decimal with a default fallback.

    YAML floats go through ``str`` so ``0.02`` stays ``Decimal("0.02")``.
    """
    try:
        if isinstance(value, bool):
            raise TypeError("boolean is not a number")
        candidate = Decimal(str(value).strip())
        if not candidate.is_finite():
            raise ValueError("non-finite decimal")
        return candidate
    except (TypeError, ValueError, InvalidOperation):
        logger.warning("Invalid decimal value '%s'. Using default=%s", value, default)
        return default


def _to_choice(value: Any, enum_cls: Any, default: Any) -> Any:
    """Convert value to a member of ``enum_cls`` with a default fallback."""
    wanted = str(value).strip().lower()
    for member in enum_cls:
        if member.value.lower() == wanted:
            return member
    logger.warning("Invalid %s value '%s'. Using default=%s", enum_cls.__name__, value, default)
    return default


def _resolve_path(path: Optional[Union[str, Path]]) -> Path:
    """Pick the explicit path, then ``MICROLEND_CONFIG``, then the bundled file."""
    if path is not None:
        return Path(path)
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override)
    return _CONFIG_PATH


def _read_config(path: Optional[Union[str, Path]] = None) -> dict:
    """Read and parse YAML configuration."""
    config_path = _resolve_path(path)
    try:
        with config_path.open("r", encoding="utf-8") as config_file:
            config_data = yaml.safe_load(config_file) or {}
        if not isinstance(config_data, dict):
            logger.warning("Config file %s is not a mapping. Falling back to defaults.", config_path)
            return {}
        logger.info("Configuration loaded from %s", config_path)
        return config_data
    except FileNotFoundError:
        logger.warning("Config file not found at %s. Falling back to defaults.", config_path)
        return {}
    except yaml.YAMLError:
        logger.exception("Failed to parse config file %s", config_path)
        raise


def get_env(key: str, default: Optional[str] = None, path: Optional[Union[str, Path]] = None) -> Optional[str]:
    """Read a single config value using dot-notation keys, e.g. ``lending.currency``."""
    current: Any = _read_config(path)
    for part in key.split("."):
        if not isinstance(current, dict) or part not in current:
            return default
        current = current[part]
    if current is None:
        return default
    return str(current)


def load_settings(path: Optional[Union[str, Path]] = None) -> AppSettings:
    """Load and validate application settings from ``config.yml``.

    Args:
        path: Optional explicit file. Defaults to ``$MICROLEND_CONFIG`` or the bundled file.
    """
    config = _read_config(path)
    defaults = AppSettings()
    app_cfg = config.get("app") or {}
    firebase_cfg = config.get("firebase") or {}
    lending_cfg = config.get("lending") or {}
    collections_cfg = config.get("collections") or {}

    return AppSettings(
        app_name=str(app_cfg.get("name", defaults.app_name)),
        debug=_to_bool(app_cfg.get("debug", False), False),
        host=str(app_cfg.get("host", defaults.host)),
        port=_to_int(app_cfg.get("port", defaults.port), defaults.port),
        log_level=str(app_cfg.get("log_level", defaults.log_level)).upper(),
        firebase_enabled=_to_bool(firebase_cfg.get("enabled", False), False),
        firebase_project_id=firebase_cfg.get("project_id"),
        firebase_credentials_path=firebase_cfg.get("credentials_path"),
        firebase_loans_collection=str(firebase_cfg.get("loans_collection", defaults.firebase_loans_collection)),
        firebase_payments_collection=str(
            firebase_cfg.get("payments_collection", defaults.firebase_payments_collection)
        ),
        firebase_customers_collection=str(
            firebase_cfg.get("customers_collection", defaults.firebase_customers_collection)
        ),
        currency=str(lending_cfg.get("currency", defaults.currency)).upper(),
        penalty_rate=_to_decimal(lending_cfg.get("penalty_rate", defaults.penalty_rate), defaults.penalty_rate),
        grace_period_days=_to_int(
            lending_cfg.get("grace_period_days", defaults.grace_period_days), defaults.grace_period_days
        ),
        min_loan_amount=_to_decimal(
            lending_cfg.get("min_loan_amount", defaults.min_loan_amount), defaults.min_loan_amount
        ),
        max_loan_amount=_to_decimal(
            lending_cfg.get("max_loan_amount", defaults.max_loan_amount), defaults.max_loan_amount
        ),
        max_duration_weeks=_to_int(
            lending_cfg.get("max_duration_weeks", defaults.max_duration_weeks), defaults.max_duration_weeks
        ),
        max_interest_rate=_to_decimal(
            lending_cfg.get("max_interest_rate", defaults.max_interest_rate), defaults.max_interest_rate
        ),
        default_method=_to_choice(
            lending_cfg.get("default_method", defaults.default_method.value), RepaymentMethod, defaults.default_method
        ),
        collections_default_sort=_to_choice(
            collections_cfg.get("default_sort", defaults.collections_default_sort.value),
            CollectionSortKey,
            defaults.collections_default_sort,
        ),
    )
