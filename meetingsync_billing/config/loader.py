"""
Pricing configuration loading.

Builds an immutable PricingCatalog from a YAML file.
"""

from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, Optional

import yaml

from ..core.errors import ConfigError
from ..core.multiplier import ParticipantScaling
from ..core.pricing import (
    DEFAULT_CATALOG,
    CurrencySettings,
    FreeTierLimits,
    PricingCatalog,
    Tier,
)

_TOP_KEYS = {'version', 'free_tier', 'participant_scaling', 'tiers', 'currency'}
_FREE_TIER_KEYS = {'daily_minutes', 'translation_limit', 'total_language_limit', 'reset_schedule'}
_SCALING_KEYS = {'base_threshold', 'increment_size', 'multiplier_rate', 'max_multiplier'}
_TIER_REQUIRED_KEYS = {
    'name', 'base_rate_per_hour', 'translation_limit',
    'total_language_limit', 'overage_rate_per_hour'
}
_TIER_OPTIONAL_KEYS = {'features', 'ideal_for', 'description', 'recommended', 'badge'}
_CURRENCY_KEYS = {
    'code', 'symbol', 'per_hour_suffix', 'language_unit', 'language_unit_plural',
    'translation_unit', 'translation_unit_plural'
}


def load_catalog(path: Optional[str] = None) -> PricingCatalog:
    """Load a catalog from ``path``, or return the default catalog."""
    if path is None:
        return DEFAULT_CATALOG
    return load_pricing_config(path)


def load_pricing_config(path: str) -> PricingCatalog:
    """Load and validate pricing configuration from a YAML file.

    Strict validation ensures no silent misconfiguration can change what a
    session costs.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated PricingCatalog

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ConfigError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Pricing config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ConfigError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ConfigError("Configuration must be a dictionary")

    _reject_unknown(raw_config, _TOP_KEYS, "configuration")

    for section in ('free_tier', 'participant_scaling', 'tiers'):
        if section not in raw_config:
            raise ConfigError(f"Missing required '{section}' section")

    free_tier = _parse_free_tier(_section(raw_config, 'free_tier'))
    scaling = _parse_scaling(_section(raw_config, 'participant_scaling'))

    tiers_data = _section(raw_config, 'tiers')
    if not tiers_data:
        raise ConfigError("At least one tier must be configured")
    tiers = {
        tier_id: _parse_tier(tier_id, tier_data)
        for tier_id, tier_data in tiers_data.items()
    }

    currency = CurrencySettings()
    if 'currency' in raw_config:
        currency_data = _section(raw_config, 'currency')
        _reject_unknown(currency_data, _CURRENCY_KEYS, "currency")
        currency = CurrencySettings(**{key: str(value) for key, value in currency_data.items()})

    catalog = PricingCatalog(
        tiers=tiers,
        free_tier=free_tier,
        scaling=scaling,
        currency=currency,
        version=str(raw_config.get('version', '1.0.0'))
    )

    errors = catalog.validate()
    if errors:
        raise ConfigError(f"Pricing configuration validation failed: {', '.join(errors)}")
    return catalog


def _section(data: Dict, name: str) -> Dict:
    value = data[name]
    if not isinstance(value, dict):
        raise ConfigError(f"'{name}' must be a dictionary")
    return value


def _reject_unknown(data: Dict, allowed: set, path: str) -> None:
    unknown_keys = set(data.keys()) - allowed
    if unknown_keys:
        raise ConfigError(f"Unknown keys in {path}: {unknown_keys}")


def _parse_free_tier(data: Dict) -> FreeTierLimits:
    _reject_unknown(data, _FREE_TIER_KEYS, "free_tier")
    if 'daily_minutes' not in data:
        raise ConfigError("Missing required 'daily_minutes' in free_tier")

    reset_schedule = data.get('reset_schedule', 'daily')
    if reset_schedule != 'daily':
        raise ConfigError("'reset_schedule' in free_tier must be 'daily'")

    return FreeTierLimits(
        daily_minutes=_integer(data['daily_minutes'], 'free_tier.daily_minutes', minimum=1),
        translation_limit=_integer(data.get('translation_limit', 2), 'free_tier.translation_limit'),
        total_language_limit=_integer(
            data.get('total_language_limit', 3), 'free_tier.total_language_limit'
        ),
        reset_schedule=reset_schedule
    )


def _parse_scaling(data: Dict) -> ParticipantScaling:
    _reject_unknown(data, _SCALING_KEYS, "participant_scaling")
    for key in ('base_threshold', 'increment_size', 'multiplier_rate'):
        if key not in data:
            raise ConfigError(f"Missing required '{key}' in participant_scaling")

    max_multiplier = None
    if data.get('max_multiplier') is not None:
        max_multiplier = _money(data['max_multiplier'], 'participant_scaling.max_multiplier')
        if max_multiplier < 1:
            raise ConfigError("'max_multiplier' in participant_scaling must be >= 1")

    return ParticipantScaling(
        base_threshold=_integer(data['base_threshold'], 'participant_scaling.base_threshold', minimum=1),
        increment_size=_integer(data['increment_size'], 'participant_scaling.increment_size', minimum=1),
        multiplier_rate=_money(data['multiplier_rate'], 'participant_scaling.multiplier_rate'),
        max_multiplier=max_multiplier
    )


def _parse_tier(tier_id: str, data: Dict) -> Tier:
    """Parse and validate one tier.

    Args:
        tier_id: Key of the tier in the ``tiers`` section
        data: Tier configuration data

    Returns:
        Validated Tier

    Raises:
        ConfigError: If the tier is invalid
    """
    path = f"tiers.{tier_id}"
    if not isinstance(data, dict):
        raise ConfigError(f"Tier '{tier_id}' must be a dictionary")
    _reject_unknown(data, _TIER_REQUIRED_KEYS | _TIER_OPTIONAL_KEYS, path)

    missing = _TIER_REQUIRED_KEYS - set(data.keys())
    if missing:
        raise ConfigError(f"Missing required keys in {path}: {sorted(missing)}")

    translation_limit = _integer(data['translation_limit'], f"{path}.translation_limit")
    total_language_limit = _integer(data['total_language_limit'], f"{path}.total_language_limit")
    if total_language_limit != translation_limit + 1:
        raise ConfigError(f"'total_language_limit' in {path} must equal translation_limit + 1")

    base_rate = _money(data['base_rate_per_hour'], f"{path}.base_rate_per_hour")
    if base_rate <= 0:
        raise ConfigError(f"'base_rate_per_hour' in {path} must be > 0")

    return Tier(
        id=tier_id,
        name=str(data['name']),
        base_rate_per_hour=base_rate,
        translation_limit=translation_limit,
        total_language_limit=total_language_limit,
        overage_rate_per_hour=_money(data['overage_rate_per_hour'], f"{path}.overage_rate_per_hour"),
        features=tuple(str(item) for item in data.get('features', [])),
        ideal_for=tuple(str(item) for item in data.get('ideal_for', [])),
        description=str(data.get('description', '')),
        recommended=bool(data.get('recommended', False)),
        badge=data.get('badge')
    )


def _integer(value, path: str, minimum: int = 0) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ConfigError(f"'{path}' must be an integer >= {minimum}")
    return value


def _money(value, path: str) -> Decimal:
    """Parse a non-negative number without going through binary floats."""
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ConfigError(f"'{path}' must be a number")
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ConfigError(f"'{path}' must be a number")
    if not amount.is_finite() or amount < 0:
        raise ConfigError(f"'{path}' must be >= 0")
    return amount
