"""
Configuration management and loading.

Handles the database location, pricing feed settings and markup rules.
"""

import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from ai_cost_meter.core.markup import MarkupRule, MarkupScope
from ai_cost_meter.core.sync import MODELS_DEV_API_URL
from ai_cost_meter.storage.db import DEFAULT_DB_PATH


@dataclass(frozen=True)
class FeedConfig:
    """Where to fetch the pricing feed from."""
    url: str = MODELS_DEV_API_URL
    api_key_env: Optional[str] = None
    timeout: float = 20.0

    def __post_init__(self):
        """Validate feed settings."""
        if not self.url:
            raise ValueError("pricing_feed.url must not be empty")
        if self.timeout <= 0:
            raise ValueError("pricing_feed.timeout must be > 0")

    @property
    def api_key(self) -> Optional[str]:
        """Read the API key from the configured environment variable."""
        if not self.api_key_env:
            return None
        return os.environ.get(self.api_key_env)


@dataclass(frozen=True)
class MarkupConfig:
    """Markup multipliers declared in configuration."""
    default: float = 0.0
    providers: Dict[str, float] = field(default_factory=dict)
    models: Dict[str, Dict[str, float]] = field(default_factory=dict)
    tools: Dict[str, Dict[str, float]] = field(default_factory=dict)

    def __post_init__(self):
        """Validate default multiplier is non-negative."""
        if self.default < 0:
            raise ValueError("markup.default must be >= 0")

    def rules(self) -> List[MarkupRule]:
        """Build markup rules for a static rule source."""
        rules = []
        for provider_id, models in self.models.items():
            for model_id, multiplier in models.items():
                rules.append(MarkupRule(MarkupScope.MODEL, provider_id, multiplier, model_id=model_id))
        for provider_id, tools in self.tools.items():
            for tool_id, multiplier in tools.items():
                rules.append(MarkupRule(MarkupScope.TOOL, provider_id, multiplier, tool_id=tool_id))
        for provider_id, multiplier in self.providers.items():
            rules.append(MarkupRule(MarkupScope.PROVIDER, provider_id, multiplier))
        return rules


@dataclass(frozen=True)
class MeterConfig:
    """Complete cost meter configuration."""
    database: str = DEFAULT_DB_PATH
    pricing_feed: FeedConfig = field(default_factory=FeedConfig)
    markup: MarkupConfig = field(default_factory=MarkupConfig)


def load_meter_config(path: str) -> MeterConfig:
    """Load and validate cost meter configuration from YAML file.

    Every section is optional; unknown keys are rejected so a typo never
    silently drops a markup rule.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated MeterConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Meter config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    allowed_top_keys = {'database', 'pricing_feed', 'markup'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    database = raw_config.get('database', DEFAULT_DB_PATH)
    if not isinstance(database, str) or not database:
        raise ValueError("'database' must be a non-empty string")

    return MeterConfig(
        database=database,
        pricing_feed=_parse_feed_config(raw_config.get('pricing_feed') or {}),
        markup=_parse_markup_config(raw_config.get('markup') or {}),
    )


def _parse_feed_config(data: Dict) -> FeedConfig:
    if not isinstance(data, dict):
        raise ValueError("'pricing_feed' must be a dictionary")

    allowed_keys = {'url', 'api_key_env', 'timeout'}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in pricing_feed: {unknown_keys}")

    url = data.get('url', MODELS_DEV_API_URL)
    if not isinstance(url, str):
        raise ValueError("'url' in pricing_feed must be a string")

    api_key_env = data.get('api_key_env')
    if api_key_env is not None and not isinstance(api_key_env, str):
        raise ValueError("'api_key_env' in pricing_feed must be a string")

    timeout = data.get('timeout', 20.0)
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)):
        raise ValueError("'timeout' in pricing_feed must be a number")

    return FeedConfig(url=url, api_key_env=api_key_env, timeout=float(timeout))


def _parse_markup_config(data: Dict) -> MarkupConfig:
    """Parse and validate the markup section.

    Args:
        data: Markup configuration data

    Returns:
        Validated MarkupConfig

    Raises:
        ValueError: If configuration is invalid
    """
    if not isinstance(data, dict):
        raise ValueError("'markup' must be a dictionary")

    allowed_keys = {'default', 'providers', 'models', 'tools'}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in markup: {unknown_keys}")

    default = _parse_multiplier(data.get('default', 0), "markup.default")
    providers = {
        str(provider_id): _parse_multiplier(value, f"markup.providers.{provider_id}")
        for provider_id, value in _require_dict(data.get('providers') or {}, "markup.providers").items()
    }
    return MarkupConfig(
        default=default,
        providers=providers,
        models=_parse_nested(data.get('models') or {}, "markup.models"),
        tools=_parse_nested(data.get('tools') or {}, "markup.tools"),
    )


def _parse_nested(data: Dict, path: str) -> Dict[str, Dict[str, float]]:
    result = {}
    for provider_id, items in _require_dict(data, path).items():
        items = _require_dict(items, f"{path}.{provider_id}")
        result[str(provider_id)] = {
            str(item_id): _parse_multiplier(value, f"{path}.{provider_id}.{item_id}")
            for item_id, value in items.items()
        }
    return result


def _require_dict(value, path: str) -> Dict:
    if not isinstance(value, dict):
        raise ValueError(f"'{path}' must be a dictionary")
    return value


def _parse_multiplier(value, path: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"'{path}' must be a number")
    if not math.isfinite(value) or value < 0:
        raise ValueError(f"'{path}' must be >= 0")
    return float(value)
