"""
Configuration management and loading.

Handles application settings and environment variables.
"""

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Optional

import yaml

from ..core.plans import DEFAULT_PLAN_TABLE, PlanLimits, PlanTable, SubscriptionTier
from ..sdk.deepseek_client import DEEPSEEK_BASE_URL, DEFAULT_MAX_ATTEMPTS, DeepSeekClient
from ..sdk.openrouter_client import OPENROUTER_BASE_URL, OpenRouterClient


class ProviderName(Enum):
    """Supported chat-completion providers."""
    DEEPSEEK = "deepseek"
    OPENROUTER = "openrouter"


_PROVIDER_DEFAULTS = {
    ProviderName.DEEPSEEK: (DEEPSEEK_BASE_URL, "deepseek-chat", "DEEPSEEK_API_KEY", DEFAULT_MAX_ATTEMPTS),
    ProviderName.OPENROUTER: (OPENROUTER_BASE_URL, "openai/gpt-4o-mini", "OPENROUTER_API_KEY", 1),
}


@dataclass(frozen=True)
class ProviderConfig:
    """Chat-completion provider settings."""
    name: ProviderName
    base_url: str
    model: str
    api_key_env: str
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    timeout: float = 120.0

    def __post_init__(self):
        """Validate provider values."""
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.timeout <= 0:
            raise ValueError("timeout must be > 0")

    def get_api_key(self) -> str:
        """Read the API key from the configured environment variable.

        Raises:
            ValueError: If the variable is unset or empty
        """
        api_key = os.environ.get(self.api_key_env, "")
        if not api_key.strip():
            raise ValueError(f"{self.api_key_env} environment variable is not set")
        return api_key


@dataclass(frozen=True)
class AppConfig:
    """Complete application configuration."""
    provider: ProviderConfig
    plans: PlanTable = DEFAULT_PLAN_TABLE
    webhook_url: Optional[str] = None
    database_path: str = "forex_radar.db"


def default_provider_config(name: ProviderName = ProviderName.DEEPSEEK) -> ProviderConfig:
    base_url, model, api_key_env, max_attempts = _PROVIDER_DEFAULTS[name]
    return ProviderConfig(
        name=name,
        base_url=base_url,
        model=model,
        api_key_env=api_key_env,
        max_attempts=max_attempts,
    )


def default_app_config() -> AppConfig:
    """Configuration used when no config file is given."""
    return AppConfig(provider=default_provider_config())


def load_app_config(path: str) -> AppConfig:
    """Load and validate application configuration from YAML file.

    Strict validation ensures typos in limits or provider settings fail
    loudly instead of silently falling back to defaults.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated AppConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    allowed_top_keys = {'provider', 'plans', 'webhook', 'database'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    # Provider is the only required section
    if 'provider' not in raw_config:
        raise ValueError("Missing required 'provider' section")
    provider = _parse_provider_config(raw_config['provider'])

    plans = DEFAULT_PLAN_TABLE
    if 'plans' in raw_config:
        plans = _parse_plans(raw_config['plans'])

    webhook_url = None
    if 'webhook' in raw_config:
        webhook_data = _require_dict(raw_config['webhook'], 'webhook')
        _reject_unknown(webhook_data, {'url'}, 'webhook')
        webhook_url = webhook_data.get('url')
        if webhook_url is not None and (not isinstance(webhook_url, str) or not webhook_url.startswith(("http://", "https://"))):
            raise ValueError("'webhook.url' must be an http(s) URL")

    database_path = "forex_radar.db"
    if 'database' in raw_config:
        database_data = _require_dict(raw_config['database'], 'database')
        _reject_unknown(database_data, {'path'}, 'database')
        if 'path' in database_data:
            database_path = database_data['path']
            if not isinstance(database_path, str) or not database_path.strip():
                raise ValueError("'database.path' must be a non-empty string")

    return AppConfig(
        provider=provider,
        plans=plans,
        webhook_url=webhook_url,
        database_path=database_path,
    )


def _require_dict(data, path: str) -> Dict:
    if not isinstance(data, dict):
        raise ValueError(f"'{path}' must be a dictionary")
    return data


def _reject_unknown(data: Dict, allowed_keys: set, path: str) -> None:
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")


def _parse_provider_config(data) -> ProviderConfig:
    """Parse and validate the provider section.

    Unset fields fall back to the defaults of the named provider.

    Raises:
        ValueError: If configuration is invalid
    """
    data = _require_dict(data, 'provider')
    _reject_unknown(
        data,
        {'name', 'base_url', 'model', 'api_key_env', 'max_attempts', 'timeout'},
        'provider',
    )

    name_str = data.get('name', ProviderName.DEEPSEEK.value)
    if not isinstance(name_str, str):
        raise ValueError("'name' in provider must be a string")
    try:
        name = ProviderName(name_str.lower())
    except ValueError:
        valid_names = [provider.value for provider in ProviderName]
        raise ValueError(f"'name' in provider must be one of: {valid_names}")

    defaults = default_provider_config(name)

    for key in ('base_url', 'model', 'api_key_env'):
        if key in data and (not isinstance(data[key], str) or not data[key].strip()):
            raise ValueError(f"'{key}' in provider must be a non-empty string")

    max_attempts = data.get('max_attempts', defaults.max_attempts)
    if isinstance(max_attempts, bool) or not isinstance(max_attempts, int) or max_attempts < 1:
        raise ValueError("'max_attempts' in provider must be an integer >= 1")

    timeout = data.get('timeout', defaults.timeout)
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        raise ValueError("'timeout' in provider must be > 0")

    return ProviderConfig(
        name=name,
        base_url=data.get('base_url', defaults.base_url),
        model=data.get('model', defaults.model),
        api_key_env=data.get('api_key_env', defaults.api_key_env),
        max_attempts=max_attempts,
        timeout=float(timeout),
    )


def _parse_plans(data) -> PlanTable:
    """Parse and validate plan limits.

    Tiers left out keep their default limits.

    Raises:
        ValueError: If configuration is invalid
    """
    data = _require_dict(data, 'plans')
    limits = dict(DEFAULT_PLAN_TABLE.limits)

    for tier_name, tier_data in data.items():
        try:
            tier = SubscriptionTier(str(tier_name).lower())
        except ValueError:
            valid_tiers = [tier.value for tier in SubscriptionTier]
            raise ValueError(f"Unknown plan '{tier_name}', must be one of: {valid_tiers}")

        path = f"plans.{tier_name}"
        tier_data = _require_dict(tier_data, path)
        _reject_unknown(tier_data, {'daily', 'monthly'}, path)

        for key in ('daily', 'monthly'):
            if key not in tier_data:
                raise ValueError(f"Missing required '{key}' in {path}")
            value = tier_data[key]
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ValueError(f"'{key}' in {path} must be a positive integer")

        limits[tier] = PlanLimits(daily=tier_data['daily'], monthly=tier_data['monthly'])

    return PlanTable(limits)


def create_client(provider: ProviderConfig) -> DeepSeekClient:
    """Build the chat-completion client for a provider configuration.

    Raises:
        ValueError: If the provider's API key is not set
    """
    client_class = OpenRouterClient if provider.name == ProviderName.OPENROUTER else DeepSeekClient
    return client_class(
        api_key=provider.get_api_key(),
        base_url=provider.base_url,
        timeout=provider.timeout,
        max_attempts=provider.max_attempts,
    )
