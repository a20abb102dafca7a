"""
Configuration management and loading.

Handles model, API and monitoring settings read from YAML.
"""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


@dataclass(frozen=True)
class ModelConfig:
    """Parameters sent with every chat completion request."""
    name: str = "gpt-3.5-turbo"
    temperature: float = 0.7
    max_tokens: int = 1000
    presence_penalty: float = 0.1
    frequency_penalty: float = 0.1

    def __post_init__(self):
        """Validate model parameters."""
        if not self.name or not self.name.strip():
            raise ValueError("model name cannot be empty")
        if not 0 <= self.temperature <= 2:
            raise ValueError("temperature must be between 0 and 2")
        if self.max_tokens <= 0:
            raise ValueError("max_tokens must be > 0")


@dataclass(frozen=True)
class ApiConfig:
    """Outbound API limits."""
    rate_limit_per_min: int = 60
    timeout: int = 30000  # ms

    def __post_init__(self):
        """Validate API limits are positive."""
        if self.rate_limit_per_min <= 0:
            raise ValueError("rate_limit_per_min must be > 0")
        if self.timeout <= 0:
            raise ValueError("timeout must be > 0")


@dataclass(frozen=True)
class StorageConfig:
    """Where and how usage statistics are persisted."""
    key: str = "openai_usage_stats"
    error_history_limit: int = 100
    db_path: str = ".narratoflow.db"

    def __post_init__(self):
        """Validate storage settings."""
        if not self.key:
            raise ValueError("storage key cannot be empty")
        if self.error_history_limit <= 0:
            raise ValueError("error_history_limit must be > 0")


@dataclass(frozen=True)
class RetryStrategy:
    """Bounded exponential backoff settings (delays in ms)."""
    max_attempts: int = 3
    initial_delay: int = 1000
    max_delay: int = 5000
    backoff_multiplier: float = 2.0

    def __post_init__(self):
        """Validate retry settings."""
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.initial_delay < 0:
            raise ValueError("initial_delay cannot be negative")
        if self.max_delay < self.initial_delay:
            raise ValueError("max_delay must be >= initial_delay")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be >= 1")


@dataclass(frozen=True)
class PerformanceConfig:
    """Latency tracking thresholds."""
    slow_request_threshold: int = 5000  # ms

    def __post_init__(self):
        if self.slow_request_threshold <= 0:
            raise ValueError("slow_request_threshold must be > 0")


@dataclass(frozen=True)
class MonitoringConfig:
    """Usage monitoring and quota settings."""
    enabled: bool = True
    quota_limit: int = 3000000
    token_usage_warning_threshold: float = 80.0
    storage: StorageConfig = field(default_factory=StorageConfig)
    retry_strategy: RetryStrategy = field(default_factory=RetryStrategy)
    performance: PerformanceConfig = field(default_factory=PerformanceConfig)

    def __post_init__(self):
        """Validate quota values."""
        if self.quota_limit <= 0:
            raise ValueError("quota_limit must be > 0")
        if not 0 < self.token_usage_warning_threshold <= 100:
            raise ValueError("token_usage_warning_threshold must be between 0 and 100")


@dataclass(frozen=True)
class AppConfig:
    """Complete application configuration."""
    model: ModelConfig = field(default_factory=ModelConfig)
    api: ApiConfig = field(default_factory=ApiConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)


# Nested sections of each dataclass, parsed recursively
_SECTIONS = {
    AppConfig: {'model': ModelConfig, 'api': ApiConfig, 'monitoring': MonitoringConfig},
    MonitoringConfig: {
        'storage': StorageConfig,
        'retry_strategy': RetryStrategy,
        'performance': PerformanceConfig,
    },
}


def load_config(path: Optional[str] = None) -> AppConfig:
    """Load and validate application configuration from a YAML file.

    Every section is optional and falls back to defaults, but unknown keys
    and wrongly typed values are rejected so a typo never silently disables
    a limit.

    Args:
        path: Path to YAML configuration file, or None for defaults

    Returns:
        Validated AppConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    if path is None:
        return AppConfig()

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if raw_config is None:
        return AppConfig()
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a mapping")

    return _parse_section(AppConfig, raw_config, "config")


def _parse_section(cls, data: Dict[str, Any], path: str):
    """Parse one configuration section into its dataclass.

    Args:
        cls: Dataclass describing the section
        data: Raw section data
        path: Dotted path for error messages

    Returns:
        Instance of cls

    Raises:
        ValueError: If the section is invalid
    """
    if not isinstance(data, dict):
        raise ValueError(f"'{path}' must be a dictionary")

    allowed_keys = {f.name for f in fields(cls)}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

    nested = _SECTIONS.get(cls, {})
    kwargs = {}
    for f in fields(cls):
        if f.name not in data:
            continue
        value = data[f.name]
        if f.name in nested:
            kwargs[f.name] = _parse_section(nested[f.name], value, f"{path}.{f.name}")
        else:
            kwargs[f.name] = _coerce(value, f.default, f"{path}.{f.name}")

    return cls(**kwargs)


def _coerce(value: Any, default: Any, path: str) -> Any:
    """Coerce a scalar to the type of its default value."""
    if isinstance(default, bool):
        if not isinstance(value, bool):
            raise ValueError(f"'{path}' must be a boolean")
        return value
    if isinstance(default, str):
        if not isinstance(value, str):
            raise ValueError(f"'{path}' must be a string")
        return value
    # bool is an int subclass; reject it for numeric options
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"'{path}' must be a number")
    if isinstance(default, int) and not isinstance(default, bool):
        if isinstance(value, float) and not value.is_integer():
            raise ValueError(f"'{path}' must be an integer")
        return int(value)
    return float(value)
