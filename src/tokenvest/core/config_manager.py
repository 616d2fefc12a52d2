"""
tokenvest Configuration Manager

Centralized configuration management system supporting:
- Environment-based configs (development/testnet/production)
- Config file loading (YAML/JSON)
- Command-line override support
- Environment variable support (TOKENVEST_*)
- Config validation
"""

import os
import json
from dataclasses import dataclass, asdict
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from dotenv import load_dotenv

from tokenvest.contracts.vesting import AllocationPlan
from tokenvest.core.constants import (
    BP_CONVERTER,
    HOLDER_CLAIMABLE_PERIODS,
    HOLDER_PERIOD_DURATION,
    LOCK_CLAIMABLE_PERIODS,
    LOCK_PERIOD_DURATION,
    TOKEN_DECIMALS,
    TOKEN_NAME,
    TOKEN_SYMBOL,
    TO_EXCHANGE_LISTING_BP,
    TO_LIQUIDITY_POOL_BP,
    TO_LOCK_PARTNERS_BP,
    TO_LOCK_TEAM_BP,
    TO_MARKETING_BP,
    TO_REWARDS_BP,
    TO_TREASURY_BP,
    TO_VESTING_BP,
)
from tokenvest.core.exceptions import ConfigurationError


DEFAULT_CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"
ENV_PREFIX = "TOKENVEST_"


class Environment(Enum):
    """Environment types"""
    DEVELOPMENT = "development"
    TESTNET = "testnet"
    PRODUCTION = "production"


@dataclass
class TokenConfig:
    """Token metadata and fixed supply"""
    name: str = TOKEN_NAME
    symbol: str = TOKEN_SYMBOL
    decimals: int = TOKEN_DECIMALS
    max_supply_tokens: int = 1_000_000_000

    @property
    def max_supply(self) -> int:
        """Max supply in base units."""
        return self.max_supply_tokens * 10 ** self.decimals

    def validate(self):
        if not self.name or not self.symbol:
            raise ConfigurationError("token name and symbol cannot be empty")
        if not (0 <= self.decimals <= 36):
            raise ConfigurationError(f"Invalid decimals: {self.decimals}. Must be between 0-36")
        if self.max_supply_tokens <= 0:
            raise ConfigurationError(f"Invalid max_supply_tokens: {self.max_supply_tokens}. Must be > 0")


@dataclass
class DistributionConfig:
    """Genesis split of the supply, in basis points"""
    vesting_bp: int = TO_VESTING_BP
    lock_team_bp: int = TO_LOCK_TEAM_BP
    lock_partners_bp: int = TO_LOCK_PARTNERS_BP
    liquidity_pool_bp: int = TO_LIQUIDITY_POOL_BP
    exchange_listing_bp: int = TO_EXCHANGE_LISTING_BP
    marketing_bp: int = TO_MARKETING_BP
    treasury_bp: int = TO_TREASURY_BP
    rewards_bp: int = TO_REWARDS_BP

    @property
    def vesting_contract_bp(self) -> int:
        """Share minted to the vesting ledger (holders pool plus both locks)."""
        return self.vesting_bp + self.lock_team_bp + self.lock_partners_bp

    def validate(self):
        values = asdict(self)
        negative = [name for name, value in values.items() if value < 0]
        if negative:
            raise ConfigurationError(f"Negative basis points: {', '.join(negative)}")
        for name in ("vesting_bp", "lock_team_bp", "lock_partners_bp"):
            if values[name] == 0:
                raise ConfigurationError(f"Invalid {name}: must be > 0")
        total = sum(values.values())
        if total != BP_CONVERTER:
            raise ConfigurationError(
                f"Distribution must sum to {BP_CONVERTER} basis points, got {total}"
            )


@dataclass
class VestingConfig:
    """Schedule shape for holders and locks"""
    holder_claimable_periods: int = HOLDER_CLAIMABLE_PERIODS
    holder_period_duration: int = HOLDER_PERIOD_DURATION  # seconds
    lock_claimable_periods: int = LOCK_CLAIMABLE_PERIODS
    lock_period_duration: int = LOCK_PERIOD_DURATION  # seconds
    start_on_deploy: bool = True

    def validate(self):
        if self.holder_claimable_periods < 1:
            raise ConfigurationError(
                f"Invalid holder_claimable_periods: {self.holder_claimable_periods}. Must be >= 1"
            )
        if self.lock_claimable_periods < 1:
            raise ConfigurationError(
                f"Invalid lock_claimable_periods: {self.lock_claimable_periods}. Must be >= 1"
            )
        if self.holder_period_duration <= 0 or self.lock_period_duration <= 0:
            raise ConfigurationError("Period durations must be > 0 seconds")


@dataclass
class StorageConfig:
    """Storage configuration settings"""
    data_dir: str = "data"
    state_file: str = "tokenvest_state.json"
    deploy_output: str = "deployOutput.json"

    @property
    def state_path(self) -> Path:
        return Path(self.data_dir) / self.state_file

    @property
    def deploy_output_path(self) -> Path:
        return Path(self.data_dir) / self.deploy_output

    def validate(self):
        if not self.data_dir:
            raise ConfigurationError("data_dir cannot be empty")
        if not self.state_file:
            raise ConfigurationError("state_file cannot be empty")
        if not self.deploy_output:
            raise ConfigurationError("deploy_output cannot be empty")


@dataclass
class LoggingConfig:
    """Logging configuration settings"""
    level: str = "INFO"
    enable_file_logging: bool = False
    log_file: str = "logs/tokenvest.json"
    max_log_size: int = 10485760  # 10MB
    backup_count: int = 5
    enable_console_logging: bool = True

    def validate(self):
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if str(self.level).upper() not in valid_levels:
            raise ConfigurationError(f"Invalid log level: {self.level}. Must be one of {valid_levels}")
        if self.max_log_size < 1024:
            raise ConfigurationError(f"Invalid max_log_size: {self.max_log_size}. Must be >= 1024")
        if self.backup_count < 0:
            raise ConfigurationError(f"Invalid backup_count: {self.backup_count}. Must be >= 0")


@dataclass
class NetworkConfig:
    """Target network and block explorer"""
    name: str = "localhost"
    explorer_url: str = ""
    deployer: str = "0x000000000000000000000000000000000000dead"

    def verification_url(self, address: str) -> str:
        """Explorer link for a deployed contract; empty when no explorer is set."""
        if not self.explorer_url:
            return ""
        return f"{self.explorer_url.rstrip('/')}/address/{address}#code"

    def validate(self):
        if not self.name:
            raise ConfigurationError("network name cannot be empty")
        if not isinstance(self.deployer, str) or not self.deployer.strip():
            raise ConfigurationError("deployer address cannot be empty")
        if self.explorer_url and not self.explorer_url.startswith(("http://", "https://")):
            raise ConfigurationError(f"Invalid explorer_url: {self.explorer_url}")


_SECTIONS = {
    "token": TokenConfig,
    "distribution": DistributionConfig,
    "vesting": VestingConfig,
    "storage": StorageConfig,
    "logging": LoggingConfig,
    "network": NetworkConfig,
}


class ConfigManager:
    """
    Configuration Manager for tokenvest

    Handles loading, validation, and access to configuration settings
    from multiple sources with proper precedence:
    1. Command-line arguments (highest priority)
    2. Environment variables (TOKENVEST_*)
    3. Environment-specific config files
    4. Default config file
    5. Built-in defaults (lowest priority)
    """

    def __init__(self,
                 environment: Optional[str] = None,
                 config_dir: Optional[str] = None,
                 cli_overrides: Optional[Dict[str, Any]] = None):
        """
        Initialize Configuration Manager

        Args:
            environment: Environment name (development/testnet/production)
            config_dir: Directory containing config files
            cli_overrides: Command-line overrides keyed "section.key"
        """
        load_dotenv()

        self.environment = self._determine_environment(environment)
        self.config_dir = Path(config_dir).resolve() if config_dir else DEFAULT_CONFIG_DIR
        self.cli_overrides = cli_overrides or {}

        self.token: TokenConfig = None
        self.distribution: DistributionConfig = None
        self.vesting: VestingConfig = None
        self.storage: StorageConfig = None
        self.logging: LoggingConfig = None
        self.network: NetworkConfig = None

        self._raw_config: Dict[str, Any] = {}

        self._load_configuration()

    def _determine_environment(self, environment: Optional[str]) -> Environment:
        """
        Determine the environment to use

        Priority:
        1. Passed environment parameter
        2. TOKENVEST_ENVIRONMENT environment variable
        3. Default to DEVELOPMENT
        """
        if environment:
            env_str = environment.lower()
        else:
            env_str = os.getenv(f"{ENV_PREFIX}ENVIRONMENT", "development").lower()

        env_mapping = {
            "dev": Environment.DEVELOPMENT,
            "development": Environment.DEVELOPMENT,
            "localhost": Environment.DEVELOPMENT,
            "testnet": Environment.TESTNET,
            "test": Environment.TESTNET,
            "mumbai": Environment.TESTNET,
            "prod": Environment.PRODUCTION,
            "production": Environment.PRODUCTION,
            "polygon": Environment.PRODUCTION,
        }

        if env_str not in env_mapping:
            raise ConfigurationError(
                f"Unknown environment: {env_str}",
                details={"valid": sorted(env_mapping)},
            )
        return env_mapping[env_str]

    def _load_configuration(self):
        """Load configuration from all sources with proper precedence"""
        default_config = self._load_config_file("default")
        env_config = self._load_config_file(self.environment.value)

        merged_config = self._merge_configs(default_config, env_config)
        merged_config = self._apply_env_variables(merged_config)
        merged_config = self._apply_cli_overrides(merged_config)

        self._raw_config = merged_config

        self._parse_configuration(merged_config)
        self._validate_configuration()

    def _load_config_file(self, filename: str) -> Dict[str, Any]:
        """
        Load configuration from YAML or JSON file

        Args:
            filename: Config filename (without extension)

        Returns:
            Configuration dictionary; empty when no file exists
        """
        yaml_path = self.config_dir / f"{filename}.yaml"
        try:
            if yaml_path.exists():
                with open(yaml_path, 'r') as f:
                    data = yaml.safe_load(f) or {}
            else:
                json_path = self.config_dir / f"{filename}.json"
                if not json_path.exists():
                    return {}
                with open(json_path, 'r') as f:
                    data = json.load(f)
        except (yaml.YAMLError, json.JSONDecodeError) as exc:
            raise ConfigurationError(f"Cannot parse config file {filename}: {exc}") from exc

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {filename} must contain a mapping")
        return data

    def _merge_configs(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two configuration dictionaries"""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value

        return result

    def _apply_env_variables(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply environment variable overrides (TOKENVEST_*)

        Environment variables format:
        TOKENVEST_SECTION_KEY=value

        Example:
        TOKENVEST_STORAGE_DATA_DIR=/var/lib/tokenvest
        TOKENVEST_LOGGING_LEVEL=DEBUG
        """
        result = {k: dict(v) if isinstance(v, dict) else v for k, v in config.items()}

        for key, value in os.environ.items():
            if not key.startswith(ENV_PREFIX) or key == f"{ENV_PREFIX}ENVIRONMENT":
                continue

            parts = key[len(ENV_PREFIX):].lower().split("_")
            if len(parts) < 2:
                continue

            section = parts[0]
            config_key = "_".join(parts[1:])
            if section not in _SECTIONS:
                continue

            if not isinstance(result.get(section), dict):
                result[section] = {}
            result[section][config_key] = self._parse_env_value(value)

        return result

    def _parse_env_value(self, value: str) -> Union[str, int, bool]:
        """
        Parse environment variable value to appropriate type

        Integers win over booleans so that ``1`` stays a period count.
        """
        try:
            return int(value)
        except ValueError:
            pass

        if value.lower() in ("true", "yes", "on"):
            return True
        if value.lower() in ("false", "no", "off"):
            return False

        return value

    def _apply_cli_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Apply command-line overrides keyed ``section.key``"""
        result = {k: dict(v) if isinstance(v, dict) else v for k, v in config.items()}

        for key, value in self.cli_overrides.items():
            if value is None:
                continue
            parts = key.split(".")

            if len(parts) == 1:
                result[key] = value
            elif len(parts) == 2:
                section, config_key = parts
                if not isinstance(result.get(section), dict):
                    result[section] = {}
                result[section][config_key] = value

        return result

    def _parse_configuration(self, config: Dict[str, Any]):
        """Parse configuration into typed objects"""
        for section, section_cls in _SECTIONS.items():
            values = config.get(section) or {}
            try:
                setattr(self, section, section_cls(**values))
            except TypeError as exc:
                raise ConfigurationError(
                    f"Invalid keys in [{section}] configuration: {exc}",
                    details={"section": section, "keys": sorted(values)},
                ) from exc

    def _validate_configuration(self):
        """Validate all configuration sections"""
        self.token.validate()
        self.distribution.validate()
        self.vesting.validate()
        self.storage.validate()
        self.logging.validate()
        self.network.validate()

    def allocation_plan(self) -> AllocationPlan:
        """Build the vesting ledger's allocation plan from the config."""
        return AllocationPlan(
            holders_bp=self.distribution.vesting_bp,
            team_bp=self.distribution.lock_team_bp,
            partners_bp=self.distribution.lock_partners_bp,
            holder_periods=self.vesting.holder_claimable_periods,
            holder_period_duration=self.vesting.holder_period_duration,
            lock_periods=self.vesting.lock_claimable_periods,
            lock_period_duration=self.vesting.lock_period_duration,
        )

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by dot-notation key

        Args:
            key: Configuration key (e.g., "storage.data_dir")
            default: Default value if key not found
        """
        value = self._raw_config

        for part in key.split("."):
            if isinstance(value, dict) and part in value:
                value = value[part]
            else:
                return default

        return value

    def to_dict(self) -> Dict[str, Any]:
        """Export configuration to dictionary"""
        data: Dict[str, Any] = {"environment": self.environment.value}
        for section in _SECTIONS:
            data[section] = asdict(getattr(self, section))
        return data

    def __repr__(self) -> str:
        return f"ConfigManager(environment={self.environment.value})"


# Singleton instance
_config_manager: Optional[ConfigManager] = None


def get_config_manager(
    environment: Optional[str] = None,
    config_dir: Optional[str] = None,
    cli_overrides: Optional[Dict[str, Any]] = None,
    force_reload: bool = False
) -> ConfigManager:
    """Get or create ConfigManager singleton instance"""
    global _config_manager

    if _config_manager is None or force_reload:
        _config_manager = ConfigManager(
            environment=environment,
            config_dir=config_dir,
            cli_overrides=cli_overrides
        )

    return _config_manager
