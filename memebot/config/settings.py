"""Application settings and configuration management."""

from pathlib import Path
from typing import Literal

import structlog
import yaml
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .strategy import StrategyParameters, get_preset

logger = structlog.get_logger(__name__)


class AppSettings(BaseSettings):
    """Application settings with environment variable support."""

    # Data sources
    moralis_api_key: str | None = Field(default=None, description="Moralis API key")
    moralis_base: str = Field(
        default="https://solana-gateway.moralis.io",
        description="Moralis Solana gateway base URL",
    )
    dexscreener_base: str = Field(
        default="https://api.dexscreener.com/latest/dex",
        description="DexScreener API base URL",
    )
    listing_limit: int = Field(
        default=100, ge=1, description="Listings requested per poll"
    )
    http_timeout_seconds: float = Field(
        default=10.0, gt=0, description="HTTP request timeout in seconds"
    )

    # Data storage
    database_url: str = Field(
        default="sqlite+aiosqlite:///./memebot.sqlite",
        description="Database connection URL",
    )

    # Run parameters
    strategy_preset: str = Field(default="default", description="Strategy preset name")
    run_minutes: float = Field(
        default=60.0, ge=0, description="Minutes spent collecting listings"
    )
    target_count: int | None = Field(
        default=None, ge=1, description="Stop collecting after this many listings"
    )
    poll_interval_seconds: float = Field(
        default=5.0, ge=0, description="Delay between listing polls"
    )
    rng_seed: int | None = Field(
        default=None, description="Seed for slippage and exit draws"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Log level"
    )
    log_json: bool = Field(default=False, description="Render logs as JSON")

    model_config = SettingsConfigDict(
        env_prefix="MEMEBOT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    def strategy(self) -> StrategyParameters:
        """Resolve the configured strategy preset.

        Raises:
            ConfigurationError: If the preset is unknown
        """
        return get_preset(self.strategy_preset)


def load_settings(yaml_path: str) -> AppSettings:
    """Load settings from a YAML file and environment variables.

    Args:
        yaml_path: Path to YAML configuration file

    Returns:
        AppSettings instance with loaded configuration

    Raises:
        FileNotFoundError: If YAML file doesn't exist
        ValidationError: If configuration is invalid
        ValueError: If the YAML cannot be parsed
    """
    yaml_file = Path(yaml_path)
    if not yaml_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

    try:
        with open(yaml_file, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}

        if not isinstance(yaml_config, dict):
            raise ValueError("Configuration root must be a mapping")

        logger.info("Loading configuration", yaml_path=yaml_path)

        settings = AppSettings(**yaml_config)

        logger.info(
            "Configuration loaded successfully",
            strategy_preset=settings.strategy_preset,
            run_minutes=settings.run_minutes,
            database_url=settings.database_url,
        )

        return settings

    except yaml.YAMLError as e:
        logger.error("Failed to parse YAML configuration", error=str(e))
        raise ValueError(f"Invalid YAML configuration: {e}") from e
    except ValidationError as e:
        logger.error("Configuration validation failed", error=str(e))
        raise
