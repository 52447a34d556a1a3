"""Configuration management using Pydantic Settings."""

import logging
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class TournamentConfig(BaseModel):
    """Round and ledger parameters."""

    initial_bankroll: float = 10_000.0
    markets_per_round: int = 15
    min_yes_price: float = 0.05
    max_yes_price: float = 0.95
    previous_bets_context: int = 3  # Prior bets shown to an agent per market
    round_timeout_seconds: float | None = None  # Soft deadline checked between markets


class BudgetConfig(BaseModel):
    """Hard spending cap on model API calls."""

    cap_usd: float = 100.0
    round_cost_estimate_usd: float = 3.0


class ForecastConfig(BaseModel):
    """Forecast request and retry parameters."""

    temperature: float = 0.0
    max_tokens: int = 1024
    retry_delays_seconds: list[float] = Field(default_factory=lambda: [1.0, 2.0, 4.0])
    web_search_max_results: int = 5

    @property
    def max_retries(self) -> int:
        return len(self.retry_delays_seconds)


class MarketFeedConfig(BaseModel):
    """Admission filter for markets pulled from the feed."""

    min_volume_24h: float = 1000.0
    min_yes_price: float = 0.05
    max_yes_price: float = 0.95
    min_horizon_days: int = 1
    max_horizon_days: int = 60
    cohort_market_count: int = 20


class Settings(BaseSettings):
    """Main configuration class."""

    # Paths
    data_dir: Path = Path("data")
    database_url: str = "sqlite+aiosqlite:///data/arena.db"

    # API Keys
    openrouter_api_key: str = ""
    logfire_token: str = ""

    log_level: str = "INFO"

    # Nested configuration sections
    tournament: TournamentConfig = Field(default_factory=TournamentConfig)
    budget: BudgetConfig = Field(default_factory=BudgetConfig)
    forecast: ForecastConfig = Field(default_factory=ForecastConfig)
    market_feed: MarketFeedConfig = Field(default_factory=MarketFeedConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("data_dir", mode="after")
    @classmethod
    def resolve_data_dir(cls, v: Path) -> Path:
        """Resolve data directory to absolute path."""
        return v.resolve()

    def load_yaml_config(self) -> None:
        """Load and merge YAML configuration."""
        config_path = self.data_dir / "config.yaml"

        if not config_path.exists():
            logger.warning(
                f"Config file not found: {config_path}. "
                "Using defaults. Run 'python -m arena init' to create it."
            )
            return

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.error(f"Failed to parse YAML config: {e}")
            raise

        if not yaml_config:
            logger.warning(f"Empty config file: {config_path}")
            return

        for section_name in ["tournament", "budget", "forecast", "market_feed"]:
            if section_name in yaml_config:
                section = getattr(self, section_name)
                section_dict = section.model_dump()
                section_dict.update(yaml_config[section_name] or {})
                setattr(self, section_name, section.__class__(**section_dict))

        logger.info(f"Loaded configuration from {config_path}")


@lru_cache()
def get_settings() -> Settings:
    """Get singleton Settings instance."""
    settings = Settings()
    settings.load_yaml_config()
    return settings
