"""Application Configuration using Pydantic Settings."""

import math
import os
from pathlib import Path

from pydantic import RedisDsn, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

KNOWN_ENVIRONMENTS = ("development", "test", "staging", "production")


def get_env_file() -> str:
    """
    Determine which .env file to load based on APP_ENV.

    Returns:
        Path to the .env file to load
    """
    app_env = os.getenv("APP_ENV", "development")
    base_dir = Path(__file__).parent.parent.parent  # backend/

    if app_env == "test":
        env_file = base_dir / ".env.test"
        if env_file.exists():
            return str(env_file)

    if app_env == "production":
        env_file = base_dir / ".env.production"
        if env_file.exists():
            return str(env_file)

    # Default to .env
    return str(base_dir / ".env")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=get_env_file(),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "Multi-Cloud Advisor"
    APP_ENV: str = "development"
    DEBUG: bool = False

    # Database
    # Note: Using str instead of PostgresDsn to support SQLite for testing
    DATABASE_URL: str = "sqlite+aiosqlite:///./advisor.db"

    # Redis (Celery broker and result backend)
    REDIS_URL: RedisDsn = "redis://localhost:6379/0"  # type: ignore[assignment]

    # AWS (collectors and Price List API)
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    AWS_DEFAULT_REGION: str = "us-east-1"
    AWS_COLLECTOR_REGIONS: list[str] = ["us-east-1"]

    # Pricing sources
    AWS_PRICING_ENABLED: bool = True
    AWS_PRICING_MAX_PAGES: int = 20  # 100 products per page
    AZURE_PRICING_ENABLED: bool = True
    AZURE_RETAIL_PRICES_URL: str = "https://prices.azure.com/api/retail/prices"
    AZURE_PRICING_MAX_PAGES: int = 10
    GCP_PRICING_ENABLED: bool = True
    PRICING_REFRESH_INTERVAL_HOURS: int = 24
    PRICING_HTTP_TIMEOUT_SECONDS: float = 30.0

    # Collectors
    COLLECTOR_TIMEOUT_SECONDS: float = 120.0
    COST_LOOKBACK_DAYS: int = 30
    UTILIZATION_LOOKBACK_DAYS: int = 7

    # Recommendation engine
    RECOMMENDATION_SIGNIFICANCE_THRESHOLD: float = 0.1
    # Scoring weights, must sum to 1.0
    RECOMMENDATION_WEIGHT_COST: float = 0.4
    RECOMMENDATION_WEIGHT_PERFORMANCE: float = 0.3
    RECOMMENDATION_WEIGHT_RELIABILITY: float = 0.2
    RECOMMENDATION_WEIGHT_DATA_TRANSFER: float = 0.05
    RECOMMENDATION_WEIGHT_VENDOR_LOCK_IN: float = 0.05

    # Continuous monitoring
    COST_ANOMALY_THRESHOLD: float = 0.15  # 15% above baseline
    PERFORMANCE_ANOMALY_THRESHOLD: float = 0.25
    SERVICE_COST_MATERIALITY_FLOOR: float = 10.0  # USD, ignore smaller services
    LOW_UTILIZATION_CPU_PERCENT: float = 10.0

    @field_validator("APP_ENV")
    @classmethod
    def validate_app_env(cls, v: str) -> str:
        """Reject unknown deployment environments."""
        if v not in KNOWN_ENVIRONMENTS:
            raise ValueError(
                f"APP_ENV '{v}' is not supported. Use one of: {', '.join(KNOWN_ENVIRONMENTS)}"
            )
        return v

    @field_validator(
        "RECOMMENDATION_SIGNIFICANCE_THRESHOLD",
        "COST_ANOMALY_THRESHOLD",
        "PERFORMANCE_ANOMALY_THRESHOLD",
        "COLLECTOR_TIMEOUT_SECONDS",
        "PRICING_REFRESH_INTERVAL_HOURS",
    )
    @classmethod
    def validate_positive(cls, v: float) -> float:
        """Thresholds and intervals must be strictly positive."""
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    @field_validator("AWS_COLLECTOR_REGIONS", mode="before")
    @classmethod
    def parse_regions(cls, v: str | list[str]) -> list[str]:
        """Parse collector regions from a comma separated string or list."""
        if isinstance(v, str):
            return [region.strip() for region in v.split(",") if region.strip()]
        return v

    @field_validator(
        "RECOMMENDATION_WEIGHT_COST",
        "RECOMMENDATION_WEIGHT_PERFORMANCE",
        "RECOMMENDATION_WEIGHT_RELIABILITY",
        "RECOMMENDATION_WEIGHT_DATA_TRANSFER",
        "RECOMMENDATION_WEIGHT_VENDOR_LOCK_IN",
    )
    @classmethod
    def validate_weight(cls, v: float) -> float:
        if not 0 <= v <= 1:
            raise ValueError("weights must be between 0 and 1")
        return v

    @model_validator(mode="after")
    def validate_weight_total(self) -> "Settings":
        """Scoring weights must add up to 1.0."""
        total = sum(self.recommendation_weights.values())
        if not math.isclose(total, 1.0, abs_tol=1e-6):
            raise ValueError(f"RECOMMENDATION_WEIGHT_* must sum to 1.0, got {total:.4f}")
        return self

    @property
    def recommendation_weights(self) -> dict[str, float]:
        """Scoring weights keyed by factor name."""
        return {
            "cost": self.RECOMMENDATION_WEIGHT_COST,
            "performance": self.RECOMMENDATION_WEIGHT_PERFORMANCE,
            "reliability": self.RECOMMENDATION_WEIGHT_RELIABILITY,
            "data_transfer": self.RECOMMENDATION_WEIGHT_DATA_TRANSFER,
            "vendor_lock_in": self.RECOMMENDATION_WEIGHT_VENDOR_LOCK_IN,
        }


# Create global settings instance
settings = Settings()
