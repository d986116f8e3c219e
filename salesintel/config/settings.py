"""
E-Commerce Sales Intelligence
Centralized Configuration Management

Configuration is handled with Pydantic settings: every analysis parameter can
come from the environment (``ANALYTICS_*``), a ``.env`` file or explicit
keyword overrides, and is validated before any computation starts.
"""

from datetime import date
from functools import lru_cache
from typing import Any, Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from salesintel.exceptions import ConfigurationError


DEFAULT_COHORT_START = date(2017, 1, 1)


class AnalyticsSettings(BaseSettings):
    """Analysis run parameters"""

    model_config = SettingsConfigDict(env_prefix="ANALYTICS_", extra="ignore")

    # Reference date for recency/churn; never read from the wall clock
    as_of_date: Optional[date] = Field(default=None, description="As-of date for recency and churn")

    # Opportunity engine
    pareto_threshold: float = Field(default=0.80, description="Cumulative revenue share for the Pareto cut-off")
    price_increase_pct: float = Field(default=0.15, description="Price increase applied to upsell candidates")
    expansion_multiplier: float = Field(default=1.0, description="Revenue multiplier for market expansion potential")
    min_orders_for_pricing: int = Field(default=10, description="Distinct delivered orders before a product is priced")
    min_reviews_for_pricing: int = Field(default=10, description="Reviews required for an upsell candidate")
    min_pricing_rating: float = Field(default=4.5, description="Average rating required for an upsell candidate")
    min_category_sample_size: int = Field(default=3, description="Upsell candidates required per category")
    market_buckets: int = Field(default=4, description="Quantile buckets for state scoring")

    # Segmentation engine
    retention_multiplier: float = Field(default=0.10, description="Share of segment value recoverable by retention")
    churn_loss_multiplier: float = Field(default=0.30, description="Share of at-risk value lost on churn")
    rfm_buckets: int = Field(default=5, description="Quantile buckets per RFM dimension")

    # Trend & cohort engine
    cohort_start_month: date = Field(default=DEFAULT_COHORT_START, description="First cohort month reported")
    cohort_horizon_months: int = Field(default=3, description="Highest month offset tracked per cohort")
    min_cohort_size: int = Field(default=1, description="Customers required in month 0 of a cohort")
    moving_average_window: int = Field(default=3, description="Trailing window of the revenue moving average")

    # Performance engine
    min_seller_orders: int = Field(default=100, description="Delivered orders before a seller is reported")
    min_category_reviews: int = Field(default=10, description="Reviews before a category is reported")
    min_bestseller_orders: int = Field(default=10, description="Delivered orders before a product can rank as a best seller")
    bestseller_limit: int = Field(default=20, description="Best-selling products reported")
    hidden_gem_min_rating: float = Field(default=4.5, description="Average rating required for a hidden gem")
    hidden_gem_min_reviews: int = Field(default=5, description="Reviews required for a hidden gem")
    hidden_gem_max_orders: int = Field(default=20, description="Hidden gems have fewer delivered orders than this")
    hidden_gem_limit: int = Field(default=15, description="Hidden gems reported")
    high_value_percentile: int = Field(default=99, description="Lowest order-value percentile reported as high value")

    @field_validator("pareto_threshold")
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        if not 0 < v <= 1:
            raise ValueError("must be in (0, 1]")
        return v

    @field_validator(
        "price_increase_pct",
        "expansion_multiplier",
        "retention_multiplier",
        "churn_loss_multiplier",
    )
    @classmethod
    def validate_multiplier(cls, v: float) -> float:
        if v < 0:
            raise ValueError("must not be negative")
        return v

    @field_validator(
        "min_orders_for_pricing",
        "min_reviews_for_pricing",
        "min_category_sample_size",
        "market_buckets",
        "rfm_buckets",
        "cohort_horizon_months",
        "min_cohort_size",
        "moving_average_window",
        "min_seller_orders",
        "min_category_reviews",
        "min_bestseller_orders",
        "bestseller_limit",
        "hidden_gem_min_reviews",
        "hidden_gem_max_orders",
        "hidden_gem_limit",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @field_validator("high_value_percentile")
    @classmethod
    def validate_percentile(cls, v: int) -> int:
        if not 1 <= v <= 100:
            raise ValueError("must be within [1, 100]")
        return v

    @field_validator("min_pricing_rating", "hidden_gem_min_rating")
    @classmethod
    def validate_rating(cls, v: float) -> float:
        if not 1 <= v <= 5:
            raise ValueError("must be within the review scale [1, 5]")
        return v

    @field_validator("cohort_start_month")
    @classmethod
    def normalize_month(cls, v: date) -> date:
        """Cohorts are calendar months; keep only year and month"""
        return v.replace(day=1)


class MonitoringSettings(BaseSettings):
    """Logging Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", alias="LOG_FORMAT", description="Log format: json or text")


class SnapshotSettings(BaseSettings):
    """Location and file names of the CSV snapshot"""

    model_config = SettingsConfigDict(env_prefix="SNAPSHOT_")

    data_dir: str = Field(default="./data", description="Snapshot directory")
    customers_file: str = Field(default="olist_customers_dataset.csv")
    sellers_file: str = Field(default="olist_sellers_dataset.csv")
    categories_file: str = Field(default="product_category_name_translation.csv")
    products_file: str = Field(default="olist_products_dataset.csv")
    orders_file: str = Field(default="olist_orders_dataset.csv")
    order_items_file: str = Field(default="olist_order_items_dataset.csv")
    payments_file: str = Field(default="olist_order_payments_dataset.csv")
    reviews_file: str = Field(default="olist_order_reviews_dataset.csv")


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(default="salesintel", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")

    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)
    snapshot: SnapshotSettings = Field(default_factory=SnapshotSettings)
    analytics: AnalyticsSettings = Field(default_factory=AnalyticsSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()


def build_analysis_config(
    base: Optional[AnalyticsSettings] = None,
    **overrides: Any,
) -> AnalyticsSettings:
    """
    Build and validate the parameter set for one analysis run.

    Args:
        base: Settings to start from (defaults to environment settings)
        **overrides: Field values replacing those of ``base``

    Returns:
        AnalyticsSettings with a non-null ``as_of_date``

    Raises:
        ConfigurationError: On any out-of-range or missing parameter
    """
    values = base.model_dump() if base is not None else {}
    values.update({k: v for k, v in overrides.items() if v is not None})

    try:
        config = AnalyticsSettings(**values)
    except ValidationError as e:
        error = e.errors()[0]
        parameter = ".".join(str(loc) for loc in error["loc"]) or "unknown"
        raise ConfigurationError(parameter, error["msg"]) from e

    if config.as_of_date is None:
        raise ConfigurationError("as_of_date", "an explicit as-of date is required")

    return config
