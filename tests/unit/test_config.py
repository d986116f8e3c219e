"""
Unit Tests - Configuration
"""
from datetime import date

import pytest

from salesintel.config import AnalyticsSettings, Settings, build_analysis_config, get_settings
from salesintel.exceptions import ConfigurationError, DataIntegrityError, is_transient


class TestBuildAnalysisConfig:
    """Tests for build_analysis_config"""

    def test_defaults(self):
        """Test default analysis parameters"""
        config = build_analysis_config(as_of_date=date(2018, 10, 1))

        assert config.pareto_threshold == 0.80
        assert config.price_increase_pct == 0.15
        assert config.retention_multiplier == 0.10
        assert config.churn_loss_multiplier == 0.30
        assert config.expansion_multiplier == 1.0
        assert config.min_orders_for_pricing == 10
        assert config.min_category_sample_size == 3
        assert config.cohort_start_month == date(2017, 1, 1)

    def test_missing_as_of_date(self):
        """Test a run without an as-of date is rejected"""
        with pytest.raises(ConfigurationError) as exc_info:
            build_analysis_config()

        assert exc_info.value.parameter == "as_of_date"

    @pytest.mark.parametrize(
        "parameter,value",
        [
            ("pareto_threshold", 0.0),
            ("pareto_threshold", -0.5),
            ("pareto_threshold", 1.5),
            ("price_increase_pct", -0.1),
            ("retention_multiplier", -1.0),
            ("rfm_buckets", 0),
            ("market_buckets", 0),
            ("min_pricing_rating", 6.0),
            ("hidden_gem_min_rating", 0.5),
            ("bestseller_limit", 0),
            ("high_value_percentile", 0),
            ("high_value_percentile", 101),
        ],
    )
    def test_out_of_range_parameter(self, parameter, value):
        """Test out-of-range parameters name the offending field"""
        with pytest.raises(ConfigurationError) as exc_info:
            build_analysis_config(as_of_date=date(2018, 10, 1), **{parameter: value})

        assert exc_info.value.parameter == parameter

    def test_none_overrides_are_ignored(self):
        """Test None overrides keep the configured value"""
        config = build_analysis_config(as_of_date=date(2018, 10, 1), pareto_threshold=None)

        assert config.pareto_threshold == 0.80

    def test_overrides_apply_on_top_of_base(self):
        """Test overrides are layered over a base configuration"""
        base = AnalyticsSettings(pareto_threshold=0.5)

        config = build_analysis_config(base, as_of_date=date(2018, 10, 1), price_increase_pct=0.2)

        assert config.pareto_threshold == 0.5
        assert config.price_increase_pct == 0.2

    def test_cohort_start_normalized_to_month(self):
        """Test cohort start dates snap to the first of the month"""
        config = build_analysis_config(as_of_date=date(2018, 10, 1), cohort_start_month=date(2017, 6, 17))

        assert config.cohort_start_month == date(2017, 6, 1)

    def test_environment_variables(self, monkeypatch):
        """Test parameters are read from ANALYTICS_ variables"""
        monkeypatch.setenv("ANALYTICS_PARETO_THRESHOLD", "0.9")
        monkeypatch.setenv("ANALYTICS_AS_OF_DATE", "2018-09-01")

        config = build_analysis_config()

        assert config.pareto_threshold == 0.9
        assert config.as_of_date == date(2018, 9, 1)


class TestSettings:
    """Tests for application settings"""

    def test_invalid_environment(self):
        """Test unknown application environments are rejected"""
        with pytest.raises(ValueError):
            Settings(APP_ENV="moon")

    def test_settings_are_cached(self):
        """Test get_settings returns a cached instance"""
        get_settings.cache_clear()

        assert get_settings() is get_settings()

    def test_snapshot_file_names(self):
        """Test default snapshot file names"""
        settings = Settings()

        assert settings.snapshot.orders_file == "olist_orders_dataset.csv"
        assert settings.snapshot.categories_file == "product_category_name_translation.csv"


class TestErrorTaxonomy:
    """Tests for retry classification of failures"""

    def test_analysis_errors_are_not_transient(self):
        """Test integrity and configuration errors are not retried"""
        assert not is_transient(DataIntegrityError("type_orders.order_id", "bad value"))
        assert not is_transient(ConfigurationError("data_dir", "missing"))

    def test_other_errors_are_transient(self):
        """Test other failures may be retried"""
        assert is_transient(OSError("connection reset"))
