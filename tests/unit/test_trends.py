"""
Unit Tests - Revenue Trend and Cohort Retention
"""
from datetime import date, datetime

import pytest

from salesintel.analytics.base import EngineResult
from salesintel.analytics.trends import TrendEngine
from salesintel.config import build_analysis_config
from salesintel.exceptions import InsufficientDataWarning


class TestMonthlyRevenue:
    """Tests for monthly revenue trend"""

    def test_monthly_totals(self, sample_facts, analysis_config):
        """Test monthly revenue, orders and customers"""
        monthly = TrendEngine(sample_facts, analysis_config).monthly_revenue()

        assert [m.month for m in monthly["month"].to_list()] == [1, 2, 3, 8]
        assert monthly["total_revenue"].to_list() == pytest.approx([625.0, 121.0, 52.0, 103.0])
        assert monthly["total_orders"].to_list() == [2, 2, 1, 1]
        assert monthly["avg_order_value"].to_list()[0] == pytest.approx(312.5)

    def test_growth_and_moving_average(self, sample_facts, analysis_config):
        """Test month-over-month growth and moving average"""
        monthly = TrendEngine(sample_facts, analysis_config).monthly_revenue()

        growth = monthly["revenue_growth_pct"].to_list()
        assert growth[0] is None
        assert growth[1] == pytest.approx((121.0 - 625.0) / 625.0 * 100)
        assert growth[3] == pytest.approx((103.0 - 52.0) / 52.0 * 100)
        assert monthly["moving_avg_revenue"].to_list() == pytest.approx([625.0, 373.0, 266.0, 92.0])

    def test_growth_absent_after_zero_revenue_month(self, snapshot, analysis_config):
        """Test growth is absent after a zero-revenue month"""
        alice = snapshot.customer("alice")
        snapshot.order(alice, datetime(2018, 1, 5), [("p-free", 0.0, 0.0)])
        snapshot.order(alice, datetime(2018, 2, 5), [("p-1", 100.0, 0.0)])

        monthly = TrendEngine(snapshot.build(), analysis_config).monthly_revenue()

        assert monthly["prev_month_revenue"].to_list() == [None, 0.0]
        assert monthly["revenue_growth_pct"].to_list() == [None, None]

    def test_empty_snapshot(self, snapshot, analysis_config):
        """Test an empty snapshot gives empty trend sections"""
        monthly = TrendEngine(snapshot.build(), analysis_config).monthly_revenue()

        assert monthly.is_empty()
        assert "revenue_growth_pct" in monthly.columns


class TestCohortRetention:
    """Tests for cohort retention matrix"""

    def test_cohort_counts(self, sample_facts, analysis_config):
        """Test cohort sizes and retained counts"""
        cohorts = TrendEngine(sample_facts, analysis_config).run().sections["cohort_retention"]
        rows = {row["cohort_month"]: row for row in cohorts.iter_rows(named=True)}

        january = rows[date(2018, 1, 1)]
        assert [january[f"month_{k}"] for k in range(4)] == [2, 1, 1, 0]
        assert january["retention_month_1_pct"] == pytest.approx(50.0)
        assert january["retention_month_3_pct"] == pytest.approx(0.0)

        february = rows[date(2018, 2, 1)]
        assert february["month_0"] == 1
        assert february["month_1"] == 0

    def test_retention_non_increasing_for_one_time_buyers(self, snapshot, analysis_config):
        """Test retention does not rise for one-time buyers"""
        for i, month in enumerate([3, 3, 3, 4, 5]):
            cust = snapshot.customer(f"u-{i}")
            snapshot.order(cust, datetime(2018, 3, 10), [("p-1", 10.0, 1.0)])
            if month != 3:
                snapshot.order(cust, datetime(2018, month, 10), [("p-1", 10.0, 1.0)])

        cohort = TrendEngine(snapshot.build(), analysis_config).run().sections["cohort_retention"].row(0, named=True)

        assert cohort["month_0"] == 5
        assert cohort["retention_month_1_pct"] >= cohort["retention_month_2_pct"] >= cohort["retention_month_3_pct"]

    def test_cohorts_before_start_month_omitted(self, sample_facts):
        """Test cohorts before the start month are left out"""
        config = build_analysis_config(as_of_date=date(2018, 10, 1), cohort_start_month=date(2018, 2, 1))
        engine = TrendEngine(sample_facts, config)
        result = EngineResult(engine="trends")

        with pytest.warns(InsufficientDataWarning):
            cohorts = engine.cohort_retention(result)

        assert cohorts["cohort_month"].to_list() == [date(2018, 2, 1)]
        assert result.omissions == {"cohort_retention": 1}

    def test_small_cohorts_omitted(self, sample_facts):
        """Test cohorts below the size gate are omitted and counted"""
        config = build_analysis_config(as_of_date=date(2018, 10, 1), min_cohort_size=2)

        with pytest.warns(InsufficientDataWarning):
            result = TrendEngine(sample_facts, config).run()

        assert result.sections["cohort_retention"]["cohort_month"].to_list() == [date(2018, 1, 1)]
        assert result.omissions["cohort_retention"] == 1

    def test_horizon_controls_columns(self, sample_facts):
        """Test the horizon sets the month offsets reported"""
        config = build_analysis_config(as_of_date=date(2018, 10, 1), cohort_horizon_months=6)

        cohorts = TrendEngine(sample_facts, config).run().sections["cohort_retention"]

        assert "month_6" in cohorts.columns
        assert "retention_month_6_pct" in cohorts.columns
        january = cohorts.row(0, named=True)
        assert january["month_6"] == 0
