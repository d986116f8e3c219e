"""
Trend & Cohort Engine

Descriptive time views over delivered orders:
- monthly revenue with month-over-month growth and a trailing moving average
- monthly acquisition cohorts with retention at fixed month offsets
"""

from typing import Any, Dict, List

import polars as pl
import structlog

from salesintel.analytics.base import EngineResult, frame_from_rows
from salesintel.analytics.kernel import growth_pct, lag, moving_average, safe_pct, safe_ratio
from salesintel.config.settings import AnalyticsSettings
from salesintel.facts.model import FactModel

logger = structlog.get_logger(__name__)

MONTHLY_SCHEMA = {
    "month": pl.Date,
    "total_revenue": pl.Float64,
    "total_orders": pl.Int64,
    "unique_customers": pl.Int64,
    "avg_order_value": pl.Float64,
    "prev_month_revenue": pl.Float64,
    "revenue_growth_pct": pl.Float64,
    "moving_avg_revenue": pl.Float64,
}


def _month_index(col: str) -> pl.Expr:
    return pl.col(col).dt.year().cast(pl.Int64) * 12 + pl.col(col).dt.month().cast(pl.Int64)


class TrendEngine:
    """
    Monthly revenue trend and cohort retention.

    Example:
        engine = TrendEngine(facts, config)
        result = engine.run()
        result.sections["cohort_retention"]
    """

    def __init__(self, facts: FactModel, config: AnalyticsSettings):
        self.facts = facts
        self.config = config

    def monthly_revenue(self) -> pl.DataFrame:
        """
        Revenue (price + freight) per calendar month of purchase.

        Growth is absent for the first month and whenever the previous
        month's revenue is zero. Months without delivered orders are not
        emitted, so the previous month is the previous reported month.
        """
        monthly = (
            self.facts.delivered_lines
            .group_by("purchase_month")
            .agg([
                pl.col("line_revenue").sum().alias("total_revenue"),
                pl.col("order_id").n_unique().alias("total_orders"),
                pl.col("customer_unique_id").n_unique().alias("unique_customers"),
            ])
            .rename({"purchase_month": "month"})
        )
        rows = monthly.to_dicts()

        by_month = lambda r: r["month"]
        revenue = lambda r: r["total_revenue"]
        previous = lag(rows, by_month, revenue)
        averages = moving_average(rows, by_month, revenue, self.config.moving_average_window)

        out = []
        for (row, prev), (_, avg) in zip(previous, averages):
            out.append({
                **row,
                "avg_order_value": safe_ratio(row["total_revenue"], row["total_orders"]),
                "prev_month_revenue": prev,
                "revenue_growth_pct": growth_pct(row["total_revenue"], prev),
                "moving_avg_revenue": avg,
            })

        return frame_from_rows(out, MONTHLY_SCHEMA)

    def cohort_schema(self) -> Dict[str, pl.DataType]:
        horizon = self.config.cohort_horizon_months
        schema: Dict[str, pl.DataType] = {"cohort_month": pl.Date}
        for k in range(horizon + 1):
            schema[f"month_{k}"] = pl.Int64
        for k in range(1, horizon + 1):
            schema[f"retention_month_{k}_pct"] = pl.Float64
        return schema

    def cohort_retention(self, result: EngineResult) -> pl.DataFrame:
        """
        Distinct active customers per cohort at month offsets 0..horizon.

        A customer's cohort is the month of their first delivered order over
        the whole snapshot; cohorts before the configured start month, or
        smaller than the minimum cohort size, are omitted.
        """
        horizon = self.config.cohort_horizon_months
        activity = self.facts.delivered_orders.select(["customer_unique_id", "purchase_month"]).unique()

        cohorts = activity.group_by("customer_unique_id").agg(
            pl.col("purchase_month").min().alias("cohort_month")
        )

        counts = (
            activity
            .join(cohorts, on="customer_unique_id", how="inner")
            .with_columns(
                (_month_index("purchase_month") - _month_index("cohort_month")).alias("months_since_cohort")
            )
            .filter(pl.col("months_since_cohort") <= horizon)
            .group_by(["cohort_month", "months_since_cohort"])
            .agg(pl.col("customer_unique_id").n_unique().alias("customers"))
        )

        matrix: Dict[Any, Dict[int, int]] = {}
        for row in counts.iter_rows(named=True):
            matrix.setdefault(row["cohort_month"], {})[row["months_since_cohort"]] = row["customers"]

        rows: List[Dict[str, Any]] = []
        early = 0
        small = 0
        for cohort_month in sorted(matrix):
            offsets = matrix[cohort_month]
            if cohort_month < self.config.cohort_start_month:
                early += 1
                continue
            month_0 = offsets.get(0, 0)
            if month_0 < self.config.min_cohort_size:
                small += 1
                continue

            row: Dict[str, Any] = {"cohort_month": cohort_month}
            for k in range(horizon + 1):
                row[f"month_{k}"] = offsets.get(k, 0)
            for k in range(1, horizon + 1):
                row[f"retention_month_{k}_pct"] = safe_pct(row[f"month_{k}"], month_0)
            rows.append(row)

        result.omit("cohort_retention", early, "cohort before start month")
        result.omit("cohort_retention", small, "cohort below minimum size")

        return frame_from_rows(rows, self.cohort_schema())

    def run(self) -> EngineResult:
        """Compute monthly trend and cohort retention sections"""
        result = EngineResult(engine="trends")
        logger.info(
            "Computing revenue trend and cohorts",
            cohort_start_month=self.config.cohort_start_month.isoformat(),
        )

        result.add("monthly_revenue", self.monthly_revenue())
        result.add("cohort_retention", self.cohort_retention(result))

        return result.finish()
