"""
Customer Segmentation Engine

Three independent per-customer classifications over delivered orders:
- RFM quintile scoring with a (recency, frequency) segment table
- Lifetime-value tiers from absolute order-count and spend thresholds
- Churn-risk bands from days since the last delivered purchase

Customers are unique persons (``customer_unique_id``); the order-time
``customer_id`` is only a join key. Recency is measured from the configured
as-of date, never from the wall clock.
"""

from datetime import date
from typing import Any, Dict, List, Optional

import polars as pl
import structlog

from salesintel.analytics.base import EngineResult, frame_from_rows
from salesintel.analytics.kernel import quantile_bucket
from salesintel.config.settings import AnalyticsSettings
from salesintel.facts.model import FactModel

logger = structlog.get_logger(__name__)

CUSTOMER_KEY = "customer_unique_id"

# Ordered decision tables: first match wins
CHAMPIONS = "Champions"
LOYAL = "Loyal Customers"
POTENTIAL_LOYALISTS = "Potential Loyalists"
AT_RISK = "At Risk"
LOST = "Lost"
OTHERS = "Others"

VIP = "VIP"
HIGH_VALUE = "High Value"
REPEAT = "Repeat"
ONE_TIME = "One-time"

HIGH_RISK = "High Risk"
MEDIUM_RISK = "Medium Risk"
LOW_RISK = "Low Risk"
ACTIVE = "Active"

CHURN_BANDS = [HIGH_RISK, MEDIUM_RISK, LOW_RISK]

CUSTOMER_SCHEMA = {
    CUSTOMER_KEY: pl.Utf8,
    "recency_days": pl.Int64,
    "frequency": pl.Int64,
    "monetary": pl.Float64,
    "r_score": pl.Int64,
    "f_score": pl.Int64,
    "m_score": pl.Int64,
    "rfm_segment": pl.Utf8,
    "ltv_segment": pl.Utf8,
    "churn_risk_level": pl.Utf8,
}


def rfm_segment(r_score: int, f_score: int) -> str:
    """Segment label from recency and frequency buckets"""
    if r_score >= 4 and f_score >= 4:
        return CHAMPIONS
    if r_score >= 3 and f_score >= 3:
        return LOYAL
    if r_score >= 3 and f_score <= 2:
        return POTENTIAL_LOYALISTS
    if r_score <= 2 and f_score >= 4:
        return AT_RISK
    if r_score <= 2 and f_score <= 2:
        return LOST
    return OTHERS


def ltv_segment(order_count: int, lifetime_value: float) -> str:
    """Lifetime-value tier from absolute thresholds"""
    if order_count >= 5 and lifetime_value >= 1000:
        return VIP
    if order_count >= 3 and lifetime_value >= 500:
        return HIGH_VALUE
    if order_count >= 2:
        return REPEAT
    return ONE_TIME


def churn_risk_level(days_since_last_purchase: Optional[int]) -> Optional[str]:
    """Churn band; None for a customer with no delivered purchase"""
    if days_since_last_purchase is None:
        return None
    if days_since_last_purchase > 180:
        return HIGH_RISK
    if days_since_last_purchase > 90:
        return MEDIUM_RISK
    if days_since_last_purchase > 60:
        return LOW_RISK
    return ACTIVE


class SegmentationEngine:
    """
    Per-customer segmentation with segment rollups.

    Example:
        engine = SegmentationEngine(facts, config)
        result = engine.run()
        result.sections["rfm_segments"]
    """

    def __init__(self, facts: FactModel, config: AnalyticsSettings):
        self.facts = facts
        self.config = config
        self.as_of_date: date = config.as_of_date

    def customer_metrics(self) -> List[Dict[str, Any]]:
        """
        Recency, frequency and monetary value per customer.

        Frequency counts distinct delivered orders; monetary sums price plus
        freight over their lines.
        """
        orders = self.facts.delivered_orders.group_by(CUSTOMER_KEY).agg([
            pl.col("order_id").n_unique().alias("frequency"),
            pl.col("purchase_date").max().alias("last_purchase_date"),
        ])
        spend = self.facts.delivered_lines.group_by(CUSTOMER_KEY).agg(
            pl.col("line_revenue").sum().alias("monetary")
        )
        metrics = (
            orders
            .join(spend, on=CUSTOMER_KEY, how="left")
            .with_columns(pl.col("monetary").fill_null(0.0))
            .sort(CUSTOMER_KEY)
        )

        rows = metrics.to_dicts()
        for row in rows:
            row["recency_days"] = (self.as_of_date - row["last_purchase_date"]).days
        return rows

    def score_customers(self, rows: List[Dict[str, Any]]) -> pl.DataFrame:
        """Attach RFM scores, RFM segment, LTV tier and churn band to each customer"""
        buckets = self.config.rfm_buckets
        by_id = lambda row: row[CUSTOMER_KEY]

        # Descending recency, so the most recent buyers land in the top bucket
        for row, bucket in quantile_bucket(rows, lambda r: r["recency_days"], buckets, descending=True, tie_key=by_id):
            row["r_score"] = bucket
        for row, bucket in quantile_bucket(rows, lambda r: r["frequency"], buckets, tie_key=by_id):
            row["f_score"] = bucket
        for row, bucket in quantile_bucket(rows, lambda r: r["monetary"], buckets, tie_key=by_id):
            row["m_score"] = bucket

        for row in rows:
            row["rfm_segment"] = rfm_segment(row["r_score"], row["f_score"])
            row["ltv_segment"] = ltv_segment(row["frequency"], row["monetary"])
            row["churn_risk_level"] = churn_risk_level(row["recency_days"])

        return frame_from_rows(rows, CUSTOMER_SCHEMA)

    def _rollup(
        self,
        customers: pl.DataFrame,
        segment_col: str,
        impact_col: str,
        impact_multiplier: float,
    ) -> pl.DataFrame:
        return (
            customers
            .group_by(segment_col)
            .agg([
                pl.len().alias("customer_count"),
                pl.col("monetary").mean().alias("avg_lifetime_value"),
                pl.col("monetary").sum().alias("total_segment_value"),
                pl.col("frequency").mean().alias("avg_orders"),
                pl.col("recency_days").mean().alias("avg_days_inactive"),
            ])
            .with_columns(
                (pl.col("total_segment_value") * impact_multiplier).alias(impact_col)
            )
        )

    def rfm_segments(self, customers: pl.DataFrame) -> pl.DataFrame:
        return self._rollup(
            customers, "rfm_segment", "potential_retention_revenue", self.config.retention_multiplier,
        ).sort(["total_segment_value", "rfm_segment"], descending=[True, False])

    def ltv_segments(self, customers: pl.DataFrame) -> pl.DataFrame:
        return self._rollup(
            customers, "ltv_segment", "potential_retention_revenue", self.config.retention_multiplier,
        ).sort(["total_segment_value", "ltv_segment"], descending=[True, False])

    def churn_segments(self, customers: pl.DataFrame) -> pl.DataFrame:
        """Rollup of the risk bands, most severe first; active customers are not at risk"""
        at_risk = customers.filter(pl.col("churn_risk_level").is_in(CHURN_BANDS))
        rollup = self._rollup(
            at_risk, "churn_risk_level", "estimated_revenue_loss", self.config.churn_loss_multiplier,
        ).rename({"total_segment_value": "total_at_risk_revenue"})
        severity = {band: i for i, band in enumerate(CHURN_BANDS)}
        return (
            rollup
            .with_columns(
                pl.col("churn_risk_level").replace_strict(severity, return_dtype=pl.Int64).alias("_severity")
            )
            .sort("_severity")
            .drop("_severity")
        )

    def run(self) -> EngineResult:
        """Compute all segmentation sections"""
        result = EngineResult(engine="segmentation")
        logger.info("Computing customer segmentation", as_of_date=self.as_of_date.isoformat())

        customers = self.score_customers(self.customer_metrics())
        result.add("customer_segments", customers)
        result.add("rfm_segments", self.rfm_segments(customers))
        result.add("ltv_segments", self.ltv_segments(customers))
        result.add("churn_risk", self.churn_segments(customers))
        result.add("never_purchased", self.facts.never_purchased())

        return result.finish()
