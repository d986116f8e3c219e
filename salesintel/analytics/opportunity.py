"""
Opportunity Engine

Revenue-concentration and growth-opportunity views:
- Pareto cut-off: smallest top-revenue product set reaching a revenue share
- Pricing opportunity: cheap, highly rated products per category (upsell)
- Market expansion: state revenue share, and state scoring by revenue and
  customer-count quartiles
"""

from typing import Any, Dict, List, Optional, Tuple

import polars as pl
import structlog

from salesintel.analytics.base import EngineResult, frame_from_rows
from salesintel.analytics.kernel import (
    group_mean,
    group_sum,
    quantile_bucket,
    rank,
    running_sum,
    safe_pct,
    safe_ratio,
    sort_records,
)
from salesintel.config.settings import AnalyticsSettings
from salesintel.facts.model import FactModel

logger = structlog.get_logger(__name__)

HIGH_GROWTH = "High Growth Potential"
PREMIUM = "Premium Market"
EXPANSION_TARGET = "Expansion Target"
ESTABLISHED = "Established Market"

PREMIUM_ORDER_VALUE = 150.0

PARETO_SUMMARY_SCHEMA = {
    "threshold_pct": pl.Float64,
    "product_count": pl.Int64,
    "total_products": pl.Int64,
    "percentage_of_catalog": pl.Float64,
    "revenue_generated": pl.Float64,
    "total_revenue": pl.Float64,
    "revenue_percentage": pl.Float64,
}

PARETO_PRODUCTS_SCHEMA = {
    "product_rank": pl.Int64,
    "product_id": pl.Utf8,
    "category_name_english": pl.Utf8,
    "revenue": pl.Float64,
    "cumulative_revenue": pl.Float64,
    "cumulative_share_pct": pl.Float64,
    "in_cutoff": pl.Boolean,
}

CANDIDATE_SCHEMA = {
    "product_id": pl.Utf8,
    "category_name": pl.Utf8,
    "category_name_english": pl.Utf8,
    "order_count": pl.Int64,
    "avg_price": pl.Float64,
    "avg_rating": pl.Float64,
    "review_count": pl.Int64,
    "price_quartile": pl.Int64,
}

PRICING_SCHEMA = {
    "category_name": pl.Utf8,
    "category_name_english": pl.Utf8,
    "products_in_opportunity": pl.Int64,
    "current_avg_price": pl.Float64,
    "suggested_price": pl.Float64,
    "avg_rating": pl.Float64,
    "potential_additional_revenue": pl.Float64,
}

STATE_REVENUE_SCHEMA = {
    "customer_state": pl.Utf8,
    "customer_count": pl.Int64,
    "order_count": pl.Int64,
    "total_revenue": pl.Float64,
    "avg_order_value": pl.Float64,
    "revenue_percentage": pl.Float64,
}

MARKET_SCHEMA = {
    "customer_state": pl.Utf8,
    "customer_count": pl.Int64,
    "order_count": pl.Int64,
    "total_revenue": pl.Float64,
    "avg_order_value": pl.Float64,
    "avg_satisfaction": pl.Float64,
    "revenue_quartile": pl.Int64,
    "customer_quartile": pl.Int64,
    "market_opportunity": pl.Utf8,
    "expansion_revenue_potential": pl.Float64,
}


def market_opportunity(revenue_bucket: int, customer_bucket: int, avg_order_value: Optional[float]) -> str:
    """Market class from revenue/customer buckets (1 = top quartile); first match wins"""
    if revenue_bucket == 1 and customer_bucket == 1:
        return HIGH_GROWTH
    if revenue_bucket <= 2 and avg_order_value is not None and avg_order_value > PREMIUM_ORDER_VALUE:
        return PREMIUM
    if revenue_bucket <= 2:
        return EXPANSION_TARGET
    return ESTABLISHED


class OpportunityEngine:
    """
    Pareto, pricing and market-expansion analyses.

    Example:
        engine = OpportunityEngine(facts, config)
        summary = engine.pareto(threshold=0.8)[0]
    """

    def __init__(self, facts: FactModel, config: AnalyticsSettings):
        self.facts = facts
        self.config = config

    # ------------------------------------------------------------------
    # Pareto
    # ------------------------------------------------------------------

    def product_revenue(self) -> List[Dict[str, Any]]:
        """Product revenue (price only, freight excluded) over delivered lines"""
        return (
            self.facts.delivered_lines
            .group_by("product_id")
            .agg([
                pl.col("price").sum().alias("revenue"),
                pl.col("category_name_english").first(),
            ])
            .to_dicts()
        )

    def pareto(self, threshold: Optional[float] = None) -> Tuple[pl.DataFrame, pl.DataFrame]:
        """
        Minimal revenue-ranked product prefix whose cumulative revenue
        reaches ``threshold`` of the total.

        Ranking is by revenue descending with product id as tie-break, so the
        prefix is reproducible and never shrinks as the threshold grows.

        Returns:
            (summary with one row, ranked product list)
        """
        threshold = self.config.pareto_threshold if threshold is None else threshold
        revenues = self.product_revenue()
        by_revenue = lambda r: r["revenue"]
        by_product = lambda r: r["product_id"]

        ranked = running_sum(revenues, order_fn=by_revenue, tie_key=by_product)
        total = ranked[-1][1] if ranked else 0.0
        if total <= 0:
            return frame_from_rows([], PARETO_SUMMARY_SCHEMA), frame_from_rows([], PARETO_PRODUCTS_SCHEMA)

        positions = {
            record["product_id"]: position
            for record, position in rank(revenues, by_revenue, tie_key=by_product)
        }
        target = total * threshold
        cutoff = next(
            positions[record["product_id"]]
            for record, cumulative in ranked
            if cumulative >= target or positions[record["product_id"]] == len(ranked)
        )

        products = [
            {
                "product_rank": positions[record["product_id"]],
                "product_id": record["product_id"],
                "category_name_english": record["category_name_english"],
                "revenue": record["revenue"],
                "cumulative_revenue": cumulative,
                "cumulative_share_pct": safe_pct(cumulative, total),
                "in_cutoff": positions[record["product_id"]] <= cutoff,
            }
            for record, cumulative in ranked
        ]
        revenue_generated = ranked[cutoff - 1][1]
        summary = {
            "threshold_pct": threshold * 100,
            "product_count": cutoff,
            "total_products": len(ranked),
            "percentage_of_catalog": safe_pct(cutoff, len(ranked)),
            "revenue_generated": revenue_generated,
            "total_revenue": total,
            "revenue_percentage": safe_pct(revenue_generated, total),
        }

        return frame_from_rows([summary], PARETO_SUMMARY_SCHEMA), frame_from_rows(products, PARETO_PRODUCTS_SCHEMA)

    # ------------------------------------------------------------------
    # Pricing
    # ------------------------------------------------------------------

    def product_pricing_metrics(self) -> pl.DataFrame:
        """
        Price, rating and review count for products with enough delivered orders.

        Ratings come from reviews of delivered orders containing the product;
        an order with no review contributes nothing to the rating.
        """
        lines = self.facts.categorized_lines

        products = (
            lines
            .group_by("product_id")
            .agg([
                pl.col("category_name").first(),
                pl.col("category_name_english").first(),
                pl.col("order_id").n_unique().alias("order_count"),
                pl.col("price").mean().alias("avg_price"),
            ])
            .filter(pl.col("order_count") >= self.config.min_orders_for_pricing)
        )

        ratings = (
            lines
            .select(["product_id", "order_id"])
            .unique()
            .join(
                self.facts.delivered_reviews.select(["order_id", "review_id", "review_score"]),
                on="order_id",
                how="inner",
            )
            .group_by("product_id")
            .agg([
                pl.col("review_score").mean().alias("avg_rating"),
                pl.len().alias("review_count"),
            ])
        )

        return (
            products
            .join(ratings, on="product_id", how="left")
            .with_columns(pl.col("review_count").fill_null(0).cast(pl.Int64))
            .sort("product_id")
        )

    def upsell_candidates(self, metrics: pl.DataFrame) -> pl.DataFrame:
        """Products in their category's cheapest price quartile with strong ratings"""
        by_category: Dict[str, List[Dict[str, Any]]] = {}
        for row in metrics.to_dicts():
            by_category.setdefault(row["category_name"], []).append(row)

        candidates = []
        for category in sorted(by_category):
            for row, quartile in quantile_bucket(
                by_category[category],
                lambda r: r["avg_price"],
                4,
                tie_key=lambda r: r["product_id"],
            ):
                if quartile != 1:
                    continue
                if row["avg_rating"] is None or row["avg_rating"] < self.config.min_pricing_rating:
                    continue
                if row["review_count"] < self.config.min_reviews_for_pricing:
                    continue
                candidates.append({**row, "price_quartile": quartile})

        return frame_from_rows(candidates, CANDIDATE_SCHEMA)

    def pricing_opportunities(self, candidates: pl.DataFrame, result: EngineResult) -> pl.DataFrame:
        """Per-category upsell projection at the configured price increase"""
        increase = self.config.price_increase_pct
        records = candidates.to_dicts()
        by_category = lambda r: r["category_name"]

        counts = group_sum(records, by_category, lambda r: 1)
        prices = group_mean(records, by_category, lambda r: r["avg_price"])
        ratings = group_mean(records, by_category, lambda r: r["avg_rating"])
        base_revenue = group_sum(records, by_category, lambda r: r["avg_price"] * r["order_count"])
        english = {r["category_name"]: r["category_name_english"] for r in records}

        rows = []
        too_small = 0
        for category, count in counts.items():
            if count < self.config.min_category_sample_size:
                too_small += 1
                continue
            current = prices[category]
            rows.append({
                "category_name": category,
                "category_name_english": english[category],
                "products_in_opportunity": int(count),
                "current_avg_price": current,
                "suggested_price": current * (1 + increase),
                "avg_rating": ratings.get(category),
                "potential_additional_revenue": base_revenue[category] * increase,
            })

        result.omit("pricing_opportunities", too_small, "category below minimum sample size")
        rows.sort(key=lambda r: (-r["potential_additional_revenue"], r["category_name"]))
        return frame_from_rows(rows, PRICING_SCHEMA)

    # ------------------------------------------------------------------
    # Market expansion
    # ------------------------------------------------------------------

    def state_metrics(self) -> List[Dict[str, Any]]:
        """Customers, orders, revenue and satisfaction per customer state"""
        orders = (
            self.facts.delivered_orders
            .filter(pl.col("customer_state").is_not_null())
            .group_by("customer_state")
            .agg([
                pl.col("customer_unique_id").n_unique().alias("customer_count"),
                pl.col("order_id").n_unique().alias("order_count"),
            ])
        )
        revenue = self.facts.delivered_lines.group_by("customer_state").agg(
            pl.col("line_revenue").sum().alias("total_revenue")
        )
        satisfaction = self.facts.delivered_reviews.group_by("customer_state").agg(
            pl.col("review_score").mean().alias("avg_satisfaction")
        )

        rows = (
            orders
            .join(revenue, on="customer_state", how="left")
            .join(satisfaction, on="customer_state", how="left")
            .with_columns(pl.col("total_revenue").fill_null(0.0))
            .to_dicts()
        )
        total = sum(row["total_revenue"] for row in rows)
        for row in rows:
            row["avg_order_value"] = safe_ratio(row["total_revenue"], row["order_count"])
            row["revenue_percentage"] = safe_pct(row["total_revenue"], total)
        return rows

    def revenue_by_state(self) -> pl.DataFrame:
        """Every customer state with its share of delivered revenue"""
        rows = sort_records(
            self.state_metrics(),
            lambda r: r["total_revenue"],
            descending=True,
            tie_key=lambda r: r["customer_state"],
        )
        return frame_from_rows(rows, STATE_REVENUE_SCHEMA)

    def market_expansion(self) -> pl.DataFrame:
        """States in the top two revenue quartiles, classified by opportunity"""
        buckets = self.config.market_buckets
        rows = self.state_metrics()
        by_state = lambda r: r["customer_state"]

        for row, bucket in quantile_bucket(rows, lambda r: r["total_revenue"], buckets, descending=True, tie_key=by_state):
            row["revenue_quartile"] = bucket
        for row, bucket in quantile_bucket(rows, lambda r: r["customer_count"], buckets, descending=True, tie_key=by_state):
            row["customer_quartile"] = bucket

        reported = []
        for row in rows:
            if row["revenue_quartile"] > 2:
                continue
            row["market_opportunity"] = market_opportunity(
                row["revenue_quartile"], row["customer_quartile"], row["avg_order_value"],
            )
            row["expansion_revenue_potential"] = row["total_revenue"] * self.config.expansion_multiplier
            reported.append(row)

        reported.sort(key=lambda r: (-r["expansion_revenue_potential"], r["customer_state"]))
        return frame_from_rows(reported, MARKET_SCHEMA)

    def run(self) -> EngineResult:
        """Compute all opportunity sections"""
        result = EngineResult(engine="opportunity")
        logger.info("Computing opportunities", pareto_threshold=self.config.pareto_threshold)

        summary, products = self.pareto()
        result.add("pareto_summary", summary)
        result.add("pareto_products", products)

        candidates = self.upsell_candidates(self.product_pricing_metrics())
        result.add("upsell_candidates", candidates)
        result.add("pricing_opportunities", self.pricing_opportunities(candidates, result))

        result.add("revenue_by_state", self.revenue_by_state())
        result.add("market_expansion", self.market_expansion())

        return result.finish()
