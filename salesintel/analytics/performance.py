"""
Performance Engine

Operational scorecards over delivered orders:
- headline KPI snapshot
- category performance with review sentiment
- delivery performance by state and its impact on ratings
- payment method mix
- seller performance
- best-selling products, hidden gems and high-value order percentiles
"""

from typing import Any, Dict, List

import polars as pl
import structlog

from salesintel.analytics.base import EngineResult, frame_from_rows
from salesintel.analytics.kernel import group_mean, group_sum, mean, quantile_bucket, rank, safe_ratio
from salesintel.config.settings import AnalyticsSettings
from salesintel.facts.model import FactModel

logger = structlog.get_logger(__name__)

POSITIVE_SCORE = 4
SLIGHTLY_LATE_DAYS = 3
SECONDS_PER_DAY = 86400

ON_TIME = "On-Time"
SLIGHTLY_LATE = "Slightly Late"
VERY_LATE = "Very Late"

KPI_SCHEMA = {
    "total_revenue": pl.Float64,
    "total_orders": pl.Int64,
    "total_customers": pl.Int64,
    "avg_order_value": pl.Float64,
    "products_sold": pl.Int64,
    "avg_customer_satisfaction": pl.Float64,
}

PERCENTILES = 100

PRODUCT_SCHEMA = {
    "product_id": pl.Utf8,
    "category_name_english": pl.Utf8,
    "times_ordered": pl.Int64,
    "units_sold": pl.Int64,
    "total_revenue": pl.Float64,
    "avg_price": pl.Float64,
    "avg_rating": pl.Float64,
    "review_count": pl.Int64,
}

BESTSELLER_SCHEMA = {"sales_rank": pl.Int64, **PRODUCT_SCHEMA}

HIDDEN_GEM_SCHEMA = PRODUCT_SCHEMA

HIGH_VALUE_SCHEMA = {
    "percentile": pl.Int64,
    "order_count": pl.Int64,
    "min_value": pl.Float64,
    "max_value": pl.Float64,
    "avg_value": pl.Float64,
    "total_value": pl.Float64,
}


def _review_stats(pairs: pl.DataFrame, key: str, reviews: pl.DataFrame) -> pl.DataFrame:
    """Rating aggregates of the reviews attached to distinct (key, order) pairs"""
    return (
        pairs
        .join(reviews.select(["order_id", "review_score"]), on="order_id", how="inner")
        .group_by(key)
        .agg([
            pl.col("review_score").mean().alias("avg_rating"),
            pl.len().alias("review_count"),
            ((pl.col("review_score") >= POSITIVE_SCORE).sum() * 100.0 / pl.len()).alias("pct_positive_reviews"),
        ])
    )


def _days_between(later: str, earlier: str) -> pl.Expr:
    return (pl.col(later) - pl.col(earlier)).dt.total_seconds() / SECONDS_PER_DAY


class PerformanceEngine:
    """
    KPI, category, delivery, payment and seller scorecards.

    Example:
        engine = PerformanceEngine(facts, config)
        result = engine.run()
    """

    def __init__(self, facts: FactModel, config: AnalyticsSettings):
        self.facts = facts
        self.config = config

    def kpi_snapshot(self) -> pl.DataFrame:
        """Overall business health in a single row"""
        lines = self.facts.delivered_lines
        if lines.is_empty():
            return frame_from_rows([], KPI_SCHEMA)

        total_revenue = lines["line_revenue"].sum()
        total_orders = lines["order_id"].n_unique()
        row: Dict[str, Any] = {
            "total_revenue": total_revenue,
            "total_orders": total_orders,
            "total_customers": lines["customer_unique_id"].n_unique(),
            "avg_order_value": safe_ratio(total_revenue, total_orders),
            "products_sold": lines["product_id"].n_unique(),
            "avg_customer_satisfaction": self.facts.delivered_reviews["review_score"].mean(),
        }
        return frame_from_rows([row], KPI_SCHEMA)

    def category_performance(self, result: EngineResult) -> pl.DataFrame:
        """Sales and review sentiment per resolved category"""
        lines = self.facts.categorized_lines

        sales = lines.group_by("category_name").agg([
            pl.col("category_name_english").first(),
            pl.col("product_id").n_unique().alias("total_products"),
            pl.col("order_id").n_unique().alias("total_orders"),
            pl.len().alias("units_sold"),
            pl.col("price").sum().alias("total_revenue"),
            pl.col("price").mean().alias("avg_price"),
        ])
        ratings = _review_stats(
            lines.select(["category_name", "order_id"]).unique(),
            "category_name",
            self.facts.delivered_reviews,
        )

        merged = (
            sales
            .join(ratings, on="category_name", how="left")
            .with_columns([
                pl.col("review_count").fill_null(0).cast(pl.Int64),
                (pl.col("total_revenue") / pl.col("total_orders")).alias("revenue_per_order"),
            ])
        )

        reported = merged.filter(pl.col("review_count") >= self.config.min_category_reviews)
        result.omit(
            "category_performance",
            len(merged) - len(reported),
            "category below minimum review count",
        )

        return reported.sort(
            ["avg_rating", "total_revenue", "category_name"],
            descending=[True, True, False],
            nulls_last=True,
        )

    def delivered_with_dates(self) -> pl.DataFrame:
        """Delivered orders that carry a delivery date, with timing columns"""
        return (
            self.facts.delivered_orders
            .filter(pl.col("order_delivered_customer_date").is_not_null())
            .with_columns([
                _days_between("order_delivered_customer_date", "order_purchase_timestamp").alias("delivery_days"),
                _days_between("order_estimated_delivery_date", "order_delivered_customer_date").alias("early_late_days"),
                (pl.col("order_delivered_customer_date") > pl.col("order_estimated_delivery_date"))
                .fill_null(False)
                .alias("is_late"),
            ])
        )

    def delivery_by_state(self) -> pl.DataFrame:
        """Delivery speed and lateness per customer state"""
        return (
            self.delivered_with_dates()
            .filter(pl.col("customer_state").is_not_null())
            .group_by("customer_state")
            .agg([
                pl.col("order_id").n_unique().alias("total_delivered_orders"),
                pl.col("delivery_days").mean().alias("avg_delivery_days"),
                pl.col("early_late_days").mean().alias("avg_early_late_days"),
                pl.col("is_late").sum().cast(pl.Int64).alias("late_deliveries"),
                (pl.col("is_late").sum() * 100.0 / pl.len()).alias("late_delivery_pct"),
            ])
            .sort(["late_delivery_pct", "customer_state"], descending=[True, False])
        )

    def delivery_rating_impact(self) -> pl.DataFrame:
        """Average rating by delivery punctuality band"""
        orders = (
            self.delivered_with_dates()
            .filter(pl.col("order_estimated_delivery_date").is_not_null())
            .with_columns(
                pl.when(pl.col("order_delivered_customer_date") <= pl.col("order_estimated_delivery_date"))
                .then(pl.lit(ON_TIME))
                .when(
                    pl.col("order_delivered_customer_date")
                    <= pl.col("order_estimated_delivery_date") + pl.duration(days=SLIGHTLY_LATE_DAYS)
                )
                .then(pl.lit(SLIGHTLY_LATE))
                .otherwise(pl.lit(VERY_LATE))
                .alias("delivery_status")
            )
        )

        timing = orders.group_by("delivery_status").agg([
            pl.len().alias("order_count"),
            pl.col("delivery_days").mean().alias("avg_delivery_days"),
        ])
        ratings = _review_stats(
            orders.select(["delivery_status", "order_id"]),
            "delivery_status",
            self.facts.delivered_reviews,
        ).drop("review_count")

        return (
            timing
            .join(ratings, on="delivery_status", how="left")
            .sort(["avg_rating", "delivery_status"], descending=[True, False], nulls_last=True)
        )

    def payment_methods(self) -> pl.DataFrame:
        """Payment mix over delivered orders"""
        delivered = self.facts.delivered_orders.select("order_id")
        payments = self.facts.payments.join(delivered, on="order_id", how="inner")
        total = payments["payment_value"].sum()

        return (
            payments
            .group_by("payment_type")
            .agg([
                pl.col("order_id").n_unique().alias("total_transactions"),
                pl.col("payment_value").sum().alias("total_amount"),
                pl.col("payment_value").mean().alias("avg_transaction_value"),
                pl.col("payment_installments").mean().alias("avg_installments"),
            ])
            .with_columns(
                (pl.col("total_amount") * 100.0 / total if total else pl.lit(None, dtype=pl.Float64))
                .alias("revenue_percentage")
            )
            .sort(["total_amount", "payment_type"], descending=[True, False])
        )

    def seller_performance(self, result: EngineResult) -> pl.DataFrame:
        """Sellers with enough delivered orders, ranked by product revenue"""
        lines = self.facts.delivered_lines

        sales = lines.group_by("seller_id").agg([
            pl.col("order_id").n_unique().alias("total_orders"),
            pl.len().alias("total_items_sold"),
            pl.col("price").sum().alias("total_revenue"),
            pl.col("price").mean().alias("avg_item_price"),
        ])
        eligible = sales.filter(pl.col("total_orders") >= self.config.min_seller_orders)
        result.omit("seller_performance", len(sales) - len(eligible), "seller below minimum order count")

        ratings = _review_stats(
            lines.select(["seller_id", "order_id"]).unique(),
            "seller_id",
            self.facts.delivered_reviews,
        ).select(["seller_id", "avg_rating", "review_count"])

        return (
            eligible
            .join(self.facts.sellers, on="seller_id", how="left")
            .join(ratings, on="seller_id", how="left")
            .with_columns(pl.col("review_count").fill_null(0).cast(pl.Int64))
            .sort(["total_revenue", "seller_id"], descending=[True, False])
        )

    # ------------------------------------------------------------------
    # Products and orders
    # ------------------------------------------------------------------

    def product_scorecard(self) -> List[Dict[str, Any]]:
        """
        Sales and rating figures per categorized product.

        Walks delivered orders through the order-line and review indexes. A
        review counts once for every distinct product in the reviewed order;
        an unreviewed order adds nothing to the rating.
        """
        english = dict(self.facts.categories.select(["category_name", "category_name_english"]).iter_rows())
        lines: List[Dict[str, Any]] = []
        orders: List[Dict[str, Any]] = []
        scores: List[Dict[str, Any]] = []

        for order_id in self.facts.delivered_orders["order_id"].sort().to_list():
            categorized = [
                line for line in self.facts.lines_for_order(order_id)
                if self.facts.category_of(line["product_id"]) is not None
            ]
            products = sorted({line["product_id"] for line in categorized})
            lines.extend(categorized)
            orders.extend({"product_id": p} for p in products)
            for review in self.facts.reviews_for_order(order_id):
                scores.extend({"product_id": p, "review_score": review["review_score"]} for p in products)

        by_product = lambda r: r["product_id"]
        revenue = group_sum(lines, by_product, lambda r: r["price"])
        units = group_sum(lines, by_product, lambda r: 1)
        times_ordered = group_sum(orders, by_product, lambda r: 1)
        ratings = group_mean(scores, by_product, lambda r: r["review_score"])
        review_counts = group_sum(scores, by_product, lambda r: 1)

        rows = []
        for product_id in sorted(units):
            category = self.facts.category_of(product_id)
            rows.append({
                "product_id": product_id,
                "category_name": category,
                "category_name_english": english.get(category),
                "times_ordered": int(times_ordered[product_id]),
                "units_sold": int(units[product_id]),
                "total_revenue": revenue.get(product_id, 0.0),
                "avg_price": safe_ratio(revenue.get(product_id), units[product_id]),
                "avg_rating": ratings.get(product_id),
                "review_count": int(review_counts.get(product_id, 0)),
            })
        return rows

    def best_selling_products(self, scorecard: List[Dict[str, Any]]) -> pl.DataFrame:
        """Top products by revenue among those with enough delivered orders"""
        eligible = [r for r in scorecard if r["times_ordered"] >= self.config.min_bestseller_orders]
        ranked = rank(eligible, lambda r: r["total_revenue"], tie_key=lambda r: r["product_id"])
        rows = [
            {**row, "sales_rank": position}
            for row, position in ranked
            if position <= self.config.bestseller_limit
        ]
        return frame_from_rows(rows, BESTSELLER_SCHEMA)

    def hidden_gems(self, scorecard: List[Dict[str, Any]]) -> pl.DataFrame:
        """Highly rated, well reviewed products that still sell rarely"""
        gems = [
            row for row in scorecard
            if row["avg_rating"] is not None
            and row["avg_rating"] >= self.config.hidden_gem_min_rating
            and row["review_count"] >= self.config.hidden_gem_min_reviews
            and row["times_ordered"] < self.config.hidden_gem_max_orders
        ]
        gems.sort(key=lambda r: (-r["avg_rating"], -r["review_count"], r["product_id"]))
        return frame_from_rows(gems[:self.config.hidden_gem_limit], HIDDEN_GEM_SCHEMA)

    def high_value_orders(self) -> pl.DataFrame:
        """
        Order-value percentiles at or above ``high_value_percentile``.

        Delivered orders are split into 100 near-equal buckets by order value
        (price plus freight), ascending, with order id as tie-break. With fewer
        than 100 orders the top buckets are empty and produce no row.
        """
        orders = []
        for order_id in self.facts.delivered_orders["order_id"].to_list():
            lines = self.facts.lines_for_order(order_id)
            if not lines:
                continue
            value = sum(line["price"] + (line["freight_value"] or 0.0) for line in lines)
            orders.append({"order_id": order_id, "order_value": value})

        buckets: Dict[int, List[float]] = {}
        for row, percentile in quantile_bucket(
            orders,
            lambda r: r["order_value"],
            PERCENTILES,
            tie_key=lambda r: r["order_id"],
        ):
            if percentile >= self.config.high_value_percentile:
                buckets.setdefault(percentile, []).append(row["order_value"])

        rows = [
            {
                "percentile": percentile,
                "order_count": len(values),
                "min_value": min(values),
                "max_value": max(values),
                "avg_value": mean(values),
                "total_value": sum(values),
            }
            for percentile, values in sorted(buckets.items(), reverse=True)
        ]
        return frame_from_rows(rows, HIGH_VALUE_SCHEMA)

    def run(self) -> EngineResult:
        """Compute all performance sections"""
        result = EngineResult(engine="performance")
        logger.info("Computing performance scorecards")

        result.add("kpi_snapshot", self.kpi_snapshot())
        result.add("category_performance", self.category_performance(result))
        result.add("delivery_by_state", self.delivery_by_state())
        result.add("delivery_rating_impact", self.delivery_rating_impact())
        result.add("payment_methods", self.payment_methods())
        result.add("seller_performance", self.seller_performance(result))

        scorecard = self.product_scorecard()
        result.add("best_selling_products", self.best_selling_products(scorecard))
        result.add("hidden_gems", self.hidden_gems(scorecard))
        result.add("high_value_orders", self.high_value_orders())

        return result.finish()
