"""
Executive recommendations derived from the computed sections.

Each recommendation quotes the figures it is based on; a recommendation
whose source section is empty is left out rather than stated without data.
"""

from typing import Dict, List, Mapping

import polars as pl

from salesintel.analytics.segmentation import HIGH_RISK, MEDIUM_RISK
from salesintel.config.settings import AnalyticsSettings

REVENUE_CONCENTRATION = "Revenue Concentration"
CUSTOMER_RETENTION = "Customer Retention"
PRICING_STRATEGY = "Pricing Strategy"
MARKET_EXPANSION = "Market Expansion"
DELIVERY_EXCELLENCE = "Delivery Excellence"

MAX_LISTED_STATES = 3


def _empty(sections: Mapping[str, pl.DataFrame], name: str) -> bool:
    return name not in sections or sections[name].is_empty()


def revenue_concentration(sections: Mapping[str, pl.DataFrame]) -> List[Dict[str, str]]:
    if _empty(sections, "pareto_summary"):
        return []
    summary = sections["pareto_summary"].row(0, named=True)
    return [{
        "insight_type": REVENUE_CONCENTRATION,
        "recommendation": (
            f"Focus on the top {summary['product_count']} products "
            f"({summary['percentage_of_catalog']:.1f}% of catalog) generating "
            f"{summary['revenue_percentage']:.1f}% of revenue. "
            "Optimize inventory and marketing for these products."
        ),
    }]


def customer_retention(sections: Mapping[str, pl.DataFrame]) -> List[Dict[str, str]]:
    if _empty(sections, "churn_risk"):
        return []
    churn = sections["churn_risk"].filter(pl.col("churn_risk_level").is_in([HIGH_RISK, MEDIUM_RISK]))
    if churn.is_empty():
        return []
    at_risk = int(churn["customer_count"].sum())
    loss = churn["estimated_revenue_loss"].sum()
    return [{
        "insight_type": CUSTOMER_RETENTION,
        "recommendation": (
            f"Launch re-engagement campaign for {at_risk} at-risk customers "
            f"(inactive more than 90 days) to prevent churn and recover up to R$ {loss:,.2f}."
        ),
    }]


def pricing_strategy(sections: Mapping[str, pl.DataFrame], config: AnalyticsSettings) -> List[Dict[str, str]]:
    if _empty(sections, "pricing_opportunities"):
        return []
    pricing = sections["pricing_opportunities"]
    top = pricing.row(0, named=True)
    return [{
        "insight_type": PRICING_STRATEGY,
        "recommendation": (
            f"Increase prices by {config.price_increase_pct * 100:.0f}% for high-rated, low-priced "
            f"products in {len(pricing)} categories, led by "
            f"{top['category_name_english'] or top['category_name']} "
            f"(R$ {top['potential_additional_revenue']:,.2f} additional revenue)."
        ),
    }]


def market_expansion(sections: Mapping[str, pl.DataFrame]) -> List[Dict[str, str]]:
    if _empty(sections, "market_expansion"):
        return []
    states = sections["market_expansion"]["customer_state"].head(MAX_LISTED_STATES).to_list()
    return [{
        "insight_type": MARKET_EXPANSION,
        "recommendation": (
            f"Prioritize {', '.join(states)} for geographic expansion; "
            "target underserved states with high average order values."
        ),
    }]


def delivery_excellence(sections: Mapping[str, pl.DataFrame]) -> List[Dict[str, str]]:
    if _empty(sections, "delivery_by_state"):
        return []
    worst = sections["delivery_by_state"].row(0, named=True)
    if not worst["late_deliveries"]:
        return []
    return [{
        "insight_type": DELIVERY_EXCELLENCE,
        "recommendation": (
            f"Reduce late deliveries by optimizing logistics in {worst['customer_state']}, "
            f"where {worst['late_delivery_pct']:.1f}% of orders arrive after the estimated date."
        ),
    }]


def build_recommendations(
    sections: Mapping[str, pl.DataFrame],
    config: AnalyticsSettings,
) -> List[Dict[str, str]]:
    """Recommendation rows in a fixed topic order"""
    return [
        *revenue_concentration(sections),
        *customer_retention(sections),
        *pricing_strategy(sections, config),
        *market_expansion(sections),
        *delivery_excellence(sections),
    ]
