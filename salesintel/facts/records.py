"""
Typed entity records and their polars schemas.

Records are immutable; every analysis run builds them once from a validated
snapshot. Field names match the column names of the corresponding frame.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, Optional

import polars as pl


class OrderStatus(str, Enum):
    """Order lifecycle states"""
    DELIVERED = "delivered"
    SHIPPED = "shipped"
    CANCELED = "canceled"
    UNAVAILABLE = "unavailable"
    INVOICED = "invoiced"
    PROCESSING = "processing"
    CREATED = "created"
    APPROVED = "approved"


ORDER_STATUSES = [status.value for status in OrderStatus]


@dataclass(frozen=True)
class Customer:
    customer_id: str
    customer_unique_id: str
    customer_state: Optional[str] = None
    customer_city: Optional[str] = None


@dataclass(frozen=True)
class Seller:
    seller_id: str
    seller_state: Optional[str] = None
    seller_city: Optional[str] = None


@dataclass(frozen=True)
class Category:
    category_name: str
    category_name_english: Optional[str] = None


@dataclass(frozen=True)
class Product:
    product_id: str
    category_name: Optional[str] = None
    weight_g: Optional[float] = None
    length_cm: Optional[float] = None
    height_cm: Optional[float] = None
    width_cm: Optional[float] = None


@dataclass(frozen=True)
class Order:
    order_id: str
    customer_id: str
    order_status: str
    order_purchase_timestamp: datetime
    order_approved_at: Optional[datetime] = None
    order_delivered_carrier_date: Optional[datetime] = None
    order_delivered_customer_date: Optional[datetime] = None
    order_estimated_delivery_date: Optional[datetime] = None


@dataclass(frozen=True)
class OrderLine:
    order_id: str
    order_item_id: int
    product_id: str
    seller_id: str
    price: float
    freight_value: float = 0.0


@dataclass(frozen=True)
class Payment:
    order_id: str
    payment_sequential: int
    payment_type: str
    payment_installments: int
    payment_value: float


@dataclass(frozen=True)
class Review:
    review_id: str
    order_id: str
    review_score: int
    review_creation_date: Optional[datetime] = None
    review_answer_timestamp: Optional[datetime] = None


TIMESTAMP = pl.Datetime("us")

SCHEMAS: Dict[str, Dict[str, pl.DataType]] = {
    "customers": {
        "customer_id": pl.Utf8,
        "customer_unique_id": pl.Utf8,
        "customer_state": pl.Utf8,
        "customer_city": pl.Utf8,
    },
    "sellers": {
        "seller_id": pl.Utf8,
        "seller_state": pl.Utf8,
        "seller_city": pl.Utf8,
    },
    "categories": {
        "category_name": pl.Utf8,
        "category_name_english": pl.Utf8,
    },
    "products": {
        "product_id": pl.Utf8,
        "category_name": pl.Utf8,
        "weight_g": pl.Float64,
        "length_cm": pl.Float64,
        "height_cm": pl.Float64,
        "width_cm": pl.Float64,
    },
    "orders": {
        "order_id": pl.Utf8,
        "customer_id": pl.Utf8,
        "order_status": pl.Utf8,
        "order_purchase_timestamp": TIMESTAMP,
        "order_approved_at": TIMESTAMP,
        "order_delivered_carrier_date": TIMESTAMP,
        "order_delivered_customer_date": TIMESTAMP,
        "order_estimated_delivery_date": TIMESTAMP,
    },
    "order_items": {
        "order_id": pl.Utf8,
        "order_item_id": pl.Int64,
        "product_id": pl.Utf8,
        "seller_id": pl.Utf8,
        "price": pl.Float64,
        "freight_value": pl.Float64,
    },
    "payments": {
        "order_id": pl.Utf8,
        "payment_sequential": pl.Int64,
        "payment_type": pl.Utf8,
        "payment_installments": pl.Int64,
        "payment_value": pl.Float64,
    },
    "reviews": {
        "review_id": pl.Utf8,
        "order_id": pl.Utf8,
        "review_score": pl.Int64,
        "review_creation_date": TIMESTAMP,
        "review_answer_timestamp": TIMESTAMP,
    },
}
