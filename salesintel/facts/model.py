"""
Fact Model

Typed, validated, in-memory representation of one snapshot. The joins every
engine needs (delivered orders with their customer, delivered lines with
product and category, reviews of delivered orders) are derived once here so
that engines never re-join the raw tables.
"""

from dataclasses import asdict
from enum import Enum
from functools import cached_property
from typing import Any, Dict, Iterable, List, Mapping, Optional

import polars as pl
import structlog

from salesintel.exceptions import DataIntegrityError
from salesintel.facts.records import (
    SCHEMAS,
    TIMESTAMP,
    Category,
    Customer,
    Order,
    OrderLine,
    OrderStatus,
    Payment,
    Product,
    Review,
    Seller,
)
from salesintel.facts.validators import create_snapshot_validators

logger = structlog.get_logger(__name__)

TABLES = list(SCHEMAS)


def _records_to_frame(table: str, records: Iterable[Any]) -> pl.DataFrame:
    rows = []
    for record in records:
        row = asdict(record)
        rows.append({
            k: (v.value if isinstance(v, Enum) else v) for k, v in row.items()
        })
    return pl.DataFrame(rows, schema=SCHEMAS[table], strict=False)


SAMPLE_SIZE = 5


def _coerce(df: pl.DataFrame, name: str, dtype: pl.DataType) -> pl.Expr:
    if name not in df.columns:
        return pl.lit(None, dtype=dtype).alias(name)
    if df.schema[name] == pl.Utf8 and dtype == TIMESTAMP:
        return pl.col(name).str.to_datetime(time_unit="us", strict=False)
    return pl.col(name).cast(dtype, strict=False)


def _check_coercion(table: str, source: pl.DataFrame, conformed: pl.DataFrame) -> None:
    """A value present in the source must survive the cast to its schema type"""
    for name, dtype in conformed.schema.items():
        if name not in source.columns:
            continue
        lost = source[name].is_not_null() & conformed[name].is_null()
        failed = int(lost.sum())
        if failed:
            sample = source.filter(lost)[name].head(SAMPLE_SIZE).cast(pl.Utf8, strict=False).to_list()
            raise DataIntegrityError(
                f"type_{table}.{name}",
                f"{failed} value(s) could not be read as {dtype}",
                {"sample": sample},
            )


def conform_frame(table: str, df: Optional[pl.DataFrame]) -> pl.DataFrame:
    """
    Select and cast the columns of ``table`` from an incoming frame.

    Optional columns absent from the input are added as nulls; a missing
    required key column or a value that does not parse as its column type is
    an integrity failure.
    """
    schema = SCHEMAS[table]
    if df is None:
        return pl.DataFrame(schema=schema)

    key_columns = [c for c in schema if c.endswith("_id") or c in ("category_name", "order_status")]
    missing = [c for c in key_columns if c not in df.columns]
    if missing and not (table == "products" and missing == ["category_name"]):
        raise DataIntegrityError(
            f"schema_{table}",
            f"missing required columns {missing}",
            {"columns": df.columns},
        )

    conformed = df.select([_coerce(df, name, dtype) for name, dtype in schema.items()])
    _check_coercion(table, df, conformed)
    return conformed


class FactModel:
    """
    Validated snapshot plus derived join tables.

    Build with ``FactModel.from_frames`` or ``FactModel.from_records``; both
    validate the snapshot and raise ``DataIntegrityError`` on the first
    violated invariant. Instances are never mutated after construction, so a
    single model can be shared by engines running in parallel.
    """

    def __init__(self, frames: Mapping[str, pl.DataFrame]):
        self.customers = frames["customers"]
        self.sellers = frames["sellers"]
        self.categories = frames["categories"]
        self.products = frames["products"]
        self.orders = frames["orders"]
        self.order_items = frames["order_items"]
        self.payments = frames["payments"]
        self.reviews = frames["reviews"]

        self.delivered_orders = self._build_delivered_orders()
        self.delivered_lines = self._build_delivered_lines()
        self.delivered_reviews = self.reviews.join(
            self.delivered_orders.select(["order_id", "customer_unique_id", "customer_state"]),
            on="order_id",
            how="inner",
        )

        logger.info(
            "Fact model built",
            orders=len(self.orders),
            delivered_orders=len(self.delivered_orders),
            delivered_lines=len(self.delivered_lines),
            reviews=len(self.reviews),
        )

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_frames(
        cls,
        validate: bool = True,
        **frames: Optional[pl.DataFrame],
    ) -> "FactModel":
        """
        Build from polars frames keyed by table name.

        Args:
            validate: Run the integrity suite (disable only for trusted input)
            **frames: customers, sellers, categories, products, orders,
                order_items, payments, reviews

        Raises:
            DataIntegrityError: On the first failed integrity check
        """
        unknown = set(frames) - set(TABLES)
        if unknown:
            raise ValueError(f"Unknown tables: {sorted(unknown)}")

        conformed = {table: conform_frame(table, frames.get(table)) for table in TABLES}

        if validate:
            cls.validate(conformed)

        return cls(conformed)

    @classmethod
    def from_records(
        cls,
        customers: Iterable[Customer] = (),
        sellers: Iterable[Seller] = (),
        categories: Iterable[Category] = (),
        products: Iterable[Product] = (),
        orders: Iterable[Order] = (),
        order_items: Iterable[OrderLine] = (),
        payments: Iterable[Payment] = (),
        reviews: Iterable[Review] = (),
    ) -> "FactModel":
        """Build from typed entity records"""
        return cls.from_frames(
            customers=_records_to_frame("customers", customers),
            sellers=_records_to_frame("sellers", sellers),
            categories=_records_to_frame("categories", categories),
            products=_records_to_frame("products", products),
            orders=_records_to_frame("orders", orders),
            order_items=_records_to_frame("order_items", order_items),
            payments=_records_to_frame("payments", payments),
            reviews=_records_to_frame("reviews", reviews),
        )

    @staticmethod
    def validate(frames: Mapping[str, pl.DataFrame]) -> None:
        """Run the integrity suite; abort on the first failed check"""
        validators = create_snapshot_validators(dict(frames))

        for table in TABLES:
            result = validators[table].validate(frames[table])
            if result.errors:
                failed = result.errors[0]
                logger.error(
                    "Integrity check failed",
                    check=failed.name,
                    message=failed.message,
                    failed_rows=failed.failed_rows,
                )
                raise DataIntegrityError(failed.name, failed.message, failed.details)

    # ------------------------------------------------------------------
    # Derived join tables
    # ------------------------------------------------------------------

    def _build_delivered_orders(self) -> pl.DataFrame:
        """Delivered orders with owning person, location and purchase calendar keys"""
        return (
            self.orders
            .filter(pl.col("order_status") == OrderStatus.DELIVERED.value)
            .join(self.customers, on="customer_id", how="inner")
            .with_columns([
                pl.col("order_purchase_timestamp").dt.date().alias("purchase_date"),
                pl.col("order_purchase_timestamp").dt.truncate("1mo").dt.date().alias("purchase_month"),
            ])
        )

    def _build_delivered_lines(self) -> pl.DataFrame:
        """Delivered order lines with order, customer, product and resolved category"""
        categories = self.categories.with_columns(
            pl.lit(True).alias("category_resolved")
        )
        return (
            self.order_items
            .join(self.delivered_orders, on="order_id", how="inner")
            .join(self.products.select(["product_id", "category_name"]), on="product_id", how="left")
            .join(categories, on="category_name", how="left")
            .with_columns([
                pl.col("category_resolved").fill_null(False),
                (pl.col("price") + pl.col("freight_value").fill_null(0.0)).alias("line_revenue"),
            ])
        )

    @property
    def categorized_lines(self) -> pl.DataFrame:
        """Delivered lines whose product resolves to a known category"""
        return self.delivered_lines.filter(pl.col("category_resolved"))

    # ------------------------------------------------------------------
    # Lookup indexes
    # ------------------------------------------------------------------

    @cached_property
    def _lines_by_order(self) -> Dict[str, List[Dict[str, Any]]]:
        index: Dict[str, List[Dict[str, Any]]] = {}
        for row in self.order_items.sort(["order_id", "order_item_id"]).iter_rows(named=True):
            index.setdefault(row["order_id"], []).append(row)
        return index

    @cached_property
    def _reviews_by_order(self) -> Dict[str, List[Dict[str, Any]]]:
        index: Dict[str, List[Dict[str, Any]]] = {}
        for row in self.reviews.iter_rows(named=True):
            index.setdefault(row["order_id"], []).append(row)
        return index

    @cached_property
    def _category_by_product(self) -> Dict[str, str]:
        known = set(self.categories["category_name"].to_list())
        return {
            product_id: category
            for product_id, category in self.products.select(["product_id", "category_name"]).iter_rows()
            if category in known
        }

    def lines_for_order(self, order_id: str) -> List[Dict[str, Any]]:
        """Order lines of an order, in line sequence"""
        return self._lines_by_order.get(order_id, [])

    def reviews_for_order(self, order_id: str) -> List[Dict[str, Any]]:
        """Reviews of an order; empty when the order was never reviewed"""
        return self._reviews_by_order.get(order_id, [])

    def category_of(self, product_id: str) -> Optional[str]:
        """Resolved category of a product, or None when unresolved"""
        return self._category_by_product.get(product_id)

    def never_purchased(self) -> pl.DataFrame:
        """Persons with no delivered order"""
        buyers = self.delivered_orders["customer_unique_id"].unique().to_list()
        return (
            self.customers
            .select("customer_unique_id")
            .unique()
            .filter(~pl.col("customer_unique_id").is_in(buyers))
            .sort("customer_unique_id")
        )
