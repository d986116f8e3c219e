"""
Unit Tests - Fact Model and Integrity Validation
"""
from datetime import datetime

import polars as pl
import pytest

from salesintel.exceptions import DataIntegrityError
from salesintel.facts import (
    DataValidator,
    FactModel,
    OrderLine,
    Review,
    conform_frame,
)
from salesintel.facts.validators import ValidationStatus


class TestDataValidator:
    """Tests for DataValidator"""

    def test_composite_unique_check(self):
        """Test composite unique check with distinct pairs"""
        df = pl.DataFrame({"order_id": ["o-1", "o-1", "o-2"], "order_item_id": [1, 2, 1]})

        result = DataValidator("order_items").add_unique_check(["order_id", "order_item_id"]).validate(df)

        assert result.status == ValidationStatus.PASSED

    def test_composite_unique_check_fails(self):
        """Test composite unique check with a repeated pair"""
        df = pl.DataFrame({"order_id": ["o-1", "o-1"], "order_item_id": [1, 1]})

        result = DataValidator("order_items").add_unique_check(["order_id", "order_item_id"]).validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.errors[0].failed_rows == 2

    def test_range_check_reports_sample_keys(self):
        """Test range check details carry the failing keys"""
        df = pl.DataFrame({"review_id": ["r-1", "r-2", "r-3"], "review_score": [5, 0, 7]})

        result = (
            DataValidator("reviews")
            .add_range_check("review_score", min_value=1, max_value=5, key="review_id")
            .validate(df)
        )

        assert result.failed_checks == 1
        assert result.checks[0].details["sample"] == ["r-2", "r-3"]

    def test_referential_integrity(self):
        """Test referential integrity check with an orphan row"""
        orders = pl.DataFrame({"order_id": ["o-1"]})
        lines = pl.DataFrame({"order_id": ["o-1", "o-9"]})

        result = (
            DataValidator("order_items")
            .add_referential_integrity_check("order_id", orders, "order_id", "order")
            .validate(lines)
        )

        assert result.status == ValidationStatus.FAILED
        assert result.checks[0].details["sample"] == ["o-9"]


class TestFactModelIntegrity:
    """Integrity failures abort the build"""

    def test_orphan_order_line(self, snapshot):
        """Test an order line without its order fails the build"""
        cust = snapshot.customer("alice")
        snapshot.order(cust, datetime(2018, 1, 1), [("p-1", 10.0, 1.0)])
        snapshot.order_items.append(OrderLine("o-missing", 1, "p-1", "s-1", 10.0, 1.0))

        with pytest.raises(DataIntegrityError) as exc_info:
            snapshot.build()

        assert exc_info.value.check == "ref_integrity_order_items.order_id"
        assert "o-missing" in exc_info.value.details["sample"]

    def test_unknown_order_status(self, snapshot):
        """Test an unknown order status fails the build"""
        cust = snapshot.customer("alice")
        snapshot.order(cust, datetime(2018, 1, 1), [("p-1", 10.0, 1.0)], status="lost_in_space")

        with pytest.raises(DataIntegrityError) as exc_info:
            snapshot.build()

        assert exc_info.value.check == "enum_orders.order_status"

    def test_review_score_out_of_range(self, snapshot):
        """Test a review score outside 1-5 fails the build"""
        cust = snapshot.customer("alice")
        order_id = snapshot.order(cust, datetime(2018, 1, 1), [("p-1", 10.0, 1.0)])
        snapshot.reviews.append(Review("r-bad", order_id, 6))

        with pytest.raises(DataIntegrityError) as exc_info:
            snapshot.build()

        assert exc_info.value.check == "range_reviews.review_score"

    def test_negative_price(self, snapshot):
        """Test a negative price fails the build"""
        cust = snapshot.customer("alice")
        snapshot.order(cust, datetime(2018, 1, 1), [("p-1", -10.0, 1.0)])

        with pytest.raises(DataIntegrityError) as exc_info:
            snapshot.build()

        assert exc_info.value.check == "range_order_items.price"

    def test_missing_key_column(self):
        """Test a frame without a key column is rejected"""
        with pytest.raises(DataIntegrityError) as exc_info:
            FactModel.from_frames(orders=pl.DataFrame({"order_status": ["delivered"]}))

        assert exc_info.value.check == "schema_orders"

    def test_unparseable_timestamp(self):
        """Test an unparseable timestamp is reported, not nulled"""
        orders = pl.DataFrame({
            "order_id": ["o-1", "o-2"],
            "customer_id": ["c-1", "c-1"],
            "order_status": ["delivered", "delivered"],
            "order_purchase_timestamp": ["2018-03-04 10:11:12", "2018-03-05 09:00:00"],
            "order_delivered_customer_date": ["2018-03-10 10:00:00", "2018-03-99 10:00:00"],
        })

        with pytest.raises(DataIntegrityError) as exc_info:
            conform_frame("orders", orders)

        assert exc_info.value.check == "type_orders.order_delivered_customer_date"
        assert exc_info.value.details["sample"] == ["2018-03-99 10:00:00"]

    def test_non_numeric_price(self):
        """Test a non-numeric price is reported with a sample"""
        lines = pl.DataFrame({
            "order_id": ["o-1", "o-1"],
            "order_item_id": ["1", "2"],
            "product_id": ["p-1", "p-2"],
            "seller_id": ["s-1", "s-1"],
            "price": ["58.90", "fifty"],
        })

        with pytest.raises(DataIntegrityError) as exc_info:
            conform_frame("order_items", lines)

        assert exc_info.value.check == "type_order_items.price"
        assert exc_info.value.details["sample"] == ["fifty"]

    def test_numeric_text_is_cast(self):
        """Test numeric text is cast and absent columns are added"""
        lines = pl.DataFrame({
            "order_id": ["o-1"],
            "order_item_id": ["1"],
            "product_id": ["p-1"],
            "seller_id": ["s-1"],
            "price": ["58.90"],
        })

        conformed = conform_frame("order_items", lines)

        assert conformed["price"].to_list() == [58.9]
        assert conformed["freight_value"].to_list() == [None]

    def test_unknown_table(self):
        """Test unknown table names are rejected"""
        with pytest.raises(ValueError):
            FactModel.from_frames(refunds=pl.DataFrame())


class TestFactModelJoins:
    """Derived join tables and lookups"""

    def test_delivered_orders_only(self, sample_facts):
        """Test only delivered orders reach the derived tables"""
        statuses = sample_facts.delivered_orders["order_status"].unique().to_list()

        assert statuses == ["delivered"]
        assert len(sample_facts.delivered_orders) == 6

    def test_line_revenue_includes_freight(self, sample_facts):
        """Test line revenue is price plus freight"""
        first = sample_facts.delivered_lines.filter(pl.col("order_id") == "o-1").row(0, named=True)

        assert first["line_revenue"] == pytest.approx(320.0)
        assert first["customer_unique_id"] == "alice"
        assert first["category_name_english"] == "furniture_decor"

    def test_unresolved_category_kept_for_revenue_only(self, sample_facts):
        """Test uncategorized products stay in revenue but not category views"""
        lamp_lines = sample_facts.delivered_lines.filter(pl.col("product_id") == "p-lamp")

        assert len(lamp_lines) == 2
        assert not lamp_lines["category_resolved"].any()
        assert "p-lamp" not in sample_facts.categorized_lines["product_id"].to_list()
        assert sample_facts.category_of("p-lamp") is None
        assert sample_facts.category_of("p-cream") == "beleza_saude"

    def test_purchase_month_truncated(self, sample_facts):
        """Test purchase months are truncated to the first day"""
        months = sample_facts.delivered_orders.sort("order_id")["purchase_month"].to_list()

        assert months[0].day == 1
        assert months[0].month == 1

    def test_lookup_indexes(self, sample_facts):
        """Test order-line and review lookups"""
        assert [line["order_item_id"] for line in sample_facts.lines_for_order("o-3")] == [1, 2]
        assert sample_facts.reviews_for_order("o-5") == []
        assert sample_facts.lines_for_order("o-unknown") == []

    def test_never_purchased(self, sample_facts):
        """Test persons without a delivered order"""
        assert sample_facts.never_purchased()["customer_unique_id"].to_list() == ["dave", "erin"]

    def test_from_frames_parses_text_timestamps(self):
        """Test text timestamps are parsed when building from frames"""
        facts = FactModel.from_frames(
            customers=pl.DataFrame({"customer_id": ["c-1"], "customer_unique_id": ["u-1"]}),
            orders=pl.DataFrame({
                "order_id": ["o-1"],
                "customer_id": ["c-1"],
                "order_status": ["delivered"],
                "order_purchase_timestamp": ["2018-03-04 10:11:12"],
            }),
        )

        assert facts.delivered_orders["purchase_month"].to_list()[0].isoformat() == "2018-03-01"
        assert facts.orders.schema["order_estimated_delivery_date"] == pl.Datetime("us")
