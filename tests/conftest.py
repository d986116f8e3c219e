"""
Test Suite Configuration
"""
from datetime import date, datetime, timedelta
from typing import List, Optional, Sequence, Tuple

import pytest

from salesintel.config import AnalyticsSettings, build_analysis_config
from salesintel.facts import (
    Category,
    Customer,
    FactModel,
    Order,
    OrderLine,
    Payment,
    Product,
    Review,
    Seller,
)

AS_OF = date(2018, 10, 1)


class SnapshotBuilder:
    """
    Small in-memory snapshot for engine tests.

    Example:
        snapshot = SnapshotBuilder()
        cust = snapshot.customer("alice")
        snapshot.order(cust, datetime(2018, 1, 5), [("p-1", 100.0, 10.0)], review=5)
        facts = snapshot.build()
    """

    def __init__(self):
        self.customers: List[Customer] = []
        self.sellers: List[Seller] = [Seller("s-1", "SP", "sao paulo")]
        self.categories: List[Category] = [
            Category("moveis_decoracao", "furniture_decor"),
            Category("beleza_saude", "health_beauty"),
        ]
        self.products: List[Product] = []
        self.orders: List[Order] = []
        self.order_items: List[OrderLine] = []
        self.payments: List[Payment] = []
        self.reviews: List[Review] = []

    def customer(self, unique_id: str, state: str = "SP", city: str = "sao paulo") -> str:
        customer_id = f"c-{unique_id}-{len(self.customers)}"
        self.customers.append(Customer(customer_id, unique_id, state, city))
        return customer_id

    def seller(self, seller_id: str, state: str = "SP") -> str:
        self.sellers.append(Seller(seller_id, state, None))
        return seller_id

    def product(self, product_id: str, category: Optional[str] = "moveis_decoracao") -> str:
        if all(p.product_id != product_id for p in self.products):
            self.products.append(Product(product_id, category, 500.0, 20.0, 10.0, 15.0))
        return product_id

    def order(
        self,
        customer_id: str,
        purchased: datetime,
        lines: Sequence[Tuple[str, float, float]],
        status: str = "delivered",
        delivered_after_days: Optional[float] = 5,
        estimated_after_days: Optional[float] = 10,
        review: Optional[int] = None,
        payment_type: Optional[str] = None,
        seller_id: str = "s-1",
    ) -> str:
        order_id = f"o-{len(self.orders) + 1}"
        delivered = purchased + timedelta(days=delivered_after_days) if delivered_after_days is not None else None
        estimated = purchased + timedelta(days=estimated_after_days) if estimated_after_days is not None else None
        self.orders.append(Order(
            order_id=order_id,
            customer_id=customer_id,
            order_status=status,
            order_purchase_timestamp=purchased,
            order_approved_at=purchased,
            order_delivered_customer_date=delivered if status == "delivered" else None,
            order_estimated_delivery_date=estimated,
        ))
        for item_id, (product_id, price, freight) in enumerate(lines, start=1):
            self.product(product_id)
            self.order_items.append(OrderLine(order_id, item_id, product_id, seller_id, price, freight))
        if review is not None:
            self.reviews.append(Review(f"r-{order_id}", order_id, review, purchased, None))
        if payment_type is not None:
            total = sum(price + freight for _, price, freight in lines)
            self.payments.append(Payment(order_id, 1, payment_type, 1, total))
        return order_id

    def build(self) -> FactModel:
        return FactModel.from_records(
            customers=self.customers,
            sellers=self.sellers,
            categories=self.categories,
            products=self.products,
            orders=self.orders,
            order_items=self.order_items,
            payments=self.payments,
            reviews=self.reviews,
        )


@pytest.fixture
def snapshot() -> SnapshotBuilder:
    """Empty snapshot builder"""
    return SnapshotBuilder()


@pytest.fixture
def analysis_config() -> AnalyticsSettings:
    """Default parameters with a fixed as-of date"""
    return build_analysis_config(as_of_date=AS_OF)


@pytest.fixture
def small_sample_config() -> AnalyticsSettings:
    """Parameters with sample-size gates lowered for tiny snapshots"""
    return build_analysis_config(
        as_of_date=AS_OF,
        min_orders_for_pricing=1,
        min_reviews_for_pricing=1,
        min_category_sample_size=1,
        min_seller_orders=1,
        min_category_reviews=1,
    )


@pytest.fixture
def sample_facts() -> FactModel:
    """
    Mixed snapshot: repeat and one-time buyers across three states, an
    undelivered order, an unreviewed order and a customer who never bought.
    """
    snapshot = SnapshotBuilder()
    alice = snapshot.customer("alice", "SP")
    bob = snapshot.customer("bob", "RJ")
    carol = snapshot.customer("carol", "MG")
    dave = snapshot.customer("dave", "SP")
    snapshot.customer("erin", "RJ")

    snapshot.product("p-sofa", "moveis_decoracao")
    snapshot.product("p-cream", "beleza_saude")
    snapshot.product("p-lamp", None)

    snapshot.order(alice, datetime(2018, 1, 10), [("p-sofa", 300.0, 20.0)], review=5, payment_type="credit_card")
    snapshot.order(alice, datetime(2018, 2, 12), [("p-cream", 50.0, 5.0)], review=4, payment_type="credit_card")
    snapshot.order(alice, datetime(2018, 8, 20), [("p-cream", 50.0, 5.0), ("p-lamp", 40.0, 8.0)], review=5, payment_type="boleto")
    snapshot.order(bob, datetime(2018, 1, 25), [("p-sofa", 280.0, 25.0)], review=2, payment_type="boleto",
                   delivered_after_days=20, estimated_after_days=12)
    snapshot.order(bob, datetime(2018, 3, 3), [("p-lamp", 45.0, 7.0)], payment_type="voucher")
    snapshot.order(carol, datetime(2018, 2, 14), [("p-cream", 60.0, 6.0)], review=3, payment_type="credit_card",
                   delivered_after_days=14, estimated_after_days=12)
    snapshot.order(dave, datetime(2018, 9, 1), [("p-sofa", 310.0, 22.0)], status="shipped",
                   delivered_after_days=None, payment_type="credit_card")
    return snapshot.build()


OLIST_FILES = {
    "olist_customers_dataset.csv": """customer_id,customer_unique_id,customer_zip_code_prefix,customer_city,customer_state
c-1,alice,01310,sao paulo,SP
c-2,bob,20040,rio de janeiro,RJ
c-3,alice,01310,sao paulo,SP
c-4,erin,30110,belo horizonte,MG
""",
    "olist_sellers_dataset.csv": """seller_id,seller_zip_code_prefix,seller_city,seller_state
s-1,13023,campinas,SP
""",
    "product_category_name_translation.csv": """product_category_name,product_category_name_english
beleza_saude,health_beauty
moveis_decoracao,furniture_decor
""",
    "olist_products_dataset.csv": """product_id,product_category_name,product_name_lenght,product_description_lenght,product_photos_qty,product_weight_g,product_length_cm,product_height_cm,product_width_cm
p-1,beleza_saude,40,287,1,225,16,10,14
p-2,moveis_decoracao,44,276,1,1000,30,18,20
p-3,,,,,300,20,10,10
""",
    "olist_orders_dataset.csv": """order_id,customer_id,order_status,order_purchase_timestamp,order_approved_at,order_delivered_carrier_date,order_delivered_customer_date,order_estimated_delivery_date
o-1,c-1,delivered,2018-01-10 10:00:00,2018-01-10 10:15:00,,2018-01-15 12:00:00,2018-01-25 00:00:00
o-2,c-2,delivered,2018-02-03 09:30:00,2018-02-03 09:45:00,,2018-02-20 18:00:00,2018-02-15 00:00:00
o-3,c-3,delivered,2018-03-12 14:00:00,2018-03-12 14:10:00,,2018-03-16 10:00:00,2018-03-30 00:00:00
o-4,c-2,canceled,2018-04-01 08:00:00,,,,2018-04-20 00:00:00
""",
    "olist_order_items_dataset.csv": """order_id,order_item_id,product_id,seller_id,shipping_limit_date,price,freight_value
o-1,1,p-1,s-1,2018-01-12 10:00:00,58.90,13.29
o-1,2,p-3,s-1,2018-01-12 10:00:00,20.00,5.00
o-2,1,p-2,s-1,2018-02-05 09:30:00,239.90,19.93
o-3,1,p-1,s-1,2018-03-14 14:00:00,58.90,13.29
o-4,1,p-2,s-1,2018-04-03 08:00:00,239.90,19.93
""",
    "olist_order_payments_dataset.csv": """order_id,payment_sequential,payment_type,payment_installments,payment_value
o-1,1,credit_card,2,97.19
o-2,1,boleto,1,259.83
o-3,1,credit_card,1,50.00
o-3,2,voucher,1,22.19
o-4,1,credit_card,3,259.83
""",
    "olist_order_reviews_dataset.csv": """review_id,order_id,review_score,review_comment_title,review_comment_message,review_creation_date,review_answer_timestamp
r-1,o-1,5,,"Chegou antes do prazo, recomendo",2018-01-16 00:00:00,2018-01-17 10:00:00
r-2,o-2,1,Atraso,,2018-02-21 00:00:00,2018-02-22 08:00:00
""",
}


@pytest.fixture
def olist_dir(tmp_path):
    """Directory holding a tiny Olist-format CSV snapshot"""
    data_dir = tmp_path / "olist"
    data_dir.mkdir()
    for name, content in OLIST_FILES.items():
        (data_dir / name).write_text(content, encoding="utf-8")
    return data_dir
