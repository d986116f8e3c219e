"""
Fact Model Module
"""
from .model import FactModel, conform_frame
from .records import (
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
from .validators import DataValidator, ValidationResult

__all__ = [
    "Category",
    "Customer",
    "DataValidator",
    "FactModel",
    "Order",
    "OrderLine",
    "OrderStatus",
    "Payment",
    "Product",
    "Review",
    "Seller",
    "ValidationResult",
    "conform_frame",
]
