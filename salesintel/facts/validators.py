"""
Fact Integrity Validation

Rule-based checks over the snapshot frames, run once before the fact model is
built. Implements validation patterns inspired by Great Expectations.

Features:
- Null and primary-key checks
- Enumeration and range checks
- Referential integrity checks
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

import polars as pl
import structlog

from salesintel.facts.records import ORDER_STATUSES

logger = structlog.get_logger(__name__)

SAMPLE_SIZE = 5


class ValidationSeverity(str, Enum):
    """Severity levels for validation failures"""
    ERROR = "error"  # Critical - aborts the run
    WARNING = "warning"  # Non-critical - logged but continues


class ValidationStatus(str, Enum):
    """Overall validation status"""
    PASSED = "passed"
    FAILED = "failed"
    PARTIAL = "partial"


@dataclass
class ValidationCheck:
    """Single validation check result"""
    name: str
    passed: bool
    severity: ValidationSeverity
    message: str
    details: Optional[Dict[str, Any]] = None
    failed_rows: int = 0
    total_rows: int = 0


@dataclass
class ValidationResult:
    """Complete validation suite result"""
    table: str
    status: ValidationStatus
    total_checks: int
    passed_checks: int
    failed_checks: int
    warning_count: int
    checks: List[ValidationCheck] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    @property
    def errors(self) -> List[ValidationCheck]:
        """Failed checks that must abort the run"""
        return [
            c for c in self.checks
            if not c.passed and c.severity == ValidationSeverity.ERROR
        ]


def _sample(df: pl.DataFrame, columns: Sequence[str]) -> List[Any]:
    """First offending key values, for error messages"""
    rows = df.select(list(columns)).head(SAMPLE_SIZE).rows()
    return [row[0] if len(row) == 1 else row for row in rows]


class DataValidator:
    """
    Validator for one snapshot table.

    Example:
        validator = DataValidator("orders")
        validator.add_not_null_check("order_id")
        validator.add_unique_check(["order_id"])
        result = validator.validate(df)
    """

    def __init__(self, table: str):
        self.table = table
        self._checks: List[Callable[[pl.DataFrame], ValidationCheck]] = []

    def add_not_null_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for null values in column"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            null_count = df[column].null_count()
            passed = null_count == 0

            return ValidationCheck(
                name=f"not_null_{self.table}.{column}",
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {null_count} null values" if not passed else f"Column '{column}' has no null values",
                details={"null_count": null_count},
                failed_rows=null_count,
                total_rows=len(df),
            )

        self._checks.append(check)
        return self

    def add_unique_check(
        self,
        columns: Sequence[str],
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for uniqueness of a (possibly composite) key"""
        key = list(columns)

        def check(df: pl.DataFrame) -> ValidationCheck:
            duplicates = df.filter(df.select(key).is_duplicated())
            duplicate_count = len(duplicates)
            passed = duplicate_count == 0

            return ValidationCheck(
                name=f"unique_{self.table}.{'+'.join(key)}",
                passed=passed,
                severity=severity,
                message=f"Key {key} has {duplicate_count} duplicated rows" if not passed else f"Key {key} is unique",
                details={"duplicate_count": duplicate_count, "sample": _sample(duplicates, key)},
                failed_rows=duplicate_count,
                total_rows=len(df),
            )

        self._checks.append(check)
        return self

    def add_range_check(
        self,
        column: str,
        min_value: Optional[float] = None,
        max_value: Optional[float] = None,
        key: Optional[str] = None,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for values within specified range"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            conditions = []
            if min_value is not None:
                conditions.append(pl.col(column) < min_value)
            if max_value is not None:
                conditions.append(pl.col(column) > max_value)

            combined = conditions[0]
            for cond in conditions[1:]:
                combined = combined | cond

            out_of_range = df.filter(combined)
            passed = len(out_of_range) == 0

            return ValidationCheck(
                name=f"range_{self.table}.{column}",
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {len(out_of_range)} values outside range [{min_value}, {max_value}]" if not passed else "All values in range",
                details={
                    "min": min_value,
                    "max": max_value,
                    "sample": _sample(out_of_range, [key or column]),
                },
                failed_rows=len(out_of_range),
                total_rows=len(df),
            )

        self._checks.append(check)
        return self

    def add_enum_check(
        self,
        column: str,
        allowed_values: List[Any],
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for values in allowed set"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            invalid = df.filter(
                ~pl.col(column).is_in(allowed_values) & pl.col(column).is_not_null()
            )
            passed = len(invalid) == 0

            return ValidationCheck(
                name=f"enum_{self.table}.{column}",
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {len(invalid)} invalid values" if not passed else "All values are valid",
                details={"allowed_values": allowed_values, "sample": _sample(invalid, [column])},
                failed_rows=len(invalid),
                total_rows=len(df),
            )

        self._checks.append(check)
        return self

    def add_referential_integrity_check(
        self,
        column: str,
        reference_df: pl.DataFrame,
        reference_column: str,
        reference_table: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add referential integrity check"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            orphans = df.filter(
                ~pl.col(column).is_in(reference_df[reference_column].unique().to_list())
                & pl.col(column).is_not_null()
            )
            passed = len(orphans) == 0

            return ValidationCheck(
                name=f"ref_integrity_{self.table}.{column}",
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {len(orphans)} rows with no matching {reference_table}" if not passed else "Referential integrity maintained",
                details={"orphan_count": len(orphans), "sample": _sample(orphans, [column])},
                failed_rows=len(orphans),
                total_rows=len(df),
            )

        self._checks.append(check)
        return self

    def validate(self, df: pl.DataFrame) -> ValidationResult:
        """
        Run all validation checks on DataFrame.

        Args:
            df: DataFrame to validate

        Returns:
            ValidationResult with all check results
        """
        started_at = datetime.utcnow()
        results = []

        for check_func in self._checks:
            result = check_func(df)
            results.append(result)

            if not result.passed:
                logger.warning(
                    "Validation failed",
                    check=result.name,
                    message=result.message,
                    severity=result.severity.value,
                )

        passed_checks = sum(1 for r in results if r.passed)
        failed_checks = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.ERROR)
        warning_count = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.WARNING)

        if failed_checks > 0:
            status = ValidationStatus.FAILED
        elif warning_count > 0:
            status = ValidationStatus.PARTIAL
        else:
            status = ValidationStatus.PASSED

        logger.debug(
            "Validation complete",
            table=self.table,
            status=status.value,
            rows=len(df),
            passed=passed_checks,
            failed=failed_checks,
        )

        return ValidationResult(
            table=self.table,
            status=status,
            total_checks=len(results),
            passed_checks=passed_checks,
            failed_checks=failed_checks,
            warning_count=warning_count,
            checks=results,
            started_at=started_at,
            completed_at=datetime.utcnow(),
        )


def create_snapshot_validators(frames: Dict[str, pl.DataFrame]) -> Dict[str, DataValidator]:
    """
    Create the validator suite for a full snapshot.

    Foreign keys are checked against the frames of the same snapshot.
    """
    return {
        "customers": (
            DataValidator("customers")
            .add_not_null_check("customer_id")
            .add_not_null_check("customer_unique_id")
            .add_unique_check(["customer_id"])
        ),
        "sellers": (
            DataValidator("sellers")
            .add_not_null_check("seller_id")
            .add_unique_check(["seller_id"])
        ),
        "categories": (
            DataValidator("categories")
            .add_not_null_check("category_name")
            .add_unique_check(["category_name"])
        ),
        "products": (
            DataValidator("products")
            .add_not_null_check("product_id")
            .add_unique_check(["product_id"])
        ),
        "orders": (
            DataValidator("orders")
            .add_not_null_check("order_id")
            .add_not_null_check("customer_id")
            .add_not_null_check("order_status")
            .add_not_null_check("order_purchase_timestamp")
            .add_unique_check(["order_id"])
            .add_enum_check("order_status", ORDER_STATUSES)
            .add_referential_integrity_check("customer_id", frames["customers"], "customer_id", "customer")
        ),
        "order_items": (
            DataValidator("order_items")
            .add_not_null_check("order_id")
            .add_not_null_check("order_item_id")
            .add_not_null_check("product_id")
            .add_not_null_check("seller_id")
            .add_not_null_check("price")
            .add_unique_check(["order_id", "order_item_id"])
            .add_range_check("price", min_value=0, key="order_id")
            .add_range_check("freight_value", min_value=0, key="order_id")
            .add_referential_integrity_check("order_id", frames["orders"], "order_id", "order")
            .add_referential_integrity_check("product_id", frames["products"], "product_id", "product")
            .add_referential_integrity_check("seller_id", frames["sellers"], "seller_id", "seller")
        ),
        "payments": (
            DataValidator("payments")
            .add_not_null_check("order_id")
            .add_not_null_check("payment_sequential")
            .add_unique_check(["order_id", "payment_sequential"])
            .add_range_check("payment_installments", min_value=0, key="order_id")
            .add_referential_integrity_check("order_id", frames["orders"], "order_id", "order")
        ),
        "reviews": (
            DataValidator("reviews")
            .add_not_null_check("review_id")
            .add_not_null_check("order_id")
            .add_not_null_check("review_score")
            .add_unique_check(["review_id", "order_id"])
            .add_range_check("review_score", min_value=1, max_value=5, key="review_id")
            .add_referential_integrity_check("order_id", frames["orders"], "order_id", "order")
        ),
    }
