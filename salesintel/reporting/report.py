"""
Insight report: the merged, ordered result bundle of one analysis run.
"""

import json
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Union

import polars as pl
import structlog

logger = structlog.get_logger(__name__)

DECIMALS = 2


def _serialize_value(value: Any) -> Any:
    """JSON-ready scalar; currency and percentage floats to 2 decimals"""
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        return round(value, DECIMALS)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def frame_to_rows(df: pl.DataFrame) -> List[Dict[str, Any]]:
    return [
        {column: _serialize_value(value) for column, value in row.items()}
        for row in df.iter_rows(named=True)
    ]


@dataclass
class InsightReport:
    """
    Final output of a run.

    Sections keep engine order (segmentation, trends, opportunity,
    performance) and each section keeps its row order.
    """
    as_of_date: date
    sections: Dict[str, pl.DataFrame] = field(default_factory=dict)
    omissions: Dict[str, int] = field(default_factory=dict)
    recommendations: List[Dict[str, str]] = field(default_factory=list)
    generated_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def never_purchased_count(self) -> int:
        """Persons with no delivered order, reported apart from churn bands"""
        never = self.sections.get("never_purchased")
        return 0 if never is None else len(never)

    def section(self, name: str) -> pl.DataFrame:
        return self.sections[name]

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready body; depends only on the snapshot and the parameters"""
        return {
            "as_of_date": self.as_of_date.isoformat(),
            "never_purchased_count": self.never_purchased_count,
            "omissions": dict(self.omissions),
            "recommendations": list(self.recommendations),
            "sections": {name: frame_to_rows(df) for name, df in self.sections.items()},
        }

    def write_json(self, path: Union[str, Path]) -> Path:
        """Write the report as JSON, creating parent directories"""
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)

        logger.info(
            "Report written",
            path=str(output_path),
            sections=len(self.sections),
            generated_at=self.generated_at.isoformat(),
        )
        return output_path
