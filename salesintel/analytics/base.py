"""
Shared plumbing for the analysis engines: result container, row-to-frame
conversion and insufficient-data reporting.
"""

import warnings
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

import polars as pl
import structlog

from salesintel.exceptions import InsufficientDataWarning

logger = structlog.get_logger(__name__)


@dataclass
class EngineResult:
    """Output of one engine: ordered sections plus omitted-group counts"""
    engine: str
    sections: Dict[str, pl.DataFrame] = field(default_factory=dict)
    omissions: Dict[str, int] = field(default_factory=dict)
    started_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    def add(self, name: str, df: pl.DataFrame) -> pl.DataFrame:
        self.sections[name] = df
        return df

    def omit(self, section: str, count: int, reason: str) -> None:
        """Record groups dropped by a sample-size gate"""
        if count <= 0:
            return
        self.omissions[section] = self.omissions.get(section, 0) + count
        logger.warning(
            "Insufficient data, groups omitted",
            engine=self.engine,
            section=section,
            omitted=count,
            reason=reason,
        )
        warnings.warn(
            f"{section}: {count} group(s) omitted ({reason})",
            InsufficientDataWarning,
            stacklevel=2,
        )

    def finish(self) -> "EngineResult":
        self.completed_at = datetime.utcnow()
        logger.info(
            "Engine complete",
            engine=self.engine,
            sections={name: len(df) for name, df in self.sections.items()},
            omissions=self.omissions,
            duration_seconds=(self.completed_at - self.started_at).total_seconds(),
        )
        return self


def frame_from_rows(rows: List[Mapping[str, Any]], schema: Mapping[str, pl.DataType]) -> pl.DataFrame:
    """Build a frame with a fixed schema, so empty sections keep their columns"""
    return pl.DataFrame(
        [{name: row.get(name) for name in schema} for row in rows],
        schema=dict(schema),
        strict=False,
    )
