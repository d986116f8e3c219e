"""
Snapshot Loader

Reads an Olist-shaped CSV snapshot with Polars and hands it to the fact
model. Source column names are mapped onto the fact schema; everything else
(type coercion, integrity checks) is done by the fact model.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Union

import polars as pl
import structlog

from salesintel.config.settings import SnapshotSettings
from salesintel.exceptions import ConfigurationError, DataIntegrityError
from salesintel.facts.model import TABLES, FactModel

logger = structlog.get_logger(__name__)

NULL_VALUES = ["", "NULL", "null", "None", "NA", "N/A"]

# Source column -> fact column, per table
COLUMN_MAPS: Dict[str, Dict[str, str]] = {
    "categories": {
        "product_category_name": "category_name",
        "product_category_name_english": "category_name_english",
    },
    "products": {
        "product_category_name": "category_name",
        "product_weight_g": "weight_g",
        "product_length_cm": "length_cm",
        "product_height_cm": "height_cm",
        "product_width_cm": "width_cm",
    },
}

SCHEMA_OVERRIDES: Dict[str, Dict[str, pl.DataType]] = {
    "customers": {"customer_zip_code_prefix": pl.Utf8},
    "sellers": {"seller_zip_code_prefix": pl.Utf8},
}


@dataclass
class TableLoad:
    """Outcome of reading one snapshot file"""
    table: str
    file_path: str
    rows: int = 0
    started_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> float:
        if self.completed_at is None:
            return 0.0
        return (self.completed_at - self.started_at).total_seconds()


class SnapshotLoader:
    """
    Load the eight snapshot tables from a directory of CSV files.

    Example:
        loader = SnapshotLoader(data_dir="data/olist")
        facts = loader.load()
    """

    def __init__(
        self,
        data_dir: Optional[Union[str, Path]] = None,
        settings: Optional[SnapshotSettings] = None,
    ):
        self.settings = settings or SnapshotSettings()
        self.data_dir = Path(data_dir or self.settings.data_dir)
        self.loads: List[TableLoad] = []

    def file_for(self, table: str) -> Path:
        return self.data_dir / getattr(self.settings, f"{table}_file")

    def _read_csv(self, table: str, path: Path) -> pl.DataFrame:
        """Read CSV file with Polars, leaving unparseable dates as text"""
        try:
            df = pl.read_csv(
                path,
                null_values=NULL_VALUES,
                try_parse_dates=True,
                infer_schema_length=10000,
                schema_overrides=SCHEMA_OVERRIDES.get(table),
            )
        except pl.exceptions.ComputeError as e:
            raise DataIntegrityError(f"parse_{table}", str(e), {"file": str(path)}) from e
        # Some exports carry a byte-order mark on the first header
        df = df.rename({c: c.lstrip("﻿") for c in df.columns if c.startswith("﻿")})
        return df.rename({k: v for k, v in COLUMN_MAPS.get(table, {}).items() if k in df.columns})

    def load_table(self, table: str) -> pl.DataFrame:
        path = self.file_for(table)
        if not path.exists():
            raise ConfigurationError("data_dir", f"snapshot file not found: {path}")

        load = TableLoad(table=table, file_path=str(path))
        df = self._read_csv(table, path)
        load.rows = len(df)
        load.completed_at = datetime.utcnow()
        self.loads.append(load)

        logger.info(
            "Snapshot table read",
            table=table,
            file=str(path),
            rows=load.rows,
            duration_seconds=load.duration_seconds,
        )
        return df

    def load_frames(self) -> Dict[str, pl.DataFrame]:
        """Raw frames keyed by fact table name"""
        if not self.data_dir.is_dir():
            raise ConfigurationError("data_dir", f"not a directory: {self.data_dir}")

        logger.info("Loading snapshot", data_dir=str(self.data_dir))
        return {table: self.load_table(table) for table in TABLES}

    def load(self, validate: bool = True) -> FactModel:
        """
        Read every table and build a validated fact model.

        Raises:
            ConfigurationError: Snapshot directory or a file is missing
            DataIntegrityError: The snapshot violates a fact-model invariant
        """
        return FactModel.from_frames(validate=validate, **self.load_frames())
