"""
Result Publishers

Writes the outputs of a text search run under ``<output_dir>/<run_id>/``:

- final_table: one row per (record_id, drug_category)
- category_summary: overdose count per drug category
- eligible_cases: eligible records with their matched terms, for review

Every table gets ``run_id`` and ``published_at`` columns so files from
different runs stay distinguishable once merged.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pandas as pd
import structlog

from death_text_search.search.aggregate import summarize
from death_text_search.search.pipeline import SearchResult

logger = structlog.get_logger(__name__)

SUPPORTED_FORMATS = ("parquet", "csv")


@dataclass
class PublishSpec:
    """Specification for one published table"""
    table_name: str
    output_format: str  # "parquet", "csv"
    compression: Optional[str] = "snappy"
    sort_columns: List[str] = field(default_factory=list)


@dataclass
class PublishResult:
    """Result of publishing one table"""
    table_name: str
    record_count: int
    file_paths: List[str]
    run_id: str


class DataPublisher(ABC):
    """Base class for table publishers"""

    extension = ""

    def __init__(self, output_dir: Union[str, Path]):
        self.output_dir = Path(output_dir)

    def publish_table(self, df: pd.DataFrame, spec: PublishSpec, run_id: str) -> PublishResult:
        """Write one table to ``<output_dir>/<run_id>/<table_name>.<ext>``"""
        run_dir = self.output_dir / run_id
        run_dir.mkdir(parents=True, exist_ok=True)

        df = df.copy()
        if spec.sort_columns and not df.empty:
            df = df.sort_values(spec.sort_columns, kind="stable").reset_index(drop=True)
        df["run_id"] = run_id
        df["published_at"] = datetime.now(timezone.utc).isoformat()

        file_path = run_dir / f"{spec.table_name}.{self.extension}"
        self._write(df, file_path, spec)

        logger.info("table_published", table=spec.table_name, rows=len(df), path=str(file_path))

        return PublishResult(
            table_name=spec.table_name,
            record_count=len(df),
            file_paths=[str(file_path)],
            run_id=run_id,
        )

    @abstractmethod
    def _write(self, df: pd.DataFrame, file_path: Path, spec: PublishSpec) -> None:
        pass


class ParquetPublisher(DataPublisher):
    """Publisher for Parquet format"""

    extension = "parquet"

    def _write(self, df: pd.DataFrame, file_path: Path, spec: PublishSpec) -> None:
        # Mixed object columns (e.g. record ids read as str and int) break pyarrow
        for column in df.columns:
            if df[column].dtype == object:
                df[column] = df[column].map(lambda v: None if pd.isna(v) else str(v))
        df.to_parquet(file_path, compression=spec.compression, index=False)


class CSVPublisher(DataPublisher):
    """Publisher for CSV format"""

    extension = "csv"

    def _write(self, df: pd.DataFrame, file_path: Path, spec: PublishSpec) -> None:
        df.to_csv(file_path, index=False)


class PublisherFactory:
    """Factory for creating appropriate publishers"""

    @staticmethod
    def create_publisher(output_format: str, output_dir: Union[str, Path]) -> DataPublisher:
        if output_format == "parquet":
            return ParquetPublisher(output_dir)
        elif output_format == "csv":
            return CSVPublisher(output_dir)
        else:
            raise ValueError(f"Unsupported output format: {output_format}")


def get_result_publish_specs(output_format: str = "parquet") -> Dict[str, PublishSpec]:
    """Publish specifications for the three run outputs"""
    compression = "snappy" if output_format == "parquet" else None
    return {
        "final_table": PublishSpec(
            table_name="final_table",
            output_format=output_format,
            compression=compression,
        ),
        "category_summary": PublishSpec(
            table_name="category_summary",
            output_format=output_format,
            compression=compression,
        ),
        "eligible_cases": PublishSpec(
            table_name="eligible_cases",
            output_format=output_format,
            compression=compression,
            sort_columns=["record_id"],
        ),
    }


class ResultPublisher:
    """
    Publishes a SearchResult.

    Examples:
        >>> publisher = ResultPublisher("output", output_format="csv")
        >>> results = publisher.publish(search_result, run_id="2024_q1")
        >>> results["final_table"].file_paths
        ['output/2024_q1/final_table.csv']
    """

    def __init__(self, output_dir: Union[str, Path], output_format: str = "parquet"):
        if output_format not in SUPPORTED_FORMATS:
            raise ValueError(f"Unsupported output format: {output_format}")
        self.output_dir = Path(output_dir)
        self.output_format = output_format
        self.publisher = PublisherFactory.create_publisher(output_format, output_dir)
        self.specs = get_result_publish_specs(output_format)

    def publish(self, result: SearchResult, run_id: str) -> Dict[str, PublishResult]:
        tables: Dict[str, Any] = {
            "final_table": result.final_table,
            "category_summary": summarize(result.final_table),
            "eligible_cases": result.eligible_cases,
        }

        published = {
            name: self.publisher.publish_table(tables[name], spec, run_id)
            for name, spec in self.specs.items()
        }

        logger.info(
            "search_result_published",
            run_id=run_id,
            output_dir=str(self.output_dir / run_id),
            output_format=self.output_format,
            record_counts={name: r.record_count for name, r in published.items()},
        )
        return published


def read_published_table(path: Union[str, Path]) -> pd.DataFrame:
    """Read a published table back by extension (.parquet or .csv)"""
    path = Path(path)
    if path.suffix == ".parquet":
        return pd.read_parquet(path)
    if path.suffix == ".csv":
        return pd.read_csv(path, dtype={"record_id": str})
    raise ValueError(f"Unsupported table file: {path.name}")
