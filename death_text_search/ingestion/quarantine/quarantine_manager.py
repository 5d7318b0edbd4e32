"""
Quarantine Manager

Persists records that never reached the final table, so every record in a
run is accounted for:

- skipped by the search (empty text, classification error)
- rejected by the record parser (missing identifier, duplicate identifier)

Each batch lands in ``<quarantine_dir>/<dataset_name>/`` as
``<batch_id>_batch.json`` (counts and reasons) and ``<batch_id>_records.csv``
(one row per record with its original values).
"""

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pandas as pd
import structlog

logger = structlog.get_logger(__name__)

RECORD_META_COLUMNS = ["record_id", "error_code", "error_message", "quarantine_timestamp"]


@dataclass
class QuarantineRecord:
    """Individual quarantined record with its reason"""
    record_id: str
    error_code: str
    error_message: Optional[str]
    original_data: Dict[str, Any]
    quarantine_timestamp: datetime


@dataclass
class QuarantineBatch:
    """Batch of quarantined records"""
    batch_id: str
    dataset_name: str
    quarantine_timestamp: datetime
    total_records: int
    quarantined_records: int
    quarantine_rate: float
    error_summary: Dict[str, int]
    records: List[QuarantineRecord]
    batch_file: Optional[str] = None
    records_file: Optional[str] = None


def _clean_value(value: Any) -> Any:
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    return value


class QuarantineManager:
    """
    Writes skipped/rejected records to disk and reads batch history back.

    Args:
        quarantine_dir: Root directory; one subdirectory per dataset
    """

    def __init__(self, quarantine_dir: Union[str, Path] = "data/quarantine"):
        self.quarantine_dir = Path(quarantine_dir)

    def quarantine_records(
        self,
        rejected_df: pd.DataFrame,
        dataset_name: str,
        batch_id: str,
        reason_column: str = "reason",
        total_records: Optional[int] = None,
    ) -> QuarantineBatch:
        """
        Quarantine skipped or rejected records.

        Args:
            rejected_df: Records to quarantine; must carry ``record_id`` and
                ``reason_column``, an ``error_message`` column is optional
            dataset_name: Dataset subdirectory (e.g. "skipped", "rejects")
            batch_id: Batch identifier, usually the run id
            reason_column: Column holding the skip/reject reason
            total_records: Records in the run, for the quarantine rate;
                defaults to the number quarantined

        Returns:
            QuarantineBatch with the file paths it was written to
        """
        quarantine_timestamp = datetime.now(timezone.utc)
        quarantined: List[QuarantineRecord] = []

        for row in rejected_df.to_dict("records"):
            original = {
                key: _clean_value(value) for key, value in row.items()
                if key not in (reason_column, "error_message")
            }
            quarantined.append(QuarantineRecord(
                record_id=str(_clean_value(row.get("record_id"))),
                error_code=str(row.get(reason_column) or "unknown"),
                error_message=_clean_value(row.get("error_message")),
                original_data=original,
                quarantine_timestamp=quarantine_timestamp,
            ))

        total = total_records if total_records is not None else len(quarantined)
        batch = QuarantineBatch(
            batch_id=batch_id,
            dataset_name=dataset_name,
            quarantine_timestamp=quarantine_timestamp,
            total_records=total,
            quarantined_records=len(quarantined),
            quarantine_rate=len(quarantined) / total if total > 0 else 0.0,
            error_summary=self._summarize_errors(quarantined),
            records=quarantined,
        )

        self._save_quarantine_batch(batch)

        logger.warning(
            "records_quarantined",
            dataset=dataset_name,
            batch_id=batch_id,
            quarantined=batch.quarantined_records,
            quarantine_rate=round(batch.quarantine_rate, 4),
            error_summary=batch.error_summary,
        )

        return batch

    def _summarize_errors(self, records: List[QuarantineRecord]) -> Dict[str, int]:
        summary: Dict[str, int] = {}
        for record in records:
            summary[record.error_code] = summary.get(record.error_code, 0) + 1
        return summary

    def _save_quarantine_batch(self, batch: QuarantineBatch) -> None:
        dataset_dir = self.quarantine_dir / batch.dataset_name
        dataset_dir.mkdir(parents=True, exist_ok=True)

        batch_file = dataset_dir / f"{batch.batch_id}_batch.json"
        with open(batch_file, "w") as f:
            json.dump({
                "batch_id": batch.batch_id,
                "dataset_name": batch.dataset_name,
                "quarantine_timestamp": batch.quarantine_timestamp.isoformat(),
                "total_records": batch.total_records,
                "quarantined_records": batch.quarantined_records,
                "quarantine_rate": batch.quarantine_rate,
                "error_summary": batch.error_summary,
            }, f, indent=2)

        records_file = dataset_dir / f"{batch.batch_id}_records.csv"
        rows = []
        for record in batch.records:
            extra = {k: v for k, v in record.original_data.items() if k != "record_id"}
            rows.append({
                "record_id": record.record_id,
                "error_code": record.error_code,
                "error_message": record.error_message,
                "quarantine_timestamp": record.quarantine_timestamp.isoformat(),
                **extra,
            })
        records_df = pd.DataFrame(rows) if rows else pd.DataFrame(columns=RECORD_META_COLUMNS)
        records_df.to_csv(records_file, index=False)

        batch.batch_file = str(batch_file)
        batch.records_file = str(records_file)
        logger.info("quarantine_batch_saved", batch_file=str(batch_file), records_file=str(records_file))

    def list_quarantine_batches(self, dataset_name: str) -> List[Dict[str, Any]]:
        """All batch summaries for a dataset, newest first"""
        dataset_dir = self.quarantine_dir / dataset_name
        if not dataset_dir.exists():
            return []

        batches = []
        for batch_file in dataset_dir.glob("*_batch.json"):
            with open(batch_file, "r") as f:
                batches.append(json.load(f))

        batches.sort(key=lambda x: x["quarantine_timestamp"], reverse=True)
        return batches

    def load_quarantined_records(self, dataset_name: str, batch_id: str) -> pd.DataFrame:
        """Read a batch's quarantined records back (identifiers kept as strings)"""
        records_file = self.quarantine_dir / dataset_name / f"{batch_id}_records.csv"
        if not records_file.exists():
            raise FileNotFoundError(f"No quarantined records for batch {batch_id} in {dataset_name}")
        return pd.read_csv(records_file, dtype={"record_id": str})
