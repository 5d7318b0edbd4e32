"""Quarantine for skipped and rejected death records"""

from .quarantine_manager import (
    QuarantineManager, QuarantineRecord, QuarantineBatch
)

__all__ = [
    "QuarantineManager",
    "QuarantineRecord",
    "QuarantineBatch"
]
