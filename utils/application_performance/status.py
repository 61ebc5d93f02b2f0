# utils/application_performance/status.py
"""
Status Normalizer

Maps each transaction source's native status vocabulary to one canonical
Outcome:
- primary (spreadsheet import): Approved/ACC, Pending, Rejected/Reject
- supplemental (in-app form): ACC, Belum disetujui, anything else pending

Unknown values never raise. They become PENDING_OR_UNRESOLVED and are
tallied in a NormalizationReport so the caller can surface them.
"""

import logging
from collections import Counter
from typing import Dict, Optional

from .constants import (
    SOURCE_PRIMARY,
    SOURCE_SUPPLEMENTAL,
    PRIMARY_STATUS_APPROVED,
    PRIMARY_STATUS_PENDING,
    PRIMARY_STATUS_REJECTED,
    SUPPLEMENTAL_STATUS_APPROVED,
    SUPPLEMENTAL_STATUS_REJECTED,
    SUPPLEMENTAL_STATUS_LIMIT_NOT_PROCESSED,
)
from .models import Outcome

logger = logging.getLogger(__name__)


def _clean(native_status: Optional[str]) -> str:
    if native_status is None:
        return ''
    return str(native_status).strip()


def _normalize_primary(value: str) -> Optional[Outcome]:
    lowered = value.lower()
    if lowered in PRIMARY_STATUS_APPROVED:
        return Outcome.APPROVED
    if lowered in PRIMARY_STATUS_PENDING:
        return Outcome.PENDING_OR_UNRESOLVED
    if lowered in PRIMARY_STATUS_REJECTED:
        return Outcome.REJECTED
    return None


def _normalize_supplemental(value: str) -> Optional[Outcome]:
    lowered = value.lower()
    if lowered == SUPPLEMENTAL_STATUS_APPROVED.lower():
        return Outcome.APPROVED
    if lowered == SUPPLEMENTAL_STATUS_REJECTED.lower():
        return Outcome.REJECTED
    if lowered == SUPPLEMENTAL_STATUS_LIMIT_NOT_PROCESSED.lower():
        return Outcome.PENDING_OR_UNRESOLVED
    return None


_NORMALIZERS = {
    SOURCE_PRIMARY: _normalize_primary,
    SOURCE_SUPPLEMENTAL: _normalize_supplemental,
}


def is_recognized(source_system: str, native_status: Optional[str]) -> bool:
    """True when the value is part of the source's known vocabulary."""
    normalizer = _NORMALIZERS.get(source_system)
    if normalizer is None:
        return False
    return normalizer(_clean(native_status)) is not None


def normalize(source_system: str, native_status: Optional[str]) -> Outcome:
    """
    Map a native status to its canonical Outcome.

    Total over all inputs: unknown sources and unknown values both map to
    PENDING_OR_UNRESOLVED.
    """
    normalizer = _NORMALIZERS.get(source_system)
    if normalizer is None:
        return Outcome.PENDING_OR_UNRESOLVED
    outcome = normalizer(_clean(native_status))
    return outcome if outcome is not None else Outcome.PENDING_OR_UNRESOLVED


class NormalizationReport:
    """
    Normalizes a stream of statuses and tallies unrecognized values.

    Usage:
        report = NormalizationReport()
        outcome = report.normalize('supplemental', row['status_pengajuan'])
        report.unrecognized  # {('supplemental', 'Batal'): 2}
    """

    def __init__(self):
        self._unrecognized: Counter = Counter()

    def normalize(self, source_system: str, native_status: Optional[str]) -> Outcome:
        if not is_recognized(source_system, native_status):
            self._unrecognized[(source_system, _clean(native_status))] += 1
        return normalize(source_system, native_status)

    @property
    def unrecognized(self) -> Dict[tuple, int]:
        return dict(self._unrecognized)

    @property
    def unrecognized_total(self) -> int:
        return sum(self._unrecognized.values())

    def log_summary(self) -> None:
        for (source, value), count in sorted(self._unrecognized.items()):
            logger.warning(
                f"Unrecognized {source} status '{value}' x{count} counted as pending"
            )
