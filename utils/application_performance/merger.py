# utils/application_performance/merger.py
"""
Application Merger

Fetches the two transaction sources in parallel and merges them into one
ordered tuple of canonical Application records:
- primary: spreadsheet-imported sales (denormalized names)
- supplemental: in-app financing forms (store/promoter references,
  resolved to names by the source's joins)

Ordering: occurred_on descending, then primary before supplemental, then
the source's own row order.

The sources are treated as non-overlapping populations: a record present
in both is counted twice. A failing source never fails the merge; its
name is reported in MergeResult.failed_sources instead.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pandas as pd

from .access_control import VisibilityScope
from .constants import SOURCE_PRIMARY, SOURCE_SUPPLEMENTAL, SOURCE_ORDER
from .models import Application
from .status import NormalizationReport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApplicationFilters:
    """
    Screen-level filters on top of visibility.

    `areas` / `team_leads` are pushed down to the sources; the scope is
    re-applied after fetching either way.
    """
    areas: Optional[Tuple[str, ...]] = None
    team_leads: Optional[Tuple[str, ...]] = None
    store_prefix: Optional[str] = None
    promoter_names: Optional[Tuple[str, ...]] = None

    @classmethod
    def from_scope(cls, scope: VisibilityScope, **kwargs) -> 'ApplicationFilters':
        return cls(
            areas=tuple(sorted(scope.areas)) if scope.areas is not None else None,
            team_leads=tuple(sorted(scope.team_leads)) if scope.team_leads is not None else None,
            **kwargs
        )


@dataclass(frozen=True)
class MergeResult:
    applications: Tuple[Application, ...] = ()
    failed_sources: Tuple[str, ...] = ()
    unrecognized_statuses: Dict[tuple, int] = field(default_factory=dict)
    invalid_records: int = 0
    source_counts: Dict[str, int] = field(default_factory=dict)

    @property
    def is_partial(self) -> bool:
        return bool(self.failed_sources)

    def __len__(self) -> int:
        return len(self.applications)


def _to_date(value: Any) -> Optional[date]:
    if value is None:
        return None
    try:
        # NaT is a datetime instance too
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        parsed = pd.to_datetime(value)
    except (ValueError, TypeError):
        return None
    if pd.isna(parsed):
        return None
    return parsed.date()


def _clean_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    text = str(value).strip()
    return text or None


def _records(raw: Any) -> List[Dict[str, Any]]:
    """Accept a DataFrame or any iterable of dicts."""
    if raw is None:
        return []
    if isinstance(raw, pd.DataFrame):
        if raw.empty:
            return []
        return raw.to_dict('records')
    return [dict(row) for row in raw]


class ApplicationMerger:
    """
    Merge primary + supplemental applications for a date range.

    Usage:
        merger = ApplicationMerger(primary_source, supplemental_source)
        result = merger.merge(date_from, date_to, scope=scope)

        result.applications   # tuple of Application, newest first
        result.is_partial     # True if a source failed
    """

    def __init__(self, primary_source, supplemental_source, max_workers: int = 2):
        """
        Args:
            primary_source: object with fetch(date_from, date_to, filters)
            supplemental_source: object with fetch(date_from, date_to, filters)
            max_workers: Threads used for the two fetches
        """
        self.sources = {
            SOURCE_PRIMARY: primary_source,
            SOURCE_SUPPLEMENTAL: supplemental_source,
        }
        self.max_workers = max(1, max_workers)

    def merge(
        self,
        date_from: date,
        date_to: date,
        filters: ApplicationFilters = None,
        scope: VisibilityScope = None
    ) -> MergeResult:
        """
        Fetch both sources concurrently and merge.

        Args:
            date_from: First day (inclusive)
            date_to: Last day (inclusive)
            filters: Screen filters
            scope: Viewer scope, re-applied to every record

        Returns:
            MergeResult
        """
        if scope is not None and scope.is_empty:
            logger.info("Empty visibility scope, skipping application fetch")
            return MergeResult()

        if filters is None:
            filters = ApplicationFilters.from_scope(scope) if scope is not None else ApplicationFilters()

        start = time.perf_counter()
        raw_by_source: Dict[str, List[Dict[str, Any]]] = {}
        failed: List[str] = []

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {
                name: executor.submit(source.fetch, date_from, date_to, filters)
                for name, source in self.sources.items()
            }
            for name, future in futures.items():
                try:
                    raw_by_source[name] = _records(future.result())
                except Exception as e:
                    logger.error(f"❌ {name} application source failed: {e}")
                    failed.append(name)
                    raw_by_source[name] = []

        report = NormalizationReport()
        applications: List[Application] = []
        invalid = 0
        source_counts = {}

        for name in (SOURCE_PRIMARY, SOURCE_SUPPLEMENTAL):
            kept = 0
            for row in raw_by_source.get(name, []):
                application = self._to_application(name, row, report)
                if application is None:
                    invalid += 1
                    continue
                if not self._passes(application, filters, scope):
                    continue
                applications.append(application)
                kept += 1
            source_counts[name] = kept

        # Stable sort: equal keys keep source row order
        applications.sort(
            key=lambda a: (-a.occurred_on.toordinal(), SOURCE_ORDER.get(a.source_system, 99))
        )

        report.log_summary()
        if invalid:
            logger.warning(f"{invalid} application rows had no usable id/date and were not merged")

        elapsed = time.perf_counter() - start
        logger.info(
            f"Merged {len(applications)} applications "
            f"(primary={source_counts.get(SOURCE_PRIMARY, 0)}, "
            f"supplemental={source_counts.get(SOURCE_SUPPLEMENTAL, 0)}, "
            f"failed={failed}) in {elapsed:.2f}s"
        )

        return MergeResult(
            applications=tuple(applications),
            failed_sources=tuple(failed),
            unrecognized_statuses=report.unrecognized,
            invalid_records=invalid,
            source_counts=source_counts,
        )

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _to_application(
        source_system: str,
        row: Dict[str, Any],
        report: NormalizationReport
    ) -> Optional[Application]:
        record_id = _clean_str(row.get('id'))
        occurred_on = _to_date(row.get('date'))
        if record_id is None or occurred_on is None:
            return None

        return Application(
            id=record_id,
            occurred_on=occurred_on,
            promoter_name=_clean_str(row.get('promoter_name')) or '',
            outcome=report.normalize(source_system, row.get('native_status')),
            source_system=source_system,
            native_status=_clean_str(row.get('native_status')),
            promoter_id=_clean_str(row.get('promoter_id')),
            store_name=_clean_str(row.get('store_name')),
            area_name=_clean_str(row.get('area_name')),
            team_lead_name=_clean_str(row.get('team_lead_name')),
        )

    @staticmethod
    def _passes(
        application: Application,
        filters: ApplicationFilters,
        scope: Optional[VisibilityScope]
    ) -> bool:
        if scope is not None and not scope.allows_application(application):
            return False
        if filters.areas is not None and application.area_name not in filters.areas:
            return False
        if filters.team_leads is not None and application.team_lead_name not in filters.team_leads:
            return False
        if filters.store_prefix:
            store = (application.store_name or '').lower()
            if not store.startswith(filters.store_prefix.lower()):
                return False
        if filters.promoter_names is not None and application.promoter_name not in filters.promoter_names:
            return False
        return True


def merge_applications(
    primary_rows: Iterable[Dict[str, Any]],
    supplemental_rows: Iterable[Dict[str, Any]],
    scope: VisibilityScope = None
) -> MergeResult:
    """Merge already-fetched raw rows (no I/O)."""

    class _Static:
        def __init__(self, rows):
            self.rows = rows

        def fetch(self, date_from, date_to, filters):
            return self.rows

    merger = ApplicationMerger(_Static(primary_rows), _Static(supplemental_rows), max_workers=1)
    return merger.merge(date.min, date.max, scope=scope)
