# utils/application_performance/pipeline.py
"""
Performance Pipeline

One explicit invocation per query:

    viewer + month + filters
        -> Visibility Resolver (scope)
        -> fan-out: transaction sources (merged), directory, then targets
        -> Hierarchical Aggregator (canonical tree)
        -> Attainment Classifier (tree report)
        -> Performance Metrics (summary, frames)
        -> PerformanceReport (frozen)

Nothing is cached between runs. An empty scope returns an empty report
without touching any collaborator.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Optional, Tuple

import pandas as pd

from ..config import config
from .access_control import AccessControl, VisibilityScope
from .aggregator import HierarchyAggregator, order_tree
from .classifier import TreeReport, classify_tree
from .constants import (
    FILTER_ALL,
    ORDER_BY_NAME,
    ORDER_BY_TOTAL,
    NODE_AREA,
    NODE_TEAM_LEAD,
    NODE_PROMOTER,
)
from .exceptions import DataSourceError
from .merger import ApplicationFilters, ApplicationMerger, MergeResult
from .metrics import PerformanceMetrics
from .models import AggregateNode, Directory, ViewerProfile
from .periods import current_month, get_date_range, month_bounds
from .targets import TargetResolver, TargetSet

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PerformanceFilters:
    """
    Screen selection.

    area / team_lead: 'all' or a name ('own' for the viewer's team).
    date_from / date_to: override the month's bounds (targets stay monthly).
    order_by: 'total' (busiest first) or 'name'.
    """
    area: str = FILTER_ALL
    team_lead: str = FILTER_ALL
    store_prefix: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    order_by: str = ORDER_BY_TOTAL

    @classmethod
    def for_preset(cls, preset: Optional[str], today: Optional[date] = None, **kwargs) -> 'PerformanceFilters':
        """
        Filters for a quick date preset ('mtd', 'last7days', ...).

        None keeps the whole selected month.
        """
        if preset:
            kwargs['date_from'], kwargs['date_to'] = get_date_range(preset, today)
        return cls(**kwargs)


@dataclass(frozen=True)
class PerformanceReport:
    """Immutable result of one pipeline run."""
    month: str
    date_from: date
    date_to: date
    scope: VisibilityScope
    areas: Tuple[AggregateNode, ...] = ()
    tree_report: TreeReport = field(default_factory=TreeReport)
    merge: MergeResult = field(default_factory=MergeResult)
    failed_target_tiers: Tuple[str, ...] = ()
    summary: Dict = field(default_factory=dict)
    top_promoters: Tuple[AggregateNode, ...] = ()
    bottom_promoters: Tuple[AggregateNode, ...] = ()
    no_activity: Dict = field(default_factory=dict)
    frames: Dict[str, pd.DataFrame] = field(default_factory=dict)
    generated_at: datetime = field(default_factory=datetime.now)

    @property
    def is_partial(self) -> bool:
        return self.merge.is_partial or bool(self.failed_target_tiers)

    @property
    def is_empty(self) -> bool:
        return not self.areas

    @property
    def warnings(self):
        return self.tree_report.warnings

    def frame(self, name: str) -> pd.DataFrame:
        return self.frames.get(name, pd.DataFrame())


class PerformancePipeline:
    """
    Build the performance report for a viewer.

    Usage:
        pipeline = PerformancePipeline()            # SQL collaborators
        report = pipeline.run(profile, '2025-12', PerformanceFilters(area='KUPANG'))

        report.areas            # Area -> Sator -> Promoter tree
        report.frame('promoter')
        report.is_partial       # a source or target tier failed
    """

    def __init__(
        self,
        primary_source=None,
        supplemental_source=None,
        directory_source=None,
        target_store=None,
        all_areas=None,
        max_workers: Optional[int] = None,
        name_fallback: Optional[bool] = None,
        top_n: Optional[int] = None
    ):
        """
        Args:
            primary_source / supplemental_source: fetch(date_from, date_to, filters)
            directory_source: fetch_directory(areas)
            target_store: fetch_targets(month, tier, assignee_ids)
            all_areas: Every Area (defaults to config AREAS)
            max_workers: Fan-out threads (defaults to config QUERY_MAX_WORKERS)
            name_fallback: Name join for applications without a promoter id
            top_n: Size of top/bottom rankings
        """
        if None in (primary_source, supplemental_source, directory_source, target_store):
            from .queries import (
                PrimaryApplicationSource,
                SupplementalApplicationSource,
                DirectoryRepository,
                TargetStore,
            )
            primary_source = primary_source or PrimaryApplicationSource()
            supplemental_source = supplemental_source or SupplementalApplicationSource()
            directory_source = directory_source or DirectoryRepository()
            target_store = target_store or TargetStore()

        self.directory_source = directory_source
        self.all_areas = list(all_areas) if all_areas is not None else config.get_areas()
        self.max_workers = max(2, max_workers or config.get_app_setting("QUERY_MAX_WORKERS", 6))
        self.name_fallback = (
            name_fallback if name_fallback is not None
            else config.get_app_setting("ENABLE_NAME_FALLBACK_JOIN", True)
        )
        self.top_n = top_n or config.get_app_setting("TOP_N", 3)

        self.merger = ApplicationMerger(primary_source, supplemental_source)
        self.target_resolver = TargetResolver(target_store, max_workers=self.max_workers)

    # =========================================================================
    # MAIN ENTRY POINT
    # =========================================================================

    def run(
        self,
        viewer: Optional[ViewerProfile],
        month: Optional[str] = None,
        filters: Optional[PerformanceFilters] = None
    ) -> PerformanceReport:
        """
        Run the whole pipeline once.

        Raises:
            DataSourceError: the directory could not be read
            ValueError: malformed month
        """
        start = time.perf_counter()
        filters = filters or PerformanceFilters()
        month = month or current_month()
        date_from, date_to = month_bounds(month)
        date_from = filters.date_from or date_from
        date_to = filters.date_to or date_to

        access = AccessControl(viewer, self.all_areas)
        scope = access.get_scope(filters.area, filters.team_lead)

        if scope.is_empty:
            logger.info(f"Empty scope for {access!r}, returning empty report")
            return PerformanceReport(month=month, date_from=date_from, date_to=date_to, scope=scope)

        app_filters = ApplicationFilters.from_scope(scope, store_prefix=filters.store_prefix)
        directory_areas = sorted(scope.areas) if scope.areas is not None else None

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            merge_future = executor.submit(self.merger.merge, date_from, date_to, app_filters, scope)
            directory_future = executor.submit(self._fetch_directory, directory_areas)

            directory = directory_future.result()
            targets = self._resolve_targets(month, directory)
            merge_result = merge_future.result()

        fetched = time.perf_counter()

        aggregator = HierarchyAggregator(directory, targets, scope, name_fallback=self.name_fallback)
        areas = aggregator.build_tree(merge_result.applications)
        if filters.order_by != ORDER_BY_NAME:
            areas = order_tree(areas, by=filters.order_by)

        tree_report = classify_tree(areas)
        metrics = PerformanceMetrics(areas, tree_report, merge_result.applications)

        frames = {
            NODE_AREA: metrics.tier_frame(NODE_AREA),
            NODE_TEAM_LEAD: metrics.tier_frame(NODE_TEAM_LEAD),
            NODE_PROMOTER: metrics.tier_frame(NODE_PROMOTER),
            'stores': metrics.store_breakdown(filters.store_prefix),
            'categories': metrics.category_stats(),
        }

        report = PerformanceReport(
            month=month,
            date_from=date_from,
            date_to=date_to,
            scope=scope,
            areas=areas,
            tree_report=tree_report,
            merge=merge_result,
            failed_target_tiers=targets.failed_tiers,
            summary=metrics.summary(),
            top_promoters=tuple(metrics.top_promoters(self.top_n)),
            bottom_promoters=tuple(metrics.bottom_promoters(self.top_n)),
            no_activity=metrics.no_activity_promoters(),
            frames=frames,
        )

        elapsed = time.perf_counter() - start
        logger.info(
            f"⏱️ Pipeline {month} for {access!r}: fetch={fetched - start:.2f}s, "
            f"total={elapsed:.2f}s, areas={len(areas)}, "
            f"applications={len(merge_result)}, partial={report.is_partial}"
        )
        return report

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _fetch_directory(self, areas) -> Directory:
        try:
            return self.directory_source.fetch_directory(areas)
        except DataSourceError:
            raise
        except Exception as e:
            logger.error(f"❌ Directory load failed: {e}")
            raise DataSourceError('directory', str(e)) from e

    def _resolve_targets(self, month: str, directory: Directory) -> TargetSet:
        return self.target_resolver.resolve_all(
            month,
            promoter_ids=[p.id for p in directory.promoters],
            team_lead_ids=[t.id for t in directory.team_leads],
            supervisor_ids=[s.id for s in directory.supervisors if s.is_active],
        )
