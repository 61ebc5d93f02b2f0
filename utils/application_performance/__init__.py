# utils/application_performance/__init__.py
"""
Application Performance Module

Counts financing applications per Promoter, rolls them up through
Sator (team lead) and Area, and compares every node against its own
monthly target.

VERSION: 1.2.0
CHANGELOG:
- v1.2.0: Supplemental source joins promoters by id first, name as fallback
          - ENABLE_NAME_FALLBACK_JOIN switches the legacy name join off
          - Promoters missing from the directory get a synthesized leaf
- v1.1.0: Parent targets come from their own tier (SPV / Sator targets)
          - Sum of children's targets is only used for the gap warning
- v1.0.0: Initial pipeline: merger, visibility, targets, tree, classifier

Components:
- status: Status Normalizer
- ApplicationMerger: two transaction sources -> canonical applications
- AccessControl / VisibilityScope: role-based visibility
- TargetResolver: monthly targets per tier
- HierarchyAggregator: Area -> Sator -> Promoter tree
- classify / classify_tree: attainment buckets and target warnings
- PerformanceMetrics: summary, rankings, flat frames
- PerformancePipeline: one run per query -> PerformanceReport
"""

from .models import (
    Outcome,
    Application,
    Counts,
    Promoter,
    TeamLead,
    Supervisor,
    Directory,
    ViewerProfile,
    AggregateNode,
    Attainment,
    TargetWarning,
)
from .status import normalize, is_recognized, NormalizationReport
from .access_control import (
    AccessControl,
    VisibilityScope,
    EMPTY_SCOPE,
    accessible_areas,
    accessible_team_leads,
    resolve_scope,
)
from .merger import ApplicationFilters, ApplicationMerger, MergeResult, merge_applications
from .targets import ResolvedTargets, TargetSet, TargetResolver
from .aggregator import HierarchyAggregator, build_tree, order_tree, flatten
from .classifier import classify, classify_tree, check_target_consistency, bucket_color, TreeReport
from .metrics import PerformanceMetrics
from .periods import current_month, month_bounds, get_date_range, today_wita
from .pipeline import PerformancePipeline, PerformanceFilters, PerformanceReport
from .exceptions import DataSourceError

__all__ = [
    'Outcome',
    'Application',
    'Counts',
    'Promoter',
    'TeamLead',
    'Supervisor',
    'Directory',
    'ViewerProfile',
    'AggregateNode',
    'Attainment',
    'TargetWarning',
    'normalize',
    'is_recognized',
    'NormalizationReport',
    'AccessControl',
    'VisibilityScope',
    'EMPTY_SCOPE',
    'accessible_areas',
    'accessible_team_leads',
    'resolve_scope',
    'ApplicationFilters',
    'ApplicationMerger',
    'MergeResult',
    'merge_applications',
    'ResolvedTargets',
    'TargetSet',
    'TargetResolver',
    'HierarchyAggregator',
    'build_tree',
    'order_tree',
    'flatten',
    'classify',
    'classify_tree',
    'check_target_consistency',
    'bucket_color',
    'TreeReport',
    'PerformanceMetrics',
    'current_month',
    'month_bounds',
    'get_date_range',
    'today_wita',
    'PerformancePipeline',
    'PerformanceFilters',
    'PerformanceReport',
    'DataSourceError',
]

__version__ = '1.2.0'
