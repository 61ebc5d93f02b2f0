# utils/application_performance/metrics.py
"""
Performance Metrics for Application Performance

Derived views over the aggregated tree:
- Summary stats (closing rate, "dapat limit" = approved + pending)
- Top / bottom promoters by volume
- Store breakdown
- Promoters without activity, grouped by Sator
- Flat per-tier DataFrames for tables and exports
- Promoter category stats (official / training)

Pure functions of the tree and applications: no queries here.
"""

import logging
from collections import defaultdict
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .classifier import TreeReport, classify, check_target_consistency
from .constants import (
    NODE_PROMOTER,
    NODE_TEAM_LEAD,
    NODE_AREA,
    UNASSIGNED_STORE,
    CATEGORY_OFFICIAL,
    CATEGORY_TRAINING,
    CATEGORY_UNCATEGORIZED,
)
from .models import AggregateNode, Application, Counts, Outcome

logger = logging.getLogger(__name__)

TIER_FRAME_COLUMNS = [
    'entity_id', 'name', 'tier', 'area_name', 'team_lead_name', 'store_name',
    'total', 'approved', 'pending_or_unresolved', 'rejected',
    'target', 'has_target', 'percentage', 'bucket',
    'child_target_sum', 'target_shortfall', 'remaining_to_target', 'closing_rate',
    'is_synthesized',
]


def rate(part: int, total: int) -> float:
    """part / total as a percentage with one decimal (0.0 when total is 0)."""
    if not total:
        return 0.0
    value = Decimal(str(part * 100 / total)).quantize(Decimal('0.1'), rounding=ROUND_HALF_UP)
    return float(value)


def summarize_counts(counts: Counts) -> Dict:
    credit_limit_granted = counts.approved + counts.pending_or_unresolved
    return {
        'total': counts.total,
        'approved': counts.approved,
        'pending_or_unresolved': counts.pending_or_unresolved,
        'rejected': counts.rejected,
        'credit_limit_granted': credit_limit_granted,
        'closing_rate': rate(counts.approved, counts.total),
        'pending_rate': rate(counts.pending_or_unresolved, counts.total),
        'rejected_rate': rate(counts.rejected, counts.total),
        'credit_limit_rate': rate(credit_limit_granted, counts.total),
    }


class PerformanceMetrics:
    """
    Metrics for one aggregated tree.

    Usage:
        metrics = PerformanceMetrics(areas, tree_report, applications)
        summary = metrics.summary()
        top, bottom = metrics.top_promoters(3), metrics.bottom_promoters(3)
        sator_df = metrics.tier_frame('team_lead')
    """

    def __init__(
        self,
        roots: Sequence[AggregateNode],
        tree_report: Optional[TreeReport] = None,
        applications: Iterable[Application] = ()
    ):
        self.roots = tuple(roots)
        self.tree_report = tree_report
        self.applications = tuple(applications)

    # =========================================================================
    # SUMMARY
    # =========================================================================

    def total_counts(self) -> Counts:
        return Counts.sum(root.counts for root in self.roots)

    def summary(self) -> Dict:
        """Totals and rates across every visible Area."""
        result = summarize_counts(self.total_counts())
        result['target'] = sum(root.target for root in self.roots)
        result['area_count'] = len(self.roots)
        result['promoter_count'] = len(self._leaves())
        return result

    # =========================================================================
    # RANKINGS
    # =========================================================================

    def _leaves(self) -> List[AggregateNode]:
        leaves = []
        for root in self.roots:
            leaves.extend(root.leaves())
        return leaves

    def top_promoters(self, n: int = 3) -> List[AggregateNode]:
        """Highest totals first; ties by name."""
        leaves = sorted(self._leaves(), key=lambda x: (-x.counts.total, x.name.lower(), x.entity_id))
        return leaves[:n]

    def bottom_promoters(self, n: int = 3) -> List[AggregateNode]:
        """Lowest totals first (zero-activity promoters included); ties by name."""
        leaves = sorted(self._leaves(), key=lambda x: (x.counts.total, x.name.lower(), x.entity_id))
        return leaves[:n]

    def no_activity_promoters(self) -> Dict[str, List[str]]:
        """Directory promoters with zero applications, grouped by Sator."""
        grouped: Dict[str, List[str]] = defaultdict(list)
        for leaf in self._leaves():
            if leaf.counts.total == 0 and not leaf.is_synthesized:
                grouped[leaf.team_lead_name].append(leaf.name)
        return {lead: sorted(names, key=str.lower) for lead, names in sorted(grouped.items())}

    # =========================================================================
    # STORES
    # =========================================================================

    def store_breakdown(self, store_prefix: Optional[str] = None) -> pd.DataFrame:
        """
        Counts per store.

        Args:
            store_prefix: Only stores whose name starts with this (case-insensitive)

        Returns:
            DataFrame sorted by total desc, then store name
        """
        columns = ['store_name', 'area_name', 'total', 'approved',
                   'pending_or_unresolved', 'rejected', 'closing_rate']

        outcomes: Dict[Tuple[str, str], List[Outcome]] = defaultdict(list)
        for application in self.applications:
            store = application.store_name or UNASSIGNED_STORE
            if store_prefix and not store.lower().startswith(store_prefix.lower()):
                continue
            outcomes[(store, application.area_name or '')].append(application.outcome)

        if not outcomes:
            return pd.DataFrame(columns=columns)

        rows = []
        for (store, area), store_outcomes in outcomes.items():
            counts = Counts.from_outcomes(store_outcomes)
            rows.append({
                'store_name': store,
                'area_name': area,
                'total': counts.total,
                'approved': counts.approved,
                'pending_or_unresolved': counts.pending_or_unresolved,
                'rejected': counts.rejected,
                'closing_rate': rate(counts.approved, counts.total),
            })

        df = pd.DataFrame(rows, columns=columns)
        return df.sort_values(['total', 'store_name'], ascending=[False, True]).reset_index(drop=True)

    # =========================================================================
    # FLAT FRAMES
    # =========================================================================

    def _walk_with_paths(self):
        def _walk(node, parent_path):
            path = parent_path + (node.entity_id,)
            yield path, node
            for child in node.children:
                yield from _walk(child, path)

        for root in self.roots:
            yield from _walk(root, ())

    def tier_frame(self, tier: str) -> pd.DataFrame:
        """
        One row per node of a tier.

        Args:
            tier: 'area', 'team_lead' or 'promoter'
        """
        if tier not in (NODE_AREA, NODE_TEAM_LEAD, NODE_PROMOTER):
            raise ValueError(f"Unknown tier: {tier}")

        rows = []
        for path, node in self._walk_with_paths():
            if node.tier != tier:
                continue
            attainment = self.tree_report.attainment(path) if self.tree_report else None
            if attainment is None:
                attainment = classify(node)
            warning = self.tree_report.warning(path) if self.tree_report else check_target_consistency(node)
            rows.append({
                'entity_id': node.entity_id,
                'name': node.name,
                'tier': node.tier,
                'area_name': node.area_name,
                'team_lead_name': node.team_lead_name,
                'store_name': node.store_name,
                'total': node.counts.total,
                'approved': node.counts.approved,
                'pending_or_unresolved': node.counts.pending_or_unresolved,
                'rejected': node.counts.rejected,
                'target': node.target,
                'has_target': node.has_target,
                'percentage': attainment.percentage,
                'bucket': attainment.bucket,
                'child_target_sum': node.child_target_sum,
                'target_shortfall': warning.shortfall if warning else 0,
                'closing_rate': rate(node.counts.approved, node.counts.total),
                'is_synthesized': node.is_synthesized,
            })

        if not rows:
            return pd.DataFrame(columns=TIER_FRAME_COLUMNS)

        df = pd.DataFrame(rows)
        df['remaining_to_target'] = np.where(
            df['target'] > df['total'], df['target'] - df['total'], 0
        )
        return df[TIER_FRAME_COLUMNS]

    # =========================================================================
    # CATEGORIES
    # =========================================================================

    def category_stats(self) -> pd.DataFrame:
        """Promoter count, target sum and volume per promoter category."""
        order = [CATEGORY_OFFICIAL, CATEGORY_TRAINING, CATEGORY_UNCATEGORIZED]
        stats = {c: {'category': c, 'promoters': 0, 'target_sum': 0, 'total': 0} for c in order}

        for leaf in self._leaves():
            category = (leaf.category or '').lower()
            if category not in stats:
                category = CATEGORY_UNCATEGORIZED
            stats[category]['promoters'] += 1
            stats[category]['target_sum'] += leaf.target
            stats[category]['total'] += leaf.counts.total

        return pd.DataFrame([stats[c] for c in order])
