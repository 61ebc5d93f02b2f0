# utils/application_performance/classifier.py
"""
Attainment Classifier

percentage = round(total / target * 100), halves rounded up
Buckets (checked top-down):
- >= 100  met
- >= 75   on-track
- >= 50   at-risk
- < 50    behind
- target 0 (not set, or set to 0)  no-target

Also flags parents whose own target is not covered by the sum of their
children's targets. The flag is advisory and never changes a node.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Sequence, Tuple

from .constants import BUCKET_THRESHOLDS, BUCKET_BEHIND, BUCKET_NO_TARGET, BUCKET_COLORS
from .models import AggregateNode, Attainment, TargetWarning

logger = logging.getLogger(__name__)

NodePath = Tuple[str, ...]


def round_half_up(value: float) -> int:
    """Round to the nearest integer, .5 away from zero (59.5 -> 60)."""
    return int(Decimal(str(value)).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def attainment_percentage(total: int, target: int) -> int:
    if not target or target <= 0:
        return 0
    return round_half_up(total / target * 100)


def bucket_for(percentage: int, target: int) -> str:
    if not target or target <= 0:
        return BUCKET_NO_TARGET
    for threshold, bucket in BUCKET_THRESHOLDS:
        if percentage >= threshold:
            return bucket
    return BUCKET_BEHIND


def bucket_color(bucket: str) -> str:
    return BUCKET_COLORS.get(bucket, BUCKET_COLORS[BUCKET_NO_TARGET])


def classify(node: AggregateNode) -> Attainment:
    """Attainment of one node against its own target."""
    percentage = attainment_percentage(node.counts.total, node.target)
    return Attainment(percentage=percentage, bucket=bucket_for(percentage, node.target))


def check_target_consistency(node: AggregateNode) -> Optional[TargetWarning]:
    """
    Warning when a parent's children's targets fall short of its own.

    Parents seen only in part (a sator viewing one team of an Area) are
    skipped: their visible children cannot cover the whole target.
    """
    if node.is_leaf or node.target <= 0 or node.is_partial_view:
        return None
    if node.child_target_sum >= node.target:
        return None
    return TargetWarning(
        entity_id=node.entity_id,
        name=node.name,
        tier=node.tier,
        target=node.target,
        child_target_sum=node.child_target_sum,
    )


@dataclass(frozen=True)
class TreeReport:
    """
    Attainments and warnings for a whole tree.

    Keyed by node path: the entity ids from the Area down to the node.
    """
    attainments: Dict[NodePath, Attainment] = field(default_factory=dict)
    warnings: Tuple[TargetWarning, ...] = ()
    warnings_by_path: Dict[NodePath, TargetWarning] = field(default_factory=dict)

    def attainment(self, path: Sequence[str]) -> Optional[Attainment]:
        return self.attainments.get(tuple(path))

    def warning(self, path: Sequence[str]) -> Optional[TargetWarning]:
        return self.warnings_by_path.get(tuple(path))

    def bucket_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for attainment in self.attainments.values():
            counts[attainment.bucket] = counts.get(attainment.bucket, 0) + 1
        return counts


def classify_tree(roots: Sequence[AggregateNode]) -> TreeReport:
    """Classify every node and collect consistency warnings."""
    attainments: Dict[NodePath, Attainment] = {}
    warnings: List[TargetWarning] = []
    warnings_by_path: Dict[NodePath, TargetWarning] = {}

    def _walk(node: AggregateNode, parent_path: NodePath):
        path = parent_path + (node.entity_id,)
        attainments[path] = classify(node)
        warning = check_target_consistency(node)
        if warning is not None:
            warnings.append(warning)
            warnings_by_path[path] = warning
        for child in node.children:
            _walk(child, path)

    for root in roots:
        _walk(root, ())

    for warning in warnings:
        logger.info(f"⚠️ Target gap - {warning.message}")

    return TreeReport(
        attainments=attainments,
        warnings=tuple(warnings),
        warnings_by_path=warnings_by_path,
    )
