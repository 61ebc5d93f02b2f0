# utils/application_performance/targets.py
"""
Target Resolver

Resolves the month's application-count target for every entity at every
tier. An entity without a Target row resolves to 0 ("not yet set"); the
explicit set is kept so callers can tell "absent" from "assigned 0".

Tiers:
- promoter: set by the SPV for each promoter
- team_lead: set by the Manager Area for each Sator
- supervisor: set by the Manager Area for each SPV (the Area's target)
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Tuple

import pandas as pd

from .constants import TIER_PROMOTER, TIER_TEAM_LEAD, TIER_SUPERVISOR, TARGET_TIERS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedTargets:
    """Targets of one tier for one month."""
    tier: str
    month: str
    values: Dict[str, int] = field(default_factory=dict)
    explicit: FrozenSet[str] = frozenset()

    def get(self, assignee_id) -> int:
        if assignee_id is None:
            return 0
        return self.values.get(str(assignee_id), 0)

    def has(self, assignee_id) -> bool:
        return assignee_id is not None and str(assignee_id) in self.explicit

    def total(self) -> int:
        return sum(self.values.values())


@dataclass(frozen=True)
class TargetSet:
    """Targets of every tier for one month."""
    month: str
    by_tier: Dict[str, ResolvedTargets] = field(default_factory=dict)
    failed_tiers: Tuple[str, ...] = ()

    def tier(self, tier: str) -> ResolvedTargets:
        return self.by_tier.get(tier) or ResolvedTargets(tier=tier, month=self.month)

    @property
    def promoters(self) -> ResolvedTargets:
        return self.tier(TIER_PROMOTER)

    @property
    def team_leads(self) -> ResolvedTargets:
        return self.tier(TIER_TEAM_LEAD)

    @property
    def supervisors(self) -> ResolvedTargets:
        return self.tier(TIER_SUPERVISOR)

    @property
    def is_partial(self) -> bool:
        return bool(self.failed_tiers)


def _coerce_value(value: Any):
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return max(number, 0)


def build_resolved_targets(
    tier: str,
    month: str,
    assignee_ids: Iterable,
    rows: Iterable[Dict[str, Any]]
) -> ResolvedTargets:
    """
    Turn raw target rows into a complete id -> value map.

    Every requested id appears in `values`; ids without a usable row get 0.
    """
    requested = [str(i) for i in assignee_ids if i is not None]
    values = {assignee_id: 0 for assignee_id in requested}
    explicit = set()
    seen = set()

    for row in rows:
        assignee_id = row.get('assignee_id')
        if assignee_id is None:
            continue
        assignee_id = str(assignee_id)
        value = _coerce_value(row.get('target_value'))
        if value is None:
            continue
        if requested and assignee_id not in values:
            continue
        if assignee_id in seen:
            logger.warning(
                f"Duplicate {tier} target rows for {assignee_id} in {month}, using last"
            )
        seen.add(assignee_id)
        values[assignee_id] = value
        explicit.add(assignee_id)

    return ResolvedTargets(tier=tier, month=month, values=values, explicit=frozenset(explicit))


class TargetResolver:
    """
    Resolve monthly targets through the target store.

    Usage:
        resolver = TargetResolver(target_store)
        promoter_targets = resolver.resolve_targets('2025-12', 'promoter', ids)
        promoter_targets.get('p-1')   # 0 when not set

        targets = resolver.resolve_all('2025-12', promoter_ids, sator_ids, spv_ids)
    """

    def __init__(self, target_store, max_workers: int = 3):
        """
        Args:
            target_store: object with fetch_targets(month, tier, assignee_ids)
                returning rows/DataFrame with assignee_id, target_value
            max_workers: Threads used by resolve_all
        """
        self.target_store = target_store
        self.max_workers = max(1, max_workers)

    def resolve_targets(self, month: str, tier: str, assignee_ids: Iterable) -> ResolvedTargets:
        """One lookup for one tier; missing entries default to 0."""
        if tier not in TARGET_TIERS:
            raise ValueError(f"Unknown target tier: {tier}")

        assignee_ids = [str(i) for i in assignee_ids if i is not None]
        if not assignee_ids:
            return ResolvedTargets(tier=tier, month=month)

        raw = self.target_store.fetch_targets(month, tier, assignee_ids)
        rows = raw.to_dict('records') if isinstance(raw, pd.DataFrame) else list(raw or [])

        resolved = build_resolved_targets(tier, month, assignee_ids, rows)
        logger.debug(
            f"Resolved {tier} targets for {month}: "
            f"{len(resolved.explicit)}/{len(assignee_ids)} set, total={resolved.total()}"
        )
        return resolved

    def resolve_all(
        self,
        month: str,
        promoter_ids: Iterable = (),
        team_lead_ids: Iterable = (),
        supervisor_ids: Iterable = ()
    ) -> TargetSet:
        """
        Resolve the three tiers concurrently.

        A failing tier degrades to "no targets" for that tier and is
        reported in TargetSet.failed_tiers.
        """
        requests: List[Tuple[str, List]] = [
            (TIER_PROMOTER, list(promoter_ids)),
            (TIER_TEAM_LEAD, list(team_lead_ids)),
            (TIER_SUPERVISOR, list(supervisor_ids)),
        ]

        by_tier = {}
        failed = []

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {
                tier: executor.submit(self.resolve_targets, month, tier, ids)
                for tier, ids in requests
            }
            for tier, future in futures.items():
                try:
                    by_tier[tier] = future.result()
                except Exception as e:
                    logger.error(f"❌ Failed to resolve {tier} targets for {month}: {e}")
                    failed.append(tier)
                    by_tier[tier] = ResolvedTargets(tier=tier, month=month)

        return TargetSet(month=month, by_tier=by_tier, failed_tiers=tuple(failed))
