# utils/application_performance/aggregator.py
"""
Hierarchical Aggregator

Builds the Area -> Team-Lead (Sator) -> Promoter tree for one query:
1. Active promoters within the viewer scope become leaves.
2. Applications attach to leaves by promoter_id, falling back to the
   promoter display name (legacy join; disable with name_fallback=False).
3. Applications whose promoter is missing from the directory get a
   synthesized leaf, so every merged application lands in exactly one leaf.
4. Team-Lead and Area nodes sum their children's counts. Their own target
   comes from their own tier, never from the children.

The canonical result is name-ordered; order_tree() re-sorts as a pure
post-step for screens that rank by volume.
"""

import logging
from collections import defaultdict
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .access_control import VisibilityScope
from .constants import (
    NODE_AREA,
    NODE_TEAM_LEAD,
    NODE_PROMOTER,
    UNASSIGNED_AREA,
    UNASSIGNED_TEAM_LEAD,
    ORDER_BY_TOTAL,
    ORDER_BY_NAME,
)
from .models import AggregateNode, Application, Counts, Directory, Promoter, TeamLead
from .targets import TargetSet

logger = logging.getLogger(__name__)


def _name_key(node: AggregateNode):
    return (node.name.lower(), node.entity_id)


def _total_key(node: AggregateNode):
    return (-node.counts.total, node.name.lower(), node.entity_id)


class HierarchyAggregator:
    """
    Aggregate merged applications into the canonical tree.

    Usage:
        aggregator = HierarchyAggregator(directory, targets, scope)
        areas = aggregator.build_tree(merge_result.applications)
    """

    def __init__(
        self,
        directory: Directory,
        targets: TargetSet,
        scope: VisibilityScope,
        name_fallback: bool = True
    ):
        self.directory = directory
        self.targets = targets
        self.scope = scope
        self.name_fallback = name_fallback

        self._team_leads_by_name: Dict[str, List[TeamLead]] = defaultdict(list)
        for team_lead in directory.team_leads:
            self._team_leads_by_name[team_lead.name].append(team_lead)

        self._supervisors_by_area = defaultdict(list)
        for supervisor in directory.supervisors:
            if supervisor.is_active:
                self._supervisors_by_area[supervisor.area_name].append(supervisor)

        # Any-status lookups, used to place synthesized leaves
        self._all_promoters_by_id = {p.id: p for p in directory.promoters}
        self._all_promoters_by_name = {}
        for promoter in sorted(directory.promoters, key=lambda p: (not p.is_active, p.id)):
            self._all_promoters_by_name.setdefault(promoter.name, promoter)

    # =========================================================================
    # PLACEMENT
    # =========================================================================

    def _team_lead_area(self, team_lead_name: Optional[str]) -> Optional[str]:
        candidates = self._team_leads_by_name.get(team_lead_name or '')
        if not candidates:
            return None
        active = [t for t in candidates if t.is_active] or candidates
        return active[0].area_name

    def _placement(
        self,
        area_name: Optional[str],
        team_lead_name: Optional[str]
    ) -> Tuple[str, str]:
        team_lead = team_lead_name or UNASSIGNED_TEAM_LEAD
        area = area_name or self._team_lead_area(team_lead_name) or UNASSIGNED_AREA
        return area, team_lead

    def promoters_in_scope(self) -> List[Promoter]:
        """Active directory promoters the viewer may see."""
        if self.scope.is_empty:
            return []
        result = []
        for promoter in self.directory.promoters:
            if not promoter.is_active:
                continue
            area, team_lead = self._placement(promoter.area_name, promoter.team_lead_name)
            if self.scope.allows(area, team_lead):
                result.append(promoter)
        return result

    # =========================================================================
    # TREE BUILDING
    # =========================================================================

    def build_tree(self, applications: Iterable[Application]) -> Tuple[AggregateNode, ...]:
        """
        Build Area nodes for the given (already merged) applications.

        Returns:
            Tuple of Area nodes, name-ordered at every level
        """
        if self.scope.is_empty:
            return ()

        promoters = self.promoters_in_scope()
        by_id = {p.id: p for p in promoters}
        by_name: Dict[str, Promoter] = {}
        for promoter in sorted(promoters, key=lambda p: p.id):
            if promoter.name in by_name:
                logger.warning(
                    f"Duplicate promoter name '{promoter.name}' in scope; "
                    f"name-matched applications go to {by_name[promoter.name].id}"
                )
                continue
            by_name[promoter.name] = promoter

        matched: Dict[str, List[Application]] = defaultdict(list)
        orphans: Dict[str, List[Application]] = defaultdict(list)

        for application in applications:
            promoter = None
            if application.promoter_id and application.promoter_id in by_id:
                promoter = by_id[application.promoter_id]
            elif self.name_fallback and application.promoter_name in by_name:
                promoter = by_name[application.promoter_name]

            if promoter is not None:
                matched[promoter.id].append(application)
                continue

            known = self._known_promoter(application)
            if known is not None:
                orphan_key = known.id
            else:
                orphan_key = application.promoter_id or f"name:{application.promoter_name}"
            orphans[orphan_key].append(application)

        leaves: List[AggregateNode] = [
            self._promoter_leaf(promoter, matched.get(promoter.id, []))
            for promoter in promoters
        ]

        excluded = 0
        for orphan_key, orphan_apps in orphans.items():
            leaf = self._synthesized_leaf(orphan_key, orphan_apps)
            if not self.scope.allows(leaf.area_name, leaf.team_lead_name):
                excluded += len(orphan_apps)
                continue
            leaves.append(leaf)

        if orphans:
            logger.info(f"Synthesized {len(orphans)} leaves for promoters missing from directory")
        if excluded:
            logger.warning(f"{excluded} unmatched applications fell outside the viewer scope")

        return self._assemble(leaves)

    def _promoter_leaf(self, promoter: Promoter, applications: Sequence[Application]) -> AggregateNode:
        area, team_lead = self._placement(promoter.area_name, promoter.team_lead_name)
        promoter_targets = self.targets.promoters
        return AggregateNode(
            entity_id=promoter.id,
            name=promoter.name,
            tier=NODE_PROMOTER,
            counts=Counts.from_outcomes(a.outcome for a in applications),
            target=promoter_targets.get(promoter.id),
            has_target=promoter_targets.has(promoter.id),
            area_name=area,
            team_lead_name=team_lead,
            store_name=promoter.store_name,
            employee_code=promoter.employee_code,
            category=promoter.category,
        )

    def _known_promoter(self, application: Application) -> Optional[Promoter]:
        """Directory record (inactive or out of scope) for an unmatched application."""
        known = self._all_promoters_by_id.get(application.promoter_id or '')
        if known is None and self.name_fallback:
            known = self._all_promoters_by_name.get(application.promoter_name)
        return known

    def _synthesized_leaf(self, orphan_key: str, applications: Sequence[Application]) -> AggregateNode:
        # applications arrive newest first; the newest carries the freshest placement
        first = applications[0]
        known = self._all_promoters_by_id.get(orphan_key)
        area, team_lead = self._placement(
            first.area_name or (known.area_name if known else None),
            first.team_lead_name or (known.team_lead_name if known else None),
        )
        entity_id = known.id if known else orphan_key
        promoter_targets = self.targets.promoters
        return AggregateNode(
            entity_id=entity_id,
            name=first.promoter_name or (known.name if known else orphan_key),
            tier=NODE_PROMOTER,
            counts=Counts.from_outcomes(a.outcome for a in applications),
            target=promoter_targets.get(entity_id),
            has_target=promoter_targets.has(entity_id),
            area_name=area,
            team_lead_name=team_lead,
            store_name=first.store_name or (known.store_name if known else None),
            employee_code=known.employee_code if known else None,
            category=known.category if known else None,
            is_synthesized=True,
        )

    def _team_lead_record(self, area: str, name: str) -> Optional[TeamLead]:
        candidates = self._team_leads_by_name.get(name, [])
        in_area = [t for t in candidates if t.area_name == area]
        pool = [t for t in in_area if t.is_active] or in_area
        return pool[0] if pool else None

    def _has_hidden_team_leads(self, area: str) -> bool:
        if self.scope.team_leads is None:
            return False
        return any(
            t.is_active and t.area_name == area and not self.scope.allows_team_lead(t.name)
            for t in self.directory.team_leads
        )

    def _assemble(self, leaves: List[AggregateNode]) -> Tuple[AggregateNode, ...]:
        # (area, team lead) -> leaves, seeded with every visible active team lead
        groups: Dict[Tuple[str, str], List[AggregateNode]] = defaultdict(list)
        for team_lead in self.directory.team_leads:
            if team_lead.is_active and self.scope.allows(team_lead.area_name, team_lead.name):
                groups[(team_lead.area_name, team_lead.name)]
        for leaf in leaves:
            groups[(leaf.area_name, leaf.team_lead_name)].append(leaf)

        team_lead_targets = self.targets.team_leads
        by_area: Dict[str, List[AggregateNode]] = defaultdict(list)
        for area in self.scope.seed_areas:
            if self.scope.allows_area(area):
                by_area[area]

        for (area, name), children in groups.items():
            record = self._team_lead_record(area, name)
            entity_id = record.id if record else f"name:{area}:{name}"
            children = tuple(sorted(children, key=_name_key))
            by_area[area].append(AggregateNode(
                entity_id=entity_id,
                name=name,
                tier=NODE_TEAM_LEAD,
                counts=Counts.sum(child.counts for child in children),
                target=team_lead_targets.get(record.id) if record else 0,
                has_target=team_lead_targets.has(record.id) if record else False,
                child_target_sum=sum(child.target for child in children),
                children=children,
                area_name=area,
                team_lead_name=name,
            ))

        supervisor_targets = self.targets.supervisors
        areas = []
        for area, children in by_area.items():
            supervisors = sorted(self._supervisors_by_area.get(area, []), key=lambda s: s.id)
            if len(supervisors) > 1:
                logger.warning(
                    f"Area {area} has {len(supervisors)} active SPVs; using {supervisors[0].name}"
                )
            supervisor = supervisors[0] if supervisors else None
            children = tuple(sorted(children, key=_name_key))
            areas.append(AggregateNode(
                entity_id=area,
                name=area,
                tier=NODE_AREA,
                counts=Counts.sum(child.counts for child in children),
                target=supervisor_targets.get(supervisor.id) if supervisor else 0,
                has_target=supervisor_targets.has(supervisor.id) if supervisor else False,
                child_target_sum=sum(child.target for child in children),
                children=children,
                area_name=area,
                supervisor_name=supervisor.name if supervisor else None,
                is_partial_view=self._has_hidden_team_leads(area),
            ))

        return tuple(sorted(areas, key=_name_key))


def build_tree(
    applications: Iterable[Application],
    directory: Directory,
    targets: TargetSet,
    scope: VisibilityScope,
    name_fallback: bool = True
) -> Tuple[AggregateNode, ...]:
    """Functional entry point for HierarchyAggregator.build_tree."""
    aggregator = HierarchyAggregator(directory, targets, scope, name_fallback=name_fallback)
    return aggregator.build_tree(applications)


# =============================================================================
# POST-STEPS
# =============================================================================

def order_tree(
    roots: Sequence[AggregateNode],
    by: str = ORDER_BY_TOTAL
) -> Tuple[AggregateNode, ...]:
    """
    Re-order siblings at every level.

    Args:
        roots: Area nodes
        by: 'total' (descending total, ascending name on ties) or 'name'

    Returns:
        New tuple of nodes; the input is left untouched
    """
    if by == ORDER_BY_TOTAL:
        key = _total_key
    elif by == ORDER_BY_NAME:
        key = _name_key
    else:
        raise ValueError(f"Unknown ordering: {by}")

    def _order(node: AggregateNode) -> AggregateNode:
        if not node.children:
            return node
        return replace(node, children=tuple(sorted((_order(c) for c in node.children), key=key)))

    return tuple(sorted((_order(root) for root in roots), key=key))


def flatten(roots: Sequence[AggregateNode], tier: Optional[str] = None) -> List[AggregateNode]:
    """All nodes (or the nodes of one tier), depth-first."""
    nodes = []
    for root in roots:
        for node in root.iter_nodes():
            if tier is None or node.tier == tier:
                nodes.append(node)
    return nodes


def grand_total(roots: Sequence[AggregateNode]) -> Counts:
    return Counts.sum(root.counts for root in roots)
