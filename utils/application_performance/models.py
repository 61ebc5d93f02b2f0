# utils/application_performance/models.py
"""
Data containers for Application Performance

All containers are frozen: applications and aggregate nodes are rebuilt
for every query and never mutated afterwards.
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple

from .constants import (
    NODE_PROMOTER,
    SOURCE_PRIMARY,
)


class Outcome(str, Enum):
    """Canonical three-way outcome of a financing application."""
    APPROVED = 'approved'
    PENDING_OR_UNRESOLVED = 'pending_or_unresolved'
    REJECTED = 'rejected'


@dataclass(frozen=True)
class Application:
    """One canonical financing application, post-merge."""
    id: str
    occurred_on: date
    promoter_name: str
    outcome: Outcome
    source_system: str = SOURCE_PRIMARY
    native_status: Optional[str] = None
    promoter_id: Optional[str] = None
    store_name: Optional[str] = None
    area_name: Optional[str] = None
    team_lead_name: Optional[str] = None


@dataclass(frozen=True)
class Counts:
    """
    Outcome counts for one node.

    `total` is derived, so total == approved + pending + rejected holds
    for every instance.
    """
    approved: int = 0
    pending_or_unresolved: int = 0
    rejected: int = 0

    @property
    def total(self) -> int:
        return self.approved + self.pending_or_unresolved + self.rejected

    def __add__(self, other: 'Counts') -> 'Counts':
        return Counts(
            approved=self.approved + other.approved,
            pending_or_unresolved=self.pending_or_unresolved + other.pending_or_unresolved,
            rejected=self.rejected + other.rejected,
        )

    @classmethod
    def from_outcomes(cls, outcomes: Iterable[Outcome]) -> 'Counts':
        approved = pending = rejected = 0
        for outcome in outcomes:
            if outcome == Outcome.APPROVED:
                approved += 1
            elif outcome == Outcome.REJECTED:
                rejected += 1
            else:
                pending += 1
        return cls(approved=approved, pending_or_unresolved=pending, rejected=rejected)

    @classmethod
    def sum(cls, items: Iterable['Counts']) -> 'Counts':
        result = cls()
        for item in items:
            result = result + item
        return result

    def to_dict(self) -> Dict[str, int]:
        return {
            'total': self.total,
            'approved': self.approved,
            'pending_or_unresolved': self.pending_or_unresolved,
            'rejected': self.rejected,
        }


@dataclass(frozen=True)
class Promoter:
    id: str
    name: str
    team_lead_name: Optional[str]
    area_name: Optional[str]
    employee_code: Optional[str] = None
    store_name: Optional[str] = None
    is_active: bool = True
    category: Optional[str] = None


@dataclass(frozen=True)
class TeamLead:
    id: str
    name: str
    area_name: str
    is_active: bool = True


@dataclass(frozen=True)
class Supervisor:
    """Active SPV assignment for one Area (or the ALL sentinel)."""
    id: str
    name: str
    area_name: str
    is_active: bool = True


@dataclass(frozen=True)
class Directory:
    """Organizational membership snapshot used for one aggregation."""
    promoters: Tuple[Promoter, ...] = ()
    team_leads: Tuple[TeamLead, ...] = ()
    supervisors: Tuple[Supervisor, ...] = ()


@dataclass(frozen=True)
class ViewerProfile:
    """Who is looking: drives the Visibility Resolver."""
    role: str
    assigned_area: Optional[str] = None
    assigned_team_lead: Optional[str] = None
    extra_team_lead_grants: Tuple[str, ...] = ()
    id: Optional[str] = None
    name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ViewerProfile':
        """Build from a user_profiles row or session dict."""
        grants = data.get('can_view_other_sators') or data.get('extra_team_lead_grants') or ()
        if isinstance(grants, str):
            grants = [g.strip() for g in grants.split(',') if g.strip()]
        return cls(
            role=(data.get('role') or '').strip().lower(),
            assigned_area=data.get('area') or data.get('assigned_area'),
            assigned_team_lead=data.get('sator_name') or data.get('assigned_team_lead'),
            extra_team_lead_grants=tuple(grants),
            id=data.get('id'),
            name=data.get('name'),
        )


@dataclass(frozen=True)
class AggregateNode:
    """
    One node of the Area -> Team-Lead -> Promoter tree.

    `target` is the node's own assigned value for its tier;
    `child_target_sum` is the sum of its children's targets and is only
    used for the consistency warning.
    `is_partial_view` marks a parent whose children are only partly
    visible, so `counts` and `child_target_sum` cover part of it.
    """
    entity_id: str
    name: str
    tier: str
    counts: Counts = field(default_factory=Counts)
    target: int = 0
    has_target: bool = False
    child_target_sum: int = 0
    children: Tuple['AggregateNode', ...] = ()
    area_name: Optional[str] = None
    team_lead_name: Optional[str] = None
    store_name: Optional[str] = None
    supervisor_name: Optional[str] = None
    employee_code: Optional[str] = None
    category: Optional[str] = None
    is_synthesized: bool = False
    # some of the node's children are outside the viewer's scope
    is_partial_view: bool = False

    @property
    def key(self) -> Tuple[str, str]:
        return (self.tier, self.entity_id)

    @property
    def is_leaf(self) -> bool:
        return self.tier == NODE_PROMOTER

    def iter_nodes(self):
        """Depth-first walk, parent before children."""
        yield self
        for child in self.children:
            yield from child.iter_nodes()

    def leaves(self):
        return [node for node in self.iter_nodes() if node.is_leaf]


@dataclass(frozen=True)
class Attainment:
    percentage: int
    bucket: str


@dataclass(frozen=True)
class TargetWarning:
    """Advisory: children's targets do not cover the parent's own target."""
    entity_id: str
    name: str
    tier: str
    target: int
    child_target_sum: int

    @property
    def shortfall(self) -> int:
        return self.target - self.child_target_sum

    @property
    def message(self) -> str:
        return (
            f"{self.name}: children's targets ({self.child_target_sum}) are "
            f"{self.shortfall} short of own target ({self.target})"
        )
