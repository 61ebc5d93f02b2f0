# utils/application_performance/access_control.py
"""
Role-based Visibility for Application Performance

Handles data visibility based on viewer role:
- super_admin / manager_area: all Areas
- spv_area: exactly the assigned Area (ALL sentinel = every Area).
  The Area restriction cannot be widened by any screen filter.
- sator: own team + allow-listed teams (can_view_other_sators).
  Nothing resolved -> nothing visible.

Every screen consumes the same VisibilityScope instead of checking roles
itself.
"""

import logging
from dataclasses import dataclass, replace
from typing import FrozenSet, Iterable, List, Optional, Tuple

import pandas as pd

from .constants import (
    ORG_WIDE_ROLES,
    AREA_SCOPED_ROLES,
    TEAM_LEAD_ROLES,
    ALL_AREAS_SENTINEL,
    FILTER_ALL,
    ROLE_LABELS,
)
from .models import Application, ViewerProfile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VisibilityScope:
    """
    What a viewer may see.

    `areas` / `team_leads` of None mean "no restriction on that dimension";
    an empty frozenset means "nothing". `seed_areas` are the Areas whose
    nodes appear in the tree even without data.
    """
    areas: Optional[FrozenSet[str]] = None
    team_leads: Optional[FrozenSet[str]] = None
    seed_areas: Tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return (
            (self.areas is not None and not self.areas)
            or (self.team_leads is not None and not self.team_leads)
        )

    def allows_area(self, area_name: Optional[str]) -> bool:
        if self.is_empty:
            return False
        if self.areas is None:
            return True
        return area_name in self.areas

    def allows_team_lead(self, team_lead_name: Optional[str]) -> bool:
        if self.is_empty:
            return False
        if self.team_leads is None:
            return True
        return team_lead_name in self.team_leads

    def allows(self, area_name: Optional[str], team_lead_name: Optional[str]) -> bool:
        return self.allows_area(area_name) and self.allows_team_lead(team_lead_name)

    def allows_application(self, application: Application) -> bool:
        return self.allows(application.area_name, application.team_lead_name)

    def narrow(
        self,
        area: Optional[str] = None,
        team_lead: Optional[str] = None
    ) -> 'VisibilityScope':
        """
        Apply a screen's filter selection inside this scope.

        Only ever shrinks: a requested Area outside the scope yields an
        empty scope, and 'all' leaves the scope untouched.
        """
        scope = self

        if area and area != FILTER_ALL and area != ALL_AREAS_SENTINEL:
            if scope.areas is None:
                new_areas = frozenset([area])
            else:
                new_areas = scope.areas & {area}
            if not new_areas:
                logger.warning(f"Requested area '{area}' is outside viewer scope")
            candidates = scope.seed_areas
            if not candidates and scope.team_leads is None:
                candidates = (area,)
            scope = replace(
                scope,
                areas=new_areas,
                seed_areas=tuple(a for a in candidates if a in new_areas),
            )

        if team_lead and team_lead != FILTER_ALL:
            if scope.team_leads is None:
                new_leads = frozenset([team_lead])
            else:
                new_leads = scope.team_leads & {team_lead}
            if not new_leads:
                logger.warning(f"Requested sator '{team_lead}' is outside viewer scope")
            # A single team is selected: don't seed sibling Areas
            scope = replace(scope, team_leads=new_leads, seed_areas=())

        return scope


EMPTY_SCOPE = VisibilityScope(areas=frozenset(), team_leads=frozenset())


# =============================================================================
# PURE RESOLUTION FUNCTIONS
# =============================================================================

def _normalize_role(role: Optional[str]) -> str:
    return (role or '').strip().lower()


def accessible_areas(
    role: Optional[str],
    assigned_area: Optional[str],
    all_areas: Iterable[str]
) -> List[str]:
    """
    Areas a viewer may see.

    Args:
        role: Viewer role
        assigned_area: Viewer's Area (or 'ALL')
        all_areas: Every Area of the organization

    Returns:
        List of Area names (empty when nothing resolves)
    """
    role = _normalize_role(role)
    all_areas = list(all_areas)

    if role in ORG_WIDE_ROLES:
        return all_areas

    if role not in AREA_SCOPED_ROLES and role not in TEAM_LEAD_ROLES:
        return []

    if assigned_area == ALL_AREAS_SENTINEL:
        return all_areas

    return [assigned_area] if assigned_area else []


def accessible_team_leads(
    role: Optional[str],
    assigned_team_lead: Optional[str],
    extra_grants: Iterable[str] = ()
) -> Optional[List[str]]:
    """
    Team-lead names a viewer may see.

    Returns:
        None for roles without a team-lead restriction,
        otherwise own name + grants (possibly empty: fail closed)
    """
    role = _normalize_role(role)

    if role in ORG_WIDE_ROLES or role in AREA_SCOPED_ROLES:
        return None

    if role not in TEAM_LEAD_ROLES:
        return []

    names = []
    if assigned_team_lead:
        names.append(assigned_team_lead)
    for name in extra_grants or ():
        if name and name not in names:
            names.append(name)
    return names


def resolve_scope(profile: Optional[ViewerProfile], all_areas: Iterable[str]) -> VisibilityScope:
    """Build the VisibilityScope for a viewer."""
    if profile is None:
        return EMPTY_SCOPE

    role = _normalize_role(profile.role)
    all_areas = tuple(all_areas)

    if role in ORG_WIDE_ROLES:
        return VisibilityScope(seed_areas=all_areas)

    if role in AREA_SCOPED_ROLES:
        if profile.assigned_area == ALL_AREAS_SENTINEL:
            return VisibilityScope(seed_areas=all_areas)
        if not profile.assigned_area:
            logger.warning(f"SPV profile {profile.id} has no assigned area")
            return EMPTY_SCOPE
        return VisibilityScope(
            areas=frozenset([profile.assigned_area]),
            seed_areas=(profile.assigned_area,),
        )

    if role in TEAM_LEAD_ROLES:
        leads = accessible_team_leads(
            role, profile.assigned_team_lead, profile.extra_team_lead_grants
        )
        if not leads:
            logger.warning(f"Sator profile {profile.id} resolves to no team")
            return EMPTY_SCOPE
        # Area of a granted team may differ from the viewer's own
        return VisibilityScope(team_leads=frozenset(leads))

    logger.warning(f"Unknown role '{profile.role}', visibility denied")
    return EMPTY_SCOPE


# =============================================================================
# ACCESS CONTROL (per viewer)
# =============================================================================

class AccessControl:
    """
    Visibility for one viewer.

    Usage:
        access = AccessControl(profile, all_areas=config.get_areas())

        access.get_access_level()           # 'full', 'area', 'team' or 'none'
        access.get_accessible_areas()       # ['KUPANG']
        scope = access.get_scope(area='all', team_lead='all')
        filtered_df = access.filter_dataframe(df)
    """

    def __init__(self, profile: Optional[ViewerProfile], all_areas: Iterable[str]):
        """
        Initialize access control.

        Args:
            profile: Viewer profile (None = anonymous, sees nothing)
            all_areas: Every Area of the organization
        """
        self.profile = profile
        self.all_areas = list(all_areas)
        self.user_role = _normalize_role(profile.role if profile else None)

        logger.info(f"AccessControl initialized: role={self.user_role}")

    def get_access_level(self) -> str:
        if self.user_role in ORG_WIDE_ROLES:
            return 'full'
        if self.user_role in AREA_SCOPED_ROLES:
            return 'full' if self.profile.assigned_area == ALL_AREAS_SENTINEL else 'area'
        if self.user_role in TEAM_LEAD_ROLES:
            return 'team'
        return 'none'

    def get_accessible_areas(self) -> List[str]:
        if self.profile is None:
            return []
        return accessible_areas(self.user_role, self.profile.assigned_area, self.all_areas)

    def get_accessible_team_leads(self) -> Optional[List[str]]:
        if self.profile is None:
            return []
        return accessible_team_leads(
            self.user_role,
            self.profile.assigned_team_lead,
            self.profile.extra_team_lead_grants,
        )

    def get_scope(self, area: Optional[str] = None, team_lead: Optional[str] = None) -> VisibilityScope:
        """
        Scope for a query, with the screen's filter selection applied.

        'own' as team_lead selects the viewer's own team.
        """
        if team_lead == 'own':
            team_lead = self.profile.assigned_team_lead if self.profile else None
            if not team_lead:
                return EMPTY_SCOPE
        return resolve_scope(self.profile, self.all_areas).narrow(area, team_lead)

    def can_access_area(self, area_name: str) -> bool:
        return resolve_scope(self.profile, self.all_areas).allows_area(area_name)

    def can_access_team_lead(self, team_lead_name: str, area_name: Optional[str] = None) -> bool:
        """
        Whether a team lead's data is visible.

        Args:
            team_lead_name: Team lead (sator) name
            area_name: The team lead's Area; without it an Area-scoped
                viewer is denied
        """
        return resolve_scope(self.profile, self.all_areas).allows(area_name, team_lead_name)

    def filter_dataframe(
        self,
        df: pd.DataFrame,
        area_col: str = 'area_name',
        team_lead_col: str = 'team_lead_name',
        scope: Optional[VisibilityScope] = None
    ) -> pd.DataFrame:
        """
        Filter a DataFrame to the rows this viewer may see.

        Args:
            df: DataFrame to filter
            area_col: Column with the Area name
            team_lead_col: Column with the team-lead name
            scope: Scope to apply (defaults to the viewer's full scope)

        Returns:
            Filtered DataFrame
        """
        if df.empty:
            return df

        scope = scope or self.get_scope()

        if scope.is_empty:
            logger.warning("Empty visibility scope, returning empty DataFrame")
            return df.head(0)

        mask = pd.Series(True, index=df.index)
        if scope.areas is not None:
            if area_col not in df.columns:
                logger.warning(f"Column '{area_col}' not found, denying all rows")
                return df.head(0)
            mask &= df[area_col].isin(scope.areas)
        if scope.team_leads is not None:
            if team_lead_col not in df.columns:
                logger.warning(f"Column '{team_lead_col}' not found, denying all rows")
                return df.head(0)
            mask &= df[team_lead_col].isin(scope.team_leads)

        filtered = df[mask]
        logger.debug(f"Filtered DataFrame: {len(df)} -> {len(filtered)} rows")
        return filtered

    def get_role_label(self) -> str:
        return ROLE_LABELS.get(self.user_role, self.user_role)

    def __repr__(self) -> str:
        return (
            f"AccessControl(role='{self.user_role}', "
            f"level='{self.get_access_level()}')"
        )
