# utils/application_performance/constants.py
"""
Constants for Application Performance Module

Centralized configuration for:
- Role definitions
- Source systems and native status vocabularies
- Target tiers and kinds
- Attainment bucket thresholds
- Date presets
"""

# =====================================================================
# ROLE DEFINITIONS
# =====================================================================

ROLE_SUPER_ADMIN = 'super_admin'
ROLE_MANAGER_AREA = 'manager_area'
ROLE_SPV_AREA = 'spv_area'
ROLE_SATOR = 'sator'

# Org-wide: can view every Area unconditionally
ORG_WIDE_ROLES = [ROLE_SUPER_ADMIN, ROLE_MANAGER_AREA]

# Area-scoped: one Area (or the ALL sentinel)
AREA_SCOPED_ROLES = [ROLE_SPV_AREA]

# Team-lead scoped: own team + allow-listed teams
TEAM_LEAD_ROLES = [ROLE_SATOR]

ROLE_LABELS = {
    ROLE_SUPER_ADMIN: 'Super Admin',
    ROLE_MANAGER_AREA: 'Manager Area',
    ROLE_SPV_AREA: 'SPV Area',
    ROLE_SATOR: 'Sator',
}

# Area value meaning "every Area"
ALL_AREAS_SENTINEL = 'ALL'

# Filter value meaning "no narrowing requested"
FILTER_ALL = 'all'

# Placeholder names for synthesized nodes
UNASSIGNED_AREA = 'Tanpa Area'
UNASSIGNED_TEAM_LEAD = 'Tanpa Sator'
UNASSIGNED_STORE = 'Tanpa Toko'

# =====================================================================
# SOURCE SYSTEMS
# =====================================================================

SOURCE_PRIMARY = 'primary'
SOURCE_SUPPLEMENTAL = 'supplemental'

# Tie-break order when two applications share a date
SOURCE_ORDER = {
    SOURCE_PRIMARY: 0,
    SOURCE_SUPPLEMENTAL: 1,
}

# Primary source (spreadsheet import) statuses, matched case-insensitively
PRIMARY_STATUS_APPROVED = ('approved', 'acc')
PRIMARY_STATUS_PENDING = ('pending',)
PRIMARY_STATUS_REJECTED = ('rejected', 'reject')

# Supplemental source (in-app form) statuses
SUPPLEMENTAL_STATUS_APPROVED = 'ACC'
SUPPLEMENTAL_STATUS_REJECTED = 'Belum disetujui'
SUPPLEMENTAL_STATUS_LIMIT_NOT_PROCESSED = 'Dapat limit tapi belum proses'

# =====================================================================
# TARGETS
# =====================================================================

TIER_PROMOTER = 'promoter'
TIER_TEAM_LEAD = 'team_lead'
TIER_SUPERVISOR = 'supervisor'

TARGET_TIERS = [TIER_PROMOTER, TIER_TEAM_LEAD, TIER_SUPERVISOR]

# Tier name as stored in the targets table (assigned_to_role)
TIER_STORAGE_ROLE = {
    TIER_PROMOTER: 'promoter',
    TIER_TEAM_LEAD: 'sator',
    TIER_SUPERVISOR: 'spv_area',
}

# Application-count target kind ("pengajuan")
TARGET_KIND_APPLICATIONS = 'pengajuan'

# =====================================================================
# TREE TIERS
# =====================================================================

NODE_AREA = 'area'
NODE_TEAM_LEAD = 'team_lead'
NODE_PROMOTER = 'promoter'

# Node tier -> target tier used for its own target
NODE_TARGET_TIER = {
    NODE_AREA: TIER_SUPERVISOR,
    NODE_TEAM_LEAD: TIER_TEAM_LEAD,
    NODE_PROMOTER: TIER_PROMOTER,
}

ORDER_BY_TOTAL = 'total'
ORDER_BY_NAME = 'name'

# =====================================================================
# ATTAINMENT BUCKETS
# =====================================================================

BUCKET_MET = 'met'
BUCKET_ON_TRACK = 'on-track'
BUCKET_AT_RISK = 'at-risk'
BUCKET_BEHIND = 'behind'
BUCKET_NO_TARGET = 'no-target'

# Checked top-down; first threshold reached wins
BUCKET_THRESHOLDS = [
    (100, BUCKET_MET),
    (75, BUCKET_ON_TRACK),
    (50, BUCKET_AT_RISK),
]

BUCKET_COLORS = {
    BUCKET_MET: "#22c55e",        # Green
    BUCKET_ON_TRACK: "#3b82f6",   # Blue
    BUCKET_AT_RISK: "#eab308",    # Yellow
    BUCKET_BEHIND: "#ef4444",     # Red
    BUCKET_NO_TARGET: "#9ca3af",  # Gray
}

# =====================================================================
# PROMOTER CATEGORIES
# =====================================================================

CATEGORY_OFFICIAL = 'official'
CATEGORY_TRAINING = 'training'
CATEGORY_UNCATEGORIZED = 'uncategorized'

# =====================================================================
# PERIODS
# =====================================================================

WITA_UTC_OFFSET_HOURS = 8

DATE_PRESETS = ['today', 'yesterday', 'last7days', 'last30days', 'mtd', 'lastmonth', 'all']

# 'all' preset reaches this many years back
ALL_PRESET_YEARS = 2
