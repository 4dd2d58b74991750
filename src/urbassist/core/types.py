"""Domain types for the UrbAssist planning-permit assistant.

All shared dataclasses and type definitions live here to prevent
circular imports and establish a single source of truth for the
domain model. Every other module imports from here.
"""

from dataclasses import dataclass, field
from typing import Literal

# ---------------------------------------------------------------------------
# Vocabularies
# ---------------------------------------------------------------------------

ProjectCategory = Literal[
    "new_standalone_construction",
    "extension",
    "pool",
    "facade_or_use_change",
]
PROJECT_CATEGORIES: tuple[str, ...] = (
    "new_standalone_construction",
    "extension",
    "pool",
    "facade_or_use_change",
)

SubmitterType = Literal["individual", "company"]
DeterminationKind = Literal["DP", "PC", "ARCHITECT_REQUIRED"]
CheckStatus = Literal["compliant", "warning", "violation"]


# ---------------------------------------------------------------------------
# Determination (DP / PC / architect)
# ---------------------------------------------------------------------------

@dataclass
class DeterminationInput:
    """Description of a construction project, as entered in the dossier flow.

    Dimensions are in meters, areas in m². None = not entered yet.
    """

    project_category: str | None = None
    is_urban_zone: bool = False
    zone_label: str = ""                   # e.g. "UB", "AUD", "" if unknown
    length_m: float | None = None
    width_m: float | None = None
    height_m: float | None = None
    existing_building: bool | None = None  # None → inferred from existing area
    existing_floor_area_m2: float = 0.0
    creates_enclosed_floor_area: bool = False
    submitter_type: str = "individual"
    pool_shelter_height_m: float | None = None  # carried only; the shelter rule is in calculate_dp_pc


@dataclass
class Determination:
    """Outcome of the determination engine, with the numbers that drove it."""

    kind: str                      # "DP", "PC", "ARCHITECT_REQUIRED"
    message: str
    detail: str
    rule: str                      # which ordered rule matched
    created_footprint: float = 0.0
    created_floor_area: float = 0.0
    total_floor_area_after: float = 0.0
    floors: int = 1
    insufficient_data: bool = False


# ---------------------------------------------------------------------------
# Area-based authorization calculator
# ---------------------------------------------------------------------------

@dataclass
class AuthorizationInput:
    """Area-based input for the authorization calculator (m²)."""

    project_type: str
    floor_area_created: float
    footprint_created: float | None = None
    existing_floor_area: float = 0.0
    change_of_use_or_facade: bool = False
    in_urban_zone: bool = True
    dp_threshold: float | None = None     # API-derived; overrides in_urban_zone
    submitter_type: str = "individual"
    shelter_height: float = 0.0
    is_garage: bool = False


@dataclass
class AuthorizationResult:
    """Calculator outcome: NONE, DP, PC, ARCHITECT_REQUIRED or REVIEW."""

    determination: str
    explanation: str
    detail: str = ""
    architect_required: bool = False
    cannot_offer: bool = False


@dataclass
class AuthorizationDocument:
    """One piece of a DP or PC dossier (e.g. "DPC 1 — Plan de situation")."""

    code: str
    label: str
    description: str = ""
    dual_code: str | None = None
    tag: str | None = None


# ---------------------------------------------------------------------------
# Zone regulations + compliance
# ---------------------------------------------------------------------------

@dataclass
class SetbackRules:
    """Minimum distances to parcel boundaries, in meters."""

    front: float = 5.0
    side: float = 3.0
    rear: float = 4.0


@dataclass
class ZoneRegulations:
    """Regulatory parameters of a PLU zone used by the compliance checker."""

    zone_classification: str = ""
    max_height_m: float = 10.0
    setbacks: SetbackRules = field(default_factory=SetbackRules)
    max_coverage_ratio: float = 0.5        # CES, 0-1
    max_floor_area_ratio: float | None = None
    parking_requirements: str = "1 place per 60m²"
    green_space_requirements: str = ""
    architectural_constraints: list[str] = field(default_factory=list)


@dataclass
class BuildingElement:
    """An element drawn on the site plan.

    Canvas coordinates are in meters from the plan origin; ``depth`` is the
    extent along the front→rear axis.
    """

    name: str = "Building"
    category: str = "building"             # building, vegetation, parking
    left: float = 0.0
    top: float = 0.0
    width: float = 0.0
    depth: float = 0.0
    area: float | None = None
    height_m: float = 0.0
    construction_type: str | None = None
    preset: str | None = None
    surface_type: str | None = None

    @property
    def footprint(self) -> float:
        if self.area:
            return self.area
        return self.width * self.depth


@dataclass
class ParcelBounds:
    """Parcel boundary positions on the same canvas axis as the elements."""

    front: float | None = None
    left: float | None = None
    right: float | None = None
    rear: float | None = None


@dataclass
class ComplianceCheck:
    """A single pass/warning/violation finding."""

    rule: str
    status: str                    # "compliant", "warning", "violation"
    message: str
    details: str
    suggestion: str | None = None


@dataclass
class ComplianceReport:
    """All findings for a site plan, with counts."""

    checks: list[ComplianceCheck]
    total: int = 0
    violations: int = 0
    warnings: int = 0
    compliant: int = 0
    is_compliant: bool = True


# ---------------------------------------------------------------------------
# Geodata
# ---------------------------------------------------------------------------

@dataclass
class AddressResult:
    """A candidate from the national address API (BAN)."""

    label: str
    city: str = ""
    postcode: str = ""
    citycode: str = ""
    context: str = ""
    lng: float | None = None
    lat: float | None = None
    mock: bool = False


@dataclass
class PluInfo:
    """PLU zone detected at a point, with the regulations that apply."""

    zone_type: str | None = None       # exact zone code (libelle), e.g. "UB", "AUD"
    zone_name: str | None = None
    commune_name: str = ""
    commune_code: str | None = None
    plu_type: str | None = None        # PLU, PLUi, CC, RNU
    plu_status: str | None = None
    pdf_url: str | None = None
    regulations: ZoneRegulations | None = None
    source: str = "estimated"          # "gpu" or "estimated"
    is_rnu: bool = False
    rnu_warning: str | None = None
    zone_features: list[dict] = field(default_factory=list)


@dataclass
class ProtectedArea:
    """A protection or servitude found near the parcel."""

    type: str                          # ABF, HERITAGE, FLOOD_ZONE, SEISMIC, INFO...
    name: str
    description: str = ""
    distance: float | None = None
    constraints: list[str] = field(default_factory=list)
    source_url: str | None = None
    severity: str = "info"             # high, medium, low, info
    categorie: str | None = None       # SUP code, e.g. "AC1"


@dataclass
class ClassifiedProtection:
    """A protected area after SUP classification."""

    area: ProtectedArea
    label: str
    is_critical: bool


@dataclass
class ProtectionClassification:
    critical_items: list[ClassifiedProtection] = field(default_factory=list)
    secondary_items: list[ClassifiedProtection] = field(default_factory=list)
    requires_abf: bool = False


@dataclass
class HeritageSummary:
    in_heritage_zone: bool = False
    requires_abf: bool = False
    heritage_types: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Decision + dossier
# ---------------------------------------------------------------------------

@dataclass
class DecisionRequest:
    """Server-side decision request: project description + location."""

    project: DeterminationInput
    coordinates: tuple[float, float] | None = None   # (lng, lat)
    citycode: str | None = None
    project_id: str | None = None


@dataclass
class DecisionPackage:
    """Authoritative decision: determination, zoning, heritage and documents."""

    determination: Determination
    is_urban_zone: bool
    zone_code: str | None
    dp_threshold: int
    is_rnu: bool = False
    rnu_warning: str | None = None
    plu_source: str = "fallback"       # "gpu", "estimated" or "fallback"
    is_protected_zone: bool = False
    requires_dpc11: bool = False
    timeline_adjustment_months: int = 0
    documents: list[AuthorizationDocument] = field(default_factory=list)
    heritage: HeritageSummary | None = None
    source: str = "server"


@dataclass
class ParcelSelection:
    """A cadastral parcel chosen by the user."""

    id: str
    section: str = ""
    number: str = ""
    area_m2: float = 0.0
    centroid: tuple[float, float] | None = None   # (lng, lat)
    commune: str | None = None


@dataclass
class RegulatoryInfo:
    """Zoning context of the selected parcel, as stored in a dossier."""

    has_plu: bool = False
    plu_type: str | None = None        # PLU, PLUi, CC, RNU
    zone_code: str | None = None
    zone_label: str | None = None
    is_urban_zone: bool = False
    dp_threshold: int = 20
    is_rnu: bool = False
    rnu_warning: str | None = None


@dataclass
class HeritageInfo:
    """Heritage context of the selected parcel, as stored in a dossier."""

    is_protected_zone: bool = False
    protected_areas: list[ProtectedArea] = field(default_factory=list)
    requires_dpc11: bool = False
    timeline_adjustment_months: int = 0
