"""Pydantic request/response models for the UrbAssist API.

These are the API contract — decoupled from the internal domain dataclasses.
We bridge them using dataclasses.asdict() in the route handlers.
"""

from typing import Literal

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Error response body."""

    detail: str
    error_type: str = "upstream_error"


# ---------------------------------------------------------------------------
# Address
# ---------------------------------------------------------------------------

class AddressLookupRequest(BaseModel):
    address: str = Field(
        ...,
        min_length=1,
        max_length=300,
        examples=["12 rue de France, Nice"],
    )


class AddressResultResponse(BaseModel):
    label: str
    city: str = ""
    postcode: str = ""
    citycode: str = ""
    context: str = ""
    lng: float | None = None
    lat: float | None = None
    mock: bool = False


class AddressLookupResponse(BaseModel):
    results: list[AddressResultResponse]


# ---------------------------------------------------------------------------
# Zoning
# ---------------------------------------------------------------------------

class LocationRequest(BaseModel):
    """A point as [lng, lat], with the commune INSEE code when known."""

    coordinates: list[float] | None = Field(None, min_length=2, max_length=2, examples=[[7.2622, 43.7102]])
    citycode: str | None = None
    address: str | None = None


class SetbacksModel(BaseModel):
    front: float = 5.0
    side: float = 3.0
    rear: float = 4.0


class ZoneRegulationsModel(BaseModel):
    zone_classification: str = ""
    max_height_m: float = Field(10.0, gt=0)
    setbacks: SetbacksModel = SetbacksModel()
    max_coverage_ratio: float = Field(0.5, gt=0, le=1)
    max_floor_area_ratio: float | None = None
    parking_requirements: str = "1 place per 60m²"
    green_space_requirements: str = ""
    architectural_constraints: list[str] = []


class PluInfoResponse(BaseModel):
    zone_type: str | None = None
    zone_name: str | None = None
    commune_name: str = ""
    commune_code: str | None = None
    plu_type: str | None = None
    plu_status: str | None = None
    pdf_url: str | None = None
    regulations: ZoneRegulationsModel | None = None
    source: str = "estimated"
    is_rnu: bool = False
    rnu_warning: str | None = None


class PluDetectionResponse(BaseModel):
    plu: PluInfoResponse
    zone_features: list[dict] = []
    source: str
    is_urban_zone: bool
    dp_threshold: int
    is_rnu: bool = False
    rnu_warning: str | None = None


class ProtectedAreaModel(BaseModel):
    type: str
    name: str
    description: str = ""
    distance: float | None = None
    constraints: list[str] = []
    source_url: str | None = None
    severity: str = "info"
    categorie: str | None = None


class ClassifiedProtectionResponse(BaseModel):
    area: ProtectedAreaModel
    label: str
    is_critical: bool


class HeritageSummaryResponse(BaseModel):
    in_heritage_zone: bool = False
    requires_abf: bool = False
    heritage_types: list[str] = []


class ProtectedAreasResponse(BaseModel):
    areas: list[ProtectedAreaModel]
    total_protections: int
    has_high_severity: bool
    critical_items: list[ClassifiedProtectionResponse] = []
    secondary_items: list[ClassifiedProtectionResponse] = []
    requires_abf: bool = False
    heritage_summary: HeritageSummaryResponse


# ---------------------------------------------------------------------------
# Determination / calculator / decision
# ---------------------------------------------------------------------------

class DeterminationRequest(BaseModel):
    """Project description. ``is_urban_zone`` is derived from ``zone_label`` when omitted."""

    project_category: Literal[
        "new_standalone_construction", "extension", "pool", "facade_or_use_change",
    ] | None = None
    is_urban_zone: bool | None = None
    zone_label: str = ""
    length_m: float | None = Field(None, ge=0)
    width_m: float | None = Field(None, ge=0)
    height_m: float | None = Field(None, ge=0)
    existing_building: bool | None = None
    existing_floor_area_m2: float = Field(0.0, ge=0)
    creates_enclosed_floor_area: bool = False
    submitter_type: Literal["individual", "company"] = "individual"
    pool_shelter_height_m: float | None = Field(None, ge=0)


class DeterminationResponse(BaseModel):
    kind: str
    message: str
    detail: str
    rule: str
    created_footprint: float = 0.0
    created_floor_area: float = 0.0
    total_floor_area_after: float = 0.0
    floors: int = 1
    insufficient_data: bool = False


class CalculateRequest(BaseModel):
    project_type: Literal[
        "new_construction", "existing_extension", "swimming_pool", "facade_change",
        "outdoor", "outdoor_fence", "outdoor_other",
    ]
    floor_area_created: float | None = Field(None, ge=0)
    ground_area_m2: float | None = Field(None, ge=0, description="Used with levels when floor area is unknown")
    levels: int = Field(1, ge=1)
    footprint_created: float | None = Field(None, ge=0)
    existing_floor_area: float = Field(0.0, ge=0)
    change_of_use_or_facade: bool = False
    in_urban_zone: bool = True
    dp_threshold: float | None = None
    submitter_type: Literal["individual", "company"] = "individual"
    shelter_height: float = Field(0.0, ge=0)
    is_garage: bool = False


class AuthorizationResponse(BaseModel):
    determination: str
    explanation: str
    detail: str = ""
    architect_required: bool = False
    cannot_offer: bool = False
    floor_area_created: float


class DocumentResponse(BaseModel):
    code: str
    label: str
    description: str = ""
    dual_code: str | None = None
    tag: str | None = None


class DocumentsResponse(BaseModel):
    kind: str
    documents: list[DocumentResponse]
    notes: list[str] = []


class DecisionApiRequest(BaseModel):
    project: DeterminationRequest
    coordinates: list[float] | None = Field(None, min_length=2, max_length=2)
    citycode: str | None = None
    project_id: str | None = None


class DecisionResponse(BaseModel):
    determination: DeterminationResponse
    is_urban_zone: bool
    zone_code: str | None = None
    dp_threshold: int
    is_rnu: bool = False
    rnu_warning: str | None = None
    plu_source: str = "fallback"
    is_protected_zone: bool = False
    requires_dpc11: bool = False
    timeline_adjustment_months: int = 0
    documents: list[DocumentResponse] = []
    heritage: HeritageSummaryResponse | None = None
    source: str = "server"


# ---------------------------------------------------------------------------
# Compliance
# ---------------------------------------------------------------------------

class BuildingElementModel(BaseModel):
    name: str = "Building"
    category: str = "building"
    left: float = 0.0
    top: float = 0.0
    width: float = Field(0.0, ge=0)
    depth: float = Field(0.0, ge=0)
    area: float | None = Field(None, ge=0)
    height_m: float = Field(0.0, ge=0)
    construction_type: str | None = None
    preset: str | None = None
    surface_type: str | None = None


class ParcelBoundsModel(BaseModel):
    front: float | None = None
    left: float | None = None
    right: float | None = None
    rear: float | None = None


class ComplianceRequest(BaseModel):
    """Site plan to check. Without ``regulations``, defaults for ``zone_code`` apply."""

    elements: list[BuildingElementModel] = []
    regulations: ZoneRegulationsModel | None = None
    zone_code: str | None = None
    parcel_area_m2: float | None = Field(None, gt=0)
    parcel_bounds: ParcelBoundsModel | None = None
    protected_areas: list[ProtectedAreaModel] = []
    project_id: str | None = None


class ComplianceCheckResponse(BaseModel):
    rule: str
    status: Literal["compliant", "warning", "violation"]
    message: str
    details: str
    suggestion: str | None = None


class ComplianceSummaryResponse(BaseModel):
    total: int
    violations: int
    warnings: int
    compliant: int
    is_compliant: bool


class ComplianceResponse(BaseModel):
    checks: list[ComplianceCheckResponse]
    summary: ComplianceSummaryResponse


class TypeSetbacksModel(BaseModel):
    front: float | None = None
    side: float | None = None
    rear: float | None = None


class ConstructionTypeResponse(BaseModel):
    key: str
    label: str
    label_fr: str
    setbacks: TypeSetbacksModel
    max_height_m: float | None = None
    max_ridge_height_m: float | None = None
    count_in_ces: bool
    exempt_up_to_m2: float | None = None
    permit_above_exempt: str | None = None
    note: str


# ---------------------------------------------------------------------------
# Dossiers
# ---------------------------------------------------------------------------

class DossierAddressRequest(BaseModel):
    address: str = Field(..., min_length=1)
    coordinates: list[float] | None = Field(None, min_length=2, max_length=2)
    municipality: str | None = None
    citycode: str | None = None
    departement: str | None = None


class ParcelModel(BaseModel):
    id: str
    section: str = ""
    number: str = ""
    area_m2: float = Field(0.0, ge=0)
    centroid: list[float] | None = Field(None, min_length=2, max_length=2)
    commune: str | None = None


class RegulatoryModel(BaseModel):
    has_plu: bool = False
    plu_type: str | None = None
    zone_code: str | None = None
    zone_label: str | None = None
    is_urban_zone: bool = False
    dp_threshold: int = 20
    is_rnu: bool = False
    rnu_warning: str | None = None


class HeritageInfoModel(BaseModel):
    is_protected_zone: bool = False
    protected_areas: list[ProtectedAreaModel] = []
    requires_dpc11: bool = False
    timeline_adjustment_months: int = 0


class DossierResponse(BaseModel):
    id: str
    created_at: str
    address: str | None = None
    coordinates: list[float] | None = None
    municipality: str | None = None
    citycode: str | None = None
    departement: str | None = None
    parcel: ParcelModel | None = None
    regulatory: RegulatoryModel | None = None
    heritage: HeritageInfoModel | None = None
    decision: DecisionResponse | None = None
    loading: dict[str, bool] = {}
    cleared: list[str] = []
