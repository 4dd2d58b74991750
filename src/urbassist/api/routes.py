"""API route handlers for UrbAssist.

POST /api/v1/address/lookup     — BAN address search
POST /api/v1/plu-detection      — PLU zone + regulations at a point
POST /api/v1/protected-areas    — heritage / risk protections near a point
POST /api/v1/determination      — DP / PC / architect from project dimensions
POST /api/v1/calculate          — DP / PC from known areas
POST /api/v1/decision           — server-authoritative decision package
POST /api/v1/compliance         — site-plan compliance findings
GET  /api/v1/construction-types — per-type rule table
GET  /api/v1/documents          — document list for a DP / PC dossier
"""

import asyncio
import logging
from dataclasses import asdict

from fastapi import APIRouter, HTTPException

from urbassist.api.schemas import (
    AddressLookupRequest,
    AddressLookupResponse,
    AuthorizationResponse,
    CalculateRequest,
    ComplianceRequest,
    ComplianceResponse,
    ConstructionTypeResponse,
    DecisionApiRequest,
    DecisionResponse,
    DeterminationRequest,
    DeterminationResponse,
    DocumentsResponse,
    ErrorResponse,
    LocationRequest,
    PluDetectionResponse,
    ProtectedAreasResponse,
)
from urbassist.config import settings
from urbassist.core.construction_types import CONSTRUCTION_TYPE_RULES
from urbassist.core.types import (
    AuthorizationInput,
    BuildingElement,
    DecisionRequest,
    DeterminationInput,
    ParcelBounds,
    ProtectedArea,
    SetbackRules,
    ZoneRegulations,
)
from urbassist.pipeline.authorization import calculate_dp_pc, estimate_floor_area_created
from urbassist.pipeline.compliance import check_compliance
from urbassist.pipeline.decision import make_decision
from urbassist.pipeline.determination import determine_permit, is_urban_zone
from urbassist.pipeline.documents import PC_ADDITIONAL_NOTES, documents_for_project
from urbassist.pipeline.regulations import default_regulations
from urbassist.retrieval.geoapi import search_address
from urbassist.retrieval.gpu import detect_plu, zoning_flags
from urbassist.retrieval.heritage import classify_protections, detect_protected_areas, heritage_summary
from urbassist.storage.db import save_compliance_run, save_decision

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["urbanisme"])

DECISION_TIMEOUT = 60  # seconds

UPSTREAM_ERRORS = {
    400: {"model": ErrorResponse, "description": "Missing required field"},
    422: {"model": ErrorResponse, "description": "Invalid input"},
    502: {"model": ErrorResponse, "description": "Upstream service error"},
    504: {"model": ErrorResponse, "description": "Upstream timeout"},
}


def to_determination_input(req: DeterminationRequest) -> DeterminationInput:
    data = req.model_dump()
    if data["is_urban_zone"] is None:
        data["is_urban_zone"] = is_urban_zone(req.zone_label)
    return DeterminationInput(**data)


async def _call_upstream(coro, timeout: float, what: str):
    """Await an upstream call, translating failures to HTTP errors."""
    try:
        return await asyncio.wait_for(coro, timeout=timeout)
    except asyncio.TimeoutError:
        raise HTTPException(status_code=504, detail=f"{what} timed out after {timeout:.0f}s")
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        logger.exception("%s failed", what)
        raise HTTPException(status_code=502, detail=str(e))


def _require_coordinates(request: LocationRequest) -> tuple[float, float]:
    if not request.coordinates:
        raise HTTPException(status_code=400, detail="Coordinates required")
    return request.coordinates[0], request.coordinates[1]


# ---------------------------------------------------------------------------
# Geodata
# ---------------------------------------------------------------------------

@router.post("/address/lookup", response_model=AddressLookupResponse, responses=UPSTREAM_ERRORS)
async def address_lookup(request: AddressLookupRequest):
    """Search the national address base; a mock Nice address when nothing matches."""
    results = await _call_upstream(
        search_address(request.address), settings.http_timeout_seconds, "Address lookup",
    )
    return AddressLookupResponse(results=[asdict(r) for r in results])


@router.post("/plu-detection", response_model=PluDetectionResponse, responses=UPSTREAM_ERRORS)
async def plu_detection(request: LocationRequest):
    """Detect the PLU zone at a point and return its regulations."""
    lng, lat = _require_coordinates(request)
    plu = await _call_upstream(
        detect_plu(lng, lat, request.citycode, request.address),
        settings.plu_timeout_seconds,
        "PLU detection",
    )
    urban, dp_threshold = zoning_flags(plu)
    plu_data = asdict(plu)
    features = plu_data.pop("zone_features")
    return PluDetectionResponse(
        plu=plu_data,
        zone_features=features,
        source=plu.source,
        is_urban_zone=urban,
        dp_threshold=dp_threshold,
        is_rnu=plu.is_rnu,
        rnu_warning=plu.rnu_warning,
    )


@router.post("/protected-areas", response_model=ProtectedAreasResponse, responses=UPSTREAM_ERRORS)
async def protected_areas(request: LocationRequest):
    """Protections near a point, classified, with the heritage summary."""
    lng, lat = _require_coordinates(request)
    areas = await _call_upstream(
        detect_protected_areas(lng, lat, request.citycode),
        settings.heritage_timeout_seconds,
        "Protected areas detection",
    )
    classification = classify_protections(areas)
    return ProtectedAreasResponse(
        areas=[asdict(a) for a in areas],
        total_protections=sum(1 for a in areas if a.type != "INFO"),
        has_high_severity=any(a.severity == "high" for a in areas),
        critical_items=[asdict(i) for i in classification.critical_items],
        secondary_items=[asdict(i) for i in classification.secondary_items],
        requires_abf=classification.requires_abf,
        heritage_summary=asdict(heritage_summary(areas)),
    )


# ---------------------------------------------------------------------------
# Determination
# ---------------------------------------------------------------------------

@router.post("/determination", response_model=DeterminationResponse)
async def determination(request: DeterminationRequest):
    """DP / PC / architect from project dimensions (no I/O)."""
    result = determine_permit(to_determination_input(request))
    return DeterminationResponse(**asdict(result))


@router.post("/calculate", response_model=AuthorizationResponse, responses=UPSTREAM_ERRORS)
async def calculate(request: CalculateRequest):
    """DP / PC from areas; floor area is estimated from ground area × levels when absent."""
    floor_area = request.floor_area_created
    if floor_area is None:
        if request.ground_area_m2 is None:
            raise HTTPException(status_code=400, detail="floor_area_created or ground_area_m2 required")
        floor_area = estimate_floor_area_created(request.ground_area_m2, request.levels, request.is_garage)

    result = calculate_dp_pc(AuthorizationInput(
        project_type=request.project_type,
        floor_area_created=floor_area,
        footprint_created=request.footprint_created,
        existing_floor_area=request.existing_floor_area,
        change_of_use_or_facade=request.change_of_use_or_facade,
        in_urban_zone=request.in_urban_zone,
        dp_threshold=request.dp_threshold,
        submitter_type=request.submitter_type,
        shelter_height=request.shelter_height,
        is_garage=request.is_garage,
    ))
    return AuthorizationResponse(**asdict(result), floor_area_created=floor_area)


@router.post("/decision", response_model=DecisionResponse, responses=UPSTREAM_ERRORS)
async def decision(request: DecisionApiRequest):
    """Authoritative decision with server-derived zoning and heritage context."""
    domain_request = DecisionRequest(
        project=to_determination_input(request.project),
        coordinates=tuple(request.coordinates) if request.coordinates else None,
        citycode=request.citycode,
        project_id=request.project_id,
    )
    package = await _call_upstream(make_decision(domain_request), DECISION_TIMEOUT, "Decision")
    if request.project_id:
        await save_decision(request.project_id, request.citycode, package, request.project.project_category)
    return DecisionResponse(**asdict(package))


# ---------------------------------------------------------------------------
# Compliance + reference tables
# ---------------------------------------------------------------------------

@router.post("/compliance", response_model=ComplianceResponse)
async def compliance(request: ComplianceRequest):
    """Check a site plan against zone regulations."""
    if request.regulations is not None:
        regs_data = request.regulations.model_dump()
        regs_data["setbacks"] = SetbackRules(**regs_data["setbacks"])
        regulations = ZoneRegulations(**regs_data)
    elif request.zone_code:
        regulations = default_regulations(request.zone_code)
    else:
        regulations = None

    report = check_compliance(
        [BuildingElement(**e.model_dump()) for e in request.elements],
        regulations,
        request.parcel_area_m2,
        ParcelBounds(**request.parcel_bounds.model_dump()) if request.parcel_bounds else None,
        [ProtectedArea(**a.model_dump()) for a in request.protected_areas],
    )
    if request.project_id:
        await save_compliance_run(request.project_id, request.zone_code, request.parcel_area_m2, report)

    data = asdict(report)
    checks = data.pop("checks")
    return ComplianceResponse(checks=checks, summary=data)


@router.get("/construction-types", response_model=list[ConstructionTypeResponse])
async def construction_types():
    return [
        ConstructionTypeResponse(key=key, **asdict(rule))
        for key, rule in CONSTRUCTION_TYPE_RULES.items()
    ]


@router.get("/documents", response_model=DocumentsResponse)
async def documents(kind: str = "DP", has_abf: bool = False, existing_structure: bool = False):
    """Documents to attach to a DP or PC dossier."""
    kind = kind.upper()
    if kind not in ("DP", "PC", "ARCHITECT_REQUIRED"):
        raise HTTPException(status_code=422, detail=f"Unknown authorization kind: {kind}")
    docs = documents_for_project(kind, has_abf=has_abf, is_existing_structure=existing_structure)
    return DocumentsResponse(
        kind=kind,
        documents=[asdict(d) for d in docs],
        notes=PC_ADDITIONAL_NOTES if kind != "DP" else [],
    )
