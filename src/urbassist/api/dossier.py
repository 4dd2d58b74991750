"""Dossier endpoints — the address → parcel → regulatory → decision flow.

In-memory store keyed by dossier id. Each update returns the fields it
cleared, so a client can drop the matching views.
"""

import logging
import uuid
from dataclasses import asdict
from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException

from urbassist.api.schemas import (
    DecisionResponse,
    DossierAddressRequest,
    DossierResponse,
    HeritageInfoModel,
    ParcelModel,
    RegulatoryModel,
)
from urbassist.core.types import (
    AuthorizationDocument,
    DecisionPackage,
    Determination,
    HeritageInfo,
    HeritageSummary,
    ParcelSelection,
    ProtectedArea,
    RegulatoryInfo,
)
from urbassist.pipeline.dossier import Dossier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/dossiers", tags=["dossiers"])

# In-memory store: id → (created_at, dossier)
_dossiers: dict[str, tuple[str, Dossier]] = {}


def _get(dossier_id: str) -> tuple[str, Dossier]:
    if dossier_id not in _dossiers:
        raise HTTPException(status_code=404, detail="Dossier not found")
    return _dossiers[dossier_id]


def _response(dossier_id: str, cleared: list[str] | None = None) -> DossierResponse:
    created_at, dossier = _dossiers[dossier_id]
    return DossierResponse(id=dossier_id, created_at=created_at, cleared=cleared or [], **asdict(dossier))


@router.post("", response_model=DossierResponse)
async def create_dossier():
    """Start an empty dossier."""
    dossier_id = str(uuid.uuid4())[:8]
    _dossiers[dossier_id] = (datetime.now(timezone.utc).isoformat(), Dossier())
    logger.info("Created dossier %s", dossier_id)
    return _response(dossier_id)


@router.get("", response_model=list[DossierResponse])
async def list_dossiers():
    return [
        _response(dossier_id)
        for dossier_id, _ in sorted(_dossiers.items(), key=lambda item: item[1][0], reverse=True)
    ]


@router.get("/{dossier_id}", response_model=DossierResponse)
async def get_dossier(dossier_id: str):
    _get(dossier_id)
    return _response(dossier_id)


@router.put("/{dossier_id}/address", response_model=DossierResponse)
async def set_address(dossier_id: str, request: DossierAddressRequest):
    """Set the address; the parcel and everything derived are cleared."""
    _, dossier = _get(dossier_id)
    cleared = dossier.set_address(
        request.address,
        tuple(request.coordinates) if request.coordinates else None,
        request.municipality,
        request.citycode,
        request.departement,
    )
    return _response(dossier_id, cleared)


@router.put("/{dossier_id}/parcel", response_model=DossierResponse)
async def select_parcel(dossier_id: str, request: ParcelModel):
    """Select a parcel; regulatory, heritage and decision are cleared."""
    _, dossier = _get(dossier_id)
    data = request.model_dump()
    if data["centroid"] is not None:
        data["centroid"] = tuple(data["centroid"])
    cleared = dossier.select_parcel(ParcelSelection(**data))
    return _response(dossier_id, cleared)


@router.put("/{dossier_id}/regulatory", response_model=DossierResponse)
async def set_regulatory(dossier_id: str, request: RegulatoryModel):
    _, dossier = _get(dossier_id)
    cleared = dossier.set_regulatory(RegulatoryInfo(**request.model_dump()))
    return _response(dossier_id, cleared)


@router.put("/{dossier_id}/heritage", response_model=DossierResponse)
async def set_heritage(dossier_id: str, request: HeritageInfoModel):
    _, dossier = _get(dossier_id)
    data = request.model_dump()
    data["protected_areas"] = [ProtectedArea(**a) for a in data["protected_areas"]]
    cleared = dossier.set_heritage(HeritageInfo(**data))
    return _response(dossier_id, cleared)


@router.put("/{dossier_id}/decision", response_model=DossierResponse)
async def set_decision(dossier_id: str, request: DecisionResponse):
    """Store a decision package (as returned by POST /api/v1/decision)."""
    _, dossier = _get(dossier_id)
    data = request.model_dump()
    data["determination"] = Determination(**data["determination"])
    data["documents"] = [AuthorizationDocument(**d) for d in data["documents"]]
    if data["heritage"] is not None:
        data["heritage"] = HeritageSummary(**data["heritage"])
    dossier.set_decision(DecisionPackage(**data))
    return _response(dossier_id)


@router.post("/{dossier_id}/reset", response_model=DossierResponse)
async def reset_dossier(dossier_id: str):
    _, dossier = _get(dossier_id)
    dossier.reset_all()
    return _response(dossier_id)


@router.delete("/{dossier_id}")
async def delete_dossier(dossier_id: str):
    """Remove a dossier."""
    _get(dossier_id)
    del _dossiers[dossier_id]
    return {"status": "deleted", "id": dossier_id}
