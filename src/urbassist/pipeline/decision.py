"""Server-authoritative DP / PC decision.

Re-derives the zoning and heritage context from the government APIs
instead of trusting client-provided flags, then runs the determination
engine and builds the document list:

  1. PLU detection + protected areas, concurrently, each with its own timeout
  2. determine_permit() with the server-derived urban flag and zone label
  3. DPC 11 and a +1 month timeline when the parcel is in a heritage zone
  4. documents_for_project()

A failing source never fails the decision: an unknown zone is treated as
non-urban (20 m² DP threshold), unknown heritage as no protection.
"""

import asyncio
import logging
import math
import time
from dataclasses import replace

from urbassist.config import settings
from urbassist.core.types import DecisionPackage, DecisionRequest, HeritageSummary, PluInfo
from urbassist.observability.logging import timed_step
from urbassist.observability.tracing import start_span, trace
from urbassist.pipeline.determination import determine_permit
from urbassist.pipeline.documents import documents_for_project
from urbassist.pipeline.regulations import dp_threshold_for
from urbassist.retrieval.gpu import detect_plu, zoning_flags
from urbassist.retrieval.heritage import detect_protected_areas, heritage_summary

logger = logging.getLogger(__name__)

HERITAGE_TIMELINE_MONTHS = 1


def has_valid_coordinates(coordinates) -> bool:
    if not coordinates or len(coordinates) < 2:
        return False
    lng, lat = coordinates[0], coordinates[1]
    return (
        isinstance(lng, (int, float)) and isinstance(lat, (int, float))
        and math.isfinite(lng) and math.isfinite(lat)
    )


async def _plu_or_none(lng: float, lat: float, citycode: str | None) -> PluInfo | None:
    try:
        with timed_step(logger, "plu", citycode=citycode):
            return await asyncio.wait_for(detect_plu(lng, lat, citycode), timeout=settings.plu_timeout_seconds)
    except asyncio.TimeoutError:
        logger.warning("PLU detection timed out after %.0fs", settings.plu_timeout_seconds,
                       extra={"citycode": citycode, "step": "plu"})
    except Exception:
        logger.exception("PLU detection failed", extra={"citycode": citycode, "step": "plu"})
    return None


async def _heritage_or_none(lng: float, lat: float, citycode: str | None) -> HeritageSummary | None:
    try:
        with timed_step(logger, "heritage", citycode=citycode):
            areas = await asyncio.wait_for(
                detect_protected_areas(lng, lat, citycode), timeout=settings.heritage_timeout_seconds,
            )
    except asyncio.TimeoutError:
        logger.warning("Heritage check timed out after %.0fs", settings.heritage_timeout_seconds,
                       extra={"citycode": citycode, "step": "heritage"})
        return None
    except Exception:
        logger.exception("Heritage check failed", extra={"citycode": citycode, "step": "heritage"})
        return None
    return heritage_summary(areas)


@trace(name="make_decision", span_type="CHAIN")
async def make_decision(request: DecisionRequest) -> DecisionPackage:
    """Build the authoritative decision package for a project at a location."""
    start = time.monotonic()
    plu: PluInfo | None = None
    heritage: HeritageSummary | None = None

    if has_valid_coordinates(request.coordinates):
        lng, lat = request.coordinates[0], request.coordinates[1]
        with start_span(name="decision_fanout") as span:
            span.set_inputs({"lng": lng, "lat": lat, "citycode": request.citycode})
            plu, heritage = await asyncio.gather(
                _plu_or_none(lng, lat, request.citycode),
                _heritage_or_none(lng, lat, request.citycode),
            )
            span.set_outputs({"plu": plu is not None, "heritage": heritage is not None})

    if plu is not None:
        is_urban, dp_threshold = zoning_flags(plu)
        zone_code = plu.zone_type
        plu_source = plu.source
    else:
        is_urban, dp_threshold = False, dp_threshold_for(False)
        zone_code = None
        plu_source = "fallback"

    project = replace(request.project, is_urban_zone=is_urban, zone_label=zone_code or "")
    determination = determine_permit(project)

    is_protected = bool(heritage and heritage.in_heritage_zone)
    requires_dpc11 = is_protected or bool(heritage and heritage.requires_abf)
    existing_structure = project.project_category in ("extension", "facade_or_use_change")

    package = DecisionPackage(
        determination=determination,
        is_urban_zone=is_urban,
        zone_code=zone_code,
        dp_threshold=dp_threshold,
        is_rnu=bool(plu and plu.is_rnu),
        rnu_warning=plu.rnu_warning if plu else None,
        plu_source=plu_source,
        is_protected_zone=is_protected,
        requires_dpc11=requires_dpc11,
        timeline_adjustment_months=HERITAGE_TIMELINE_MONTHS if requires_dpc11 else 0,
        documents=documents_for_project(
            determination.kind, has_abf=requires_dpc11, is_existing_structure=existing_structure,
        ),
        heritage=heritage if is_protected or requires_dpc11 else None,
    )

    logger.info(
        "Decision %s: %s | dp_threshold=%d urban=%s rnu=%s heritage=%s",
        project.project_category, determination.kind, dp_threshold, is_urban,
        package.is_rnu, is_protected,
        extra={
            "citycode": request.citycode,
            "zone": zone_code,
            "determination": determination.kind,
            "source": plu_source,
            "duration_ms": round((time.monotonic() - start) * 1000),
        },
    )
    return package
