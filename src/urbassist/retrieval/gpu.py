"""PLU zone detection — Géoportail de l'Urbanisme (GPU) + API Carto GPU.

Zone lookup tries, in order:
  1. GPU  /gpu/zone-urba?lon=&lat=
  2. GPU  /feature-info/du?lon=&lat=&typeName=zone_urba
  3. API Carto  /gpu/zone-urba?lon=&lat=
The first successful response wins, even if it holds no feature.

Zone responses are GeoJSON FeatureCollections with CNIG properties:
libelle = exact zone code (UB, AUD...), typezone = broad category
(U, AU, A, N), libelong = long name, idurba = document id.

When no zone comes back, the zone is estimated from commune density and
the default regulation table applies.
"""

import logging

import httpx

from urbassist.config import settings
from urbassist.core.types import PluInfo
from urbassist.observability.tracing import start_span, trace
from urbassist.pipeline.determination import is_urban_zone
from urbassist.pipeline.regulations import (
    default_regulations,
    dp_threshold_for,
    estimate_zone_from_density,
    merge_regulations,
)
from urbassist.retrieval import geoapi
from urbassist.retrieval.llm import suggest_regulations

logger = logging.getLogger(__name__)

# Broad CNIG categories; a specific libelle (AUD, UA, UB...) takes precedence
BROAD_ZONE_CODES = {"U", "AU", "A", "N"}

DOCUMENT_PORTAL_URL = "https://www.geoportail-urbanisme.gouv.fr/document/commune/{code}"

RNU_WARNING = (
    "Cette commune est soumise au Règlement National d'Urbanisme (RNU) : aucun PLU "
    "ne s'applique, le seuil de déclaration préalable pour une extension est de 20 m²."
)


def zone_urba_urls(lng: float, lat: float) -> list[str]:
    return [
        f"{settings.gpu_api_url}/gpu/zone-urba?lon={lng}&lat={lat}",
        f"{settings.gpu_api_url}/feature-info/du?lon={lng}&lat={lat}&typeName=zone_urba",
        f"{settings.apicarto_gpu_url}/zone-urba?lon={lng}&lat={lat}",
    ]


def pick_best_zone_feature(features: list[dict]) -> dict | None:
    """Prefer a feature with a specific zone code over a broad category.

    [{libelle: "U"}, {libelle: "UB"}] → the UB feature
    [{typezone: "U"}] → that feature (no libelle anywhere)
    """
    if not features:
        return None
    with_libelle = [
        f for f in features
        if isinstance((f.get("properties") or {}).get("libelle"), str)
        and f["properties"]["libelle"]
    ]
    if not with_libelle:
        return features[0]
    for f in with_libelle:
        if f["properties"]["libelle"].strip().upper() not in BROAD_ZONE_CODES:
            return f
    return with_libelle[0]


def plu_type_from_document(document_type: str | None) -> str | None:
    """'PLUi' / 'PLU' / 'CC' / 'POS' / 'RNU' from a GPU document type."""
    if not document_type:
        return None
    dt = document_type.upper()
    if "PLUI" in dt:
        return "PLUi"
    if "PLU" in dt:
        return "PLU"
    if dt in ("CC", "POS", "RNU"):
        return dt
    return document_type


def zoning_flags(plu: PluInfo) -> tuple[bool, int]:
    """(is_urban_zone, dp_threshold) derived from a detection result."""
    urban = not plu.is_rnu and is_urban_zone(plu.zone_type)
    return urban, dp_threshold_for(urban)


async def _query_zone_features(client: httpx.AsyncClient, lng: float, lat: float) -> list[dict]:
    for url in zone_urba_urls(lng, lat):
        with start_span(name="gpu_zone_query") as span:
            span.set_inputs({"url": url})
            try:
                resp = await client.get(url)
            except httpx.HTTPError as e:
                logger.warning("Zone query failed (%s): %s", url, e)
                span.set_outputs({"error": str(e)})
                continue
            if resp.status_code != 200:
                span.set_outputs({"status": resp.status_code})
                continue
            try:
                features = resp.json().get("features") or []
            except ValueError:
                logger.warning("Zone query returned non-JSON body: %s", url)
                continue
            span.set_outputs({"status": 200, "features": len(features)})
            return features
    return []


async def _query_document(client: httpx.AsyncClient, lng: float, lat: float) -> dict | None:
    try:
        resp = await client.get(f"{settings.apicarto_gpu_url}/document", params={"lon": lng, "lat": lat})
        resp.raise_for_status()
        features = resp.json().get("features") or []
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("GPU document API unavailable: %s", e)
        return None
    return (features[0].get("properties") or {}) if features else None


@trace(name="municipality_document", span_type="TOOL")
async def municipality_document(insee: str, client: httpx.AsyncClient | None = None) -> dict:
    """Planning document of a commune: PLU, PLUi, CC, POS or RNU.

    A commune with no GPU record at all is treated as RNU.

    Returns:
        Dict with keys: insee, commune_name, is_rnu, has_plu, plu_type,
        document_type, document_status, features
    """
    owned = client is None
    http = client or httpx.AsyncClient(
        timeout=settings.http_timeout_seconds,
        headers={"User-Agent": settings.user_agent},
    )
    features: list[dict] = []
    try:
        resp = await http.get(f"{settings.apicarto_gpu_url}/municipality", params={"insee": insee})
        resp.raise_for_status()
        data = resp.json()
        if isinstance(data.get("features"), list):
            features = data["features"]
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("GPU municipality lookup failed for %s: %s", insee, e, extra={"citycode": insee})
        return {
            "insee": insee, "commune_name": None, "is_rnu": False, "has_plu": False,
            "plu_type": None, "document_type": None, "document_status": None, "features": [],
        }
    finally:
        if owned:
            await http.aclose()

    result = {
        "insee": insee, "commune_name": None, "is_rnu": not features, "has_plu": False,
        "plu_type": None, "document_type": None, "document_status": None, "features": features,
    }
    if features:
        props = features[0].get("properties") or {}
        rnu_raw = next((props[k] for k in ("is_rnu", "est_rnu", "rnu", "RNU") if props.get(k) is not None), None)
        is_rnu = rnu_raw is True or str(rnu_raw).lower() in ("true", "oui", "1")
        document_type = props.get("du_type") or props.get("typedoc")
        result.update(
            commune_name=props.get("nom"),
            is_rnu=is_rnu,
            document_type=document_type,
            document_status=props.get("etat"),
            plu_type=plu_type_from_document(document_type),
            has_plu=not is_rnu and bool(document_type),
        )
    return result


@trace(name="detect_plu", span_type="TOOL")
async def detect_plu(
    lng: float,
    lat: float,
    citycode: str | None = None,
    address: str | None = None,
) -> PluInfo:
    """Detect the PLU zone at a point and attach its regulations.

    Upstream failures degrade to estimates; only programming errors raise.
    """
    plu = PluInfo(commune_code=citycode)

    async with httpx.AsyncClient(
        timeout=settings.http_timeout_seconds,
        headers={"User-Agent": settings.user_agent},
    ) as client:
        # ── Commune ──
        commune = await geoapi.resolve_commune(lng, lat, client=client)
        if commune:
            plu.commune_code = commune.get("code") or plu.commune_code
            plu.commune_name = commune.get("nom", "")

        # ── Zone ──
        features = await _query_zone_features(client, lng, lat)
        plu.zone_features = features
        best = pick_best_zone_feature(features)
        if best:
            props = best.get("properties") or {}
            plu.zone_type = props.get("libelle") or props.get("typezone") or None
            plu.zone_name = props.get("libelong") or props.get("libelle") or props.get("typezone") or None
            idurba = props.get("idurba")
            if isinstance(idurba, str) and idurba:
                plu.plu_type = "PLUi" if "PLUi" in idurba else "PLU"

        # ── Planning document ──
        doc = await _query_document(client, lng, lat)
        if doc:
            plu.plu_status = doc.get("etat") or None
            plu.plu_type = plu.plu_type or doc.get("typedoc") or None
            for key in ("lien", "url", "document_url", "pdf_url"):
                if isinstance(doc.get(key), str) and doc[key]:
                    plu.pdf_url = doc[key]
                    break
        if not plu.pdf_url and plu.commune_code:
            plu.pdf_url = DOCUMENT_PORTAL_URL.format(code=plu.commune_code)

        # ── RNU / estimated zone ──
        if not plu.zone_type and plu.commune_code:
            municipality = await municipality_document(plu.commune_code, client=client)
            if municipality["is_rnu"] and municipality["features"]:
                plu.is_rnu = True
                plu.plu_type = "RNU"
                plu.rnu_warning = RNU_WARNING
            info = await geoapi.commune_info(plu.commune_code, client=client)
            if info is not None:
                plu.commune_name = plu.commune_name or info.get("nom", "")
                plu.zone_type, plu.zone_name = estimate_zone_from_density(
                    info.get("population") or 0, info.get("surface"),
                )
        if not plu.zone_type:
            plu.zone_type, plu.zone_name = "UB", "Zone Urbaine (estimated)"

    plu.regulations = default_regulations(plu.zone_type)
    plu.source = "gpu" if plu.plu_status else "estimated"

    if settings.gemini_api_key and address:
        suggested = await suggest_regulations(plu.zone_type, plu.zone_name or "", plu.commune_name)
        if suggested:
            plu.regulations = merge_regulations(plu.regulations, suggested)

    logger.info(
        "PLU detected: zone=%s source=%s rnu=%s",
        plu.zone_type, plu.source, plu.is_rnu,
        extra={"citycode": plu.commune_code, "zone": plu.zone_type, "source": plu.source},
    )
    return plu
