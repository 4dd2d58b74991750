"""Protected-area detection and SUP classification.

Sources, queried concurrently (each one may fail on its own):
  - Monuments historiques within 500 m (data.culture.gouv.fr) → ABF
  - Géorisques risk report → FLOOD_ZONE, SEISMIC
  - Sites Patrimoniaux Remarquables within 1000 m → HERITAGE

SUP = servitude d'utilité publique. Classification splits the findings
into critical items (heritage, ABF, major risks) and secondary ones
(technical servitudes), and decides whether the ABF must be consulted.
"""

import asyncio
import logging
from collections.abc import Iterable

import httpx

from urbassist.config import settings
from urbassist.core.types import (
    ClassifiedProtection,
    HeritageSummary,
    ProtectedArea,
    ProtectionClassification,
)
from urbassist.observability.tracing import trace
from urbassist.retrieval import geoapi

logger = logging.getLogger(__name__)

MONUMENTS_DATASET = "liste-des-immeubles-proteges-au-titre-des-monuments-historiques"
SPR_DATASET = "sites-patrimoniaux-remarquables"
MONUMENT_RADIUS_M = 500
SPR_RADIUS_M = 1000
LARGE_COMMUNE_POPULATION = 50000

# ── SUP classification tables ──

CRITICAL_CODES = ("AC1", "AC2", "AC4", "PM1", "PM2", "PM3")
ABF_CODES = ("AC1", "AC2", "AC4")
CRITICAL_TYPES = ("ABF", "FLOOD_ZONE", "HERITAGE")
HERITAGE_TYPES = ("ABF", "HERITAGE")

# Keywords for findings that carry no clean SUP code
CRITICAL_TEXT_PATTERNS = (
    "monument historique", "monuments historiques", "abf",
    "architecte des bâtiments", "architecte des batiments",
    "site classé", "site inscrit", "site patrimonial", "sites patrimoniaux",
    "secteur sauvegardé", "patrimoine", "patrimonial",
    "intérêt patrimonial", "interet patrimonial",
    "périmètre de protection", "perimetre de protection", "abords",
    "p.p.r.i", "ppri", "inondation", "inondable", "zone inondable", "risque inondation",
    "plan de prévention des risques", "plan de prevention des risques",
    "zone à risque", "zone a risque", "risque naturel", "risque technologique", "risque minier",
    "aléa", "alea", "submersion", "crue",
)

SUP_LABEL_MAP: dict[str, str] = {
    "AC1": "Monument Historique (Classé/Inscrit)",
    "AC2": "Site Classé / Site Inscrit",
    "AC3": "Réserve Naturelle",
    "AC4": "Périmètre des Abords (ABF 500m)",
    "PM1": "Zone Inondable (PPRI)",
    "PM2": "Risque Technologique (PPRT)",
    "PM3": "Risque Minier",
    "A1": "Protection des bois et forêts",
    "A4": "Terrains riverains des cours d'eau",
    "A5": "Canalisations Eau / Assainissement",
    "A7": "Alignement voirie",
    "AR": "Archéologie préventive",
    "EL7": "Servitude d'utilité publique aéronautique",
    "I1": "Canalisations de transport de gaz",
    "I1BIS": "Canalisations de produits chimiques",
    "I3": "Canalisations de transport d'hydrocarbures",
    "I4": "Passage Lignes Électriques",
    "I6": "Mines et carrières",
    "I7": "Stockage souterrain",
    "INT1": "Cimetières",
    "PT1": "Télécommunications",
    "PT2": "Servitudes radioélectriques",
    "PT2LH": "Liaisons hertziennes",
    "PT3": "Centre radioélectrique",
    "T1": "Voies ferrées",
    "T4": "Aérodrome",
    "T5": "Dégagement aéronautique",
    "T7": "Routes express / Autoroutes",
}

GENERAL_INFO = ProtectedArea(
    type="INFO",
    name="General construction regulations",
    description=(
        "All construction projects must comply with the local PLU/PLUi and national building "
        "regulations (Code de l'urbanisme, RT2020/RE2020)."
    ),
    constraints=[
        "Energy performance: RE2020 requirements",
        "Accessibility: Handicap accessibility norms",
        "Fire safety: ERP or habitation regulations",
        "Neighbor rights: Civil code articles 544 et seq.",
    ],
    source_url="https://www.legifrance.gouv.fr/",
    severity="info",
)


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------

def _within(field: str, lng: float, lat: float, radius_m: int) -> str:
    return f"within_distance({field}, geom'POINT({lng} {lat})', {radius_m}m)"


async def fetch_monuments(client: httpx.AsyncClient, lng: float, lat: float) -> list[ProtectedArea]:
    resp = await client.get(
        f"{settings.culture_api_url}/{MONUMENTS_DATASET}/records",
        params={"where": _within("geolocalisation", lng, lat, MONUMENT_RADIUS_M), "limit": 10},
    )
    resp.raise_for_status()
    return [
        ProtectedArea(
            type="ABF",
            name=f"Monument Historique: {mh.get('tico') or mh.get('appellation_courante') or 'Listed building'}",
            description=(
                "Located within 500m of a listed historical monument. Approval from the "
                "Architecte des Bâtiments de France (ABF) is required."
            ),
            constraints=[
                "ABF approval required for any exterior modification",
                "Materials and colors must be approved by ABF",
                "New construction must be harmonious with surroundings",
                "Roof type and slope may be imposed",
                "Fences and walls subject to ABF approval",
            ],
            source_url="https://www.culture.gouv.fr/Thematiques/Monuments-Sites",
            severity="high",
            categorie="AC1",
        )
        for mh in resp.json().get("results") or []
    ]


async def fetch_risks(client: httpx.AsyncClient, lng: float, lat: float) -> list[ProtectedArea]:
    resp = await client.get(
        f"{settings.georisques_api_url}/resultats_rapport_risques",
        params={"latlon": f"{lat},{lng}"},
    )
    resp.raise_for_status()
    data = resp.json().get("data") or {}
    areas = []
    if data.get("risques_inondation"):
        areas.append(ProtectedArea(
            type="FLOOD_ZONE",
            name="Zone inondable",
            description="The parcel is located in a flood risk zone (PPRI). Specific construction rules apply.",
            constraints=[
                "Building floor must be above reference flood level",
                "Underground parking may be prohibited",
                "Specific materials required for flood resistance",
                "Insurance obligations under Cat-Nat regime",
            ],
            source_url="https://www.georisques.gouv.fr/",
            severity="high",
            categorie="PM1",
        ))
    seismic = data.get("zonage_sismique")
    if seismic:
        areas.append(ProtectedArea(
            type="SEISMIC",
            name=f"Zone sismique {seismic}",
            description=f"Seismic zone {seismic}. Anti-seismic construction norms may apply.",
            constraints=[
                "Anti-seismic construction norms (Eurocode 8) may apply",
                "Structural reinforcement requirements",
            ],
            source_url="https://www.georisques.gouv.fr/",
            severity="medium",
        ))
    return areas


async def fetch_heritage_sites(client: httpx.AsyncClient, lng: float, lat: float) -> list[ProtectedArea]:
    resp = await client.get(
        f"{settings.culture_api_url}/{SPR_DATASET}/records",
        params={"where": _within("geo_point_2d", lng, lat, SPR_RADIUS_M), "limit": 5},
    )
    resp.raise_for_status()
    return [
        ProtectedArea(
            type="HERITAGE",
            name=f"Site Patrimonial Remarquable: {site.get('nom') or 'Heritage site'}",
            description=(
                "Located within or near a Site Patrimonial Remarquable (SPR). "
                "Enhanced architectural controls apply."
            ),
            constraints=[
                "ABF approval required",
                "Strict architectural guidelines apply",
                "Material palette may be restricted",
                "Demolition may require authorization",
                "Specific urban planning rules (PVAP/PSMV) apply",
            ],
            severity="high",
            categorie="AC2",
        )
        for site in resp.json().get("results") or []
    ]


@trace(name="detect_protected_areas", span_type="TOOL")
async def detect_protected_areas(lng: float, lat: float, citycode: str | None = None) -> list[ProtectedArea]:
    """All protections near a point, always ending with the general info item."""
    async with httpx.AsyncClient(
        timeout=settings.http_timeout_seconds,
        headers={"User-Agent": settings.user_agent},
    ) as client:
        sources = {
            "monuments": fetch_monuments(client, lng, lat),
            "georisques": fetch_risks(client, lng, lat),
            "spr": fetch_heritage_sites(client, lng, lat),
        }
        results = await asyncio.gather(*sources.values(), return_exceptions=True)

        areas: list[ProtectedArea] = []
        for name, result in zip(sources, results):
            if isinstance(result, (httpx.HTTPError, ValueError)):
                logger.warning("%s source unavailable: %s", name, result, extra={"citycode": citycode})
                continue
            if isinstance(result, BaseException):
                raise result
            areas.extend(result)

        if not areas and citycode:
            commune = await geoapi.commune_info(citycode, client=client)
            if commune and (commune.get("population") or 0) > LARGE_COMMUNE_POPULATION:
                areas.append(ProtectedArea(
                    type="INFO",
                    name="Urban area - verify protections",
                    description=(
                        f"{commune.get('nom', 'This commune')} is a significant urban area. We recommend "
                        "verifying with the local town hall (mairie) for any specific protections."
                    ),
                    constraints=[
                        "Check with mairie for specific zoning constraints",
                        "Verify ABF perimeters at town hall",
                        "Check for local heritage protection plan",
                    ],
                    severity="info",
                ))

    areas.append(GENERAL_INFO)
    logger.info(
        "Protected areas: %d found (%d non-info)",
        len(areas), sum(1 for a in areas if a.type != "INFO"),
        extra={"citycode": citycode, "step": "heritage"},
    )
    return areas


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def contains_critical_text(text: str | None) -> bool:
    lower = (text or "").lower()
    return any(pattern in lower for pattern in CRITICAL_TEXT_PATTERNS)


def classify_protections(areas: Iterable[ProtectedArea]) -> ProtectionClassification:
    """Split findings into critical and secondary items; INFO items are dropped.

    An item is critical by type (ABF, FLOOD_ZONE, HERITAGE), by SUP code
    (AC1/AC2/AC4/PM1/PM2/PM3 prefixes), or by keywords in its name or
    description.
    """
    result = ProtectionClassification()
    for area in areas:
        if area.type == "INFO":
            continue
        code = (area.categorie or "").strip().upper()
        is_critical = (
            area.type in CRITICAL_TYPES
            or any(code.startswith(c) for c in CRITICAL_CODES)
            or contains_critical_text(area.name)
            or contains_critical_text(area.description)
        )
        label = (code and SUP_LABEL_MAP.get(code)) or area.name or "Autre servitude"
        item = ClassifiedProtection(area=area, label=label, is_critical=is_critical)
        (result.critical_items if is_critical else result.secondary_items).append(item)

    result.requires_abf = any(
        i.area.type in HERITAGE_TYPES
        or any((i.area.categorie or "").upper().startswith(c) for c in ABF_CODES)
        or contains_critical_text(i.area.name)
        for i in result.critical_items
    )
    return result


def heritage_summary(areas: Iterable[ProtectedArea]) -> HeritageSummary:
    """Heritage flags used by the decision service.

    In a heritage zone when any critical item is ABF/HERITAGE-typed or
    carries an AC1/AC2/AC4 code.
    """
    classification = classify_protections(areas)
    in_zone = any(
        i.area.type in HERITAGE_TYPES
        or any((i.area.categorie or "").upper().startswith(c) for c in ABF_CODES)
        for i in classification.critical_items
    )
    types = sorted({i.area.type for i in classification.critical_items})
    return HeritageSummary(
        in_heritage_zone=in_zone,
        requires_abf=classification.requires_abf,
        heritage_types=types,
    )
