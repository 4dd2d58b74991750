"""Default zone regulations and parsing of free-text PLU requirements.

When the PLU text is not available, each zone family gets typical values
observed across French PLUs. These are estimates: the zone's actual
règlement always wins once known.
"""

import logging
import re
from dataclasses import replace

from urbassist.core.types import SetbackRules, ZoneRegulations

logger = logging.getLogger(__name__)

URBAN_DP_THRESHOLD_M2 = 40
DEFAULT_DP_THRESHOLD_M2 = 20
DEFAULT_ZONE = "UB"

# ---------------------------------------------------------------------------
# Default regulation table
# ---------------------------------------------------------------------------

_DEFAULTS: dict[str, ZoneRegulations] = {
    "UA": ZoneRegulations(
        zone_classification="UA - Zone Urbaine Dense",
        max_height_m=15,
        setbacks=SetbackRules(front=0, side=0, rear=3),
        max_coverage_ratio=0.8,
        max_floor_area_ratio=3.0,
        parking_requirements="1 place per 60m² of floor area",
        green_space_requirements="Minimum 10% of parcel area",
        architectural_constraints=[
            "Construction on boundary allowed",
            "Alignment with existing buildings required",
            "Flat roof or traditional roof pitch",
        ],
    ),
    "UB": ZoneRegulations(
        zone_classification="UB - Zone Urbaine Mixte",
        max_height_m=12,
        setbacks=SetbackRules(front=5, side=3, rear=4),
        max_coverage_ratio=0.4,
        max_floor_area_ratio=1.2,
        parking_requirements="1 place per 60m² of floor area",
        green_space_requirements="Minimum 20% of parcel area",
        architectural_constraints=[
            "Roof pitch 30-45 degrees",
            "Natural materials for facades",
            "Maximum 2 colors for exterior",
        ],
    ),
    "UC": ZoneRegulations(
        zone_classification="UC - Zone Urbaine Résidentielle",
        max_height_m=9,
        setbacks=SetbackRules(front=5, side=4, rear=5),
        max_coverage_ratio=0.3,
        max_floor_area_ratio=0.8,
        parking_requirements="2 places per dwelling",
        green_space_requirements="Minimum 30% of parcel area",
        architectural_constraints=[
            "Roof pitch 30-45 degrees",
            "Fences limited to 1.80m height",
            "Residential character mandatory",
        ],
    ),
    "AU": ZoneRegulations(
        zone_classification="AU - Zone À Urbaniser",
        max_height_m=10,
        setbacks=SetbackRules(front=5, side=4, rear=4),
        max_coverage_ratio=0.35,
        max_floor_area_ratio=1.0,
        parking_requirements="2 places per dwelling",
        green_space_requirements="Minimum 25% of parcel area",
        architectural_constraints=[
            "Subject to development plan approval",
            "Infrastructure must be completed first",
        ],
    ),
    "AUD": ZoneRegulations(
        zone_classification="AUD - Zone à urbaniser d'habitat diffus",
        max_height_m=10,
        setbacks=SetbackRules(front=5, side=4, rear=4),
        max_coverage_ratio=0.35,
        max_floor_area_ratio=1.0,
        parking_requirements="2 places per dwelling",
        green_space_requirements="Minimum 25% of parcel area",
        architectural_constraints=[
            "Subject to development plan approval",
            "Diffuse habitat zone, verify with PLU for specific rules",
        ],
    ),
    "A/N": ZoneRegulations(
        zone_classification="A/N - Zone Agricole ou Naturelle",
        max_height_m=7,
        setbacks=SetbackRules(front=10, side=5, rear=5),
        max_coverage_ratio=0.1,
        max_floor_area_ratio=0.2,
        parking_requirements="2 places per dwelling",
        green_space_requirements="Maintain natural character",
        architectural_constraints=[
            "Construction strictly limited",
            "Agricultural buildings only in zone A",
            "No new construction in zone N",
        ],
    ),
}


def _copy(regs: ZoneRegulations) -> ZoneRegulations:
    return replace(
        regs,
        setbacks=replace(regs.setbacks),
        architectural_constraints=list(regs.architectural_constraints),
    )


def default_regulations(zone_code: str | None) -> ZoneRegulations:
    """Typical regulations for a zone code.

    Exact match first, then the zone family (AU* → AU, U* → UB), else UB.
    Returns a fresh copy; callers may mutate it.
    """
    code = (zone_code or "").strip()
    if code in _DEFAULTS:
        return _copy(_DEFAULTS[code])
    upper = code.upper()
    if upper in _DEFAULTS:
        return _copy(_DEFAULTS[upper])
    if upper.startswith("AU"):
        return _copy(_DEFAULTS["AU"])
    return _copy(_DEFAULTS[DEFAULT_ZONE])


def estimate_zone_from_density(population: int | float, surface_ha: float | None) -> tuple[str, str]:
    """Guess a zone from commune density (inhabitants per km²).

    geo.api.gouv.fr reports surface in hectares; 100 ha = 1 km².
    """
    density = (population or 0) / ((surface_ha or 1) / 100)
    if density > 3000:
        return "UA", "Zone Urbaine Dense"
    if density > 1000:
        return "UB", "Zone Urbaine Mixte"
    if density > 300:
        return "UC", "Zone Urbaine Résidentielle"
    if density > 100:
        return "AU", "Zone À Urbaniser"
    return "A/N", "Zone Agricole ou Naturelle"


def dp_threshold_for(is_urban: bool) -> int:
    """DP ceiling for extensions: 40 m² in an urban PLU zone, 20 m² elsewhere."""
    return URBAN_DP_THRESHOLD_M2 if is_urban else DEFAULT_DP_THRESHOLD_M2


# ---------------------------------------------------------------------------
# Free-text requirement parsing
# ---------------------------------------------------------------------------

_GREEN_PCT_RE = re.compile(r"(\d+)\s*%|minimum\s*(\d+)", re.IGNORECASE)
_PARKING_RE = re.compile(r"(\d+)\s*place.*?(\d+)\s*m", re.IGNORECASE)


def parse_green_pct(text: str | None) -> int | None:
    """Extract a minimum green-space percentage.

    'Minimum 20% of parcel area' → 20, 'Maintain natural character' → None
    """
    if not text or not isinstance(text, str):
        return None
    m = _GREEN_PCT_RE.search(text)
    if not m:
        return None
    n = int(m.group(1) or m.group(2) or "0")
    return n if 0 <= n <= 100 else None


def parse_parking_requirement(text: str | None) -> tuple[int, int] | None:
    """Extract (places, per_m2) from a ratio requirement.

    '1 place per 60m² of floor area' → (1, 60); '2 places per dwelling' → None
    """
    if not text:
        return None
    m = _PARKING_RE.search(text)
    if not m:
        return None
    per_m2 = int(m.group(2))
    if per_m2 <= 0:
        return None
    return int(m.group(1)), per_m2


# ---------------------------------------------------------------------------
# Merging AI-suggested values
# ---------------------------------------------------------------------------

def _as_float(value) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.replace(",", ".").strip())
        except ValueError:
            return None
    return None


def merge_regulations(base: ZoneRegulations, suggested: dict) -> ZoneRegulations:
    """Overlay values from a Gemini JSON answer onto default regulations.

    Unknown keys and non-numeric numbers are ignored; a bad value never
    replaces a valid default.
    """
    merged = _copy(base)

    height = _as_float(suggested.get("maxHeight"))
    if height is not None and height > 0:
        merged.max_height_m = height

    ratio = _as_float(suggested.get("maxCoverageRatio"))
    if ratio is not None and 0 < ratio <= 1:
        merged.max_coverage_ratio = ratio

    setbacks = suggested.get("setbacks")
    if isinstance(setbacks, dict):
        for side in ("front", "side", "rear"):
            value = _as_float(setbacks.get(side))
            if value is not None and value >= 0:
                setattr(merged.setbacks, side, value)

    for key, attr in (
        ("parkingRequirements", "parking_requirements"),
        ("greenSpaceRequirements", "green_space_requirements"),
    ):
        value = suggested.get(key)
        if isinstance(value, str) and value.strip():
            setattr(merged, attr, value.strip())

    for key in ("roofConstraints", "facadeConstraints"):
        value = suggested.get(key)
        if isinstance(value, str) and value.strip() and value.strip() not in merged.architectural_constraints:
            merged.architectural_constraints.append(value.strip())

    logger.debug(
        "Merged suggested regulations",
        extra={"zone": merged.zone_classification, "step": "regulations_merge"},
    )
    return merged
