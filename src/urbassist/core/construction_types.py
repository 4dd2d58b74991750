"""Per-construction-type rule table.

Type-specific overrides layered on top of the PLU zone rules
(Code de l'urbanisme R.421-2, R.421-9, R.421-17, R.111-18).
A ``None`` override means "defer to the zone rule"; 0 means the element
may sit on the boundary.
"""

from dataclasses import dataclass

DEFAULT_CONSTRUCTION_TYPE = "main_house"


@dataclass(frozen=True)
class TypeSetbacks:
    front: float | None = None
    side: float | None = None
    rear: float | None = None


@dataclass(frozen=True)
class ConstructionTypeRule:
    label: str
    label_fr: str
    setbacks: TypeSetbacks
    max_height_m: float | None       # None = zone rule
    max_ridge_height_m: float | None
    count_in_ces: bool
    exempt_up_to_m2: float | None    # area at or under which no permit step applies
    permit_above_exempt: str | None  # "DP" or "PC"
    note: str


CONSTRUCTION_TYPE_RULES: dict[str, ConstructionTypeRule] = {
    "main_house": ConstructionTypeRule(
        label="Main house",
        label_fr="Maison principale",
        setbacks=TypeSetbacks(),
        max_height_m=None,
        max_ridge_height_m=None,
        count_in_ces=True,
        exempt_up_to_m2=None,
        permit_above_exempt="PC",
        note="Full PLU setbacks and height rules apply. Permis de construire required.",
    ),
    "extension": ConstructionTypeRule(
        label="Extension",
        label_fr="Extension",
        setbacks=TypeSetbacks(),
        max_height_m=None,
        max_ridge_height_m=None,
        count_in_ces=True,
        exempt_up_to_m2=40,
        permit_above_exempt="PC",
        note="DP if ≤40m² in urban zone (Art. R.421-17). PC above 40m² or if total > 150m².",
    ),
    "shed": ConstructionTypeRule(
        label="Garden shed",
        label_fr="Abri de jardin",
        setbacks=TypeSetbacks(side=0, rear=0),
        max_height_m=3.5,
        max_ridge_height_m=4.0,
        count_in_ces=True,
        exempt_up_to_m2=5,
        permit_above_exempt="DP",
        note="≤5m²: no permit. 5–20m²: Déclaration Préalable. Side/rear setback: 0m OK on boundary.",
    ),
    "carport": ConstructionTypeRule(
        label="Carport",
        label_fr="Carport / auvent",
        setbacks=TypeSetbacks(side=0, rear=0),
        max_height_m=3.0,
        max_ridge_height_m=3.5,
        count_in_ces=True,
        exempt_up_to_m2=20,
        permit_above_exempt="PC",
        note="Open structure ≤20m²: Déclaration Préalable. >20m²: Permis de construire.",
    ),
    "pool": ConstructionTypeRule(
        label="Swimming pool",
        label_fr="Piscine",
        setbacks=TypeSetbacks(front=1, side=1, rear=1),
        max_height_m=None,
        max_ridge_height_m=None,
        count_in_ces=False,
        exempt_up_to_m2=10,
        permit_above_exempt="DP",
        note="Pool excluded from CES. Minimum 1m from all boundaries. >10m²: Déclaration Préalable.",
    ),
    "annex": ConstructionTypeRule(
        label="Annex",
        label_fr="Annexe",
        setbacks=TypeSetbacks(side=0, rear=0),
        max_height_m=3.5,
        max_ridge_height_m=4.0,
        count_in_ces=True,
        exempt_up_to_m2=5,
        permit_above_exempt="DP",
        note="Annexe accolée or détachée. ≤5m²: no permit. 5–20m²: DP (Art. R.421-9).",
    ),
}

# Site-plan preset → construction type
PRESET_TO_CONSTRUCTION_TYPE: dict[str, str] = {
    "house-small": "main_house",
    "house-medium": "main_house",
    "house-large": "main_house",
    "extension": "extension",
    "garage": "main_house",
    "pool": "pool",
    "terrace": "main_house",
    "green": "main_house",
    "shed-small": "shed",
    "carport": "carport",
    "annex": "annex",
    "custom": "main_house",
}


def classify_construction_type(construction_type: str | None, preset: str | None = None) -> str:
    """Resolve an element's type: explicit tag, then preset, then main_house."""
    if construction_type and construction_type in CONSTRUCTION_TYPE_RULES:
        return construction_type
    if preset and preset in PRESET_TO_CONSTRUCTION_TYPE:
        return PRESET_TO_CONSTRUCTION_TYPE[preset]
    return DEFAULT_CONSTRUCTION_TYPE


def resolve_setback(dimension: str, construction_type: str, zone_setback: float) -> float:
    """Type-specific override takes precedence over the zone rule."""
    override = getattr(CONSTRUCTION_TYPE_RULES[construction_type].setbacks, dimension)
    if override is not None:
        return override
    return zone_setback


def has_setback_override(dimension: str, construction_type: str) -> bool:
    return getattr(CONSTRUCTION_TYPE_RULES[construction_type].setbacks, dimension) is not None


def resolve_max_height(construction_type: str, zone_max_height: float) -> float:
    """Type rule wins only if it is more restrictive."""
    type_max = CONSTRUCTION_TYPE_RULES[construction_type].max_height_m
    if type_max is not None:
        return min(type_max, zone_max_height)
    return zone_max_height
