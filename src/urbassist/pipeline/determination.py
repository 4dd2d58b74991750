"""DP / PC / architect determination from project dimensions.

Pure functions — no I/O. Takes the project description entered in the
dossier flow (category, dimensions, zoning, existing floor area) and
returns a Determination with a justification that carries the numbers.

Rules are evaluated in order and the first match wins:

  1. architect mandatory (created or total floor area > 150 m²)
  2. small standalone construction (created floor area < 20 m²) → DP
  3. extension without enclosed floor → footprint-based
  4. enclosed extension in urban zone → 40 m² / 150 m²
  5. enclosed extension outside urban zone → 40 m² / 150 m², caveat
  6. large standalone construction → PC
  7. unenclosed structure (pool, open shed) → 20 m² footprint
  8. default → 40 m² / 150 m²

Ties are DP-side: violations use strict ``>``.
"""

import math

from mlflow.entities import SpanType

from urbassist.core.types import Determination, DeterminationInput
from urbassist.observability.tracing import trace

FLOOR_HEIGHT_M = 2.5
MAX_COUNTED_FLOORS = 2
ARCHITECT_THRESHOLD_M2 = 150
URBAN_EXTENSION_THRESHOLD_M2 = 40
STANDALONE_THRESHOLD_M2 = 20

DP_MESSAGE = "Prior declaration (DP)"
PC_MESSAGE = "Building permit (PC)"
ARCHITECT_MESSAGE = "This project requires a mandatory architect."


def is_urban_zone(zone: str | None) -> bool:
    """Urban zones allow DP extensions up to 40 m² (U*, AU, AUD).

    'UB' → True, 'AUD' → True, 'AU' → True, 'AUs' → False, 'N' → False, '' → False
    """
    z = (zone or "").strip().upper()
    if not z:
        return False
    return z.startswith("U") or z in ("AU", "AUD")


def estimate_floors(height_m: float | None) -> int:
    """Coarse floor count from the volume height: one floor per 2.5 m."""
    if not height_m or height_m <= 0:
        return 1
    return max(1, math.ceil(height_m / FLOOR_HEIGHT_M))


def _m2(value: float) -> str:
    """Render an area rounded half-up to the m²."""
    return str(math.floor(value + 0.5))


@trace(name="determine_permit", span_type=SpanType.TOOL)
def determine_permit(project: DeterminationInput) -> Determination:
    """Decide DP vs PC vs mandatory architect for a project.

    Total over its input domain: missing dimensions give a zero footprint,
    a missing zone is treated as non-urban.
    """
    length = project.length_m or 0.0
    width = project.width_m or 0.0
    category = project.project_category
    zone_label = project.zone_label.strip() or "unspecified"
    is_urban = project.is_urban_zone
    enclosed = project.creates_enclosed_floor_area is True
    is_extension = category == "extension"
    is_standalone = category == "new_standalone_construction"

    existing_present = (
        project.existing_building
        if project.existing_building is not None
        else project.existing_floor_area_m2 > 0
    )
    existing_area = project.existing_floor_area_m2 or 0.0

    created_footprint = length * width if length and width else 0.0
    floors = estimate_floors(project.height_m)
    created = created_footprint * min(floors, MAX_COUNTED_FLOORS) if enclosed else 0.0
    total = (existing_area if existing_present else 0.0) + created

    def result(kind: str, rule: str, detail: str) -> Determination:
        message = {"DP": DP_MESSAGE, "PC": PC_MESSAGE}.get(kind, ARCHITECT_MESSAGE)
        return Determination(
            kind=kind,
            message=message,
            detail=detail,
            rule=rule,
            created_footprint=created_footprint,
            created_floor_area=created,
            total_floor_area_after=total,
            floors=floors,
            insufficient_data=created_footprint == 0,
        )

    numbers = (
        f"Created floor area: {_m2(created)} m², total floor area after works: "
        f"{_m2(total)} m², zone: {zone_label}."
    )

    # ── Rule 1: architect mandatory (L.431-1) ──
    if enclosed and (created > ARCHITECT_THRESHOLD_M2 or total > ARCHITECT_THRESHOLD_M2):
        return result(
            "ARCHITECT_REQUIRED", "architect_mandatory",
            f"{numbers} Created or total floor area exceeds 150 m². This project requires "
            "a mandatory architect. We cannot process this application on the platform.",
        )

    # ── Rule 2: small standalone construction ──
    if is_standalone and 0 < created < STANDALONE_THRESHOLD_M2:
        return result(
            "DP", "standalone_small",
            f"The created area is {_m2(created)} m² for an independent construction "
            f"(under 20 m²). {numbers} A prior declaration is sufficient.",
        )

    # ── Rule 3: extension without enclosed floor (terrace, open shed) ──
    if is_extension and not enclosed and created_footprint > 0:
        if is_urban and created_footprint <= URBAN_EXTENSION_THRESHOLD_M2 and total <= ARCHITECT_THRESHOLD_M2:
            return result(
                "DP", "extension_open_urban",
                f"The created footprint is {_m2(created_footprint)} m² in an urban zone, for an "
                f"extension (no enclosed floor). {numbers} A prior declaration is sufficient.",
            )
        if created_footprint > URBAN_EXTENSION_THRESHOLD_M2 or total > ARCHITECT_THRESHOLD_M2:
            return result(
                "PC", "extension_open_large",
                f"Extension with footprint {_m2(created_footprint)} m² (over 40 m²) or total "
                f"floor area over 150 m². {numbers} A building permit is required.",
            )
        return result(
            "DP", "extension_open_verify",
            f"The created footprint is {_m2(created_footprint)} m² for an extension (no enclosed "
            f"floor). {numbers} A prior declaration may apply; verify with your town hall.",
        )

    # ── Rule 4: enclosed extension, urban zone ──
    if is_extension and is_urban:
        if created <= URBAN_EXTENSION_THRESHOLD_M2 and total <= ARCHITECT_THRESHOLD_M2:
            return result(
                "DP", "extension_urban",
                f"The created area is {_m2(created)} m² in an urban zone, for an extension. "
                f"{numbers} A prior declaration is sufficient.",
            )
        return result(
            "PC", "extension_urban_large",
            f"Extension in urban zone: created area {_m2(created)} m² (over 40 m²) or total "
            f"after works {_m2(total)} m² (over 150 m²). {numbers} A building permit is required.",
        )

    # ── Rule 5: enclosed extension, non-urban zone ──
    if is_extension:
        if created > URBAN_EXTENSION_THRESHOLD_M2 or total > ARCHITECT_THRESHOLD_M2:
            return result(
                "PC", "extension_non_urban_large",
                f"Extension with created area {_m2(created)} m² or total {_m2(total)} m² "
                f"outside an urban zone. {numbers} A building permit is required.",
            )
        return result(
            "DP", "extension_non_urban_verify",
            f"The created area is {_m2(created)} m² for an extension outside an urban zone. "
            f"{numbers} A prior declaration may apply; verify with your town hall.",
        )

    # ── Rule 6: large standalone construction ──
    if is_standalone and (created >= STANDALONE_THRESHOLD_M2 or created_footprint >= STANDALONE_THRESHOLD_M2):
        return result(
            "PC", "standalone_large",
            f"Independent construction of {_m2(created or created_footprint)} m² "
            f"(footprint {_m2(created_footprint)} m²). {numbers} A building permit is required.",
        )

    # ── Rule 7: unenclosed structure (pool, open structure) ──
    if not enclosed and created_footprint > 0:
        if created_footprint < STANDALONE_THRESHOLD_M2:
            return result(
                "DP", "unenclosed_small",
                f"Project footprint {_m2(created_footprint)} m² does not create enclosed floor "
                f"area. {numbers} A prior declaration is generally sufficient.",
            )
        return result(
            "PC", "unenclosed_large",
            f"Project footprint {_m2(created_footprint)} m² without enclosed floor. "
            f"{numbers} A building permit is generally required.",
        )

    # ── Rule 8: default by size ──
    if created > URBAN_EXTENSION_THRESHOLD_M2 or total > ARCHITECT_THRESHOLD_M2:
        return result(
            "PC", "default_large",
            f"Created area {_m2(created)} m² or total {_m2(total)} m². {numbers} "
            "A building permit is required.",
        )
    return result(
        "DP", "default_small",
        f"The created area is {_m2(created or created_footprint)} m². {numbers} "
        "A prior declaration may be sufficient. Verify with your town hall.",
    )
