"""Area-based DP / PC calculator (déclaration préalable / permis de construire).

Pure functions — no I/O. Works from areas already known (surface de
plancher, emprise au sol) rather than from drawn dimensions, and covers
project types the dossier engine does not: pools by water area, fences,
facade/use changes, outdoor works, company submitters.

Independent constructions:  < 5 m² NONE, 5–20 m² DP, > 20 m² PC
Extensions:                 ≤ threshold (40 urban / 20 otherwise) DP, above PC
Swimming pools:             < 10 m² NONE, 10–100 m² DP, > 100 m² PC
Total floor area > 150 m²:  ARCHITECT_REQUIRED
Company submitter:          PC → ARCHITECT_REQUIRED
"""

from dataclasses import replace

from mlflow.entities import SpanType

from urbassist.core.types import AuthorizationInput, AuthorizationResult
from urbassist.observability.tracing import trace

PROJECT_TYPES = (
    "new_construction",
    "existing_extension",
    "swimming_pool",
    "facade_change",
    "outdoor",
    "outdoor_fence",
    "outdoor_other",
)

ARCHITECT_THRESHOLD_M2 = 150
POOL_SHELTER_MAX_HEIGHT_M = 1.80


def estimate_floor_area_created(ground_area_m2: float, levels: int, is_garage: bool = False) -> float:
    """Estimate created surface de plancher from footprint and level count.

    0.90 accounts for wall thickness (interior measurement, R.111-22); each
    level above the ground floor loses 3 m² to the stairwell.

    110 m², 1 level → 99.0; 2 levels → 192.0; 3 levels → 288.0
    Garages are excluded from surface de plancher.
    """
    if ground_area_m2 <= 0 or levels < 1:
        return 0.0
    if is_garage:
        return 0.0
    deduction = levels * 3 if levels > 1 else 0
    return round(ground_area_m2 * levels * 0.90 - deduction, 2)


def _fmt(value: float) -> str:
    return f"{value:g}"


def _architect(explanation: str, detail: str) -> AuthorizationResult:
    return AuthorizationResult(
        determination="ARCHITECT_REQUIRED",
        explanation=explanation,
        detail=detail,
        architect_required=True,
        cannot_offer=True,
    )


def apply_company_architect(result: AuthorizationResult, submitter_type: str) -> AuthorizationResult:
    """A legal entity filing a PC must use an architect."""
    if submitter_type == "company" and result.determination in ("PC", "ARCHITECT_REQUIRED"):
        return replace(
            result,
            determination="ARCHITECT_REQUIRED",
            explanation=(
                f"{result.explanation} En tant qu'entreprise (personne morale), le recours "
                "à un architecte est obligatoire pour un permis de construire."
            ),
            architect_required=True,
            cannot_offer=True,
        )
    return result


def _swimming_pool(inp: AuthorizationInput) -> AuthorizationResult:
    area = inp.floor_area_created
    shelter = inp.shelter_height or 0.0

    if area < 10:
        return AuthorizationResult(
            determination="NONE",
            explanation=f"La piscine fait {_fmt(area)} m² (moins de 10 m²). Aucune autorisation n'est requise.",
            detail="pool<10",
        )

    if area <= 100:
        if shelter > POOL_SHELTER_MAX_HEIGHT_M:
            result = AuthorizationResult(
                determination="PC",
                explanation=(
                    f"La piscine fait {_fmt(area)} m² avec un abri de {_fmt(shelter)} m "
                    "(supérieur à 1,80 m). Un permis de construire est nécessaire."
                ),
                detail="pool_shelter>1.80",
            )
            return apply_company_architect(result, inp.submitter_type)
        return AuthorizationResult(
            determination="DP",
            explanation=f"La piscine fait {_fmt(area)} m² (entre 10 et 100 m²). Une déclaration préalable est requise.",
            detail="pool_10-100",
        )

    result = AuthorizationResult(
        determination="PC",
        explanation=f"La piscine fait {_fmt(area)} m² (supérieure à 100 m²). Un permis de construire est nécessaire.",
        detail="pool>100",
    )
    return apply_company_architect(result, inp.submitter_type)


def _new_construction(inp: AuthorizationInput) -> AuthorizationResult:
    floor_area = inp.floor_area_created
    footprint = inp.footprint_created if inp.footprint_created is not None else floor_area
    # Stricter (larger) of footprint and floor area drives the threshold
    stricter = max(footprint, floor_area)
    areas = f"Emprise au sol : {_fmt(footprint)} m², surface de plancher : {_fmt(floor_area)} m²"

    if stricter < 5:
        return AuthorizationResult(
            determination="NONE",
            explanation=f"{areas} (les deux < 5 m²). Aucune autorisation n'est requise.",
            detail="new<5",
        )

    if stricter <= 20:
        return AuthorizationResult(
            determination="DP",
            explanation=f"{areas} (entre 5 et 20 m²). Une déclaration préalable suffit.",
            detail="new_5-20",
        )

    if floor_area >= ARCHITECT_THRESHOLD_M2:
        return _architect(
            f"{areas} (supérieure à 20 m²). Un permis de construire est nécessaire. De plus, la "
            f"surface de plancher ({_fmt(floor_area)} m²) dépasse 150 m², le recours à un "
            "architecte est obligatoire.",
            "new>20_architect",
        )

    result = AuthorizationResult(
        determination="PC",
        explanation=f"{areas} (supérieure à 20 m²). Un permis de construire est nécessaire.",
        detail="new>20",
    )
    return apply_company_architect(result, inp.submitter_type)


def _existing_extension(inp: AuthorizationInput) -> AuthorizationResult:
    floor_area = inp.floor_area_created
    footprint = inp.footprint_created if inp.footprint_created is not None else floor_area
    existing = inp.existing_floor_area or 0.0
    stricter = max(footprint, floor_area)
    # 150 m² architect threshold uses floor area only, never footprint
    total_after = existing + floor_area

    threshold = inp.dp_threshold if inp.dp_threshold is not None else (40 if inp.in_urban_zone else 20)
    areas = (
        f"Emprise au sol : {_fmt(footprint)} m², surface de plancher créée : {_fmt(floor_area)} m²"
    )
    existing_note = f", surface existante : {_fmt(existing)} m²" if existing else ""

    if stricter <= threshold:
        # Under 20 m² an extension is always DP, whatever the total
        always_dp = stricter < 20 or (threshold == 20 and stricter <= 20)
        if always_dp or total_after <= ARCHITECT_THRESHOLD_M2:
            if inp.in_urban_zone:
                explanation = (
                    f"{areas} (≤ {_fmt(threshold)} m²) en zone urbaine. Surface totale après "
                    f"travaux : {_fmt(total_after)} m² (≤ 150 m²). Une déclaration préalable suffit."
                )
            else:
                explanation = (
                    f"{areas} (≤ {_fmt(threshold)} m²) hors zone urbaine. "
                    "Une déclaration préalable suffit."
                )
            return AuthorizationResult(determination="DP", explanation=explanation, detail=f"ext<={_fmt(threshold)}")
        return _architect(
            f"{areas} (≤ {_fmt(threshold)} m²), mais la surface de plancher totale après travaux "
            f"est de {_fmt(total_after)} m² (> 150 m²). Un permis de construire avec architecte "
            "obligatoire est nécessaire.",
            "ext_total>150_architect",
        )

    if total_after > ARCHITECT_THRESHOLD_M2:
        return _architect(
            f"{areas} (> {_fmt(threshold)} m²){existing_note}. Surface totale après travaux : "
            f"{_fmt(total_after)} m² (> 150 m²). Un permis de construire avec architecte "
            "obligatoire est nécessaire.",
            "ext_architect",
        )

    result = AuthorizationResult(
        determination="PC",
        explanation=(
            f"{areas} (> {_fmt(threshold)} m²){existing_note}. Surface totale après travaux : "
            f"{_fmt(total_after)} m² (≤ 150 m²). Un permis de construire est nécessaire."
        ),
        detail=f"ext>{_fmt(threshold)}",
    )
    return apply_company_architect(result, inp.submitter_type)


@trace(name="calculate_dp_pc", span_type=SpanType.TOOL)
def calculate_dp_pc(inp: AuthorizationInput) -> AuthorizationResult:
    """Compute the authorization tier (and architect requirement) from areas."""
    if inp.change_of_use_or_facade and inp.project_type != "swimming_pool":
        total_after = (inp.existing_floor_area or 0.0) + inp.floor_area_created
        if total_after > ARCHITECT_THRESHOLD_M2:
            return _architect(
                "Un projet avec changement de destination ou modification de façade est soumis "
                "au permis de construire. De plus, la surface totale dépasse 150 m², le recours "
                "à un architecte est obligatoire.",
                "changeOfUseOrFacade_architect",
            )
        result = AuthorizationResult(
            determination="PC",
            explanation=(
                "Un projet avec changement de destination ou modification de façade est soumis "
                "au permis de construire, quelle que soit la surface."
            ),
            detail="changeOfUseOrFacade",
        )
        return apply_company_architect(result, inp.submitter_type)

    if inp.project_type == "swimming_pool":
        return _swimming_pool(inp)
    if inp.project_type == "new_construction":
        return _new_construction(inp)
    if inp.project_type == "existing_extension":
        return _existing_extension(inp)
    if inp.project_type == "facade_change":
        return AuthorizationResult(
            determination="PC",
            explanation=(
                "Une modification de façade ou un changement de destination nécessite "
                "un permis de construire."
            ),
            detail="facade_change_type",
        )
    if inp.project_type == "outdoor_fence":
        return AuthorizationResult(
            determination="DP",
            explanation=(
                "L'édification d'une clôture ou d'un portail est soumise à une déclaration "
                "préalable (article R.421-12 du Code de l'urbanisme)."
            ),
            detail="fence_gate",
        )
    if inp.project_type == "outdoor":
        return AuthorizationResult(
            determination="REVIEW",
            explanation=(
                "Pour un aménagement extérieur (clôture, terrasse, etc.), le type d'autorisation "
                "dépend des règles locales. Vérification recommandée auprès de votre mairie."
            ),
            detail="outdoor",
        )
    if inp.project_type == "outdoor_other":
        return AuthorizationResult(
            determination="REVIEW",
            explanation=(
                "Pour cet aménagement extérieur, le type d'autorisation dépend de la nature exacte "
                "des travaux et des règles locales. Contactez votre mairie pour vérification."
            ),
            detail="outdoor_other",
        )
    return AuthorizationResult(
        determination="REVIEW",
        explanation="Impossible de déterminer automatiquement le type d'autorisation. Vérification recommandée.",
        detail="unknown",
    )
