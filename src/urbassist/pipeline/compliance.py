"""Site-plan compliance checker.

Evaluates drawn elements against the parcel's zone regulations and returns
one finding per rule (and per element where the rule is per element):

  - Coverage ratio (CES): CES-counted footprints / parcel area
  - Maximum height: per element, stricter of type rule and zone rule
  - Setbacks: front / side / rear with height-dependent minimums
  - Permit step: element area vs its type's exemption threshold
  - Green space and parking, from the zone's requirement text
  - Protected areas nearby (ABF, heritage, classified)

Pure and deterministic. Warning bands sit at 90% of a limit; ties at the
limit itself are not violations.
"""

import logging
import math
from collections.abc import Iterable, Sequence

from mlflow.entities import SpanType

from urbassist.core.construction_types import (
    CONSTRUCTION_TYPE_RULES,
    classify_construction_type,
    has_setback_override,
    resolve_max_height,
    resolve_setback,
)
from urbassist.core.types import (
    BuildingElement,
    ComplianceCheck,
    ComplianceReport,
    ParcelBounds,
    ProtectedArea,
    ZoneRegulations,
)
from urbassist.observability.tracing import trace
from urbassist.pipeline.regulations import parse_green_pct, parse_parking_requirement

logger = logging.getLogger(__name__)

DEFAULT_PARCEL_AREA_M2 = 500.0
DEFAULT_MIN_GREEN_PCT = 20
DEFAULT_PARKING_SPACES = 2
FLOOR_AREA_FACTOR = 1.5           # built area → approximate multi-storey floor area
WARNING_BAND = 0.9
PROTECTED_TYPES = ("ABF", "HERITAGE", "CLASSIFIED")


def _fmt(value: float) -> str:
    return f"{value:g}"


def _band_status(value: float, limit: float) -> str:
    if value > limit:
        return "violation"
    if value > limit * WARNING_BAND:
        return "warning"
    return "compliant"


# ---------------------------------------------------------------------------
# Individual checks
# ---------------------------------------------------------------------------

def check_coverage(
    buildings: Sequence[BuildingElement],
    regulations: ZoneRegulations,
    parcel_area_m2: float,
) -> ComplianceCheck:
    """CES check over the elements whose construction type counts toward it."""
    counted = [
        b for b in buildings
        if CONSTRUCTION_TYPE_RULES[classify_construction_type(b.construction_type, b.preset)].count_in_ces
    ]
    built = sum(b.footprint for b in counted)
    ratio = regulations.max_coverage_ratio
    max_coverage = ratio * 100
    max_footprint = parcel_area_m2 * ratio
    coverage = built / parcel_area_m2 * 100

    status = _band_status(coverage, max_coverage)
    if status == "violation":
        message = (
            f"Coverage {coverage:.1f}% exceeds maximum {_fmt(max_coverage)}% "
            f"(max footprint {max_footprint:.0f}m²)"
        )
    else:
        message = f"Coverage {coverage:.1f}% within limit of {_fmt(max_coverage)}%"

    return ComplianceCheck(
        rule="Coverage Ratio (CES)",
        status=status,
        message=message,
        details=(
            f"Built: {built:.1f}m² / Max: {max_footprint:.0f}m² "
            f"(parcel {_fmt(parcel_area_m2)}m² × CES {_fmt(ratio)})"
        ),
        suggestion=f"Reduce built area by {built - max_footprint:.1f}m²" if built > max_footprint else None,
    )


def check_height(element: BuildingElement, regulations: ZoneRegulations) -> ComplianceCheck:
    construction_type = classify_construction_type(element.construction_type, element.preset)
    max_height = resolve_max_height(construction_type, regulations.max_height_m)
    height = element.height_m
    status = _band_status(height, max_height)
    if status == "violation":
        message = f"Height {_fmt(height)}m exceeds maximum {_fmt(max_height)}m"
    else:
        message = f"Height {_fmt(height)}m within limit of {_fmt(max_height)}m"
    return ComplianceCheck(
        rule="Maximum Height",
        status=status,
        message=message,
        details=(
            f'Element "{element.name}" ({construction_type}) height: {_fmt(height)}m / '
            f"Max: {_fmt(max_height)}m"
        ),
        suggestion=f"Reduce height by {height - max_height:.1f}m" if status == "violation" else None,
    )


def required_setbacks(element: BuildingElement, regulations: ZoneRegulations) -> tuple[float, float, float]:
    """(front, side, rear) minimums for an element.

    Type overrides replace the zone rule outright. Otherwise side is
    max(zone, H/2) and rear max(zone, H×0.25).
    """
    construction_type = classify_construction_type(element.construction_type, element.preset)
    zone = regulations.setbacks
    h = element.height_m if element.height_m > 0 else 0.0

    front = resolve_setback("front", construction_type, zone.front)
    if has_setback_override("side", construction_type):
        side = resolve_setback("side", construction_type, zone.side)
    else:
        side = max(zone.side, h / 2)
    if has_setback_override("rear", construction_type):
        rear = resolve_setback("rear", construction_type, zone.rear)
    else:
        rear = max(zone.rear, h * 0.25)
    return front, side, rear


def check_setbacks(
    element: BuildingElement,
    regulations: ZoneRegulations,
    bounds: ParcelBounds,
) -> list[ComplianceCheck]:
    """One violation per boundary that is too close; nothing when all pass."""
    required_front, required_side, required_rear = required_setbacks(element, regulations)
    h = element.height_m
    name = element.name

    measured: list[tuple[str, str, float | None, float]] = [
        ("Front Setback", "front",
         abs(element.top - bounds.front) if bounds.front is not None else None, required_front),
        ("Side Setback (Left)", "left",
         abs(element.left - bounds.left) if bounds.left is not None else None, required_side),
        ("Side Setback (Right)", "right",
         abs(element.left + element.width - bounds.right) if bounds.right is not None else None, required_side),
        ("Rear Setback", "rear",
         abs(element.top + element.depth - bounds.rear) if bounds.rear is not None else None, required_rear),
    ]

    checks = []
    for rule, boundary, distance, required in measured:
        if distance is None or distance >= required:
            continue
        message = f"{rule.split(' (')[0]} {distance:.1f}m is less than required {required:.1f}m"
        if boundary in ("left", "right") and h > 0 and required == h / 2:
            message += f" (max of {_fmt(regulations.setbacks.side)}m and H/2={h / 2:.1f}m)"
        checks.append(ComplianceCheck(
            rule=rule,
            status="violation",
            message=message,
            details=f'"{name}" is {distance:.1f}m from {boundary} boundary',
            suggestion=f"Move building {required - distance:.1f}m from {boundary} boundary",
        ))
    return checks


def check_permit_step(element: BuildingElement) -> ComplianceCheck | None:
    """Flag elements above their type's exemption area; None for types without one."""
    construction_type = classify_construction_type(element.construction_type, element.preset)
    rule = CONSTRUCTION_TYPE_RULES[construction_type]
    if rule.exempt_up_to_m2 is None:
        return None
    area = element.footprint
    if area > rule.exempt_up_to_m2:
        return ComplianceCheck(
            rule="Permit Step",
            status="warning",
            message=(
                f'"{element.name}" ({rule.label}, {area:.1f}m²) exceeds the '
                f"{_fmt(rule.exempt_up_to_m2)}m² exemption: {rule.permit_above_exempt} required"
            ),
            details=rule.note,
            suggestion=f"Include this {rule.label.lower()} in the {rule.permit_above_exempt} application",
        )
    return ComplianceCheck(
        rule="Permit Step",
        status="compliant",
        message=f'"{element.name}" ({rule.label}, {area:.1f}m²) has no permit step',
        details=rule.note,
    )


def check_green_space(
    elements: Sequence[BuildingElement],
    regulations: ZoneRegulations,
    parcel_area_m2: float,
) -> ComplianceCheck:
    min_green = parse_green_pct(regulations.green_space_requirements)
    if min_green is None:
        min_green = DEFAULT_MIN_GREEN_PCT
    green = sum(
        e.footprint for e in elements
        if e.category == "vegetation" or e.surface_type == "green"
    )
    green_pct = green / parcel_area_m2 * 100
    required = parcel_area_m2 * min_green / 100

    if green_pct < min_green:
        status = "violation"
        message = f"Green space {green_pct:.1f}% below minimum {min_green}%"
    else:
        status = "warning" if green_pct < min_green * 1.1 else "compliant"
        message = f"Green space {green_pct:.1f}% meets minimum {min_green}%"

    return ComplianceCheck(
        rule="Green Space",
        status=status,
        message=message,
        details=f"Green area: {green:.1f}m² / Required: {required:.1f}m²",
        suggestion=f"Add {required - green:.1f}m² of green space" if status == "violation" else None,
    )


def required_parking_spaces(built_area_m2: float, requirement: str) -> int:
    """Spaces required for a built area; 2 when the text gives no m² ratio.

    Only the m² ratio counts: "2 places per 100m²" asks for one space per 100 m².
    """
    parsed = parse_parking_requirement(requirement)
    if parsed is None:
        return DEFAULT_PARKING_SPACES
    _, per_m2 = parsed
    floor_area = built_area_m2 * FLOOR_AREA_FACTOR
    return math.ceil(round(floor_area / per_m2, 6))


def check_parking(
    elements: Sequence[BuildingElement],
    buildings: Sequence[BuildingElement],
    regulations: ZoneRegulations,
) -> ComplianceCheck:
    requirement = regulations.parking_requirements or "1 place per 60m²"
    spaces = sum(1 for e in elements if e.category == "parking" or e.preset == "parking")
    required = required_parking_spaces(sum(b.footprint for b in buildings), requirement)

    if spaces < required:
        return ComplianceCheck(
            rule="Parking Requirements",
            status="violation",
            message=f"{spaces} parking spaces, need {required}",
            details=f"Based on: {requirement}",
            suggestion=f"Add {required - spaces} more parking space(s) (2.50m x 5.00m each)",
        )
    return ComplianceCheck(
        rule="Parking Requirements",
        status="compliant",
        message=f"{spaces} parking spaces ({required} required)",
        details=f"Based on: {requirement}",
    )


def check_protected_areas(areas: Iterable[ProtectedArea]) -> list[ComplianceCheck]:
    return [
        ComplianceCheck(
            rule=f"Protected area: {area.type}",
            status="warning",
            message=area.name,
            details=area.description or "Additional approvals may be required (e.g. ABF).",
            suggestion="Verify with mairie and ABF if applicable.",
        )
        for area in areas
        if area.type in PROTECTED_TYPES
    ]


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------

def summarize(checks: list[ComplianceCheck]) -> ComplianceReport:
    violations = sum(1 for c in checks if c.status == "violation")
    warnings = sum(1 for c in checks if c.status == "warning")
    compliant = sum(1 for c in checks if c.status == "compliant")
    return ComplianceReport(
        checks=checks,
        total=len(checks),
        violations=violations,
        warnings=warnings,
        compliant=compliant,
        is_compliant=violations == 0,
    )


@trace(name="check_compliance", span_type=SpanType.TOOL)
def check_compliance(
    elements: Sequence[BuildingElement],
    regulations: ZoneRegulations | None,
    parcel_area_m2: float | None,
    parcel_bounds: ParcelBounds | None = None,
    protected_areas: Iterable[ProtectedArea] = (),
) -> ComplianceReport:
    """Run every check over a site plan.

    Missing regulations fall back to generic defaults (CES 0.5, 10 m,
    setbacks 5/3/4); a missing or non-positive parcel area to 500 m².
    """
    if not elements:
        return summarize([ComplianceCheck(
            rule="No elements",
            status="warning",
            message="No elements to check",
            details="Draw building elements to check compliance.",
        )])

    regs = regulations or ZoneRegulations()
    parcel_area = parcel_area_m2 if parcel_area_m2 and parcel_area_m2 > 0 else DEFAULT_PARCEL_AREA_M2
    buildings = [e for e in elements if e.category == "building"]

    checks: list[ComplianceCheck] = [check_coverage(buildings, regs, parcel_area)]

    for building in buildings:
        if building.height_m > 0:
            checks.append(check_height(building, regs))

    if parcel_bounds is not None:
        for building in buildings:
            checks.extend(check_setbacks(building, regs, parcel_bounds))

    for building in buildings:
        step = check_permit_step(building)
        if step is not None:
            checks.append(step)

    checks.append(check_green_space(elements, regs, parcel_area))
    checks.append(check_parking(elements, buildings, regs))
    checks.extend(check_protected_areas(protected_areas))

    report = summarize(checks)
    logger.info(
        "Compliance checked: %d findings, %d violations, %d warnings",
        report.total, report.violations, report.warnings,
        extra={"zone": regs.zone_classification, "step": "compliance"},
    )
    return report
