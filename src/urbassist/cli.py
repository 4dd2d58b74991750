"""UrbAssist CLI — zoning lookup and DP/PC determination commands."""

import argparse
import asyncio
import sys

from urbassist.config import settings
from urbassist.observability.logging import setup_logging
from urbassist.observability.tracing import init_tracking


def _init_mlflow() -> None:
    """Initialize MLflow tracking for the current process."""
    init_tracking(settings.mlflow_tracking_uri, settings.mlflow_experiment_name)


def main() -> None:
    """Run a zoning lookup: urbassist <address>"""
    setup_logging(json_format=False, level=settings.log_level)
    _init_mlflow()

    if len(sys.argv) < 2:
        print("Usage: urbassist <address>")
        print('  Example: urbassist "12 rue de France, Nice"')
        print('  Example: urbassist "8 place de la Comédie, 69001 Lyon"')
        sys.exit(1)

    address = " ".join(sys.argv[1:])
    asyncio.run(_zoning_lookup(address))


async def _zoning_lookup(address: str) -> None:
    """Address → PLU zone → protections, printed as a report."""
    from urbassist.observability.prompts import log_prompt_to_run
    from urbassist.observability.tracing import log_params, start_run
    from urbassist.retrieval.geoapi import search_address
    from urbassist.retrieval.gpu import detect_plu, zoning_flags
    from urbassist.retrieval.heritage import classify_protections, detect_protected_areas

    print("\nUrbAssist Zoning Lookup")
    print(f"{'=' * 50}")
    print(f"Looking up: {address}\n")

    candidates = await search_address(address, limit=1)
    best = candidates[0]
    if best.mock:
        print("No address match; showing a sample address in Nice.\n")
    if best.lng is None or best.lat is None:
        print("Could not locate this address. Check the address and try again.")
        return

    print(f"Address:      {best.label}")
    print(f"Commune:      {best.city} ({best.citycode})")
    print(f"Coordinates:  {best.lng}, {best.lat}")
    print()

    with start_run(run_name=f"lookup-{best.citycode or 'unknown'}"):
        log_params({"address": best.label[:250], "citycode": best.citycode, "mock_address": best.mock})
        if settings.gemini_api_key:
            log_prompt_to_run("zone_regulations")
        plu, areas = await asyncio.gather(
            detect_plu(best.lng, best.lat, best.citycode, best.label),
            detect_protected_areas(best.lng, best.lat, best.citycode),
        )
        urban, dp_threshold = zoning_flags(plu)
        log_params({"zone": plu.zone_type, "plu_source": plu.source, "is_rnu": plu.is_rnu})

    print(f"{'─' * 50}")
    print("Zoning:")
    print(f"  Zone:           {plu.zone_type} ({plu.zone_name or 'unnamed'})")
    if plu.plu_type:
        print(f"  Document:       {plu.plu_type}{f' ({plu.plu_status})' if plu.plu_status else ''}")
    print(f"  Source:         {plu.source}")
    print(f"  Urban zone:     {'yes' if urban else 'no'}")
    print(f"  DP threshold:   {dp_threshold} m² (extensions)")
    if plu.pdf_url:
        print(f"  Règlement:      {plu.pdf_url}")
    if plu.rnu_warning:
        print(f"  Warning:        {plu.rnu_warning}")
    print()

    regs = plu.regulations
    if regs:
        print("Regulations:")
        print(f"  Max height:     {regs.max_height_m:g} m")
        print(f"  Setbacks:       front {regs.setbacks.front:g} m, side {regs.setbacks.side:g} m, "
              f"rear {regs.setbacks.rear:g} m")
        print(f"  Max coverage:   {regs.max_coverage_ratio * 100:g}%")
        if regs.max_floor_area_ratio:
            print(f"  Max FAR:        {regs.max_floor_area_ratio:g}")
        print(f"  Parking:        {regs.parking_requirements}")
        if regs.green_space_requirements:
            print(f"  Green space:    {regs.green_space_requirements}")
        for constraint in regs.architectural_constraints:
            print(f"  - {constraint}")
        print()

    classification = classify_protections(areas)
    if classification.critical_items or classification.secondary_items:
        print(f"{'─' * 50}")
        print("Protections:")
        for item in classification.critical_items:
            print(f"  [!] {item.label}: {item.area.name}")
        for item in classification.secondary_items:
            print(f"  [ ] {item.label}: {item.area.name}")
        if classification.requires_abf:
            print("  ABF consultation required (DPC 11 in a DP dossier, +1 month instruction)")
        print()
    else:
        print("No protections found near this address.")


def determine_main() -> None:
    """DP / PC from project dimensions: urbassist-determine --category extension ..."""
    from urbassist.core.types import PROJECT_CATEGORIES, DeterminationInput
    from urbassist.pipeline.determination import determine_permit, is_urban_zone
    from urbassist.pipeline.documents import documents_for_project

    parser = argparse.ArgumentParser(
        prog="urbassist-determine",
        description="Decide between a prior declaration (DP), a building permit (PC) or a mandatory architect.",
    )
    parser.add_argument("--category", choices=PROJECT_CATEGORIES, required=True)
    parser.add_argument("--length", type=float, help="meters")
    parser.add_argument("--width", type=float, help="meters")
    parser.add_argument("--height", type=float, help="meters")
    parser.add_argument("--existing-area", type=float, default=0.0, help="existing floor area, m²")
    parser.add_argument("--enclosed", action="store_true", help="the project creates enclosed floor area")
    parser.add_argument("--zone", default="", help="PLU zone code, e.g. UB")
    parser.add_argument("--submitter", choices=("individual", "company"), default="individual")
    parser.add_argument("--shelter-height", type=float, help="pool shelter height, meters")
    parser.add_argument("--abf", action="store_true", help="parcel is in a heritage (ABF) zone")
    args = parser.parse_args()

    project = DeterminationInput(
        project_category=args.category,
        is_urban_zone=is_urban_zone(args.zone),
        zone_label=args.zone,
        length_m=args.length,
        width_m=args.width,
        height_m=args.height,
        existing_floor_area_m2=args.existing_area,
        creates_enclosed_floor_area=args.enclosed,
        submitter_type=args.submitter,
        pool_shelter_height_m=args.shelter_height,
    )
    result = determine_permit(project)

    print(f"\n{result.message}  [{result.kind}]")
    print(f"{'=' * 50}")
    print(result.detail)
    print()
    print(f"  Footprint created:   {result.created_footprint:g} m²")
    print(f"  Floor area created:  {result.created_floor_area:g} m² ({result.floors} floor(s))")
    print(f"  Total after works:   {result.total_floor_area_after:g} m²")
    print(f"  Rule:                {result.rule}")
    if result.insufficient_data:
        print("  Note: length and width are needed for a reliable answer.")
    print()

    existing = args.category in ("extension", "facade_or_use_change")
    print("Documents:")
    for doc in documents_for_project(result.kind, has_abf=args.abf, is_existing_structure=existing):
        tag = f" [{doc.tag}]" if doc.tag else ""
        print(f"  {doc.code:<8} {doc.label}{tag}")


if __name__ == "__main__":
    main()
