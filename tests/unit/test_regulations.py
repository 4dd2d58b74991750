"""Tests for default zone regulations and free-text requirement parsing."""

import pytest

from urbassist.pipeline.regulations import (
    default_regulations,
    dp_threshold_for,
    estimate_zone_from_density,
    merge_regulations,
    parse_green_pct,
    parse_parking_requirement,
)


class TestDefaultRegulations:
    def test_exact_zone(self):
        regs = default_regulations("UA")
        assert regs.max_coverage_ratio == 0.8
        assert regs.setbacks.front == 0

    def test_lowercase_zone(self):
        assert default_regulations("ub").zone_classification.startswith("UB")

    def test_au_family(self):
        assert default_regulations("AUs").zone_classification.startswith("AU ")
        assert default_regulations("AUD").zone_classification.startswith("AUD")

    def test_agricultural_natural(self):
        assert default_regulations("A/N").max_height_m == 7

    @pytest.mark.parametrize("code", ["N", "XYZ", "", None])
    def test_unknown_falls_back_to_ub(self, code):
        assert default_regulations(code).zone_classification.startswith("UB")

    def test_returns_independent_copies(self):
        first = default_regulations("UB")
        first.setbacks.front = 99
        first.architectural_constraints.append("changed")
        second = default_regulations("UB")
        assert second.setbacks.front == 5
        assert "changed" not in second.architectural_constraints


class TestEstimateZoneFromDensity:
    def test_dense_city(self):
        # Nice: ~350k inhabitants over 7192 ha
        assert estimate_zone_from_density(350000, 7192)[0] == "UA"

    def test_mixed(self):
        assert estimate_zone_from_density(2000, 100)[0] == "UB"

    def test_residential(self):
        assert estimate_zone_from_density(5000, 1000)[0] == "UC"

    def test_to_urbanize(self):
        assert estimate_zone_from_density(1500, 1000)[0] == "AU"

    def test_rural(self):
        assert estimate_zone_from_density(100, 1000) == ("A/N", "Zone Agricole ou Naturelle")

    def test_missing_surface(self):
        assert estimate_zone_from_density(0, None)[0] == "A/N"


def test_dp_threshold_for():
    assert dp_threshold_for(True) == 40
    assert dp_threshold_for(False) == 20


class TestParseGreenPct:
    def test_percentage(self):
        assert parse_green_pct("Minimum 20% of parcel area") == 20

    def test_bare_percentage(self):
        assert parse_green_pct("30 % d'espaces verts") == 30

    def test_no_number(self):
        assert parse_green_pct("Maintain natural character") is None

    def test_out_of_range(self):
        assert parse_green_pct("150%") is None

    def test_empty(self):
        assert parse_green_pct(None) is None
        assert parse_green_pct("") is None


class TestParseParkingRequirement:
    def test_ratio(self):
        assert parse_parking_requirement("1 place per 60m² of floor area") == (1, 60)

    def test_multiple_places(self):
        assert parse_parking_requirement("2 places per 100 m²") == (2, 100)

    def test_per_dwelling(self):
        assert parse_parking_requirement("2 places per dwelling") is None

    def test_empty(self):
        assert parse_parking_requirement("") is None


class TestMergeRegulations:
    def test_valid_values_override(self):
        base = default_regulations("UB")
        merged = merge_regulations(base, {
            "maxHeight": 9,
            "maxCoverageRatio": 0.35,
            "setbacks": {"front": "6,5", "side": 2},
            "parkingRequirements": " 2 places per dwelling ",
            "roofConstraints": "Tuiles canal",
        })
        assert merged.max_height_m == 9.0
        assert merged.max_coverage_ratio == 0.35
        assert merged.setbacks.front == 6.5
        assert merged.setbacks.side == 2.0
        assert merged.setbacks.rear == 4
        assert merged.parking_requirements == "2 places per dwelling"
        assert merged.architectural_constraints[-1] == "Tuiles canal"

    def test_invalid_values_ignored(self):
        base = default_regulations("UB")
        merged = merge_regulations(base, {
            "maxHeight": True,
            "maxCoverageRatio": 1.5,
            "setbacks": {"front": -1, "rear": "n/a"},
            "greenSpaceRequirements": "",
        })
        assert merged.max_height_m == 12
        assert merged.max_coverage_ratio == 0.4
        assert merged.setbacks.front == 5
        assert merged.setbacks.rear == 4
        assert merged.green_space_requirements == "Minimum 20% of parcel area"

    def test_base_not_mutated(self):
        base = default_regulations("UB")
        merge_regulations(base, {"maxHeight": 20, "setbacks": {"front": 1}, "facadeConstraints": "Enduit"})
        assert base.max_height_m == 12
        assert base.setbacks.front == 5
        assert "Enduit" not in base.architectural_constraints
