"""Unit tests for the UrbAssist API endpoints.

Uses httpx.AsyncClient with ASGITransport to test FastAPI endpoints
without starting a real server. Upstream APIs and the DB are mocked.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from urbassist.api.main import app
from urbassist.core.types import AddressResult, PluInfo, ProtectedArea
from urbassist.pipeline.regulations import default_regulations
from urbassist.retrieval.heritage import GENERAL_INFO

MONUMENT = ProtectedArea(type="ABF", name="Monument Historique: Cathédrale", severity="high", categorie="AC1")

EXTENSION = {
    "project_category": "extension",
    "length_m": 8,
    "width_m": 5,
    "height_m": 2.5,
    "existing_floor_area_m2": 110,
    "creates_enclosed_floor_area": True,
}


@pytest.fixture
def transport():
    return ASGITransport(app=app)


@pytest.fixture
async def client(transport):
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ---------------------------------------------------------------------------
# Health + errors
# ---------------------------------------------------------------------------

class TestHealth:
    async def test_health_returns_checks_structure(self):
        from urbassist.api.main import health

        mock_session = AsyncMock()
        mock_result = MagicMock()
        mock_result.scalar.return_value = None
        mock_session.execute.return_value = mock_result

        with (
            patch("urbassist.api.main.get_session", return_value=mock_session),
            patch("mlflow.search_experiments", return_value=[]),
        ):
            result = await health()

        assert result["status"] == "healthy"
        assert result["checks"]["database"] == "ok"
        assert result["checks"]["last_decision"] == "never"
        assert result["checks"]["mlflow"] == "ok"

    async def test_health_degraded_on_db_failure(self):
        from urbassist.api.main import health

        with patch("urbassist.api.main.get_session", side_effect=ConnectionError("refused")):
            result = await health()

        assert result["status"] == "degraded"
        assert "error" in result["checks"]["database"]


@pytest.mark.asyncio
async def test_unknown_route(client):
    resp = await client.get("/api/v1/nothing-here")
    assert resp.status_code == 404
    assert resp.json()["error_type"] == "not_found"


@pytest.mark.asyncio
async def test_correlation_id_echoed(client):
    resp = await client.get("/api/v1/construction-types", headers={"X-Request-ID": "req-123"})
    assert resp.headers["x-request-id"] == "req-123"


# ---------------------------------------------------------------------------
# Geodata
# ---------------------------------------------------------------------------

class TestAddressLookup:
    @pytest.mark.asyncio
    async def test_success(self, client):
        results = [AddressResult(label="12 Rue de France 06000 Nice", citycode="06088", lng=7.26, lat=43.69)]
        with patch("urbassist.api.routes.search_address", new_callable=AsyncMock, return_value=results):
            resp = await client.post("/api/v1/address/lookup", json={"address": "12 rue de France"})
        assert resp.status_code == 200
        assert resp.json()["results"][0]["citycode"] == "06088"

    @pytest.mark.asyncio
    async def test_upstream_failure(self, client):
        with patch("urbassist.api.routes.search_address", new_callable=AsyncMock,
                   side_effect=httpx.ConnectError("BAN down")):
            resp = await client.post("/api/v1/address/lookup", json={"address": "12 rue de France"})
        assert resp.status_code == 502
        assert resp.json()["error_type"] == "upstream_error"

    @pytest.mark.asyncio
    async def test_empty_address_rejected(self, client):
        resp = await client.post("/api/v1/address/lookup", json={"address": ""})
        assert resp.status_code == 422
        assert resp.json()["error_type"] == "validation_error"


class TestPluDetection:
    @pytest.mark.asyncio
    async def test_missing_coordinates(self, client):
        resp = await client.post("/api/v1/plu-detection", json={"citycode": "06088"})
        assert resp.status_code == 400
        assert resp.json() == {"detail": "Coordinates required", "error_type": "bad_request"}

    @pytest.mark.asyncio
    async def test_success(self, client):
        plu = PluInfo(
            zone_type="UB", zone_name="Zone urbaine mixte", commune_name="Nice", source="gpu",
            plu_status="opposable", regulations=default_regulations("UB"),
            zone_features=[{"properties": {"libelle": "UB"}}],
        )
        with patch("urbassist.api.routes.detect_plu", new_callable=AsyncMock, return_value=plu):
            resp = await client.post("/api/v1/plu-detection", json={"coordinates": [7.2622, 43.7102]})

        assert resp.status_code == 200
        data = resp.json()
        assert data["is_urban_zone"] is True
        assert data["dp_threshold"] == 40
        assert data["source"] == "gpu"
        assert data["plu"]["regulations"]["max_height_m"] == 12
        assert data["zone_features"] == [{"properties": {"libelle": "UB"}}]

    @pytest.mark.asyncio
    async def test_timeout(self, client):
        with patch("urbassist.api.routes.detect_plu", new_callable=AsyncMock, side_effect=asyncio.TimeoutError()):
            resp = await client.post("/api/v1/plu-detection", json={"coordinates": [7.2622, 43.7102]})
        assert resp.status_code == 504
        assert resp.json()["error_type"] == "timeout"


@pytest.mark.asyncio
async def test_protected_areas(client):
    with patch("urbassist.api.routes.detect_protected_areas", new_callable=AsyncMock,
               return_value=[MONUMENT, GENERAL_INFO]):
        resp = await client.post("/api/v1/protected-areas", json={"coordinates": [7.2756, 43.6975]})

    assert resp.status_code == 200
    data = resp.json()
    assert data["total_protections"] == 1
    assert data["has_high_severity"] is True
    assert data["requires_abf"] is True
    assert data["critical_items"][0]["area"]["type"] == "ABF"
    assert data["heritage_summary"] == {"in_heritage_zone": True, "requires_abf": True, "heritage_types": ["ABF"]}


# ---------------------------------------------------------------------------
# Determination / calculator / decision
# ---------------------------------------------------------------------------

class TestDetermination:
    @pytest.mark.asyncio
    async def test_urban_flag_derived_from_zone(self, client):
        resp = await client.post("/api/v1/determination", json={**EXTENSION, "zone_label": "UB"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["kind"] == "DP"
        assert data["rule"] == "extension_urban"
        assert data["total_floor_area_after"] == 150

    @pytest.mark.asyncio
    async def test_explicit_flag_wins(self, client):
        resp = await client.post("/api/v1/determination", json={
            **EXTENSION, "zone_label": "UB", "is_urban_zone": False, "existing_floor_area_m2": 0, "length_m": 10,
        })
        assert resp.json()["rule"] == "extension_non_urban_large"

    @pytest.mark.asyncio
    async def test_unknown_category(self, client):
        resp = await client.post("/api/v1/determination", json={**EXTENSION, "project_category": "castle"})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_negative_dimension(self, client):
        resp = await client.post("/api/v1/determination", json={**EXTENSION, "length_m": -3})
        assert resp.status_code == 422


class TestCalculate:
    @pytest.mark.asyncio
    async def test_floor_area_estimated_from_levels(self, client):
        resp = await client.post("/api/v1/calculate", json={
            "project_type": "new_construction", "ground_area_m2": 110, "levels": 2,
        })
        assert resp.status_code == 200
        data = resp.json()
        assert data["floor_area_created"] == 192.0
        assert data["determination"] == "ARCHITECT_REQUIRED"

    @pytest.mark.asyncio
    async def test_known_floor_area(self, client):
        resp = await client.post("/api/v1/calculate", json={
            "project_type": "existing_extension", "floor_area_created": 30, "existing_floor_area": 90,
        })
        assert resp.json()["determination"] == "DP"

    @pytest.mark.asyncio
    async def test_missing_areas(self, client):
        resp = await client.post("/api/v1/calculate", json={"project_type": "new_construction"})
        assert resp.status_code == 400
        assert resp.json()["error_type"] == "bad_request"


class TestDecision:
    @pytest.mark.asyncio
    async def test_decision_persisted(self, client):
        with patch("urbassist.pipeline.decision.detect_plu", new_callable=AsyncMock,
                   return_value=PluInfo(zone_type="UB", source="gpu")), \
             patch("urbassist.pipeline.decision.detect_protected_areas", new_callable=AsyncMock,
                   return_value=[MONUMENT, GENERAL_INFO]), \
             patch("urbassist.api.routes.save_decision", new_callable=AsyncMock) as mock_save:
            resp = await client.post("/api/v1/decision", json={
                "project": {**EXTENSION, "is_urban_zone": False},
                "coordinates": [7.2622, 43.7102],
                "citycode": "06088",
                "project_id": "proj-42",
            })

        assert resp.status_code == 200
        data = resp.json()
        assert data["is_urban_zone"] is True
        assert data["determination"]["kind"] == "DP"
        assert data["requires_dpc11"] is True
        assert data["timeline_adjustment_months"] == 1
        assert data["documents"][-1]["code"] == "DPC 11"
        mock_save.assert_awaited_once()
        assert mock_save.call_args.args[0] == "proj-42"

    @pytest.mark.asyncio
    async def test_without_location(self, client):
        with patch("urbassist.api.routes.save_decision", new_callable=AsyncMock) as mock_save:
            resp = await client.post("/api/v1/decision", json={"project": EXTENSION})

        data = resp.json()
        assert data["plu_source"] == "fallback"
        assert data["dp_threshold"] == 20
        mock_save.assert_not_called()


# ---------------------------------------------------------------------------
# Compliance + reference tables
# ---------------------------------------------------------------------------

class TestCompliance:
    @pytest.mark.asyncio
    async def test_zone_defaults(self, client):
        with patch("urbassist.api.routes.save_compliance_run", new_callable=AsyncMock) as mock_save:
            resp = await client.post("/api/v1/compliance", json={
                "elements": [{"name": "House", "width": 10, "depth": 21, "height_m": 6}],
                "zone_code": "UB",
                "parcel_area_m2": 500,
                "project_id": "proj-42",
            })

        assert resp.status_code == 200
        data = resp.json()
        assert data["checks"][0]["rule"] == "Coverage Ratio (CES)"
        assert data["checks"][0]["status"] == "violation"
        assert data["summary"]["is_compliant"] is False
        mock_save.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_explicit_regulations(self, client):
        resp = await client.post("/api/v1/compliance", json={
            "elements": [{"name": "House", "width": 10, "depth": 10, "height_m": 6}],
            "regulations": {"max_height_m": 5, "max_coverage_ratio": 0.6},
            "parcel_area_m2": 500,
        })
        checks = resp.json()["checks"]
        height = next(c for c in checks if c["rule"] == "Maximum Height")
        assert height["status"] == "violation"

    @pytest.mark.asyncio
    async def test_no_elements(self, client):
        resp = await client.post("/api/v1/compliance", json={"elements": []})
        data = resp.json()
        assert data["summary"]["total"] == 1
        assert data["checks"][0]["rule"] == "No elements"


@pytest.mark.asyncio
async def test_construction_types(client):
    resp = await client.get("/api/v1/construction-types")
    types = {t["key"]: t for t in resp.json()}
    assert set(types) == {"main_house", "extension", "shed", "carport", "pool", "annex"}
    assert types["pool"]["count_in_ces"] is False
    assert types["shed"]["setbacks"]["side"] == 0


class TestDocuments:
    @pytest.mark.asyncio
    async def test_pc_existing_structure(self, client):
        resp = await client.get("/api/v1/documents", params={"kind": "pc", "existing_structure": "true"})
        data = resp.json()
        codes = [d["code"] for d in data["documents"]]
        assert data["kind"] == "PC"
        assert "PC 5a" in codes
        assert len(data["notes"]) == 2

    @pytest.mark.asyncio
    async def test_dp_heritage(self, client):
        resp = await client.get("/api/v1/documents", params={"kind": "DP", "has_abf": "true"})
        data = resp.json()
        assert data["documents"][-1]["code"] == "DPC 11"
        assert data["notes"] == []

    @pytest.mark.asyncio
    async def test_unknown_kind(self, client):
        resp = await client.get("/api/v1/documents", params={"kind": "XX"})
        assert resp.status_code == 422


# ---------------------------------------------------------------------------
# Dossiers
# ---------------------------------------------------------------------------

class TestDossiers:
    @pytest.mark.asyncio
    async def test_flow_with_invalidation(self, client):
        dossier = (await client.post("/api/v1/dossiers")).json()
        base = f"/api/v1/dossiers/{dossier['id']}"

        resp = await client.put(f"{base}/address", json={
            "address": "12 rue de France, Nice", "coordinates": [7.2622, 43.7102], "citycode": "06088",
        })
        assert resp.json()["coordinates"] == [7.2622, 43.7102]

        await client.put(f"{base}/parcel", json={"id": "06088000AB0123", "area_m2": 520})
        resp = await client.put(f"{base}/regulatory", json={"has_plu": True, "zone_code": "UB", "dp_threshold": 40})
        assert resp.json()["regulatory"]["zone_code"] == "UB"

        resp = await client.put(f"{base}/parcel", json={"id": "06088000AB0124"})
        data = resp.json()
        assert data["cleared"] == ["regulatory"]
        assert data["regulatory"] is None
        assert data["address"] == "12 rue de France, Nice"

        resp = await client.get(base)
        assert resp.json()["parcel"]["id"] == "06088000AB0124"

    @pytest.mark.asyncio
    async def test_store_decision(self, client):
        dossier_id = (await client.post("/api/v1/dossiers")).json()["id"]
        with patch("urbassist.api.routes.save_decision", new_callable=AsyncMock):
            package = (await client.post("/api/v1/decision", json={"project": EXTENSION})).json()
        resp = await client.put(f"/api/v1/dossiers/{dossier_id}/decision", json=package)
        assert resp.status_code == 200
        assert resp.json()["decision"]["determination"]["kind"] == "DP"

    @pytest.mark.asyncio
    async def test_reset_and_delete(self, client):
        dossier_id = (await client.post("/api/v1/dossiers")).json()["id"]
        base = f"/api/v1/dossiers/{dossier_id}"
        await client.put(f"{base}/address", json={"address": "1 place Masséna, Nice"})

        assert (await client.post(f"{base}/reset")).json()["address"] is None
        assert (await client.delete(base)).json() == {"status": "deleted", "id": dossier_id}
        resp = await client.get(base)
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Dossier not found"
