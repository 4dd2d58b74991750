"""Tests for GPU zone detection and RNU handling."""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

import httpx

from urbassist.core.types import PluInfo
from urbassist.retrieval.gpu import (
    detect_plu,
    municipality_document,
    pick_best_zone_feature,
    plu_type_from_document,
    zoning_flags,
)


def _mock_response(payload, status: int = 200) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = payload
    resp.raise_for_status = MagicMock()
    if status >= 400:
        resp.raise_for_status.side_effect = httpx.HTTPStatusError(
            str(status), request=MagicMock(), response=MagicMock(status_code=status),
        )
    return resp


def _mock_client(get) -> AsyncMock:
    client = AsyncMock()
    client.get.side_effect = get
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    return client


ZONE_FEATURES = [
    {"properties": {"libelle": "U", "typezone": "U"}},
    {"properties": {
        "libelle": "UB",
        "typezone": "U",
        "libelong": "Zone urbaine mixte",
        "idurba": "06088_PLU_20191025",
    }},
]


class TestPickBestZoneFeature:
    def test_prefers_specific_code(self):
        assert pick_best_zone_feature(ZONE_FEATURES)["properties"]["libelle"] == "UB"

    def test_broad_only(self):
        features = [{"properties": {"libelle": "N"}}]
        assert pick_best_zone_feature(features) is features[0]

    def test_no_libelle(self):
        features = [{"properties": {"typezone": "U"}}]
        assert pick_best_zone_feature(features) is features[0]

    def test_empty(self):
        assert pick_best_zone_feature([]) is None


class TestPluType:
    @pytest.mark.parametrize("raw, expected", [
        ("PLUi", "PLUi"), ("plui-h", "PLUi"), ("PLU", "PLU"), ("CC", "CC"), ("POS", "POS"),
        ("RNU", "RNU"), (None, None), ("PSMV", "PSMV"),
    ])
    def test_mapping(self, raw, expected):
        assert plu_type_from_document(raw) == expected


class TestZoningFlags:
    def test_urban_zone(self):
        assert zoning_flags(PluInfo(zone_type="UB")) == (True, 40)

    def test_au_zone(self):
        assert zoning_flags(PluInfo(zone_type="AUD")) == (True, 40)

    def test_natural_zone(self):
        assert zoning_flags(PluInfo(zone_type="N")) == (False, 20)

    def test_rnu_is_never_urban(self):
        assert zoning_flags(PluInfo(zone_type="UB", is_rnu=True)) == (False, 20)


class TestMunicipalityDocument:
    @pytest.mark.asyncio
    async def test_plu_commune(self):
        client = _mock_client(lambda *a, **kw: _mock_response({"features": [
            {"properties": {"nom": "Lyon", "du_type": "PLUi", "etat": "opposable"}},
        ]}))
        doc = await municipality_document("69123", client=client)
        assert doc["has_plu"] is True
        assert doc["plu_type"] == "PLUi"
        assert doc["is_rnu"] is False
        assert doc["commune_name"] == "Lyon"

    @pytest.mark.asyncio
    async def test_explicit_rnu_flag(self):
        client = _mock_client(lambda *a, **kw: _mock_response({"features": [
            {"properties": {"nom": "Petitville", "is_rnu": "oui"}},
        ]}))
        doc = await municipality_document("01001", client=client)
        assert doc["is_rnu"] is True
        assert doc["has_plu"] is False

    @pytest.mark.asyncio
    async def test_no_record_means_rnu(self):
        client = _mock_client(lambda *a, **kw: _mock_response({"features": []}))
        assert (await municipality_document("01001", client=client))["is_rnu"] is True

    @pytest.mark.asyncio
    async def test_failure_is_not_rnu(self):
        client = _mock_client(lambda *a, **kw: _mock_response({}, status=502))
        doc = await municipality_document("01001", client=client)
        assert doc["is_rnu"] is False
        assert doc["features"] == []


class TestDetectPlu:
    @pytest.mark.asyncio
    async def test_zone_from_gpu(self):
        def get(url, **kwargs):
            if "zone-urba" in url:
                return _mock_response({"features": ZONE_FEATURES})
            if url.endswith("/document"):
                return _mock_response({"features": [{"properties": {"etat": "opposable", "typedoc": "PLU"}}]})
            raise AssertionError(f"unexpected URL {url}")

        client = _mock_client(get)
        with patch("urbassist.retrieval.gpu.httpx.AsyncClient", return_value=client), \
             patch("urbassist.retrieval.gpu.geoapi.resolve_commune", new_callable=AsyncMock,
                   return_value={"code": "06088", "nom": "Nice"}):
            plu = await detect_plu(7.2622, 43.7102, "06088")

        assert plu.zone_type == "UB"
        assert plu.zone_name == "Zone urbaine mixte"
        assert plu.plu_type == "PLU"
        assert plu.plu_status == "opposable"
        assert plu.source == "gpu"
        assert plu.commune_name == "Nice"
        assert plu.pdf_url.endswith("/document/commune/06088")
        assert plu.regulations.max_height_m == 12
        assert plu.is_rnu is False
        assert len(plu.zone_features) == 2

    @pytest.mark.asyncio
    async def test_falls_through_failed_zone_endpoints(self):
        calls = []

        def get(url, **kwargs):
            calls.append(url)
            if "feature-info" in url:
                return _mock_response({"features": [{"properties": {"libelle": "UA"}}]})
            if "zone-urba" in url:
                return _mock_response({}, status=500)
            return _mock_response({}, status=404)

        client = _mock_client(get)
        with patch("urbassist.retrieval.gpu.httpx.AsyncClient", return_value=client), \
             patch("urbassist.retrieval.gpu.geoapi.resolve_commune", new_callable=AsyncMock, return_value=None):
            plu = await detect_plu(4.8357, 45.7640)

        assert plu.zone_type == "UA"
        assert plu.source == "estimated"
        assert sum("apicarto" in u and "zone-urba" in u for u in calls) == 0

    @pytest.mark.asyncio
    async def test_rnu_commune_estimated_from_density(self):
        client = _mock_client(lambda url, **kw: _mock_response({}, status=404))
        with patch("urbassist.retrieval.gpu.httpx.AsyncClient", return_value=client), \
             patch("urbassist.retrieval.gpu.geoapi.resolve_commune", new_callable=AsyncMock,
                   return_value={"code": "01001", "nom": "Petitville"}), \
             patch("urbassist.retrieval.gpu.municipality_document", new_callable=AsyncMock,
                   return_value={"is_rnu": True, "features": [{"properties": {"is_rnu": True}}]}), \
             patch("urbassist.retrieval.gpu.geoapi.commune_info", new_callable=AsyncMock,
                   return_value={"nom": "Petitville", "population": 200, "surface": 1000}):
            plu = await detect_plu(5.0, 46.0)

        assert plu.is_rnu is True
        assert plu.plu_type == "RNU"
        assert plu.rnu_warning
        assert plu.zone_type == "A/N"
        assert plu.regulations.max_height_m == 7
        assert zoning_flags(plu) == (False, 20)

    @pytest.mark.asyncio
    async def test_no_data_defaults_to_ub(self):
        client = _mock_client(lambda url, **kw: _mock_response({}, status=404))
        with patch("urbassist.retrieval.gpu.httpx.AsyncClient", return_value=client), \
             patch("urbassist.retrieval.gpu.geoapi.resolve_commune", new_callable=AsyncMock, return_value=None):
            plu = await detect_plu(5.0, 46.0)

        assert plu.zone_type == "UB"
        assert plu.zone_name == "Zone Urbaine (estimated)"
        assert plu.source == "estimated"

    @pytest.mark.asyncio
    async def test_gemini_suggestions_merged(self):
        client = _mock_client(lambda url, **kw: _mock_response({"features": ZONE_FEATURES}))
        with patch("urbassist.retrieval.gpu.httpx.AsyncClient", return_value=client), \
             patch("urbassist.retrieval.gpu.geoapi.resolve_commune", new_callable=AsyncMock, return_value=None), \
             patch("urbassist.retrieval.gpu.settings.gemini_api_key", "test-key"), \
             patch("urbassist.retrieval.gpu.suggest_regulations", new_callable=AsyncMock,
                   return_value={"maxHeight": 9}) as mock_suggest:
            plu = await detect_plu(7.2622, 43.7102, "06088", address="12 rue de France, Nice")

        mock_suggest.assert_awaited_once()
        assert plu.regulations.max_height_m == 9.0
