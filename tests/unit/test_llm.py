"""Tests for the Gemini regulation suggester."""

import json

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

import httpx

from urbassist.retrieval.llm import CircuitBreaker, extract_json_object, suggest_regulations


def _gemini_response(text: str, status: int = 200) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.text = text
    resp.json.return_value = {
        "candidates": [{"content": {"parts": [{"text": text}]}}],
        "usageMetadata": {"promptTokenCount": 120, "candidatesTokenCount": 80},
    }
    resp.raise_for_status = MagicMock()
    if status >= 400:
        resp.raise_for_status.side_effect = httpx.HTTPStatusError(
            str(status), request=MagicMock(), response=resp,
        )
    return resp


def _mock_client(*responses) -> AsyncMock:
    client = AsyncMock()
    client.post.side_effect = list(responses)
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    return client


SUGGESTION = {"maxHeight": 9, "setbacks": {"front": 5, "side": 3, "rear": 4}, "maxCoverageRatio": 0.4}


class TestExtractJsonObject:
    def test_plain(self):
        assert extract_json_object('{"maxHeight": 9}') == {"maxHeight": 9}

    def test_fenced(self):
        assert extract_json_object('```json\n{"maxHeight": 9}\n```') == {"maxHeight": 9}

    def test_surrounding_prose(self):
        assert extract_json_object('Voici les règles : {"maxHeight": 12} bonne journée') == {"maxHeight": 12}

    def test_invalid(self):
        assert extract_json_object("{not json}") is None
        assert extract_json_object("no object here") is None
        assert extract_json_object("") is None


class TestCircuitBreaker:
    def test_opens_after_threshold(self):
        breaker = CircuitBreaker(failure_threshold=2)
        breaker.record_failure()
        assert breaker.allow_request() is True
        breaker.record_failure()
        assert breaker.state == "open"
        assert breaker.allow_request() is False

    def test_half_open_after_reset(self):
        breaker = CircuitBreaker(failure_threshold=1, reset_seconds=0)
        breaker.record_failure()
        assert breaker.state == "half_open"

    def test_success_closes(self):
        breaker = CircuitBreaker(failure_threshold=1)
        breaker.record_failure()
        breaker.record_success()
        assert breaker.state == "closed"


class TestSuggestRegulations:
    @pytest.mark.asyncio
    async def test_no_api_key(self):
        with patch("urbassist.retrieval.llm.settings") as mock_settings:
            mock_settings.gemini_api_key = ""
            assert await suggest_regulations("UB", "Zone urbaine", "Nice") is None

    @pytest.mark.asyncio
    async def test_success(self):
        client = _mock_client(_gemini_response(f"```json\n{json.dumps(SUGGESTION)}\n```"))
        with patch("urbassist.retrieval.llm.httpx.AsyncClient", return_value=client), \
             patch("urbassist.retrieval.llm.settings") as mock_settings, \
             patch("urbassist.retrieval.llm._breaker", CircuitBreaker()), \
             patch("urbassist.retrieval.llm.log_metrics") as mock_metrics:
            mock_settings.gemini_api_key = "test-key"
            mock_settings.gemini_model = "gemini-2.5-flash"
            result = await suggest_regulations("UB", "Zone urbaine mixte", "Nice")

        assert result == SUGGESTION
        url = client.post.call_args.args[0]
        assert url.endswith("/gemini-2.5-flash:generateContent")
        assert client.post.call_args.kwargs["params"] == {"key": "test-key"}
        prompt = client.post.call_args.kwargs["json"]["contents"][0]["parts"][0]["text"]
        assert "zone UB (Zone urbaine mixte) in Nice" in prompt
        mock_metrics.assert_called_once()

    @pytest.mark.asyncio
    async def test_retry_on_server_error(self):
        client = _mock_client(_gemini_response("overloaded", status=503), _gemini_response('{"maxHeight": 9}'))
        with patch("urbassist.retrieval.llm.httpx.AsyncClient", return_value=client), \
             patch("urbassist.retrieval.llm.settings") as mock_settings, \
             patch("urbassist.retrieval.llm._breaker", CircuitBreaker()), \
             patch("urbassist.retrieval.llm.asyncio.sleep", new_callable=AsyncMock) as mock_sleep, \
             patch("urbassist.retrieval.llm.log_metrics"):
            mock_settings.gemini_api_key = "test-key"
            result = await suggest_regulations("UB", "", "Nice")

        assert result == {"maxHeight": 9}
        assert client.post.call_count == 2
        mock_sleep.assert_awaited_once_with(1.0)

    @pytest.mark.asyncio
    async def test_client_error_records_failure(self):
        breaker = CircuitBreaker()
        client = _mock_client(_gemini_response("bad request", status=400))
        with patch("urbassist.retrieval.llm.httpx.AsyncClient", return_value=client), \
             patch("urbassist.retrieval.llm.settings") as mock_settings, \
             patch("urbassist.retrieval.llm._breaker", breaker):
            mock_settings.gemini_api_key = "test-key"
            result = await suggest_regulations("UB", "", "Nice")

        assert result is None
        assert client.post.call_count == 1
        assert breaker._failure_count == 1

    @pytest.mark.asyncio
    async def test_non_json_body_records_failure(self):
        breaker = CircuitBreaker()
        resp = _gemini_response("<html>Service Unavailable</html>")
        resp.json.side_effect = json.JSONDecodeError("Expecting value", "<html>", 0)
        client = _mock_client(resp)
        with patch("urbassist.retrieval.llm.httpx.AsyncClient", return_value=client), \
             patch("urbassist.retrieval.llm.settings") as mock_settings, \
             patch("urbassist.retrieval.llm._breaker", breaker):
            mock_settings.gemini_api_key = "test-key"
            result = await suggest_regulations("UB", "", "Nice")

        assert result is None
        assert client.post.call_count == 1
        assert breaker._failure_count == 1

    @pytest.mark.asyncio
    async def test_off_format_answer(self):
        client = _mock_client(_gemini_response("Je ne sais pas."))
        with patch("urbassist.retrieval.llm.httpx.AsyncClient", return_value=client), \
             patch("urbassist.retrieval.llm.settings") as mock_settings, \
             patch("urbassist.retrieval.llm._breaker", CircuitBreaker()), \
             patch("urbassist.retrieval.llm.log_metrics"):
            mock_settings.gemini_api_key = "test-key"
            assert await suggest_regulations("N", "", "Nice") is None

    @pytest.mark.asyncio
    async def test_open_breaker_skips_call(self):
        breaker = CircuitBreaker(failure_threshold=1)
        breaker.record_failure()
        with patch("urbassist.retrieval.llm.httpx.AsyncClient") as mock_client_cls, \
             patch("urbassist.retrieval.llm.settings") as mock_settings, \
             patch("urbassist.retrieval.llm._breaker", breaker):
            mock_settings.gemini_api_key = "test-key"
            assert await suggest_regulations("UB", "", "Nice") is None

        mock_client_cls.assert_not_called()
