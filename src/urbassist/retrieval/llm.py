"""Gemini client: suggests zone regulations when the PLU text is unavailable.

Optional. Without GEMINI_API_KEY every call returns None and the default
regulation table stands. Uses the native generateContent endpoint.
"""

import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass, field

import httpx

from urbassist.config import settings
from urbassist.observability.prompts import render_prompt
from urbassist.observability.tracing import log_metrics, start_span, trace

logger = logging.getLogger(__name__)

# Short connect, long read: generation dominates the latency
LLM_TIMEOUT = httpx.Timeout(connect=10.0, read=60.0, write=10.0, pool=5.0)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"

MAX_RETRIES = 2
BASE_DELAY = 1.0

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


@dataclass
class CircuitBreaker:
    """Skips Gemini for ``reset_seconds`` after ``failure_threshold`` consecutive failures.

    closed → open on the threshold; open → half_open once the reset delay
    has passed, letting one call through; any success closes it again.
    """

    failure_threshold: int = 5
    reset_seconds: int = 60
    _failure_count: int = field(default=0, repr=False)
    _opened_at: float | None = field(default=None, repr=False)

    @property
    def state(self) -> str:
        if self._opened_at is None:
            return "closed"
        if time.monotonic() - self._opened_at >= self.reset_seconds:
            return "half_open"
        return "open"

    def allow_request(self) -> bool:
        return self.state != "open"

    def record_success(self) -> None:
        self._failure_count = 0
        self._opened_at = None

    def record_failure(self) -> None:
        self._failure_count += 1
        if self._failure_count >= self.failure_threshold:
            self._opened_at = time.monotonic()
            logger.warning("Gemini disabled for %ds after %d failures", self.reset_seconds, self._failure_count)


_breaker = CircuitBreaker()


def extract_json_object(text: str) -> dict | None:
    """First {...} block of a model answer, parsed; None if absent or invalid."""
    match = _JSON_OBJECT_RE.search(text or "")
    if not match:
        return None
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _failure_reason(exc: httpx.HTTPError) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        return f"http_{exc.response.status_code}"
    if isinstance(exc, httpx.TimeoutException):
        return "timeout"
    return type(exc).__name__


def _is_retryable(exc: httpx.HTTPError) -> bool:
    """Rate limits, server errors and timeouts; client errors are final."""
    if isinstance(exc, httpx.TimeoutException):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return False


def _record_usage(span, data: dict, text: str, attempt: int) -> None:
    usage = data.get("usageMetadata", {})
    prompt_tokens = usage.get("promptTokenCount", 0)
    completion_tokens = usage.get("candidatesTokenCount", 0)
    span.set_outputs({
        "chars": len(text),
        "retries": attempt,
        "prompt_tokens": prompt_tokens,
        "completion_tokens": completion_tokens,
    })
    if prompt_tokens or completion_tokens:
        log_metrics({
            "gemini_prompt_tokens": float(prompt_tokens),
            "gemini_completion_tokens": float(completion_tokens),
        })


async def _generate(client: httpx.AsyncClient, prompt: str) -> str | None:
    """generateContent with exponential backoff on retryable errors. The answer text, or None."""
    url = f"{GEMINI_BASE_URL}/{settings.gemini_model}:generateContent"
    payload = {
        "contents": [{"parts": [{"text": prompt}]}],
        "generationConfig": {"temperature": 0.2, "maxOutputTokens": 1024},
    }

    with start_span(name="llm_provider_gemini", span_type="CHAT_MODEL") as span:
        span.set_inputs({"model": settings.gemini_model, "prompt_chars": len(prompt)})

        for attempt in range(MAX_RETRIES + 1):
            try:
                resp = await client.post(url, params={"key": settings.gemini_api_key}, json=payload)
                resp.raise_for_status()
                data = resp.json()
                text = data["candidates"][0]["content"]["parts"][0]["text"]
            except httpx.HTTPError as e:
                reason = _failure_reason(e)
                if _is_retryable(e) and attempt < MAX_RETRIES:
                    delay = BASE_DELAY * (2 ** attempt)
                    logger.warning("Gemini %s (attempt %d/%d), retrying in %.1fs",
                                   reason, attempt + 1, MAX_RETRIES + 1, delay)
                    await asyncio.sleep(delay)
                    continue
                logger.error("Gemini call failed: %s", reason)
            except (KeyError, IndexError, TypeError, ValueError) as e:
                reason = "parse_error"
                logger.error("Unexpected Gemini response structure: %s", e)
            else:
                _record_usage(span, data, text, attempt)
                _breaker.record_success()
                return text

            span.set_outputs({"error": reason, "retries": attempt})
            _breaker.record_failure()
            return None
    return None


@trace(name="suggest_regulations", span_type="CHAT_MODEL")
async def suggest_regulations(zone_type: str, zone_name: str, commune_name: str) -> dict | None:
    """Ask Gemini for typical regulations of a zone.

    Returns the parsed JSON object (camelCase keys as in the prompt), or
    None when Gemini is not configured, unavailable, or answers off-format.
    """
    if not settings.gemini_api_key:
        return None
    if not _breaker.allow_request():
        logger.info("Gemini circuit open, using default regulations")
        return None

    prompt = render_prompt(
        "zone_regulations",
        zone_type=zone_type or "",
        zone_name=zone_name or "",
        commune_name=commune_name or "",
    )
    async with httpx.AsyncClient(timeout=LLM_TIMEOUT) as client:
        text = await _generate(client, prompt)

    if text is None:
        return None
    suggested = extract_json_object(text)
    if suggested is None:
        logger.warning("Gemini answer had no JSON object for zone %s", zone_type, extra={"zone": zone_type})
    return suggested
