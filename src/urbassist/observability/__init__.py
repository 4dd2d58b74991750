"""Logging, MLflow tracking and the Gemini prompt registry."""

from urbassist.observability.logging import setup_logging, timed_step
from urbassist.observability.prompts import render_prompt
from urbassist.observability.tracing import init_tracking

__all__ = ["init_tracking", "render_prompt", "setup_logging", "timed_step"]
