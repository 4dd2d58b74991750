"""Thin MLflow tracing layer.

Tracing must never break a permit decision: run-level logging calls are
wrapped so a tracking-server outage only costs a debug log line.

Usage:

    from urbassist.observability.tracing import trace, start_span, start_run

    @trace(name="detect_plu", span_type="TOOL")
    async def detect_plu(...): ...

    with start_span("gpu_zone_query") as span:
        span.set_inputs({...})
"""

import logging
from contextlib import contextmanager

import mlflow

logger = logging.getLogger(__name__)


def trace(name: str | None = None, **kwargs):
    """Decorator: wraps a sync or async function in an MLflow trace."""
    return mlflow.trace(name=name, **kwargs) if name else mlflow.trace(**kwargs)


@contextmanager
def start_span(name: str = "span", **kwargs):
    """Context manager: MLflow span around a unit of work."""
    with mlflow.start_span(name=name, **kwargs) as span:
        yield span


@contextmanager
def start_run(**kwargs):
    """Context manager: MLflow run (used by the CLI lookup)."""
    with mlflow.start_run(**kwargs) as run:
        yield run


def log_params(params: dict) -> None:
    try:
        mlflow.log_params(params)
    except Exception as e:
        logger.debug("MLflow log_params skipped: %s", e)


def log_metrics(metrics: dict, step: int | None = None) -> None:
    try:
        mlflow.log_metrics(metrics, step=step)
    except Exception as e:
        logger.debug("MLflow log_metrics skipped: %s", e)


def log_text(text: str, artifact_file: str) -> None:
    try:
        mlflow.log_text(text, artifact_file)
    except Exception as e:
        logger.debug("MLflow log_text skipped: %s", e)


def set_tag(key: str, value: str) -> None:
    try:
        mlflow.set_tag(key, value)
    except Exception as e:
        logger.debug("MLflow set_tag skipped: %s", e)


def init_tracking(uri: str, experiment: str) -> None:
    """Point MLflow at the tracking server and experiment, with async logging on.

    Raises whatever MLflow raises; callers decide whether tracing is optional.
    """
    mlflow.set_tracking_uri(uri)
    mlflow.set_experiment(experiment)
    mlflow.config.enable_async_logging()
