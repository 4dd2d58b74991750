"""Async Postgres access for decisions and compliance runs.

The engine is created on first use so importing the API never needs a
database. Writes are best effort: a permit answer is returned even when
it could not be stored.
"""

import logging
import ssl
from dataclasses import asdict

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from urbassist.config import settings
from urbassist.core.types import ComplianceReport, DecisionPackage
from urbassist.storage.models import Base, ComplianceRun, DecisionRecord

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 10  # seconds, asyncpg

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        connect_args: dict = {"timeout": CONNECT_TIMEOUT}
        if settings.database_require_ssl:
            connect_args["ssl"] = ssl.create_default_context()
        _engine = create_async_engine(
            settings.database_url,
            echo=False,
            pool_pre_ping=True,
            pool_recycle=300,
            connect_args=connect_args,
        )
    return _engine


async def init_db() -> None:
    """Create the decision_records and compliance_runs tables when missing."""
    async with _get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ready")


async def get_session() -> AsyncSession:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(_get_engine(), expire_on_commit=False)
    return _session_factory()


async def _persist(row: Base, what: str, **log_fields) -> bool:
    try:
        session = await get_session()
        async with session:
            session.add(row)
            await session.commit()
    except Exception as e:
        logger.warning("%s not persisted: %s", what, e, extra={"step": "persist", **log_fields})
        return False
    return True


async def save_decision(project_id: str, citycode: str | None, package: DecisionPackage,
                        project_category: str | None = None) -> bool:
    """Store a decision package. Returns False (and logs) when the database is unavailable."""
    det = package.determination
    record = DecisionRecord(
        project_id=project_id,
        project_category=project_category,
        determination=det.kind,
        rule=det.rule,
        zone_code=package.zone_code,
        citycode=citycode,
        is_urban_zone=package.is_urban_zone,
        dp_threshold=package.dp_threshold,
        is_rnu=package.is_rnu,
        requires_dpc11=package.requires_dpc11,
        created_floor_area=det.created_floor_area,
        total_floor_area_after=det.total_floor_area_after,
        detail=det.detail,
        payload=asdict(package),
    )
    return await _persist(record, f"Decision for project {project_id}",
                          citycode=citycode, determination=det.kind)


async def save_compliance_run(project_id: str, zone_code: str | None, parcel_area_m2: float | None,
                              report: ComplianceReport) -> bool:
    run = ComplianceRun(
        project_id=project_id,
        zone_code=zone_code,
        parcel_area_m2=parcel_area_m2,
        total=report.total,
        violations=report.violations,
        warnings=report.warnings,
        is_compliant=report.is_compliant,
        checks=[asdict(c) for c in report.checks],
    )
    return await _persist(run, f"Compliance run for project {project_id}", zone=zone_code)
