"""Core domain types shared across all urbassist modules."""

from urbassist.core.types import (
    AuthorizationDocument,
    BuildingElement,
    ComplianceCheck,
    ComplianceReport,
    DecisionPackage,
    Determination,
    DeterminationInput,
    HeritageSummary,
    PluInfo,
    ProtectedArea,
    ZoneRegulations,
)

__all__ = [
    "AuthorizationDocument",
    "BuildingElement",
    "ComplianceCheck",
    "ComplianceReport",
    "DecisionPackage",
    "Determination",
    "DeterminationInput",
    "HeritageSummary",
    "PluInfo",
    "ProtectedArea",
    "ZoneRegulations",
]
