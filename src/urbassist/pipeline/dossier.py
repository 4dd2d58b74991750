"""Dossier state: address → parcel → regulatory / heritage → decision.

Every derived field is cleared in the same update that changes one of its
inputs, so a result computed for a previous parcel can never be read back
against a new one.
"""

import logging
from dataclasses import dataclass, field

from urbassist.core.types import (
    DecisionPackage,
    HeritageInfo,
    ParcelSelection,
    RegulatoryInfo,
)

logger = logging.getLogger(__name__)

# field → fields derived from it (transitively closed)
DEPENDENTS: dict[str, tuple[str, ...]] = {
    "address": ("parcel", "regulatory", "heritage", "decision"),
    "parcel": ("regulatory", "heritage", "decision"),
    "regulatory": ("decision",),
    "heritage": ("decision",),
    "decision": (),
}


@dataclass
class Dossier:
    address: str | None = None
    coordinates: tuple[float, float] | None = None   # (lng, lat)
    municipality: str | None = None
    citycode: str | None = None
    departement: str | None = None
    parcel: ParcelSelection | None = None
    regulatory: RegulatoryInfo | None = None
    heritage: HeritageInfo | None = None
    decision: DecisionPackage | None = None
    loading: dict[str, bool] = field(default_factory=lambda: {
        "address": False, "parcel": False, "regulatory": False, "heritage": False, "decision": False,
    })

    def _invalidate(self, source: str) -> list[str]:
        cleared = [name for name in DEPENDENTS[source] if getattr(self, name) is not None]
        for name in DEPENDENTS[source]:
            setattr(self, name, None)
        if cleared:
            logger.debug("Dossier %s changed, cleared %s", source, ", ".join(cleared),
                         extra={"step": "dossier"})
        return cleared

    def set_address(
        self,
        address: str,
        coordinates: tuple[float, float] | None,
        municipality: str | None = None,
        citycode: str | None = None,
        departement: str | None = None,
    ) -> list[str]:
        """Set the address; clears the parcel and everything derived. Returns cleared fields."""
        self.address = address
        self.coordinates = coordinates
        self.municipality = municipality
        self.citycode = citycode
        self.departement = departement
        return self._invalidate("address")

    def select_parcel(self, parcel: ParcelSelection) -> list[str]:
        """Select a parcel; clears regulatory, heritage and decision."""
        self.parcel = parcel
        return self._invalidate("parcel")

    def set_regulatory(self, regulatory: RegulatoryInfo) -> list[str]:
        self.regulatory = regulatory
        return self._invalidate("regulatory")

    def set_heritage(self, heritage: HeritageInfo) -> list[str]:
        self.heritage = heritage
        return self._invalidate("heritage")

    def set_decision(self, decision: DecisionPackage) -> list[str]:
        self.decision = decision
        return self._invalidate("decision")

    def set_loading(self, key: str, value: bool) -> None:
        if key not in self.loading:
            raise ValueError(f"Unknown loading key: {key!r}")
        self.loading[key] = value

    def reset_all(self) -> None:
        """Start over: every field back to empty."""
        self.address = None
        self.coordinates = None
        self.municipality = None
        self.citycode = None
        self.departement = None
        self.parcel = None
        self.regulatory = None
        self.heritage = None
        self.decision = None
        self.loading = {key: False for key in self.loading}
