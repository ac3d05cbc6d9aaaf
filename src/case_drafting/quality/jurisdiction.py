"""Resolution of the court a petition must be addressed to."""

import logging
import re
from typing import Dict, Optional, Tuple

from ..models.extraction import CaseRecord
from ..models.quality import Jurisdiction


logger = logging.getLogger(__name__)

DEFAULT_FEDERAL_REGION = "TRF1"

FEDERAL_REGIONS: Dict[str, Tuple[str, ...]] = {
    "TRF1": ("AC", "AM", "AP", "BA", "DF", "GO", "MA", "MT", "PA", "PI", "RO", "RR", "TO"),
    "TRF2": ("RJ", "ES"),
    "TRF3": ("SP", "MS"),
    "TRF4": ("RS", "SC", "PR"),
    "TRF5": ("PE", "AL", "CE", "PB", "RN", "SE"),
    "TRF6": ("MG",),
}

STATE_TO_REGION: Dict[str, str] = {
    state: region for region, states in FEDERAL_REGIONS.items() for state in states
}

# "Cidade/UF", "Cidade - UF", "Cidade, UF"
_CITY_STATE = re.compile(r"^\s*(?P<city>.+?)\s*(?:/|,|\s-\s)\s*(?P<state>[A-Za-z]{2})\s*$")
_TRAILING_STATE = re.compile(r"[/,\-]\s*(?P<state>[A-Za-z]{2})\s*(?:,?\s*\d{5}-?\d{3})?\s*$")


def federal_region_for(state: Optional[str]) -> str:
    """TRF for a state abbreviation; unknown states fall back to TRF1."""
    if not state:
        return DEFAULT_FEDERAL_REGION
    return STATE_TO_REGION.get(state.strip().upper(), DEFAULT_FEDERAL_REGION)


def is_known_state(state: Optional[str]) -> bool:
    return bool(state) and state.strip().upper() in STATE_TO_REGION


class JurisdictionResolver:
    """Derives city, state and federal region from a case record."""

    def resolve(self, record: CaseRecord) -> Jurisdiction:
        city, state = self._split(record.land_municipality)
        if not city:
            city, state_from_birth = self._split(record.birth_city)
            state = state or state_from_birth
        state = state or record.birth_state or self._state_from_address(record.author_address)

        if state:
            state = state.strip().upper()
        jurisdiction = Jurisdiction(
            city=city.strip() if city else None,
            state=state,
            federal_region=federal_region_for(state),
        )
        if not is_known_state(state):
            logger.warning(
                f"Could not resolve state for case {record.case_id}; "
                f"defaulting to {DEFAULT_FEDERAL_REGION}"
            )
        return jurisdiction

    def is_valid(self, jurisdiction: Jurisdiction) -> bool:
        return bool(jurisdiction.city) and is_known_state(jurisdiction.state)

    @staticmethod
    def _split(value: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
        if not value or not isinstance(value, str):
            return None, None
        match = _CITY_STATE.match(value)
        if match:
            return match.group("city"), match.group("state").upper()
        return value, None

    @staticmethod
    def _state_from_address(address: Optional[str]) -> Optional[str]:
        if not address or not isinstance(address, str):
            return None
        match = _TRAILING_STATE.search(address)
        if match and is_known_state(match.group("state")):
            return match.group("state").upper()
        return None
