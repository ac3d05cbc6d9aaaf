"""Merge per-document extractions into one canonical case record."""

import json
import logging
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from ..models.extraction import CaseRecord, ConsolidationConflict, ExtractionRecord
from ..utils import utcnow
from .aliases import (
    HEALTH_DECLARATION_ALIASES,
    LIST_FIELDS,
    SCALAR_ALIASES,
    ListFieldSpec,
    period_start,
)


logger = logging.getLogger(__name__)

_UNDATED = date.min
_DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y", "%Y/%m/%d")


def is_empty(value: Any) -> bool:
    """None, blank strings and empty containers carry no information."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict, tuple, set)):
        return len(value) == 0
    return False


def parse_date(value: Any) -> Optional[date]:
    """Parse the date formats extractors produce. Returns None if unparseable."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text[:10], fmt).date()
        except ValueError:
            continue
    return None


def _dedup_key(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str, ensure_ascii=False)


class ExtractionConsolidator:
    """
    Deterministic merge of all extractions for a case.

    Scalars are first-write-wins in extraction order, lists are unions
    deduplicated by a field-specific key keeping the first occurrence,
    and the health declaration is a shallow last-write-wins merge.
    Consolidation never raises on missing or malformed data.
    """

    def __init__(
        self,
        extra_aliases: Optional[Mapping[str, Iterable[str]]] = None,
        list_fields: Tuple[ListFieldSpec, ...] = LIST_FIELDS,
    ):
        """
        Initialize the consolidator.

        Args:
            extra_aliases: Additional alias keys per canonical field,
                tried after the built-in ones.
            list_fields: Specifications of the list fields to assemble.
        """
        self._scalar_aliases: Dict[str, Tuple[str, ...]] = dict(SCALAR_ALIASES)
        for canonical, aliases in (extra_aliases or {}).items():
            if canonical not in self._scalar_aliases:
                logger.warning(f"Ignoring aliases for unknown field '{canonical}'")
                continue
            merged = list(self._scalar_aliases[canonical])
            merged.extend(a for a in aliases if a not in merged)
            self._scalar_aliases[canonical] = tuple(merged)
        self._list_fields = list_fields

    @property
    def scalar_aliases(self) -> Dict[str, Tuple[str, ...]]:
        return dict(self._scalar_aliases)

    def consolidate(
        self, extractions: List[ExtractionRecord], case_id: Optional[str] = None
    ) -> CaseRecord:
        """
        Build the canonical record from a case's extractions.

        Args:
            extractions: Extraction records in any order.
            case_id: Case id to use when the list is empty.

        Returns:
            A freshly built CaseRecord.
        """
        ordered = sorted(
            extractions,
            key=lambda e: e.extracted_at or datetime.min,
        )
        if case_id is None:
            case_id = ordered[0].case_id if ordered else ""

        record = CaseRecord(case_id=case_id)
        sources: Dict[str, str] = {}
        candidates: Dict[str, List[Dict[str, Any]]] = {
            spec.name: [] for spec in self._list_fields
        }

        for extraction in ordered:
            entities = self._as_mapping(extraction.entities, "entities", extraction)
            auto_filled = self._as_mapping(
                extraction.auto_filled_fields, "auto_filled_fields", extraction
            )
            self._merge_scalars(record, entities, extraction, sources)
            for spec in self._list_fields:
                candidates[spec.name].extend(
                    self._collect_list(spec, extraction, entities, auto_filled)
                )
            self._merge_health_declaration(record, entities, auto_filled, extraction)

        for spec in self._list_fields:
            items = self._deduplicate(spec, candidates[spec.name])
            if spec.sort_by_start:
                items = self._sort_by_start(items)
            setattr(record, spec.name, items)

        record.consolidated_at = utcnow()
        logger.info(
            f"Consolidated {len(ordered)} extraction(s) for case {case_id} "
            f"with {len(record.conflicts)} conflict(s)"
        )
        return record

    # ------------------------------------------------------------------
    # Scalars
    # ------------------------------------------------------------------

    def _merge_scalars(
        self,
        record: CaseRecord,
        entities: Mapping[str, Any],
        extraction: ExtractionRecord,
        sources: Dict[str, str],
    ) -> None:
        for canonical, aliases in self._scalar_aliases.items():
            value = None
            for alias in aliases:
                if not is_empty(entities.get(alias)):
                    value = entities[alias]
                    break
            if value is None:
                continue

            current = getattr(record, canonical)
            if is_empty(current):
                setattr(record, canonical, value)
                sources[canonical] = extraction.id
            elif current != value:
                conflict = ConsolidationConflict(
                    field=canonical,
                    kept_value=current,
                    discarded_value=value,
                    kept_source=sources.get(canonical),
                    discarded_source=extraction.id,
                )
                record.conflicts.append(conflict)
                logger.info(
                    f"Conflict on '{canonical}' for case {record.case_id}: "
                    f"kept {current!r}, discarded {value!r} from extraction {extraction.id}"
                )

    # ------------------------------------------------------------------
    # Lists
    # ------------------------------------------------------------------

    def _collect_list(
        self,
        spec: ListFieldSpec,
        extraction: ExtractionRecord,
        entities: Mapping[str, Any],
        auto_filled: Mapping[str, Any],
    ) -> List[Dict[str, Any]]:
        raw_sources: List[Tuple[str, Any]] = []
        if spec.dedicated_source:
            raw_sources.append(
                (spec.dedicated_source, getattr(extraction, spec.dedicated_source, None))
            )
        for alias in spec.aliases:
            raw_sources.append((f"entities.{alias}", entities.get(alias)))
        for alias in spec.aliases:
            raw_sources.append((f"auto_filled_fields.{alias}", auto_filled.get(alias)))

        collected: List[Dict[str, Any]] = []
        for source_name, value in raw_sources:
            if value is None:
                continue
            if not isinstance(value, list):
                logger.warning(
                    f"Skipping {source_name} of extraction {extraction.id}: "
                    f"expected a list, got {type(value).__name__}"
                )
                continue
            for item in value:
                if not isinstance(item, dict):
                    logger.warning(
                        f"Skipping malformed {spec.name} entry in {source_name} "
                        f"of extraction {extraction.id}: {item!r}"
                    )
                    continue
                collected.append(item)
        return collected

    def _deduplicate(
        self, spec: ListFieldSpec, items: List[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        unique: Dict[str, Dict[str, Any]] = {}
        for item in items:
            key = _dedup_key(spec.key(item))
            if key not in unique:
                unique[key] = item
        return list(unique.values())

    def _sort_by_start(self, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return sorted(items, key=lambda item: parse_date(period_start(item)) or _UNDATED)

    # ------------------------------------------------------------------
    # Health declaration
    # ------------------------------------------------------------------

    def _merge_health_declaration(
        self,
        record: CaseRecord,
        entities: Mapping[str, Any],
        auto_filled: Mapping[str, Any],
        extraction: ExtractionRecord,
    ) -> None:
        for origin, mapping in (("entities", entities), ("auto_filled_fields", auto_filled)):
            for alias in HEALTH_DECLARATION_ALIASES:
                value = mapping.get(alias)
                if value is None:
                    continue
                if not isinstance(value, dict):
                    logger.warning(
                        f"Skipping {origin}.{alias} of extraction {extraction.id}: "
                        f"expected an object"
                    )
                    continue
                record.health_declaration.update(value)

    def _as_mapping(
        self, value: Any, name: str, extraction: ExtractionRecord
    ) -> Mapping[str, Any]:
        if value is None:
            return {}
        if not isinstance(value, Mapping):
            logger.warning(
                f"Ignoring {name} of extraction {extraction.id}: not an object"
            )
            return {}
        return value
