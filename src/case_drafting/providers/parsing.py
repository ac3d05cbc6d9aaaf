"""Validation of generation service responses.

Responses are checked completely before anything is returned to the
pipeline, so a malformed answer never reaches the store. Portuguese
field names used by the drafting service are accepted alongside the
English ones.
"""

import json
import logging
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional

from ..exceptions import ProviderFailure
from ..models.correction import (
    AppellateAdaptation,
    CritiqueResult,
    Finding,
    RegionalAdaptation,
)
from ..models.enums import Severity


logger = logging.getLogger(__name__)

TEXT_KEYS = (
    "draftText",
    "draft",
    "text",
    "petition",
    "petition_corrigida",
    "peticao_adaptada",
)

SEVERITY_LABELS = {
    "high": Severity.HIGH,
    "alta": Severity.HIGH,
    "medium": Severity.MEDIUM,
    "media": Severity.MEDIUM,
    "média": Severity.MEDIUM,
    "low": Severity.LOW,
    "baixa": Severity.LOW,
}


def _first(data: Dict[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return None


def _require_object(data: Any, operation: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise ProviderFailure(f"Malformed {operation} response: expected a JSON object")
    return data


def parse_text(data: Any, operation: str) -> str:
    """Extract non-empty draft text from a response body."""
    data = _require_object(data, operation)
    text = _first(data, TEXT_KEYS)
    if not isinstance(text, str) or not text.strip():
        raise ProviderFailure(f"Malformed {operation} response: draft text is missing or empty")
    return text


def parse_severity(value: Any) -> Severity:
    if isinstance(value, Severity):
        return value
    if isinstance(value, str):
        severity = SEVERITY_LABELS.get(value.strip().lower())
        if severity is not None:
            return severity
    raise ProviderFailure(f"Malformed critique response: unknown severity {value!r}")


def parse_finding(item: Any) -> Finding:
    if not isinstance(item, dict):
        raise ProviderFailure("Malformed critique response: finding is not an object")
    finding_type = _first(item, ("type", "tipo"))
    description = _first(item, ("description", "descricao", "descrição"))
    if not isinstance(finding_type, str) or not finding_type.strip():
        raise ProviderFailure("Malformed critique response: finding without type")
    if not isinstance(description, str) or not description.strip():
        raise ProviderFailure("Malformed critique response: finding without description")
    location = _first(item, ("location", "localizacao", "localização"))
    suggestion = _first(item, ("suggestion", "sugestao", "sugestão"))
    return Finding(
        type=finding_type.strip(),
        description=description.strip(),
        severity=parse_severity(_first(item, ("severity", "gravidade"))),
        location=str(location) if location is not None else None,
        suggestion=str(suggestion) if suggestion is not None else None,
    )


def _parse_risk(value: Any, operation: str, required: bool) -> Optional[int]:
    if value is None:
        if required:
            raise ProviderFailure(f"Malformed {operation} response: risk score is missing")
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ProviderFailure(f"Malformed {operation} response: risk score is not a number")
    if not 0 <= value <= 100:
        raise ProviderFailure(f"Malformed {operation} response: risk score {value} outside 0-100")
    return int(round(value))


def _string_list(value: Any) -> List[str]:
    """Normalize a list of strings or objects into display strings."""
    if value is None:
        return []
    if not isinstance(value, list):
        raise ProviderFailure("Malformed response: expected a list")
    items: List[str] = []
    for entry in value:
        if isinstance(entry, str):
            if entry.strip():
                items.append(entry.strip())
        elif isinstance(entry, dict):
            text = _first(entry, ("description", "descricao", "adaptacao", "sugestao", "texto"))
            items.append(str(text) if text else json.dumps(entry, ensure_ascii=False, sort_keys=True))
        else:
            items.append(str(entry))
    return items


def parse_critique(data: Any) -> CritiqueResult:
    """
    Validate a critique response.

    Duplicate findings (same id) keep their first occurrence.

    Raises:
        ProviderFailure: If the response is malformed.
    """
    data = _require_object(data, "critique")
    raw_findings = _first(data, ("findings", "brechas"))
    if raw_findings is None:
        raw_findings = []
    if not isinstance(raw_findings, list):
        raise ProviderFailure("Malformed critique response: findings is not a list")

    findings: List[Finding] = []
    seen = set()
    for item in raw_findings:
        finding = parse_finding(item)
        if finding.id in seen:
            logger.debug(f"Dropping duplicate finding {finding.id}")
            continue
        seen.add(finding.id)
        findings.append(finding)

    return CritiqueResult(
        findings=findings,
        strengths=_string_list(_first(data, ("strengths", "pontos_fortes"))),
        weaknesses=_string_list(_first(data, ("weaknesses", "pontos_fracos"))),
        risk_score=_parse_risk(
            _first(data, ("risk_score", "riskScore", "risco_improcedencia")),
            "critique",
            required=True,
        ),
    )


def parse_regional(data: Any) -> RegionalAdaptation:
    data = _require_object(data, "regional adaptation")
    return RegionalAdaptation(
        adapted_draft=parse_text(data, "regional adaptation"),
        suggestions=_string_list(_first(data, ("suggestions", "adaptacoes_sugeridas"))),
    )


def parse_appellate(data: Any) -> AppellateAdaptation:
    data = _require_object(data, "appellate adaptation")
    return AppellateAdaptation(
        adapted_draft=parse_text(data, "appellate adaptation"),
        suggestions=_string_list(
            _first(data, ("suggestions", "adaptacoes_sugeridas", "adaptacoes_finais"))
        ),
        appeal_risk_estimate=_parse_risk(
            _first(data, ("appeal_risk_estimate", "appealRiskEstimate", "risco_improcedencia_pos_analise")),
            "appellate adaptation",
            required=False,
        ),
    )


def validate_critique(result: CritiqueResult) -> CritiqueResult:
    """
    Re-check a critique result produced by any provider implementation.

    Finding ids are made unique within the critique: a repeated id gets a
    "-2", "-3", ... suffix so each finding can be applied on its own.
    """
    if not isinstance(result, CritiqueResult):
        raise ProviderFailure("Critique did not return a CritiqueResult")
    _parse_risk(result.risk_score, "critique", required=True)
    counts: Dict[str, int] = {}
    findings: List[Finding] = []
    for finding in result.findings:
        if not isinstance(finding, Finding) or not finding.description:
            raise ProviderFailure("Critique returned a malformed finding")
        counts[finding.id] = counts.get(finding.id, 0) + 1
        if counts[finding.id] > 1:
            finding = replace(finding, id=f"{finding.id}-{counts[finding.id]}")
            logger.debug(f"Renamed repeated finding to {finding.id}")
        findings.append(finding)
    result.findings = findings
    return result


def validate_text(text: Any, operation: str) -> str:
    """Re-check draft text produced by any provider implementation."""
    if not isinstance(text, str) or not text.strip():
        raise ProviderFailure(f"{operation} returned an empty draft")
    return text
