"""Shared fixtures for the drafting system tests."""

import threading
from datetime import datetime
from typing import Any, Dict, List, Optional

import pytest

from case_drafting.config.models import PipelineSettings
from case_drafting.interfaces.provider import ICorrectionProvider
from case_drafting.models.correction import (
    AppellateAdaptation,
    CritiqueResult,
    Finding,
    RegionalAdaptation,
)
from case_drafting.models.enums import Severity
from case_drafting.models.extraction import CaseRecord, ExtractionRecord
from case_drafting.models.quality import Jurisdiction
from case_drafting.persistence.database import DatabaseManager
from case_drafting.service import CaseDraftingService


CASE_ID = "case-001"

GOOD_DRAFT = (
    "EXCELENTÍSSIMO SENHOR DOUTOR JUIZ FEDERAL DO JUIZADO ESPECIAL FEDERAL DE CAMPINAS/SP\n\n"
    "MARIA SILVA, segurada especial, vem propor ação de salário-maternidade "
    "em razão do nascimento de JOÃO SILVA.\n\n"
    "Dá-se à causa o valor de R$ 5.648,00.\n"
)

CASE_ENTITIES = {
    "motherName": "Maria Silva",
    "motherCpf": "123.456.789-00",
    "childName": "João Silva",
    "childBirthDate": "2024-03-10",
    "landMunicipality": "Campinas/SP",
}


def make_findings(*severities: str) -> List[Finding]:
    return [
        Finding(
            type="probatoria",
            description=f"Gap {i} ({severity})",
            severity=Severity(severity),
            location=f"section {i}",
            suggestion=f"Fix gap {i}",
        )
        for i, severity in enumerate(severities, start=1)
    ]


class FakeProvider(ICorrectionProvider):
    """
    Scripted provider that records every call.

    Failures are scheduled per operation with fail_on(); skip lets the
    first calls through before the error is raised.
    """

    def __init__(
        self,
        draft: str = GOOD_DRAFT,
        findings: Optional[List[Finding]] = None,
        risk_score: int = 60,
        regional_suggestions: Optional[List[str]] = None,
        appellate_suggestions: Optional[List[str]] = None,
    ):
        self.draft = draft
        self.findings = make_findings("high", "medium") if findings is None else findings
        self.risk_score = risk_score
        self.regional_suggestions = (
            ["Cite TRF3 precedent"] if regional_suggestions is None else regional_suggestions
        )
        self.appellate_suggestions = (
            ["Address appellate objection"] if appellate_suggestions is None else appellate_suggestions
        )
        self.appellate_suffix = "\nConforme jurisprudência da Turma Recursal."
        self.calls: List[Dict[str, Any]] = []
        self._failures: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def fail_on(self, operation: str, error: Exception, times: int = 1, skip: int = 0) -> None:
        self._failures[operation] = {"error": error, "times": times, "skip": skip}

    def calls_to(self, operation: str) -> List[Dict[str, Any]]:
        return [c for c in self.calls if c["operation"] == operation]

    def _call(self, operation: str, **arguments: Any) -> None:
        with self._lock:
            self.calls.append({"operation": operation, **arguments})
            plan = self._failures.get(operation)
            if plan is None:
                return
            if plan["skip"] > 0:
                plan["skip"] -= 1
                return
            if plan["times"] > 0:
                plan["times"] -= 1
                raise plan["error"]

    def generate_draft(self, case_record: CaseRecord, context: Dict[str, Any]) -> str:
        self._call("generate_draft", case_id=case_record.case_id, context=context)
        return self.draft

    def critique(self, draft: str, context: Dict[str, Any]) -> CritiqueResult:
        self._call("critique", draft=draft, context=context)
        return CritiqueResult(
            findings=list(self.findings),
            strengths=["Clear facts"],
            weaknesses=["Thin evidence"],
            risk_score=self.risk_score,
        )

    def apply_corrections(self, draft: str, findings: List[Finding]) -> str:
        self._call("apply_corrections", draft=draft, finding_ids=[f.id for f in findings])
        fixes = "".join(f"\nCorrigido: {f.description}." for f in findings)
        return draft + fixes

    def adapt_regional(self, draft: str, jurisdiction: Jurisdiction) -> RegionalAdaptation:
        self._call("adapt_regional", draft=draft, region=jurisdiction.federal_region)
        if not self.regional_suggestions:
            return RegionalAdaptation(adapted_draft=draft, suggestions=[])
        return RegionalAdaptation(
            adapted_draft=draft + f"\nPrecedentes do {jurisdiction.federal_region}.",
            suggestions=list(self.regional_suggestions),
        )

    def adapt_appellate(self, draft: str, context: Dict[str, Any]) -> AppellateAdaptation:
        self._call("adapt_appellate", draft=draft)
        if not self.appellate_suggestions:
            return AppellateAdaptation(adapted_draft=draft, suggestions=[])
        return AppellateAdaptation(
            adapted_draft=draft + self.appellate_suffix,
            suggestions=list(self.appellate_suggestions),
            appeal_risk_estimate=25,
        )


def case_extraction(case_id: str = CASE_ID, **overrides: Any) -> ExtractionRecord:
    entities = dict(CASE_ENTITIES)
    entities.update(overrides)
    return ExtractionRecord(
        case_id=case_id,
        entities=entities,
        extracted_at=datetime(2024, 5, 1, 12, 0, 0),
        document_id="doc-certidao",
    )


@pytest.fixture
def db_manager(tmp_path):
    """DatabaseManager on a fresh SQLite file."""
    manager = DatabaseManager(database_url=f"sqlite:///{tmp_path}/test.db")
    manager.init_database()
    yield manager
    manager.close()


@pytest.fixture
def settings():
    return PipelineSettings(lease_acquire_timeout=0.0)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def service(provider, settings, db_manager):
    svc = CaseDraftingService(provider, settings=settings, db_manager=db_manager)
    yield svc
    svc.close()


@pytest.fixture
def consolidated_case(service):
    """Case with a complete consolidated record and no draft yet."""
    service.submit_extractions(CASE_ID, [case_extraction()])
    return CASE_ID
