"""Integration tests for the CaseDraftingService facade."""

from datetime import datetime

import pytest

from case_drafting.config.models import PipelineSettings
from case_drafting.exceptions import LeaseUnavailableError
from case_drafting.interfaces.audit import AuditEventType
from case_drafting.models.enums import CorrectionType, PipelineStatus, QueueItemStatus
from case_drafting.models.extraction import ExtractionRecord
from case_drafting.persistence.lease import CaseLeaseManager
from case_drafting.providers.http_provider import HttpCorrectionProvider
from case_drafting.service import CaseDraftingService, to_extraction

from conftest import CASE_ENTITIES, CASE_ID, case_extraction


class TestExtractions:
    """Tests for submitting and consolidating extractions."""

    def test_submit_consolidates(self, service):
        record = service.submit_extractions(CASE_ID, [case_extraction()], user_id="analyst")

        assert record.author_name == "Maria Silva"
        assert record.child_birth_date == "2024-03-10"
        assert service.get_case_record(CASE_ID).author_cpf == "123.456.789-00"

        submitted = service.audit_logger.get_events(
            case_id=CASE_ID, event_type=AuditEventType.EXTRACTIONS_SUBMITTED
        )
        assert submitted[0].details == {"count": 1, "document_ids": ["doc-certidao"]}
        assert submitted[0].user_id == "analyst"

    def test_earliest_extraction_wins(self, service):
        """Test a later conflicting value is kept out and audited."""
        later = ExtractionRecord(
            case_id=CASE_ID,
            entities={"motherCpf": "999.999.999-99"},
            extracted_at=datetime(2024, 6, 1),
            document_id="doc-rg",
        )
        service.submit_extractions(CASE_ID, [later, case_extraction()])

        record = service.get_case_record(CASE_ID)
        assert record.author_cpf == "123.456.789-00"
        conflicts = service.audit_logger.get_events(
            case_id=CASE_ID, event_type=AuditEventType.CONSOLIDATION_CONFLICT
        )
        assert conflicts[0].details["discarded_value"] == "999.999.999-99"

    def test_resubmission_accumulates(self, service):
        service.submit_extractions(CASE_ID, [case_extraction(motherCpf=None)])
        service.submit_extractions(CASE_ID, [{"entities": {"motherCpf": "111.222.333-44"}}])
        assert service.get_case_record(CASE_ID).author_cpf == "111.222.333-44"

    def test_to_extraction_copies_records(self):
        original = ExtractionRecord(case_id="other", entities={"motherName": "Ana"})
        record = to_extraction("c1", original)

        assert record.case_id == "c1"
        assert record.id == original.id
        assert original.case_id == "other"

    def test_to_extraction_normalizes_timezone(self):
        record = to_extraction("c1", {
            "entities": {"motherName": "Ana"},
            "extracted_at": "2024-05-01T09:00:00-03:00",
        })
        assert record.extracted_at == datetime(2024, 5, 1, 12, 0)
        assert record.case_id == "c1"


class TestDocumentProcessing:
    """Tests for bulk document processing."""

    def test_process_documents_consolidates(self, service):
        documents = {
            "certidao": {"childName": "João Silva", "childBirthDate": "2024-03-10"},
            "rg": {"motherName": "Maria Silva", "motherCpf": "123.456.789-00"},
        }

        def handler(document_id):
            return ExtractionRecord(case_id="", entities=documents[document_id])

        summary = service.process_documents(CASE_ID, list(documents), handler)

        assert summary.status == QueueItemStatus.COMPLETED
        record = service.get_case_record(CASE_ID)
        assert record.child_name == "João Silva"
        assert record.author_cpf == "123.456.789-00"

    def test_partial_failure_still_consolidates(self, service):
        def handler(document_id):
            if document_id == "cnis":
                raise RuntimeError("unreadable")
            return ExtractionRecord(case_id="", entities=CASE_ENTITIES)

        summary = service.process_documents(CASE_ID, ["certidao", "cnis"], handler)

        assert summary.status == QueueItemStatus.FAILED
        assert summary.completed == 1
        assert service.get_case_record(CASE_ID).author_name == "Maria Silva"

    def test_nothing_completed(self, service):
        def handler(document_id):
            raise RuntimeError("unreadable")

        summary = service.process_documents(CASE_ID, ["cnis"], handler)

        assert summary.completed == 0
        assert service.get_case_record(CASE_ID) is None


class TestVersions:
    """Tests for version history and restoring."""

    def test_restore_version(self, service, consolidated_case):
        list(service.run_pipeline(CASE_ID))
        first = service.list_versions(CASE_ID)[-1]

        restored = service.restore_version(CASE_ID, first.id)

        latest = service.get_latest_draft(CASE_ID)
        assert latest.version_id == restored.id
        assert latest.content == first.content
        assert not latest.flags.final_version
        assert len(service.list_versions(CASE_ID)) == 6

        history = service.get_correction_history(CASE_ID)
        assert history[-1].correction_type == CorrectionType.RESTORE
        assert history[-1].changes_summary["restored_from"] == first.id

    def test_restore_unknown_version(self, service, consolidated_case):
        with pytest.raises(ValueError):
            service.restore_version(CASE_ID, "missing")

    def test_quality_report(self, service, consolidated_case):
        assert service.get_quality_report(CASE_ID) is None
        list(service.run_pipeline(CASE_ID))
        report = service.get_quality_report(CASE_ID)
        assert report.value_of_claim == 5648.0
        assert report.jurisdiction_ok


class TestRunCases:
    """Tests for concurrent runs over several cases."""

    def test_runs_each_case(self, service):
        for case_id in ("case-a", "case-b"):
            service.submit_extractions(case_id, [case_extraction(case_id)])

        results = service.run_cases(["case-a", "case-b", "case-a"])

        assert set(results) == {"case-a", "case-b"}
        assert all(r.status == PipelineStatus.COMPLETED for r in results.values())

    def test_locked_case_fails_alone(self, service, db_manager):
        for case_id in ("case-a", "case-b"):
            service.submit_extractions(case_id, [case_extraction(case_id)])
        other = CaseLeaseManager(db_manager, acquire_timeout=0)
        holder = other.acquire("case-b")
        try:
            results = service.run_cases(["case-a", "case-b"])
        finally:
            other.release("case-b", holder)

        assert results["case-a"].status == PipelineStatus.COMPLETED
        assert results["case-b"].status == PipelineStatus.FAILED
        assert results["case-b"].error_type == LeaseUnavailableError.__name__

    def test_empty(self, service):
        assert service.run_cases([]) == {}


class TestConstruction:
    """Tests for building the service from settings."""

    def test_from_settings(self, tmp_path):
        settings = PipelineSettings(
            database_url=f"sqlite:///{tmp_path}/service.db",
            provider_url="http://drafting.test",
            provider_api_key="secret",
        )
        service = CaseDraftingService.from_settings(settings)
        try:
            assert isinstance(service.pipeline._provider, HttpCorrectionProvider)
            assert service.pipeline._provider.api_key == "secret"
        finally:
            service.close()

    def test_from_settings_requires_provider_url(self):
        with pytest.raises(ValueError):
            CaseDraftingService.from_settings(PipelineSettings())
