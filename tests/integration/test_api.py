"""Integration tests for the HTTP API."""

import json

import pytest
from fastapi.testclient import TestClient

from case_drafting.api.app import app, get_service
from case_drafting.exceptions import ProviderRateLimited
from case_drafting.persistence.lease import CaseLeaseManager

from conftest import CASE_ENTITIES, CASE_ID


@pytest.fixture
def client(service):
    app.dependency_overrides[get_service] = lambda: service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _stream_lines(response):
    return [json.loads(line) for line in response.text.splitlines() if line.strip()]


class TestExtractions:
    """Tests for extraction submission."""

    def test_submit_returns_consolidated_record(self, client):
        response = client.post(
            f"/api/cases/{CASE_ID}/extractions",
            json=[
                {"document_id": "certidao", "entities": CASE_ENTITIES,
                 "extracted_at": "2024-05-01T12:00:00Z"},
                {"document_id": "rg", "entities": {"motherCpf": "999.999.999-99"}},
            ],
        )

        assert response.status_code == 200
        body = response.json()
        assert body["case_id"] == CASE_ID
        assert body["author_name"] == "Maria Silva"
        assert body["author_cpf"] == "123.456.789-00"
        assert body["conflicts"][0]["field"] == "author_cpf"

    def test_invalid_body(self, client):
        response = client.post(f"/api/cases/{CASE_ID}/extractions", json={"entities": {}})
        assert response.status_code == 422


class TestPipelineEndpoint:
    """Tests for streamed pipeline runs."""

    def test_streams_states_and_result(self, client, consolidated_case):
        response = client.post(f"/api/cases/{CASE_ID}/pipeline")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/x-ndjson")
        lines = _stream_lines(response)
        assert lines[0] == {**lines[0], "name": "QualityAnalysis", "status": "running"}
        assert lines[-1]["status"] == "completed"
        assert lines[-1]["case_id"] == CASE_ID
        assert len(lines[-1]["stages"]) == 8

    def test_locked_case(self, client, db_manager, consolidated_case):
        other = CaseLeaseManager(db_manager, acquire_timeout=0)
        holder = other.acquire(CASE_ID)
        try:
            response = client.post(f"/api/cases/{CASE_ID}/pipeline")
        finally:
            other.release(CASE_ID, holder)

        assert response.status_code == 409
        assert response.json()["detail"]["error_type"] == "LeaseUnavailableError"

    def test_failed_run_is_reported_in_stream(self, client, provider, consolidated_case):
        provider.fail_on("critique", ProviderRateLimited("Provider rate limit exceeded"))
        response = client.post(f"/api/cases/{CASE_ID}/pipeline")

        assert response.status_code == 200
        result = _stream_lines(response)[-1]
        assert result["status"] == "failed"
        assert result["failed_stage"] == "CriticAnalysis"
        assert result["error_type"] == "ProviderRateLimited"


class TestFindings:
    """Tests for the finding application endpoints."""

    def test_apply_finding(self, client, service, provider, consolidated_case):
        list(service.run_pipeline(CASE_ID))
        high, medium = provider.findings

        response = client.post(f"/api/cases/{CASE_ID}/findings/{medium.id}/apply")

        assert response.status_code == 200
        body = response.json()
        assert body["updated_risk_score"] == 50
        assert [f["id"] for f in body["remaining_findings"]] == [high.id]

    def test_apply_batch(self, client, service, provider, consolidated_case):
        list(service.run_pipeline(CASE_ID))
        ids = [f.id for f in provider.findings]

        response = client.post(
            f"/api/cases/{CASE_ID}/findings/apply-batch", json={"finding_ids": ids}
        )

        assert response.status_code == 200
        assert response.json()["updated_risk_score"] == 0

    def test_unknown_finding(self, client, service, consolidated_case):
        list(service.run_pipeline(CASE_ID))
        response = client.post(f"/api/cases/{CASE_ID}/findings/unknown/apply")

        assert response.status_code == 404
        assert response.json()["detail"]["finding_ids"] == ["unknown"]

    def test_no_draft(self, client, consolidated_case):
        response = client.post(f"/api/cases/{CASE_ID}/findings/any/apply")
        assert response.status_code == 422
        assert response.json()["detail"]["error_type"] == "ValidationError"

    def test_rate_limited(self, client, service, provider, consolidated_case):
        """Test a rate-limited re-analysis keeps the provider status."""
        provider.fail_on("critique", ProviderRateLimited("Provider rate limit exceeded"), times=2)
        list(service.run_pipeline(CASE_ID))

        response = client.post(f"/api/cases/{CASE_ID}/findings/any/apply")

        assert response.status_code == 429
        detail = response.json()["detail"]
        assert detail["classification"] == "rate_limited"


class TestDraft:
    """Tests for reading the latest draft."""

    def test_no_draft(self, client):
        assert client.get(f"/api/cases/{CASE_ID}/draft").status_code == 404

    def test_latest_draft(self, client, service, consolidated_case):
        list(service.run_pipeline(CASE_ID))
        response = client.get(f"/api/cases/{CASE_ID}/draft")

        assert response.status_code == 200
        body = response.json()
        assert body["is_stale"] is False
        assert body["flags"]["final_version"] is True
        assert body["problems"] == []
