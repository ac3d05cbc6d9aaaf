"""Unit tests for the HTTP correction provider and job polling."""

import json
import threading

import httpx
import pytest

from case_drafting.exceptions import (
    JobCancelledError,
    JobTimeoutError,
    ProviderFailure,
    ProviderQuotaExhausted,
    ProviderRateLimited,
    ProviderTimeout,
)
from case_drafting.jobs.polling import JobPoller
from case_drafting.models.enums import Severity
from case_drafting.models.extraction import CaseRecord
from case_drafting.models.quality import Jurisdiction
from case_drafting.providers.http_provider import HttpCorrectionProvider, error_for_status

from conftest import make_findings


BASE_URL = "http://drafting.test"


def _provider(handler, poller=None, cancel_event=None):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return HttpCorrectionProvider(
        BASE_URL,
        api_key="secret",
        timeout=30,
        poller=poller or JobPoller(interval=1, timeout=10, sleep=lambda _s: None),
        client=client,
        cancel_event=cancel_event,
    )


class FakeClock:
    """Monotonic clock advanced by the fake sleep."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class TestRequests:
    """Tests for request shape and response parsing."""

    def test_critique_request(self):
        """Test critique POSTs draft and context with bearer auth."""
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "brechas": [{"tipo": "legal", "descricao": "Falta base legal", "gravidade": "alta"}],
                "risco_improcedencia": 70,
            })

        result = _provider(handler).critique("Texto", {"caseId": "c1"})

        assert seen["path"] == "/critique"
        assert seen["auth"] == "Bearer secret"
        assert seen["body"] == {"draftText": "Texto", "structuredContext": {"caseId": "c1"}}
        assert result.risk_score == 70
        assert result.findings[0].severity == Severity.HIGH

    def test_apply_corrections_sends_findings(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"petition_corrigida": "Texto corrigido"})

        findings = make_findings("low")
        text = _provider(handler).apply_corrections("Texto", findings)

        assert text == "Texto corrigido"
        assert seen["body"]["structuredContext"]["findings"][0]["id"] == findings[0].id

    def test_regional_and_appellate(self):
        def handler(request):
            if request.url.path == "/adapt-regional":
                body = json.loads(request.content)
                assert body["structuredContext"]["jurisdiction"]["federal_region"] == "TRF6"
                return httpx.Response(200, json={"draftText": "Regional", "suggestions": ["a"]})
            return httpx.Response(200, json={"draftText": "Recursal", "adaptacoes_finais": ["b"]})

        provider = _provider(handler)
        regional = provider.adapt_regional("Texto", Jurisdiction("Uberaba", "MG", "TRF6"))
        appellate = provider.adapt_appellate("Texto", {})
        assert (regional.adapted_draft, regional.suggestions) == ("Regional", ["a"])
        assert (appellate.adapted_draft, appellate.suggestions) == ("Recursal", ["b"])

    def test_synchronous_generation(self):
        def handler(request):
            body = json.loads(request.content)
            assert body["structuredContext"]["caseRecord"]["author_name"] == "Maria"
            return httpx.Response(200, json={"draftText": "Petição"})

        record = CaseRecord(case_id="c1", author_name="Maria")
        assert _provider(handler).generate_draft(record, {"caseId": "c1"}) == "Petição"

    def test_queued_generation_is_polled(self):
        """Test a 202 answer is followed by polling the job."""
        polls = []

        def handler(request):
            if request.method == "POST":
                return httpx.Response(202, json={"jobId": "job-1"})
            polls.append(request.url.path)
            if len(polls) < 3:
                return httpx.Response(200, json={"status": "running"})
            return httpx.Response(200, json={"status": "completed", "result": {"draftText": "Petição"}})

        text = _provider(handler).generate_draft(CaseRecord(case_id="c1"), {})

        assert text == "Petição"
        assert polls == ["/jobs/job-1"] * 3

    def test_queued_generation_without_job_id(self):
        provider = _provider(lambda request: httpx.Response(202, json={}))
        with pytest.raises(ProviderFailure, match="without a job id"):
            provider.generate_draft(CaseRecord(case_id="c1"), {})


class TestErrorClassification:
    """Tests for mapping transport failures to provider errors."""

    @pytest.mark.parametrize("status,error", [
        (429, ProviderRateLimited),
        (402, ProviderQuotaExhausted),
        (408, ProviderTimeout),
        (500, ProviderFailure),
        (503, ProviderFailure),
    ])
    def test_status_codes(self, status, error):
        provider = _provider(lambda request: httpx.Response(status, text="upstream says no"))
        with pytest.raises(error) as exc_info:
            provider.critique("Texto", {})
        assert exc_info.value.details["status_code"] == status
        assert exc_info.value.details["body"] == "upstream says no"

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("too slow", request=request)

        with pytest.raises(ProviderTimeout):
            _provider(handler).critique("Texto", {})

    def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(ProviderFailure, match="Transport error"):
            _provider(handler).critique("Texto", {})

    def test_invalid_json(self):
        provider = _provider(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(ProviderFailure, match="not valid JSON"):
            provider.critique("Texto", {})

    def test_malformed_body(self):
        provider = _provider(lambda request: httpx.Response(200, json={"draftText": ""}))
        with pytest.raises(ProviderFailure):
            provider.apply_corrections("Texto", [])

    def test_error_for_status_truncates_body(self):
        error = error_for_status(500, "x" * 1000, "http://drafting.test/critique")
        assert len(error.details["body"]) == 500


class TestJobPoller:
    """Tests for the cancellable job poller."""

    def test_completes(self):
        statuses = iter([{"status": "queued"}, {"status": "DONE", "result": 1}])
        clock = FakeClock()
        poller = JobPoller(interval=3, timeout=180, sleep=clock.sleep, clock=clock)

        assert poller.poll(lambda job_id: next(statuses), "job-1") == {"status": "DONE", "result": 1}
        assert clock.sleeps == [3]

    def test_times_out(self):
        """Test a job that never finishes raises the dedicated timeout."""
        clock = FakeClock()
        poller = JobPoller(interval=3, timeout=10, sleep=clock.sleep, clock=clock)

        with pytest.raises(JobTimeoutError) as exc_info:
            poller.poll(lambda job_id: {"status": "running"}, "job-1")

        assert exc_info.value.job_id == "job-1"
        assert exc_info.value.elapsed >= 10
        assert clock.sleeps == [3, 3, 3, 1]

    def test_failed_job(self):
        poller = JobPoller(sleep=lambda _s: None)
        with pytest.raises(ProviderFailure, match="quota"):
            poller.poll(lambda job_id: {"status": "failed", "error": "quota"}, "job-1")

    def test_cancelled_before_start(self):
        event = threading.Event()
        event.set()
        fetch_calls = []
        with pytest.raises(JobCancelledError):
            JobPoller().poll(lambda job_id: fetch_calls.append(job_id), "job-1", event)
        assert fetch_calls == []

    def test_cancelled_while_waiting(self):
        """Test setting the event interrupts the wait between polls."""
        event = threading.Event()

        def fetch(job_id):
            event.set()
            return {"status": "running"}

        with pytest.raises(JobCancelledError):
            JobPoller(interval=60, timeout=600).poll(fetch, "job-1", event)

    def test_provider_cancel_event(self):
        event = threading.Event()
        event.set()

        def handler(request):
            if request.method == "POST":
                return httpx.Response(202, json={"jobId": "job-9"})
            return httpx.Response(200, json={"status": "running"})

        with pytest.raises(JobCancelledError):
            _provider(handler, cancel_event=event).generate_draft(CaseRecord(case_id="c1"), {})
