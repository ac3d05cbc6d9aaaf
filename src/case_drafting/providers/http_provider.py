"""Correction provider backed by the drafting HTTP service."""

import logging
import threading
from typing import Any, Dict, List, Optional

import httpx
from httpx import HTTPStatusError, TimeoutException

from ..exceptions import (
    ProviderError,
    ProviderFailure,
    ProviderQuotaExhausted,
    ProviderRateLimited,
    ProviderTimeout,
)
from ..interfaces.provider import ICorrectionProvider
from ..jobs.polling import JobPoller
from ..models.correction import (
    AppellateAdaptation,
    CritiqueResult,
    Finding,
    RegionalAdaptation,
)
from ..models.extraction import CaseRecord
from ..models.quality import Jurisdiction
from .parsing import parse_appellate, parse_critique, parse_regional, parse_text


logger = logging.getLogger(__name__)


def error_for_status(status_code: int, body: str, url: str) -> ProviderError:
    """Map a non-2xx status to the matching provider error."""
    details = {"url": url, "status_code": status_code, "body": body[:500]}
    if status_code == 429:
        return ProviderRateLimited("Provider rate limit exceeded", details=details)
    if status_code == 402:
        return ProviderQuotaExhausted("Provider credits exhausted", details=details)
    if status_code == 408:
        return ProviderTimeout("Provider request timed out", details=details)
    return ProviderFailure(f"Provider returned HTTP {status_code}", details=details)


class HttpCorrectionProvider(ICorrectionProvider):
    """
    ICorrectionProvider over HTTP.

    Every call POSTs {draftText, structuredContext} as JSON with bearer
    authentication and an explicit timeout. Failures are classified and
    raised; nothing is retried here.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 60.0,
        poller: Optional[JobPoller] = None,
        client: Optional[httpx.Client] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        """
        Initialize the provider.

        Args:
            base_url: Root URL of the drafting service.
            api_key: Bearer token.
            timeout: Request timeout in seconds.
            poller: Poller for asynchronous generation jobs.
            client: Preconfigured httpx client (tests pass one with a mock transport).
            cancel_event: Cancels job polling when set.
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._poller = poller or JobPoller()
        self._cancel_event = cancel_event
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _request(self, method: str, endpoint: str, payload: Optional[Dict[str, Any]] = None) -> httpx.Response:
        url = f"{self.base_url}{endpoint}"
        logger.debug(f"Calling drafting service: {method} {url}", extra={"timeout": self.timeout})
        try:
            if method == "GET":
                response = self._client.get(url, headers=self._headers(), timeout=self.timeout)
            else:
                response = self._client.post(
                    url, headers=self._headers(), json=payload, timeout=self.timeout
                )
            response.raise_for_status()
            return response
        except HTTPStatusError as e:
            status_code = e.response.status_code
            body = e.response.text
            logger.warning(
                f"Drafting service HTTP error {status_code}",
                extra={"url": url, "status_code": status_code, "error_body": body[:500]},
            )
            raise error_for_status(status_code, body, url) from e
        except TimeoutException as e:
            logger.warning("Drafting service timeout", extra={"url": url})
            raise ProviderTimeout(
                f"No answer from {endpoint} within {self.timeout:.0f}s",
                details={"url": url},
            ) from e
        except httpx.HTTPError as e:
            logger.warning("Drafting service transport error", extra={"url": url, "error": str(e)})
            raise ProviderFailure(f"Transport error calling {endpoint}: {e}", details={"url": url}) from e

    def _json(self, response: httpx.Response, endpoint: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise ProviderFailure(f"Response from {endpoint} is not valid JSON") from e

    def _post(self, endpoint: str, draft_text: Optional[str], context: Dict[str, Any]) -> Any:
        payload = {"draftText": draft_text, "structuredContext": context}
        return self._json(self._request("POST", endpoint, payload), endpoint)

    def _fetch_job(self, job_id: str) -> Dict[str, Any]:
        endpoint = f"/jobs/{job_id}"
        data = self._json(self._request("GET", endpoint), endpoint)
        if not isinstance(data, dict):
            raise ProviderFailure(f"Malformed job status for {job_id}")
        return data

    # ------------------------------------------------------------------
    # ICorrectionProvider
    # ------------------------------------------------------------------

    def generate_draft(self, case_record: CaseRecord, context: Dict[str, Any]) -> str:
        endpoint = "/generate"
        payload = {
            "draftText": None,
            "structuredContext": {**context, "caseRecord": case_record.to_dict()},
        }
        response = self._request("POST", endpoint, payload)
        data = self._json(response, endpoint)

        if response.status_code == 202:
            job_id = data.get("jobId") if isinstance(data, dict) else None
            if not job_id:
                raise ProviderFailure("Generation accepted without a job id")
            logger.info(f"Draft generation for case {case_record.case_id} queued as job {job_id}")
            status = self._poller.poll(self._fetch_job, job_id, self._cancel_event)
            data = status.get("result", status)

        return parse_text(data, "generation")

    def critique(self, draft: str, context: Dict[str, Any]) -> CritiqueResult:
        return parse_critique(self._post("/critique", draft, context))

    def apply_corrections(self, draft: str, findings: List[Finding]) -> str:
        context = {"findings": [f.to_dict() for f in findings]}
        return parse_text(self._post("/apply-corrections", draft, context), "correction")

    def adapt_regional(self, draft: str, jurisdiction: Jurisdiction) -> RegionalAdaptation:
        context = {"jurisdiction": jurisdiction.to_dict()}
        return parse_regional(self._post("/adapt-regional", draft, context))

    def adapt_appellate(self, draft: str, context: Dict[str, Any]) -> AppellateAdaptation:
        return parse_appellate(self._post("/adapt-appellate", draft, context))

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
