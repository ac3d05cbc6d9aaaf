"""FastAPI application for the case drafting system.

This module exposes the CaseDraftingService over HTTP: extraction
submission, pipeline runs streamed as NDJSON, finding application and
the latest draft.

Usage (from project root, after installing the ``server`` extra):

    CASE_DRAFTING_PROVIDER_URL=http://drafting:8080 \\
        uvicorn case_drafting.api.app:app --reload

Configuration is read from the CASE_DRAFTING_* environment variables,
optionally on top of the file named by CASE_DRAFTING_CONFIG.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from ..config.config_manager import ConfigurationManager
from ..exceptions import (
    DraftingError,
    FindingNotFoundError,
    JobTimeoutError,
    LeaseUnavailableError,
    PersistenceError,
    ProviderError,
    ProviderTimeout,
    ValidationError,
)
from ..service import CaseDraftingService


logger = logging.getLogger(__name__)

app = FastAPI(title="Case Drafting API", version="0.1.0")


class ExtractionIn(BaseModel):
    """One document extraction as submitted by the extraction service."""
    document_id: Optional[str] = None
    entities: Dict[str, Any] = Field(default_factory=dict)
    auto_filled_fields: Dict[str, Any] = Field(default_factory=dict)
    rural_periods: List[Dict[str, Any]] = Field(default_factory=list)
    extracted_at: Optional[datetime] = None


class BatchApplyIn(BaseModel):
    finding_ids: List[str]


def get_service(request: Request) -> CaseDraftingService:
    """Return the process-wide service, building it from the environment once."""
    service = getattr(request.app.state, "service", None)
    if service is None:
        manager = ConfigurationManager()
        manager.load_from_env()
        service = CaseDraftingService.from_settings(manager.settings)
        request.app.state.service = service
    return service


def _status_for(exc: DraftingError) -> int:
    if isinstance(exc, ValidationError):
        return 422
    if isinstance(exc, FindingNotFoundError):
        return 404
    if isinstance(exc, LeaseUnavailableError):
        return 409
    if isinstance(exc, (ProviderTimeout, JobTimeoutError)):
        return 504
    if isinstance(exc, ProviderError):
        # Rate limiting and exhausted quota keep their own status.
        return exc.status_code if exc.status_code in (402, 429) else 502
    if isinstance(exc, PersistenceError):
        return 503
    return 500


def _http_error(exc: DraftingError) -> HTTPException:
    status = _status_for(exc)
    if status >= 500:
        logger.error(f"Request failed: {exc}")
    return HTTPException(status_code=status, detail=exc.to_dict())


@app.post("/api/cases/{case_id}/extractions")
def submit_extractions(
    case_id: str,
    extractions: List[ExtractionIn],
    service: CaseDraftingService = Depends(get_service),
) -> JSONResponse:
    """Store extractions for a case and return the consolidated record."""
    try:
        record = service.submit_extractions(
            case_id, [e.model_dump() for e in extractions]
        )
    except DraftingError as exc:
        raise _http_error(exc) from exc

    return JSONResponse(status_code=200, content=record.to_dict())


@app.post("/api/cases/{case_id}/pipeline")
def run_pipeline(
    case_id: str,
    service: CaseDraftingService = Depends(get_service),
) -> StreamingResponse:
    """Run the correction pipeline, streaming each state change as a JSON line.

    The first event is produced before the response starts so that a case
    held by another operation is reported as 409 instead of a broken stream.
    """
    events = service.run_pipeline(case_id)
    try:
        first = next(events)
    except DraftingError as exc:
        raise _http_error(exc) from exc

    def stream() -> Iterator[str]:
        try:
            yield json.dumps(first.to_dict()) + "\n"
            for event in events:
                yield json.dumps(event.to_dict()) + "\n"
        finally:
            events.close()

    return StreamingResponse(stream(), media_type="application/x-ndjson")


@app.post("/api/cases/{case_id}/findings/apply-batch")
def apply_findings_batch(
    case_id: str,
    body: BatchApplyIn,
    service: CaseDraftingService = Depends(get_service),
) -> JSONResponse:
    """Apply several pending findings in one request."""
    try:
        result = service.apply_findings_batch(case_id, body.finding_ids)
    except DraftingError as exc:
        raise _http_error(exc) from exc

    return JSONResponse(status_code=200, content=result.to_dict())


@app.post("/api/cases/{case_id}/findings/{finding_id}/apply")
def apply_finding(
    case_id: str,
    finding_id: str,
    service: CaseDraftingService = Depends(get_service),
) -> JSONResponse:
    """Apply a single pending finding to the latest draft."""
    try:
        result = service.apply_finding(case_id, finding_id)
    except DraftingError as exc:
        raise _http_error(exc) from exc

    return JSONResponse(status_code=200, content=result.to_dict())


@app.get("/api/cases/{case_id}/draft")
def get_latest_draft(
    case_id: str,
    service: CaseDraftingService = Depends(get_service),
) -> JSONResponse:
    """Return the latest draft with its merged flags."""
    try:
        draft = service.get_latest_draft(case_id)
    except DraftingError as exc:
        raise _http_error(exc) from exc

    if draft is None:
        raise HTTPException(status_code=404, detail=f"Case {case_id} has no draft")
    return JSONResponse(status_code=200, content=draft.to_dict())
