# src/rscscan/api/routes.py
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from rscscan.api.ratelimit import RateLimiter
from rscscan.api.schemas import JobStatus, PromptResponse, ScanJobResponse, ScanRequest, ScanResultBody
from rscscan.engine.errors import InvalidTargetError, JobNotFound
from rscscan.engine.job_store import ScanJobRecord
from rscscan.engine.models import COMPLETE, ERROR
from rscscan.engine.orchestrator import ScanOrchestrator
from rscscan.utils.remediation import generate_prompt, result_message
import logging

router = APIRouter()


class RateLimitExceeded(Exception):
    def __init__(self, decision):
        super().__init__("Too many requests")
        self.decision = decision


def get_orchestrator(request: Request) -> ScanOrchestrator:
    return request.app.state.orchestrator


def get_rate_limiter(request: Request) -> Optional[RateLimiter]:
    return getattr(request.app.state, "rate_limiter", None)


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "127.0.0.1"


def enforce_rate_limit(request: Request, rate_limiter: Optional[RateLimiter] = Depends(get_rate_limiter)):
    if rate_limiter is None:
        return
    decision = rate_limiter.check(f"ratelimit_scan_{client_ip(request)}")
    if not decision.allowed:
        raise RateLimitExceeded(decision)


def job_payload(record: ScanJobRecord, cached: bool = False) -> dict:
    result = None
    if record.status == COMPLETE:
        result = ScanResultBody(
            vulnerable=record.vulnerable,
            confidence=record.confidence,
            uses_rsc=record.uses_rsc,
            framework=record.framework,
            detected_version=record.detected_version,
            http_status=record.http_status,
            error_signature=record.error_signature,
            duration_ms=record.duration_ms,
            completed_at=record.completed_at,
            message="Cached result" if cached else result_message(
                record.vulnerable, record.uses_rsc, record.framework, record.detected_version
            ),
        )
    response = ScanJobResponse(
        id=record.id,
        status=record.status,
        url=record.url,
        created_at=record.created_at,
        result=result,
        error="Scan failed" if record.status == ERROR else None,
        cached=True if cached else None,
    )
    payload = response.model_dump(mode="json", by_alias=True)
    return {key: value for key, value in payload.items() if value is not None}


@router.post(
    "/scan",
    summary="Submit a scan job (async)",
    response_description="Running job, or a cached complete result",
    tags=["Scan Jobs"],
    response_model=dict,
    status_code=202,
    responses={
        200: {"description": "Fresh cached result returned, no new job created"},
        202: {"description": "Job accepted and running"},
        400: {"description": "Invalid request, disallowed target or honeypot filled"},
        429: {"description": "Rate limit exceeded"},
    },
    dependencies=[Depends(enforce_rate_limit)],
)
def submit_scan(request: Request, body: ScanRequest, orchestrator: ScanOrchestrator = Depends(get_orchestrator)):
    """
    Submit a URL for scanning. Returns immediately; poll GET /scans/{id} for the verdict.
    """
    if body.website:
        logging.info(f"Honeypot field filled by {client_ip(request)}; rejecting scan request")
        return JSONResponse(status_code=400, content={"error": "Bot detected"})
    if body.authorization_confirmed is not True:
        return JSONResponse(status_code=400, content={
            "error": "Validation error",
            "message": "Authorization must be confirmed",
        })
    try:
        submission = orchestrator.submit(
            body.url,
            authorization_confirmed=True,
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    except InvalidTargetError as e:
        return JSONResponse(status_code=400, content={"error": "Validation error", "message": e.reason})

    if submission.cached:
        return JSONResponse(status_code=200, content=job_payload(submission.record, cached=True))
    return job_payload(submission.record)


@router.get(
    "/scans",
    summary="Query scan job history",
    response_description="Most recent scan jobs, newest first",
    tags=["Scan Jobs"],
    response_model=list,
)
def get_scan_history(
    status: Optional[JobStatus] = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
):
    """
    Query scan job history, optionally filtered by status.
    """
    return [job_payload(record) for record in orchestrator.history(status=status, limit=limit, offset=offset)]


@router.get(
    "/scans/{job_id}",
    summary="Get scan job status and result",
    response_description="Scan job status and, once complete, its verdict",
    tags=["Scan Jobs"],
    response_model=dict,
    responses={404: {"description": "Job not found"}},
)
def get_scan(job_id: str, orchestrator: ScanOrchestrator = Depends(get_orchestrator)):
    """
    Get the status and result of a scan job by job ID.
    """
    try:
        record = orchestrator.get(job_id)
    except JobNotFound:
        return JSONResponse(status_code=404, content={"error": "Scan not found"})
    return job_payload(record)


@router.get(
    "/prompt",
    summary="Remediation prompt for a vulnerable scan",
    tags=["Remediation"],
    response_model=PromptResponse,
    responses={
        400: {"description": "scanId missing, or scan not complete and vulnerable"},
        404: {"description": "Job not found"},
    },
)
def get_prompt(scan_id: Optional[str] = Query(None, alias="scanId"),
               orchestrator: ScanOrchestrator = Depends(get_orchestrator)):
    if not scan_id:
        return JSONResponse(status_code=400, content={"error": "scanId parameter is required"})
    try:
        record = orchestrator.get(scan_id)
    except JobNotFound:
        return JSONResponse(status_code=404, content={"error": "Scan not found"})
    if record.status != COMPLETE or not record.vulnerable:
        return JSONResponse(status_code=400, content={"error": "Prompt only available for completed vulnerable scans"})

    prompt = generate_prompt(
        record.url,
        framework=record.framework,
        detected_version=record.detected_version,
        confidence=record.confidence,
        error_signature=record.error_signature,
    )
    return PromptResponse(
        scan_id=record.id,
        prompt=prompt["prompt"],
        short_prompt=prompt["shortPrompt"],
        manual_steps=prompt["manualSteps"],
    )


@router.get("/health")
def health_check():
    return {"status": "ok"}
