# src/rscscan/engine/job_store.py
"""
JobStore: persistence of scan jobs behind immutable snapshots.

Callers never hold ORM rows. Every read returns a frozen ScanJobRecord, and the terminal
write is a single conditional UPDATE, so a concurrent reader sees either the running row
or the fully populated terminal row.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from rscscan.engine.errors import JobNotFound, OrchestrationFault
from rscscan.engine.models import ACTIVE_STATUSES, COMPLETE, ERROR, RUNNING, ScanJob, utcnow
from rscscan.engine.scan_engine import ScanOutcome


@dataclass(frozen=True)
class ScanJobRecord:
    id: str
    url: str
    normalized_url: str
    status: str
    created_at: datetime
    authorization_confirmed: bool = False
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    vulnerable: Optional[bool] = None
    confidence: Optional[str] = None
    uses_rsc: Optional[bool] = None
    framework: Optional[str] = None
    detected_version: Optional[str] = None
    http_status: Optional[int] = None
    error_signature: Optional[str] = None
    raw_response: Optional[str] = None
    duration_ms: Optional[int] = None
    completed_at: Optional[datetime] = None


def _to_record(job: ScanJob) -> ScanJobRecord:
    return ScanJobRecord(
        id=job.id,
        url=job.url,
        normalized_url=job.normalized_url,
        status=job.status,
        created_at=job.created_at,
        authorization_confirmed=bool(job.authorization_confirmed),
        ip_address=job.ip_address,
        user_agent=job.user_agent,
        vulnerable=job.vulnerable,
        confidence=job.confidence,
        uses_rsc=job.uses_rsc,
        framework=job.framework,
        detected_version=job.detected_version,
        http_status=job.http_status,
        error_signature=job.error_signature,
        raw_response=job.raw_response,
        duration_ms=job.duration_ms,
        completed_at=job.completed_at,
    )


class JobStore:
    def __init__(self, session_factory):
        self.session_factory = session_factory

    @contextmanager
    def _session(self, action: str):
        db = self.session_factory()
        try:
            yield db
        except SQLAlchemyError as e:
            db.rollback()
            raise OrchestrationFault(f"Could not {action}: {e}") from e
        finally:
            db.close()

    def create(self, job_id: str, url: str, normalized_url: str, authorization_confirmed: bool = False,
               ip_address: Optional[str] = None, user_agent: Optional[str] = None) -> ScanJobRecord:
        with self._session("create scan job") as db:
            job = ScanJob(
                id=job_id,
                url=url,
                normalized_url=normalized_url,
                status=RUNNING,
                authorization_confirmed=authorization_confirmed,
                ip_address=ip_address,
                user_agent=user_agent,
                created_at=utcnow(),
            )
            db.add(job)
            db.commit()
            return _to_record(job)

    def get(self, job_id: str) -> ScanJobRecord:
        with self._session("read scan job") as db:
            job = db.query(ScanJob).filter(ScanJob.id == job_id).first()
            if job is None:
                raise JobNotFound(job_id)
            return _to_record(job)

    def list(self, status: Optional[str] = None, limit: int = 20, offset: int = 0) -> List[ScanJobRecord]:
        with self._session("list scan jobs") as db:
            query = db.query(ScanJob)
            if status:
                query = query.filter(ScanJob.status == status)
            jobs = query.order_by(ScanJob.created_at.desc()).offset(offset).limit(limit).all()
            return [_to_record(job) for job in jobs]

    def _finalize(self, job_id: str, values: dict) -> bool:
        with self._session("finalize scan job") as db:
            updated = (
                db.query(ScanJob)
                .filter(ScanJob.id == job_id, ScanJob.status.in_(ACTIVE_STATUSES))
                .update(values, synchronize_session=False)
            )
            db.commit()
        if not updated:
            logging.warning(f"[job_id={job_id}] Ignored {values['status']} write: job is already terminal or unknown")
        return bool(updated)

    def complete(self, job_id: str, outcome: ScanOutcome) -> bool:
        """Move a running job to complete. Returns False if it was already terminal."""
        return self._finalize(job_id, {
            "status": COMPLETE,
            "vulnerable": outcome.vulnerable,
            "confidence": outcome.confidence,
            "uses_rsc": outcome.uses_rsc,
            "framework": outcome.framework,
            "detected_version": outcome.detected_version,
            "http_status": outcome.http_status,
            "error_signature": outcome.error_signature,
            "raw_response": outcome.raw_response,
            "duration_ms": outcome.duration_ms,
            "completed_at": utcnow(),
        })

    def fail(self, job_id: str) -> bool:
        """Move a running job to error, leaving every result field empty."""
        return self._finalize(job_id, {"status": ERROR, "completed_at": utcnow()})
