# src/rscscan/engine/orchestrator.py
"""
ScanOrchestrator: owns the scan job state machine.

    submit -> (fresh cache hit) -> cached snapshot, no job, no network
           -> job persisted as running -> pipeline on the JobManager
                  -> complete (+ cache upsert) | error

Every dispatched job is driven to exactly one terminal state by _execute, whether or
not anybody polls it afterwards.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import List, Optional

from rscscan.engine import scan_engine
from rscscan.engine.errors import JobNotFound, OrchestrationFault
from rscscan.engine.job_manager import JobManager
from rscscan.engine.job_store import JobStore, ScanJobRecord
from rscscan.engine.result_cache import ResultCache
from rscscan.tools.fingerprint import Fingerprinter
from rscscan.tools.probe import VulnerabilityProber
from rscscan.utils.urls import Resolver, normalize, validate


@dataclass(frozen=True)
class Submission:
    record: ScanJobRecord
    cached: bool = False


class ScanOrchestrator:
    def __init__(self, store: JobStore, cache: ResultCache, job_manager: JobManager,
                 fingerprinter: Fingerprinter, prober: VulnerabilityProber,
                 resolver: Optional[Resolver] = None):
        self.store = store
        self.cache = cache
        self.job_manager = job_manager
        self.fingerprinter = fingerprinter
        self.prober = prober
        self.resolver = resolver

    def submit(self, url: str, authorization_confirmed: bool = False,
               ip_address: Optional[str] = None, user_agent: Optional[str] = None) -> Submission:
        url = url.strip()
        # Literal checks only; DNS is consulted after a cache miss
        validate(url)
        normalized_url = normalize(url)

        cached = self._cached_submission(normalized_url)
        if cached is not None:
            return cached
        if self.resolver is not None:
            validate(url, resolver=self.resolver)

        job_id = str(uuid.uuid4())
        record = self.store.create(
            job_id,
            url,
            normalized_url,
            authorization_confirmed=authorization_confirmed,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        logging.info(f"[job_id={job_id}] Created scan job for {normalized_url}")
        self.job_manager.submit_job(job_id, self._execute, job_id, url, normalized_url)
        return Submission(record)

    def _cached_submission(self, normalized_url: str) -> Optional[Submission]:
        entry = self.cache.get_fresh(normalized_url)
        if entry is None:
            return None
        try:
            record = self.store.get(entry.last_scan_id)
        except JobNotFound:
            logging.warning(f"Cache entry for {normalized_url} points at missing job {entry.last_scan_id}")
            return None
        logging.info(f"[job_id={record.id}] Cache hit for {normalized_url}, expires {entry.expires_at.isoformat()}")
        return Submission(record, cached=True)

    def _execute(self, job_id: str, url: str, normalized_url: str) -> ScanJobRecord:
        logging.info(f"[job_id={job_id}] Started scan job.")
        try:
            outcome = scan_engine.scan_target(url, self.fingerprinter, self.prober)
            finalized = self.store.complete(job_id, outcome)
        except Exception as e:
            logging.exception(f"[job_id={job_id}] Scan job failed: {e}")
            try:
                self.store.fail(job_id)
            except OrchestrationFault as fault:
                logging.critical(f"[job_id={job_id}] Could not record failure, job is stuck in running: {fault}")
                raise
            return self.store.get(job_id)

        if finalized:
            logging.info(
                f"[job_id={job_id}] Completed scan job. vulnerable={outcome.vulnerable} "
                f"confidence={outcome.confidence} probed={outcome.probed} duration_ms={outcome.duration_ms}"
            )
            try:
                self.cache.put(normalized_url, job_id, outcome.vulnerable, outcome.confidence)
            except Exception as e:
                # The job is already terminal; a missed cache write only costs a re-scan
                logging.error(f"[job_id={job_id}] Cache update failed: {e}")
        return self.store.get(job_id)

    def finalize(self, job_id: str, outcome: scan_engine.ScanOutcome) -> bool:
        """Write a complete result. Rejected (False) when the job is already terminal."""
        return self.store.complete(job_id, outcome)

    def get(self, job_id: str) -> ScanJobRecord:
        return self.store.get(job_id)

    def history(self, status: Optional[str] = None, limit: int = 20, offset: int = 0) -> List[ScanJobRecord]:
        return self.store.list(status=status, limit=limit, offset=offset)

    def wait(self, job_id: str, timeout: Optional[float] = None) -> bool:
        return self.job_manager.wait(job_id, timeout=timeout)
