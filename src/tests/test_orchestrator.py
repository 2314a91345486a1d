import logging
from datetime import datetime, timedelta

import pytest
import requests
import responses

from rscscan.engine.errors import InvalidTargetError, JobNotFound, OrchestrationFault
from rscscan.engine.job_store import JobStore
from rscscan.engine.orchestrator import ScanOrchestrator
from rscscan.engine.result_cache import SqlResultCache
from rscscan.engine.scan_engine import ScanOutcome
from rscscan.tools.fingerprint import Fingerprinter
from rscscan.tools.probe import VulnerabilityProber

from payloads import DIGEST_BODY, NEXT_RSC_HTML, PLAIN_HTML, TARGET, post_calls


class ExplodingFingerprinter(Fingerprinter):
    def __init__(self):
        super().__init__(timeout=10)

    def run_scan(self, target):
        raise RuntimeError("fingerprint stage crashed")


def _outcome(vulnerable=True, confidence="high"):
    return ScanOutcome(
        vulnerable=vulnerable, confidence=confidence, uses_rsc=True, framework="nextjs",
        detected_version=None, http_status=500, error_signature="500 + error digest",
        raw_response=None, duration_ms=5, probed=True,
    )


def _run(orchestrator, url=TARGET):
    submission = orchestrator.submit(url, authorization_confirmed=True)
    assert orchestrator.wait(submission.record.id, timeout=10)
    return orchestrator.get(submission.record.id)


def test_submit_returns_running_job_immediately(orchestrator, mocked):
    mocked.add(responses.GET, TARGET, body=PLAIN_HTML)
    submission = orchestrator.submit(TARGET, authorization_confirmed=True, ip_address="203.0.113.7")
    assert submission.cached is False
    assert submission.record.status == "running"
    assert submission.record.vulnerable is None
    assert submission.record.normalized_url == "https://example.com/"
    assert submission.record.ip_address == "203.0.113.7"
    orchestrator.wait(submission.record.id, timeout=10)


def test_vulnerable_target(orchestrator, mocked):
    mocked.add(responses.GET, TARGET, body=NEXT_RSC_HTML)
    mocked.add(responses.POST, TARGET, status=500, body=DIGEST_BODY)

    job = _run(orchestrator)
    assert job.status == "complete"
    assert job.vulnerable is True
    assert job.confidence == "high"
    assert job.uses_rsc is True
    assert job.framework == "nextjs"
    assert job.http_status == 500
    assert job.error_signature == "500 + error digest"
    assert job.raw_response == DIGEST_BODY
    assert job.completed_at is not None
    assert job.duration_ms >= 0


def test_no_rsc_skips_the_probe(orchestrator, mocked):
    mocked.add(responses.GET, TARGET, body=PLAIN_HTML)
    mocked.add(responses.POST, TARGET, status=500, body=DIGEST_BODY)

    job = _run(orchestrator)
    assert job.status == "complete"
    assert job.vulnerable is False
    assert job.confidence == "low"
    assert job.uses_rsc is False
    assert job.framework is None
    assert len(post_calls(mocked)) == 0


def test_unreachable_target_completes_not_vulnerable(orchestrator, mocked):
    job = _run(orchestrator, "https://unreachable.example/")
    assert job.status == "complete"
    assert job.vulnerable is False
    assert job.uses_rsc is False


def test_probe_timeout_completes_with_low_confidence(orchestrator, mocked):
    mocked.add(responses.GET, TARGET, body=NEXT_RSC_HTML)
    mocked.add(responses.POST, TARGET, body=requests.exceptions.ReadTimeout("timed out"))

    job = _run(orchestrator)
    assert job.status == "complete"
    assert job.vulnerable is False
    assert job.confidence == "low"
    assert job.error_signature == "timeout"
    assert job.http_status is None
    assert len(post_calls(mocked)) == 1


def test_invalid_target_is_rejected_before_any_request(orchestrator, mocked, store):
    with pytest.raises(InvalidTargetError):
        orchestrator.submit("http://192.168.1.1/", authorization_confirmed=True)
    assert len(mocked.calls) == 0
    assert store.list() == []


def test_second_submission_is_served_from_cache(orchestrator, mocked):
    mocked.add(responses.GET, TARGET, body=NEXT_RSC_HTML)
    mocked.add(responses.POST, TARGET, status=500, body="plain error")

    first = _run(orchestrator)
    calls_after_first = len(mocked.calls)
    assert calls_after_first == 2

    second = orchestrator.submit("HTTPS://EXAMPLE.com", authorization_confirmed=True)
    assert second.cached is True
    assert second.record.id == first.id
    assert second.record.confidence == "medium"
    assert len(mocked.calls) == calls_after_first


def test_error_status_is_terminal(store, cache, job_manager, mocked):
    orchestrator = ScanOrchestrator(
        store=store, cache=cache, job_manager=job_manager,
        fingerprinter=ExplodingFingerprinter(), prober=VulnerabilityProber(timeout=15),
    )
    job = _run(orchestrator)
    assert job.status == "error"
    assert job.vulnerable is None
    assert job.confidence is None
    assert job.error_signature is None
    assert cache.get(job.normalized_url) is None

    assert orchestrator.finalize(job.id, _outcome()) is False
    assert orchestrator.get(job.id).status == "error"
    assert orchestrator.get(job.id).vulnerable is None


def test_complete_job_is_write_once(orchestrator, mocked):
    mocked.add(responses.GET, TARGET, body=PLAIN_HTML)
    job = _run(orchestrator)
    assert job.status == "complete"

    assert orchestrator.finalize(job.id, _outcome(vulnerable=True, confidence="high")) is False
    again = orchestrator.get(job.id)
    assert again.vulnerable is False
    assert again.confidence == "low"
    assert again.completed_at == job.completed_at


def test_concurrent_jobs_for_different_urls(orchestrator, mocked):
    urls = [f"https://site{i}.example/" for i in range(4)]
    for url in urls:
        mocked.add(responses.GET, url, body=NEXT_RSC_HTML)
        mocked.add(responses.POST, url, status=200, body="ok")

    ids = [orchestrator.submit(url, authorization_confirmed=True).record.id for url in urls]
    for job_id in ids:
        assert orchestrator.wait(job_id, timeout=10)
    jobs = [orchestrator.get(job_id) for job_id in ids]
    assert {job.status for job in jobs} == {"complete"}
    assert {job.error_signature for job in jobs} == {"HTTP 200"}


def test_unknown_job(orchestrator):
    with pytest.raises(JobNotFound):
        orchestrator.get("does-not-exist")


def test_stale_cache_entry_is_ignored(session_factory):
    now = [datetime(2026, 1, 1, 12, 0, 0)]
    cache = SqlResultCache(session_factory, ttl=timedelta(hours=1), clock=lambda: now[0])

    entry = cache.put("https://example.com/", "job-1", True, "high")
    assert entry.expires_at == entry.cached_at + timedelta(hours=1)
    assert cache.get_fresh("https://example.com/") is not None

    now[0] += timedelta(hours=1)
    assert cache.get_fresh("https://example.com/") is None
    assert cache.get("https://example.com/").last_scan_id == "job-1"


def test_cache_upsert_is_last_write_wins(cache):
    cache.put("https://example.com/", "job-1", True, "high")
    cache.put("https://example.com/", "job-2", False, "low")
    entry = cache.get("https://example.com/")
    assert entry.last_scan_id == "job-2"
    assert entry.vulnerable is False


def test_history_filters_by_status(store):
    store.create("a", TARGET, "https://example.com/")
    store.create("b", "https://example.org/", "https://example.org/")
    assert {record.id for record in store.list()} == {"a", "b"}
    assert len(store.list(limit=1)) == 1
    assert store.list(status="complete") == []


def test_cache_hit_does_not_resolve_the_host(store, cache, job_manager, mocked):
    lookups = []

    def resolver(host):
        lookups.append(host)
        return ["93.184.216.34"]

    orchestrator = ScanOrchestrator(
        store=store, cache=cache, job_manager=job_manager,
        fingerprinter=Fingerprinter(timeout=10, resolver=resolver), prober=VulnerabilityProber(timeout=15),
        resolver=resolver,
    )
    mocked.add(responses.GET, TARGET, body=PLAIN_HTML)
    _run(orchestrator)
    assert lookups == ["example.com"]

    assert orchestrator.submit(TARGET, authorization_confirmed=True).cached is True
    assert lookups == ["example.com"]


def test_private_resolution_is_rejected_on_cache_miss(store, cache, job_manager, mocked):
    orchestrator = ScanOrchestrator(
        store=store, cache=cache, job_manager=job_manager,
        fingerprinter=Fingerprinter(timeout=10), prober=VulnerabilityProber(timeout=15),
        resolver=lambda host: ["10.0.0.5"],
    )
    with pytest.raises(InvalidTargetError):
        orchestrator.submit(TARGET, authorization_confirmed=True)
    assert store.list() == []
    assert len(mocked.calls) == 0


class UnwritableStore(JobStore):
    def fail(self, job_id):
        raise OrchestrationFault("Could not finalize scan job: database is locked")


def test_unrecordable_failure_is_logged(session_factory, cache, job_manager, caplog):
    orchestrator = ScanOrchestrator(
        store=UnwritableStore(session_factory), cache=cache, job_manager=job_manager,
        fingerprinter=ExplodingFingerprinter(), prober=VulnerabilityProber(timeout=15),
    )
    submission = orchestrator.submit(TARGET, authorization_confirmed=True)
    assert orchestrator.wait(submission.record.id, timeout=10)

    assert orchestrator.get(submission.record.id).status == "running"
    stuck = [r for r in caplog.records if r.levelno == logging.CRITICAL]
    assert len(stuck) == 1
    assert "stuck in running" in stuck[0].getMessage()
    assert submission.record.id in stuck[0].getMessage()
