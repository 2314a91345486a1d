# src/rscscan/engine/scan_engine.py
# Fingerprint -> optional probe -> classify, for a single already validated URL
import logging
import time
from dataclasses import dataclass
from typing import Optional

from rscscan.engine.classifier import LOW, classify, matching_rule
from rscscan.tools.fingerprint import Fingerprinter
from rscscan.tools.probe import VulnerabilityProber

RAW_RESPONSE_LIMIT = 1000


@dataclass(frozen=True)
class ScanOutcome:
    vulnerable: bool
    confidence: str
    uses_rsc: bool
    framework: Optional[str]
    detected_version: Optional[str]
    http_status: Optional[int]
    error_signature: Optional[str]
    raw_response: Optional[str]
    duration_ms: int
    probed: bool


def scan_target(url: str, fingerprinter: Fingerprinter, prober: VulnerabilityProber) -> ScanOutcome:
    started = time.monotonic()
    fingerprint = fingerprinter.run_scan(url)

    if not fingerprint.uses_rsc:
        return ScanOutcome(
            vulnerable=False,
            confidence=LOW,
            uses_rsc=False,
            framework=fingerprint.framework,
            detected_version=fingerprint.version,
            http_status=None,
            error_signature=None,
            raw_response=None,
            duration_ms=int((time.monotonic() - started) * 1000),
            probed=False,
        )

    signal = prober.run_scan(url)
    verdict = classify(signal)
    logging.info(
        f"Classified probe of {url}: rule={matching_rule(signal) or 'fallback'} "
        f"vulnerable={verdict.vulnerable} confidence={verdict.confidence}"
    )
    return ScanOutcome(
        vulnerable=verdict.vulnerable,
        confidence=verdict.confidence,
        uses_rsc=True,
        framework=fingerprint.framework,
        detected_version=fingerprint.version,
        http_status=signal.http_status,
        error_signature=verdict.signature,
        raw_response=signal.body[:RAW_RESPONSE_LIMIT] if signal.body else None,
        duration_ms=int((time.monotonic() - started) * 1000),
        probed=True,
    )
