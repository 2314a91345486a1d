# src/rscscan/engine/classifier.py
"""
Signature classifier: maps a ProbeSignal to a confidence-rated verdict.

Rules are evaluated in order and the first matching predicate wins. New signatures
are added by inserting a Rule into SIGNATURE_RULES; the fallback verdict is used when
nothing more specific matches.
"""

import re
from dataclasses import dataclass
from typing import Callable, Optional

from rscscan.engine.errors import NetworkFailure
from rscscan.tools.probe import ProbeSignal

HIGH = "high"
MEDIUM = "medium"
LOW = "low"

ERROR_DIGEST_MARKER = 'E{"digest"'
GENERIC_ERROR_TOKEN = "error"
REDIRECT_STATUSES = (302, 303)
# Value an evaluated "41*271" expression leaves in the redirect target
ACTION_REDIRECT_MARKER_RE = re.compile(r"[?&]a=11111(?:[&#;]|$)")


@dataclass(frozen=True)
class Verdict:
    vulnerable: bool
    confidence: str
    signature: str


@dataclass(frozen=True)
class Rule:
    name: str
    matches: Callable[[ProbeSignal], bool]
    verdict: Callable[[ProbeSignal], Verdict]


def _is_500(signal: ProbeSignal) -> bool:
    return signal.failure is None and signal.http_status == 500


def _redirect_evaluated(signal: ProbeSignal) -> bool:
    if signal.failure is not None or signal.http_status not in REDIRECT_STATUSES:
        return False
    action_redirect = signal.headers.get("x-action-redirect", "")
    return ACTION_REDIRECT_MARKER_RE.search(action_redirect) is not None


def _fixed(vulnerable: bool, confidence: str, signature: str) -> Callable[[ProbeSignal], Verdict]:
    verdict = Verdict(vulnerable, confidence, signature)
    return lambda signal: verdict


SIGNATURE_RULES = (
    Rule(
        "timeout",
        lambda s: s.failure == NetworkFailure.TIMEOUT,
        _fixed(False, LOW, "timeout"),
    ),
    Rule(
        "network-error",
        lambda s: s.failure is not None,
        _fixed(False, LOW, "network error"),
    ),
    Rule(
        "500-error-digest",
        lambda s: _is_500(s) and ERROR_DIGEST_MARKER in s.body,
        _fixed(True, HIGH, "500 + error digest"),
    ),
    Rule(
        "500-generic-error",
        lambda s: _is_500(s) and GENERIC_ERROR_TOKEN in s.body.lower(),
        _fixed(True, MEDIUM, "500 + generic error"),
    ),
    # A 500 carrying neither marker is not counted as vulnerable
    Rule(
        "500-bare",
        _is_500,
        _fixed(False, LOW, "HTTP 500 (no digest)"),
    ),
    Rule(
        "action-redirect-evaluated",
        _redirect_evaluated,
        _fixed(True, HIGH, "action-redirect payload evaluated"),
    ),
)


def _fallback(signal: ProbeSignal) -> Verdict:
    return Verdict(False, LOW, f"HTTP {signal.http_status}")


def classify(signal: ProbeSignal, rules=SIGNATURE_RULES) -> Verdict:
    for rule in rules:
        if rule.matches(signal):
            return rule.verdict(signal)
    return _fallback(signal)


def matching_rule(signal: ProbeSignal, rules=SIGNATURE_RULES) -> Optional[str]:
    """Name of the rule that decides signal, or None for the fallback."""
    for rule in rules:
        if rule.matches(signal):
            return rule.name
    return None
