# src/rscscan/tools/probe.py
"""
Non-destructive React Server Components probe.

Sends one Server Action invocation whose argument references a missing chunk
property. Vulnerable builds fail while deserializing it and answer with an error
digest; nothing is executed on the target. Redirects are never followed so the
raw first response reaches the classifier.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from rscscan.engine.errors import NetworkFailure
from rscscan.tools.base import SecurityToolAdapter

BOUNDARY = "----WebKitFormBoundaryx8jO2oVc6SWP3Sad"

# Part "1" is the referenced chunk, part "0" the action argument array
PROBE_PARTS = (
    ("1", "{}"),
    ("0", '["$1:a:a"]'),
)

PROBE_HEADERS = {
    "Content-Type": f"multipart/form-data; boundary={BOUNDARY}",
    "Next-Action": "x",
    "Next-Router-State-Tree": (
        "%5B%22%22%2C%7B%22children%22%3A%5B%22__PAGE__%22%2C%7B%7D%2Cnull%2Cnull"
        "%5D%7D%2Cnull%2Cnull%2Ctrue%5D"
    ),
    "X-Nextjs-Request-Id": "b5dce965",
    "X-Nextjs-Html-Request-Id": "SSTMXm7OJ_g0Ncx6jpQt9",
    "Accept": "text/x-component",
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/60.0.3112.113 Safari/537.36 React2ShellScanner/1.0.0"
    ),
}

CAPTURED_HEADERS = ("location", "x-action-redirect")


def build_probe_body() -> bytes:
    lines = []
    for name, value in PROBE_PARTS:
        lines += [f"--{BOUNDARY}", f'Content-Disposition: form-data; name="{name}"', "", value]
    lines.append(f"--{BOUNDARY}--")
    return "\r\n".join(lines).encode("utf-8")


@dataclass(frozen=True)
class ProbeSignal:
    """Raw observation of one probe. failure is set only when no response arrived."""

    http_status: Optional[int] = None
    body: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    failure: Optional[str] = None


class VulnerabilityProber(SecurityToolAdapter):
    def run_scan(self, target: str) -> ProbeSignal:
        try:
            response = self.send(
                "POST",
                target,
                headers=PROBE_HEADERS,
                data=build_probe_body(),
                allow_redirects=False,
            )
        except NetworkFailure as exc:
            logging.info(f"Probe of {target} got no response ({exc.kind})")
            return ProbeSignal(failure=exc.kind)

        captured = {name: response.headers[name] for name in CAPTURED_HEADERS if name in response.headers}
        logging.info(f"Probe of {target} returned HTTP {response.status_code}")
        return ProbeSignal(http_status=response.status_code, body=response.text, headers=captured)
