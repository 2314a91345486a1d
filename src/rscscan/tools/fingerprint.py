# src/rscscan/tools/fingerprint.py
"""
Framework fingerprinting from one benign GET request, following redirects only to
addresses that pass the same checks as the submitted URL.

Detects Next.js and Remix, whether the page is rendered with React Server Components,
and a framework version when the response leaks one.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urljoin

from rscscan.engine.errors import InvalidTargetError, NetworkFailure
from rscscan.tools.base import SCANNER_USER_AGENT, SecurityToolAdapter
from rscscan.utils.urls import Resolver, validate

RSC_CONTENT_TYPE = "text/x-component"

NEXTJS = "nextjs"
REMIX = "remix"

NEXTJS_HEADER = "x-nextjs-cache"
NEXTJS_BODY_MARKERS = ("__NEXT_DATA__", "/_next/static")
NEXTJS_BUILD_MANIFEST_RE = re.compile(r"/_next/static/([^/\"']+)/_buildManifest\.js")
NEXTJS_FLIGHT_MARKERS = ("__next_f", "self.__next_f")

REMIX_BODY_MARKERS = ("__remixContext", "__remixManifest")
REMIX_RSC_MARKER = "__remix_rsc"

POWERED_BY_VERSION_RE = re.compile(r"Next\.js[/ ]?v?(\d+\.\d+\.\d+)", re.IGNORECASE)
BODY_VERSION_PATTERNS = (
    re.compile(r"Next\.js\s+v?(\d+\.\d+\.\d+)", re.IGNORECASE),
    re.compile(r"[\"']next[\"']\s*:\s*[\"']\^?(\d+\.\d+\.\d+)"),
    re.compile(r"[\"']@remix-run/react[\"']\s*:\s*[\"']\^?(\d+\.\d+\.\d+)"),
)


@dataclass(frozen=True)
class Fingerprint:
    framework: Optional[str] = None
    version: Optional[str] = None
    uses_rsc: bool = False


def _detect_version(powered_by: str, body: str) -> Optional[str]:
    match = POWERED_BY_VERSION_RE.search(powered_by)
    if match:
        return match.group(1)
    for pattern in BODY_VERSION_PATTERNS:
        match = pattern.search(body)
        if match:
            return match.group(1)
    return None


def analyze_response(headers, body: str) -> Fingerprint:
    """Classify an already-fetched response. Header lookups are case-insensitive."""
    powered_by = headers.get("x-powered-by") or ""
    content_type = headers.get("content-type") or ""

    if (
        headers.get(NEXTJS_HEADER)
        or "next" in powered_by.lower()
        or any(marker in body for marker in NEXTJS_BODY_MARKERS)
    ):
        uses_rsc = (
            NEXTJS_BUILD_MANIFEST_RE.search(body) is not None
            or any(marker in body for marker in NEXTJS_FLIGHT_MARKERS)
            or RSC_CONTENT_TYPE in content_type
        )
        return Fingerprint(NEXTJS, _detect_version(powered_by, body), uses_rsc)

    if any(marker in body for marker in REMIX_BODY_MARKERS):
        return Fingerprint(REMIX, _detect_version(powered_by, body), REMIX_RSC_MARKER in body)

    return Fingerprint(None, None, RSC_CONTENT_TYPE in body)


class Fingerprinter(SecurityToolAdapter):
    ACCEPT = "text/html,text/x-component"
    MAX_REDIRECTS = 5
    REDIRECT_STATUSES = (301, 302, 303, 307, 308)

    def __init__(self, timeout: float, resolver: Optional[Resolver] = None, **kwargs):
        super().__init__(timeout, **kwargs)
        self.resolver = resolver

    def run_scan(self, target: str) -> Fingerprint:
        deadline = self.deadline()
        url = target
        try:
            for _ in range(self.MAX_REDIRECTS + 1):
                response = self.send(
                    "GET",
                    url,
                    deadline=deadline,
                    headers={"Accept": self.ACCEPT, "User-Agent": SCANNER_USER_AGENT},
                    allow_redirects=False,
                )
                location = response.headers.get("location")
                if response.status_code not in self.REDIRECT_STATUSES or not location:
                    break
                # Redirect targets pass the same address checks as the submitted URL
                url = urljoin(url, location)
                validate(url, resolver=self.resolver)
            else:
                logging.info(f"Fingerprint of {target} exceeded {self.MAX_REDIRECTS} redirects; treating as unknown")
                return Fingerprint()
        except NetworkFailure as exc:
            logging.info(f"Fingerprint of {target} failed ({exc.kind}); treating as unknown")
            return Fingerprint()
        except InvalidTargetError as exc:
            logging.warning(f"Fingerprint of {target} refused redirect to {url}: {exc.reason}")
            return Fingerprint()

        fingerprint = analyze_response(response.headers, response.text)
        logging.info(
            f"Fingerprinted {url}: status={response.status_code} framework={fingerprint.framework} "
            f"version={fingerprint.version} uses_rsc={fingerprint.uses_rsc}"
        )
        return fingerprint
