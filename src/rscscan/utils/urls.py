# src/rscscan/utils/urls.py
"""
Target URL validation and normalization.

validate() is the SSRF boundary for the scanner: it must run before any outbound
request is issued for a submitted URL. normalize() only produces the cache/dedup key.
"""

import ipaddress
import socket
from typing import Callable, Iterable, List, Optional
from urllib.parse import urlsplit

from rscscan.engine.errors import InvalidTargetError

ALLOWED_SCHEMES = ("http", "https")
DEFAULT_PORTS = {"http": 80, "https": 443}
BLOCKED_HOSTNAMES = ("localhost",)

BLOCKED_NETWORKS = [
    ipaddress.ip_network(net)
    for net in (
        "0.0.0.0/8",
        "10.0.0.0/8",
        "127.0.0.0/8",
        "169.254.0.0/16",
        "172.16.0.0/12",
        "192.168.0.0/16",
        "::1/128",
        "fc00::/7",
        "fe80::/10",
    )
]

INVALID_URL_MESSAGE = "Please enter a valid URL starting with http:// or https://"
PRIVATE_URL_MESSAGE = "Scanning private/local URLs is not allowed"

Resolver = Callable[[str], Iterable[str]]


def socket_resolver(hostname: str) -> List[str]:
    """Resolve a hostname to every address it maps to."""
    infos = socket.getaddrinfo(hostname, None, proto=socket.IPPROTO_TCP)
    return sorted({info[4][0] for info in infos})


def _is_blocked_address(address: str) -> bool:
    try:
        ip = ipaddress.ip_address(address.split("%", 1)[0])
    except ValueError:
        return False
    if ip.version == 6 and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return any(ip.version == net.version and ip in net for net in BLOCKED_NETWORKS)


def validate(raw_url: str, resolver: Optional[Resolver] = None) -> None:
    """
    Raise InvalidTargetError if raw_url must not be scanned.

    With a resolver, every address the hostname resolves to is checked as well.
    A hostname that fails to resolve is let through; the fingerprint stage will
    report it as a network failure.
    """
    try:
        parsed = urlsplit(raw_url.strip())
        hostname = parsed.hostname
        # Accessing .port raises on out-of-range or non-numeric ports
        parsed.port
    except (AttributeError, ValueError):
        raise InvalidTargetError(INVALID_URL_MESSAGE)

    if parsed.scheme.lower() not in ALLOWED_SCHEMES or not hostname:
        raise InvalidTargetError(INVALID_URL_MESSAGE)

    hostname = hostname.lower().rstrip(".")
    if hostname in BLOCKED_HOSTNAMES or hostname.endswith(".localhost"):
        raise InvalidTargetError(PRIVATE_URL_MESSAGE)
    if _is_blocked_address(hostname):
        raise InvalidTargetError(PRIVATE_URL_MESSAGE)

    if resolver is None:
        return
    try:
        addresses = list(resolver(hostname))
    except (OSError, UnicodeError):
        return
    if any(_is_blocked_address(address) for address in addresses):
        raise InvalidTargetError(PRIVATE_URL_MESSAGE)


def normalize(url: str) -> str:
    """
    Canonical form of a URL for cache lookups.

    Lower-cases scheme and host, keeps only non-default ports, strips trailing
    slashes from the path and drops credentials, query string and fragment.
    """
    parsed = urlsplit(url.strip())
    scheme = parsed.scheme.lower()
    hostname = (parsed.hostname or "").lower()
    if ":" in hostname:
        hostname = f"[{hostname}]"

    netloc = hostname
    port = parsed.port
    if port is not None and port != DEFAULT_PORTS.get(scheme):
        netloc = f"{hostname}:{port}"

    path = parsed.path.rstrip("/") or "/"
    return f"{scheme}://{netloc}{path}"
