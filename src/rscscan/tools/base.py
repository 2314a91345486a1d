# src/rscscan/tools/base.py
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import requests
from requests.structures import CaseInsensitiveDict
from urllib3.exceptions import HTTPError as Urllib3HTTPError
from urllib3.exceptions import ReadTimeoutError

from rscscan.engine.errors import NetworkFailure

SCANNER_USER_AGENT = "React2ShellScanner/1.0 (Security Research)"

# Only the head of a response is ever inspected
MAX_BODY_BYTES = 512 * 1024
READ_CHUNK_BYTES = 16 * 1024


@dataclass(frozen=True)
class FetchedResponse:
    status_code: int
    headers: CaseInsensitiveDict
    text: str


class SecurityToolAdapter(ABC):
    """
    Base for the outbound probes. Each request is bounded by a wall-clock deadline,
    not just per-read socket timeouts, and every transport failure is translated into
    NetworkFailure so callers only handle one error type.
    """

    def __init__(self, timeout: float, verify_tls: bool = True, session_factory=requests.Session):
        self.timeout = timeout
        self.verify_tls = verify_tls
        self.session_factory = session_factory

    @abstractmethod
    def run_scan(self, target: str):
        pass

    def deadline(self) -> float:
        return time.monotonic() + self.timeout

    def send(self, method: str, url: str, deadline: Optional[float] = None, **kwargs) -> FetchedResponse:
        """
        Issue one request and read at most MAX_BODY_BYTES of its body before the deadline.

        The body is read with read1() so a server trickling bytes cannot stretch a single
        read past the deadline; once it passes the connection is closed and TIMEOUT raised.
        """
        if deadline is None:
            deadline = self.deadline()
        # A fresh session per call; workers never share connection pools
        with self.session_factory() as session:
            try:
                response = session.request(
                    method, url,
                    timeout=self._remaining(deadline, url),
                    verify=self.verify_tls,
                    stream=True,
                    **kwargs,
                )
            except requests.exceptions.Timeout as exc:
                raise NetworkFailure(NetworkFailure.TIMEOUT, str(exc)) from exc
            except requests.exceptions.RequestException as exc:
                raise NetworkFailure(NetworkFailure.NETWORK_ERROR, str(exc)) from exc

            try:
                body = self._read_body(response, deadline, url)
            finally:
                response.close()

        try:
            text = body.decode(response.encoding or "utf-8", errors="replace")
        except LookupError:
            text = body.decode("utf-8", errors="replace")
        return FetchedResponse(response.status_code, response.headers, text)

    def _remaining(self, deadline: float, url: str) -> float:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise NetworkFailure(NetworkFailure.TIMEOUT, f"Deadline exceeded for {url}")
        return remaining

    def _read_body(self, response: requests.Response, deadline: float, url: str):
        chunks = []
        size = 0
        try:
            while size < MAX_BODY_BYTES:
                self._remaining(deadline, url)
                chunk = response.raw.read1(min(READ_CHUNK_BYTES, MAX_BODY_BYTES - size))
                if not chunk:
                    break
                chunks.append(chunk)
                size += len(chunk)
        except ReadTimeoutError as exc:
            raise NetworkFailure(NetworkFailure.TIMEOUT, str(exc)) from exc
        except (Urllib3HTTPError, OSError) as exc:
            raise NetworkFailure(NetworkFailure.NETWORK_ERROR, str(exc)) from exc
        return b"".join(chunks)
