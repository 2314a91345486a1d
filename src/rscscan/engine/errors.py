# src/rscscan/engine/errors.py
"""
Exception hierarchy for the scan engine.

Only OrchestrationFault drives a job into the error state. NetworkFailure is always
absorbed by the tool that raised it and InvalidTargetError is raised before any I/O.
"""


class ScanEngineError(Exception):
    pass


class InvalidTargetError(ScanEngineError):
    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class NetworkFailure(ScanEngineError):
    TIMEOUT = "timeout"
    NETWORK_ERROR = "network error"

    def __init__(self, kind: str, detail: str = ""):
        super().__init__(f"{kind}: {detail}" if detail else kind)
        self.kind = kind
        self.detail = detail


class OrchestrationFault(ScanEngineError):
    pass


class JobNotFound(ScanEngineError):
    def __init__(self, job_id: str):
        super().__init__(f"Scan job not found: {job_id}")
        self.job_id = job_id
