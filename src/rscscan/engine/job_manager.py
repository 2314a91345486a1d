# src/rscscan/engine/job_manager.py
"""
JobManager: worker pool that runs scan pipelines out of band and tracks a Future per job.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Dict, Optional


class JobManager:
    def __init__(self, max_workers: int = 8):
        self.executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="scan-job")
        self.jobs: Dict[str, Future] = {}
        self.lock = threading.Lock()

    def submit_job(self, job_id: str, func, *args, **kwargs) -> Future:
        with self.lock:
            future = self.executor.submit(func, *args, **kwargs)
            self.jobs[job_id] = future
        future.add_done_callback(lambda f: self._on_done(job_id, f))
        logging.info(f"[job_id={job_id}] Submitted scan job.")
        return future

    def _on_done(self, job_id: str, future: Future):
        with self.lock:
            self.jobs.pop(job_id, None)
        if future.cancelled():
            logging.warning(f"[job_id={job_id}] Scan job was cancelled before it started.")
            return
        exc = future.exception()
        if exc is not None:
            logging.error(f"[job_id={job_id}] Scan job raised: {exc!r}")

    def get_future(self, job_id: str) -> Optional[Future]:
        with self.lock:
            return self.jobs.get(job_id)

    def wait(self, job_id: str, timeout: Optional[float] = None) -> bool:
        """Block until the job's pipeline finishes. False if it is still running at timeout."""
        future = self.get_future(job_id)
        if future is None:
            return True
        try:
            future.result(timeout=timeout)
        except FutureTimeoutError:
            return False
        except Exception:
            # Already logged by _on_done
            return True
        return True

    def shutdown(self, wait: bool = True):
        self.executor.shutdown(wait=wait)
