"""Cancellable polling of long-running background jobs."""

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

from ..exceptions import JobCancelledError, JobTimeoutError, ProviderFailure


logger = logging.getLogger(__name__)

COMPLETED_STATES = frozenset({"completed", "done", "succeeded", "success"})
FAILED_STATES = frozenset({"failed", "error", "cancelled"})


class JobPoller:
    """
    Polls a job status endpoint until the job finishes.

    A job that has not finished within the overall timeout raises
    JobTimeoutError, which is distinct from provider errors. Setting the
    cancel event stops polling at the next wait.
    """

    def __init__(
        self,
        interval: float = 3.0,
        timeout: float = 180.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the poller.

        Args:
            interval: Seconds between status requests.
            timeout: Overall seconds before giving up.
            sleep: Sleep function used when no cancel event is given.
            clock: Monotonic clock.
        """
        self.interval = interval
        self.timeout = timeout
        self._sleep = sleep
        self._clock = clock

    def poll(
        self,
        fetch_status: Callable[[str], Dict[str, Any]],
        job_id: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> Dict[str, Any]:
        """
        Wait for a job to complete.

        Args:
            fetch_status: Returns the status document of a job; must
                contain a "status" key.
            job_id: Job to wait for.
            cancel_event: Optional event that cancels polling when set.

        Returns:
            The final status document of the completed job.

        Raises:
            JobTimeoutError: If the job did not finish in time.
            JobCancelledError: If the cancel event was set.
            ProviderFailure: If the job reported a failure.
        """
        started = self._clock()
        attempts = 0
        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise JobCancelledError(f"Polling of job {job_id} cancelled", job_id=job_id)

            attempts += 1
            status = fetch_status(job_id)
            state = str((status or {}).get("status", "")).lower()
            logger.debug(f"Job {job_id} poll #{attempts}: {state or 'unknown'}")

            if state in COMPLETED_STATES:
                logger.info(f"Job {job_id} completed after {attempts} poll(s)")
                return status
            if state in FAILED_STATES:
                error = (status or {}).get("error") or state
                raise ProviderFailure(f"Job {job_id} failed: {error}", details={"job_id": job_id})

            elapsed = self._clock() - started
            if elapsed >= self.timeout:
                logger.warning(f"Job {job_id} still {state or 'pending'} after {elapsed:.1f}s")
                raise JobTimeoutError(
                    f"Job {job_id} did not finish within {self.timeout:.0f}s",
                    job_id=job_id,
                    elapsed=elapsed,
                )

            wait = min(self.interval, self.timeout - elapsed)
            if cancel_event is not None:
                if cancel_event.wait(wait):
                    raise JobCancelledError(f"Polling of job {job_id} cancelled", job_id=job_id)
            else:
                self._sleep(wait)
