import logging
import time
from typing import Any, Callable, Dict, Optional

import requests

from ..errors import JobTimeoutError, NotFoundError, RemoteError, SubmissionError
from .authorized_client import AuthorizedClient
from .token_cache import SERVICE_WATSON_ML, TokenCache

logger = logging.getLogger(__name__)

STATE_COMPLETED = "completed"
STATE_FAILED = "failed"
STATE_CANCELED = "canceled"
TERMINAL_STATES = {STATE_COMPLETED, STATE_FAILED, STATE_CANCELED}


def _job_run(data: Dict[str, Any]) -> Dict[str, Any]:
    entity = data.get("entity") or {}
    return entity.get("job_run") or {}


class JobRunnerClient(AuthorizedClient):
    """
    Client for Watson Machine Learning deployment jobs.

    Attributes
    ----------
    endpoint : str
        Base URL of the data platform API.
    space_id : str
        Deployment space the job lives in.
    job_id : str
        Id of the pre-configured solver job that each run instantiates.
    """

    service = SERVICE_WATSON_ML

    def __init__(
        self,
        token_cache: TokenCache,
        endpoint: str,
        space_id: str,
        job_id: str,
        session: Optional[requests.Session] = None,
        timeout: int = 30,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__(token_cache, session=session, timeout=timeout)
        self.endpoint = endpoint.rstrip("/")
        self.space_id = space_id
        self.job_id = job_id
        self._sleep = sleep

    def _json(self, response: requests.Response, action: str) -> Dict[str, Any]:
        if response.status_code == 404:
            raise NotFoundError(f"{action}: job run not found")
        if not self._is_success(response):
            logger.error(f"{action} failed with HTTP {response.status_code}")
            raise RemoteError(f"{action} failed: {response.text}", response.status_code)
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteError(f"{action} returned a non-JSON body") from exc

    def submit(self, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Start a run of the configured job.

        Returns
        -------
        Dict[str, Any]
            ``runtime_job_id``, ``state``, ``created_at`` and ``status_url``
            (the run's ``href``, when the platform returns one).
        """
        url = f"{self.endpoint}/v2/jobs/{self.job_id}/runs"
        response = self._send(
            "POST",
            url,
            params={"space_id": self.space_id},
            headers={"Content-Type": "application/json"},
            json=params or {},
        )
        data = self._json(response, "Job submission")

        job_run = _job_run(data)
        runtime_job_id = job_run.get("runtime_job_id")
        if not runtime_job_id:
            raise SubmissionError("runtime_job_id missing from job submission response")

        logger.info(f"Submitted job {self.job_id}; runtime job id {runtime_job_id}")
        return {
            "runtime_job_id": runtime_job_id,
            "state": str(job_run.get("state") or "unknown").lower(),
            "created_at": (data.get("metadata") or {}).get("created_at"),
            "status_url": data.get("href"),
        }

    def _status_url(self, handle: str) -> str:
        if handle.startswith(("http://", "https://")):
            return handle
        if handle.startswith("/"):
            return f"{self.endpoint}{handle}"
        return f"{self.endpoint}/v2/jobs/runs/{handle}"

    def poll_status(self, handle: str) -> Dict[str, Any]:
        """Fetch the current state of a run given its runtime job id or status URL."""
        url = self._status_url(handle)
        params = None if "space_id=" in url else {"space_id": self.space_id}
        data = self._json(self._send("GET", url, params=params), "Job status query")

        job_run = _job_run(data)
        state = job_run.get("state")
        if not state:
            raise RemoteError("Job status response lacks a state")

        return {
            "state": str(state).lower(),
            "created_at": (data.get("metadata") or {}).get("created_at"),
            "completed_at": job_run.get("completed_at"),
            "error_message": job_run.get("error_message") or job_run.get("message"),
        }

    def fetch_logs(self, runtime_job_id: str) -> Any:
        url = f"{self.endpoint}/v2/jobs/runs/{runtime_job_id}/logs"
        return self._json(self._send("GET", url, params={"space_id": self.space_id}), "Job log query")

    def await_completion(self, handle: str, max_polls: int, interval_seconds: float) -> Dict[str, Any]:
        """
        Block until the run reaches a terminal state.

        Meant for worker processes and scripts; request handlers use the
        timer-driven ``StatusPoller`` instead.

        Raises
        ------
        JobTimeoutError
            If ``max_polls`` polls pass without a terminal state.
        """
        for attempt in range(1, max_polls + 1):
            status = self.poll_status(handle)
            logger.info(f"Run {handle} state after poll {attempt}/{max_polls}: {status['state']}")
            if status["state"] in TERMINAL_STATES:
                return status
            if attempt < max_polls:
                self._sleep(interval_seconds)

        raise JobTimeoutError(f"Run {handle} did not finish after {max_polls} status checks")
