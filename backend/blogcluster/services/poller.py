from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

import httpx
from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
)

logger = logging.getLogger(__name__)

STATUS_PATH = "/api/research/status"
PENDING_STATUSES = {"QUEUED", "RUNNING"}
FATAL_STATUS_CODES = {401, 403, 404}


class PollError(RuntimeError):
    """The status endpoint refused the request; waiting longer will not help."""

    def __init__(self, job_id: str, status_code: int, detail: str = "") -> None:
        super().__init__(f"polling {job_id} failed with HTTP {status_code}: {detail}".rstrip(": "))
        self.job_id = job_id
        self.status_code = status_code


class _Pending(Exception):
    def __init__(self, status: Optional[str], payload: Any) -> None:
        super().__init__(status or "pending")
        self.status = status
        self.payload = payload


class _Transient(Exception):
    pass


@dataclass
class PollResult:
    status: Optional[str]
    payload: Any
    still_waiting: bool = False


class JobPoller:
    """
    Client-side helper that waits for a keywords job to finish.

    Backs off exponentially (capped at `max_interval_seconds`) while the job
    is QUEUED/RUNNING or the server hiccups (5xx, 429, transport errors).
    When the total budget runs out it returns `still_waiting=True` rather
    than raising, so callers can show "still working" and poll again later.
    """

    def __init__(
        self,
        base_url: str,
        headers: Mapping[str, str] | None = None,
        max_wait_seconds: float = 120,
        max_interval_seconds: float = 8,
        transport: httpx.BaseTransport | None = None,
        *,
        initial_interval_seconds: float = 1,
        max_attempts: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
        timeout: float = 15.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.headers = dict(headers or {})
        self.max_wait_seconds = max_wait_seconds
        self.max_interval_seconds = max_interval_seconds
        self.initial_interval_seconds = initial_interval_seconds
        self.max_attempts = max_attempts
        self.timeout = timeout
        self._transport = transport
        self._sleep = sleep

    def _stop(self):
        stop = stop_after_delay(self.max_wait_seconds)
        if self.max_attempts is not None:
            stop = stop | stop_after_attempt(self.max_attempts)
        return stop

    def _check(self, client: httpx.Client, job_id: str) -> PollResult:
        try:
            resp = client.get(STATUS_PATH, params={"jobId": job_id})
        except httpx.TransportError as exc:
            raise _Transient(exc.__class__.__name__) from exc

        if resp.status_code in FATAL_STATUS_CODES:
            raise PollError(job_id, resp.status_code, resp.text[:200])
        if resp.status_code == 429 or resp.status_code >= 500:
            raise _Transient(f"HTTP {resp.status_code}")
        if not resp.is_success:
            raise PollError(job_id, resp.status_code, resp.text[:200])

        try:
            payload = resp.json()
        except ValueError as exc:
            raise _Transient("non-JSON status response") from exc

        status = str(payload.get("status") or "").upper() or None
        if status is None or status in PENDING_STATUSES:
            raise _Pending(status, payload)
        return PollResult(status=status, payload=payload)

    def poll(self, job_id: str) -> PollResult:
        retryer = Retrying(
            wait=wait_exponential(
                multiplier=self.initial_interval_seconds,
                min=self.initial_interval_seconds,
                max=self.max_interval_seconds,
            ),
            stop=self._stop(),
            retry=retry_if_exception_type((_Pending, _Transient)),
            sleep=self._sleep,
        )

        with httpx.Client(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            try:
                result = retryer(self._check, client, job_id)
            except RetryError as exc:
                last = exc.last_attempt.exception()
                logger.info(
                    "Job still pending after polling budget",
                    extra={"job_id": job_id, "step": "poll"},
                )
                if isinstance(last, _Pending):
                    return PollResult(status=last.status, payload=last.payload, still_waiting=True)
                return PollResult(status=None, payload=None, still_waiting=True)

        logger.info(
            "Job finished",
            extra={"job_id": job_id, "step": "poll", "status": result.status},
        )
        return result


def poll_job(base_url: str, job_id: str, headers: Dict[str, str] | None = None, **kwargs: Any) -> PollResult:
    return JobPoller(base_url, headers, **kwargs).poll(job_id)
