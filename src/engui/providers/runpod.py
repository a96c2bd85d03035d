"""RunPod serverless endpoint client.

Talks to https://api.runpod.ai/v2/{endpoint_id} with bearer auth:
POST /run submits, GET /status/{id} polls, GET /health reports workers.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

import requests

from engui.providers.base import ProviderBase
from engui.providers.payloads import create_payload, describe_payload

logger = logging.getLogger(__name__)

RUNPOD_API_BASE = "https://api.runpod.ai/v2"
DEFAULT_GENERATE_TIMEOUT = 3600
POLL_INTERVAL = 5.0
MAX_ATTEMPTS = 3
REQUEST_TIMEOUT = 60

PENDING_STATUSES = {"IN_QUEUE", "IN_PROGRESS"}


class RunPodError(RuntimeError):
    """RunPod API call or job failed."""


class RunPodAuthError(RunPodError):
    """API key rejected (HTTP 401)."""


class RunPodService(ProviderBase):
    """Client for one RunPod serverless endpoint."""

    def __init__(
        self,
        api_key: str | None,
        endpoint_id: str | None,
        generate_timeout: int | None = None,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the client.

        Args:
            api_key: RunPod API key.
            endpoint_id: Serverless endpoint id.
            generate_timeout: Default wait limit in seconds.
            session: Optional requests session (tests pass a mock).
            sleep: Sleep function used between polls and retries.
            clock: Monotonic clock used for wait timeouts.

        Raises:
            ValueError: If the key or endpoint id is missing.
        """
        if not api_key or not endpoint_id:
            raise ValueError("RunPod API key and endpoint ID are required")
        self.api_key = api_key
        self.endpoint_id = endpoint_id
        self.base_url = f"{RUNPOD_API_BASE}/{endpoint_id}"
        self.generate_timeout = generate_timeout or DEFAULT_GENERATE_TIMEOUT
        self.session = session or requests.Session()
        self._sleep = sleep
        self._clock = clock

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        """Send a request, retrying connection errors and timeouts.

        Waits 1s, 2s, ... between attempts.
        """
        url = f"{self.base_url}{path}"
        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                return self.session.request(
                    method, url, headers=self._headers(), timeout=REQUEST_TIMEOUT, **kwargs
                )
            except (requests.ConnectionError, requests.Timeout) as e:
                if attempt == MAX_ATTEMPTS:
                    raise RunPodError(f"RunPod request failed: {e}") from e
                logger.warning(f"Retry attempt {attempt}/{MAX_ATTEMPTS} for {method} {path}: {e}")
                self._sleep(1.0 * attempt)
        raise RunPodError(f"RunPod request failed: {method} {path}")

    def _submit(self, payload: dict[str, Any]) -> str:
        response = self._request("POST", "/run", json=payload)
        if not response.ok:
            raise RunPodError(f"RunPod API error: {response.status_code} - {response.text}")
        job_id = response.json().get("id")
        if not job_id:
            raise RunPodError("RunPod API did not return a job ID")
        return job_id

    def submit_job(self, input: dict[str, Any], model_id: str | None = None) -> str:
        payload = create_payload(model_id, input)
        logger.info(f"Submitting {model_id or 'generic'} job to endpoint {self.endpoint_id}")
        logger.debug(f"Payload: {describe_payload(payload)}")
        job_id = self._submit(payload)
        logger.info(f"RunPod job submitted: {job_id}")
        return job_id

    def submit_upscale_job(self, path: str, media_type: str, with_interpolation: bool = False) -> str:
        """Submit an upscale job for an image or video on the network volume.

        Args:
            path: /runpod-volume path of the source media.
            media_type: "image" or "video".
            with_interpolation: Also interpolate frames (video only).

        Returns:
            RunPod job id.
        """
        task_type = "upscale_and_interpolation" if with_interpolation else "upscale"
        path_key = "image_path" if media_type == "image" else "video_path"
        logger.info(f"Submitting {task_type} job for {media_type} {path}")
        return self._submit({"input": {"task_type": task_type, path_key: path}})

    def get_job_status(self, job_id: str) -> dict[str, Any]:
        response = self._request("GET", f"/status/{job_id}")
        if response.status_code == 404:
            # Freshly submitted jobs can 404 briefly
            return {"id": job_id, "status": "IN_QUEUE"}
        if not response.ok:
            raise RunPodError(f"RunPod status API error: {response.status_code} - {response.text}")
        data = response.json()
        if data.get("status") in ("COMPLETED", "FAILED"):
            logger.info(f"Job {job_id} status: {data['status']}")
        return data

    def wait_for_completion(
        self,
        job_id: str,
        max_wait: float | None = None,
        poll_interval: float = POLL_INTERVAL,
    ) -> dict[str, Any]:
        timeout = max_wait or self.generate_timeout
        started = self._clock()
        logger.info(f"Waiting for job {job_id} (timeout {timeout}s)")

        while self._clock() - started < timeout:
            status = self.get_job_status(job_id)
            state = status.get("status")
            if state == "COMPLETED":
                return status
            if state == "FAILED":
                raise RunPodError(f"Job failed: {status.get('error')}")
            if state not in PENDING_STATUSES:
                raise RunPodError(f"Unknown job status: {state}")
            self._sleep(poll_interval)

        raise RunPodError(f"Job timeout: Maximum wait time ({timeout}s) exceeded")

    def check_health(self) -> dict[str, Any]:
        """Endpoint health document (worker and job counts).

        Raises:
            RunPodAuthError: If the API key is rejected.
            RunPodError: On any other non-2xx response.
        """
        response = self._request("GET", "/health")
        if response.status_code == 401:
            raise RunPodAuthError("Invalid API key - Authentication failed")
        if not response.ok:
            raise RunPodError(f"RunPod health check failed: {response.status_code} - {response.text}")
        return response.json()

    def test_connection(self) -> dict[str, Any]:
        """Probe the endpoint and report reachability without raising."""
        started = time.monotonic()
        try:
            response = self._request("GET", "/health")
        except RunPodError as e:
            return {
                "success": False,
                "message": "Connection failed - Check your network and API key",
                "error": str(e),
                "status_code": None,
                "response_time_ms": int((time.monotonic() - started) * 1000),
            }

        elapsed = int((time.monotonic() - started) * 1000)
        status = response.status_code
        if status == 401:
            message, success = "Invalid API key - Authentication failed", False
        elif status == 404:
            message, success = "Endpoint not found - Check your endpoint ID", False
        elif status < 500:
            message, success = f"Endpoint accessible ({elapsed}ms)", True
        else:
            message, success = f"RunPod server error: {status}", False
        return {
            "success": success,
            "message": message,
            "status_code": status,
            "response_time_ms": elapsed,
        }
