"""Leaf executor for ``Process`` steps: one HTTP request per step.

Cancellation returns control to the run at once, but ``requests`` has no way
to interrupt a blocking read. The abandoned request finishes on its worker
thread, bounded by ``run_seconds``, and its response is closed when it arrives.
"""

import logging
from typing import Any

import requests

from factotum.executor.cancellation import CancellationScope
from factotum.models.workflow import Step
from factotum.utils import params
from factotum.utils.exceptions import HttpStatusError, StepExecutionError, StepTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60
DEFAULT_SUCCESS_CODES = [200]


def execute(
    step: Step,
    scope: CancellationScope,
    default_timeout: int = DEFAULT_TIMEOUT,
    poll_interval: float = 0.05,
) -> Any:
    """Send the HTTP request described by ``step`` and return the decoded body."""
    p = step.parameters
    endpoint = params.get_str(p, "endpoint", required=True)
    method = params.get_str(p, "method", "GET").upper()
    payload = params.get_any(p, "payload")
    headers = {k: str(v) for k, v in (params.get_mapping(p, "headers") or {}).items()}
    timeout = params.get_int(p, "run_seconds")
    if timeout is None or timeout <= 0:
        timeout = default_timeout
    success_codes = params.get_int_list(p, "success_response_codes") or DEFAULT_SUCCESS_CODES

    logger.info(f"Executing HTTP {method} request to {endpoint}")

    try:
        resp = scope.call(
            _do_request, method, endpoint, headers, payload, timeout,
            poll_interval=poll_interval,
            on_abandon=lambda r: r.close(),
        )
    except requests.Timeout as e:
        raise StepTimeoutError(f"HTTP request to {endpoint} timed out after {timeout} seconds: {e}")
    except requests.RequestException as e:
        raise StepExecutionError(f"HTTP request failed: {e}")

    logger.info(f"HTTP request to {endpoint} completed with status: {resp.status_code}")

    if resp.status_code not in success_codes:
        raise HttpStatusError(resp.status_code, resp.text)

    try:
        return resp.json()
    except ValueError:
        return resp.text


def _do_request(
    method: str,
    url: str,
    headers: dict[str, str],
    payload: Any,
    timeout: int,
) -> requests.Response:
    kwargs: dict[str, Any] = {"headers": headers, "timeout": timeout}
    if payload is not None:
        kwargs["json"] = payload
    return requests.request(method, url, **kwargs)
