# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Readiness probe for the OpenCode server and discovery of resumable sessions."""

import posixpath
import time
from typing import TYPE_CHECKING, Callable, Optional

import requests

from caiged.paths import ContainerPaths
from caiged.utils.exceptions import RuntimeInvocationError, ServerNotReadyError
from caiged.utils.logging import get_logger

if TYPE_CHECKING:
    from caiged.host_config import Settings
    from caiged.runtime import ContainerRuntime

logger = get_logger(__name__)

SESSION_PREFIX = "ses_"
SESSION_SUFFIX = ".json"


def wait_ready(
    url: str,
    timeout: float = 60.0,
    initial_interval: float = 0.5,
    max_interval: float = 4.0,
    request_timeout: float = 1.0,
    http: Optional[requests.Session] = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> int:
    """Poll url until the server answers.

    Any HTTP response counts, including 401 and 5xx: this checks that the
    process accepts connections, not that the caller is authorized. After
    each failed request the delay starts at initial_interval and doubles up
    to max_interval. No sleep ever runs past the deadline.

    Returns:
        Number of attempts made

    Raises:
        ServerNotReadyError: No response within timeout
    """
    if http is None:
        with requests.Session() as session:
            return wait_ready(
                url, timeout, initial_interval, max_interval, request_timeout,
                http=session, sleep=sleep, clock=clock,
            )

    start = clock()
    deadline = start + timeout
    delay = initial_interval
    attempts = 0

    while True:
        attempts += 1
        try:
            response = http.get(url, timeout=request_timeout)
        except requests.RequestException as e:
            logger.debug(f"Readiness attempt {attempts} for {url} failed: {e}")
        else:
            response.close()
            logger.debug(f"{url} answered with HTTP {response.status_code} after {attempts} attempt(s)")
            return attempts

        remaining = deadline - clock()
        if remaining <= 0:
            raise ServerNotReadyError(url, clock() - start, attempts)
        sleep(min(delay, remaining))
        delay = min(delay * 2, max_interval)


def wait_ready_with_settings(url: str, settings: "Settings", **kwargs) -> int:
    """wait_ready with the readiness budget from host settings."""
    readiness = settings.model.readiness
    return wait_ready(
        url,
        timeout=readiness.timeout_seconds,
        initial_interval=readiness.initial_interval,
        max_interval=readiness.max_interval,
        request_timeout=readiness.request_timeout,
        **kwargs,
    )


def parse_session_listing(output: str) -> str:
    """Session id from the newest entry of a session_diff listing.

    Returns "" unless the first line's basename is ses_<id>.json.
    """
    lines = output.strip().splitlines()
    if not lines:
        return ""
    name = posixpath.basename(lines[0].strip())
    if not name.startswith(SESSION_PREFIX) or not name.endswith(SESSION_SUFFIX):
        return ""
    session_id = name[: -len(SESSION_SUFFIX)]
    if len(session_id) <= len(SESSION_PREFIX):
        return ""
    return session_id


def session_listing_command() -> list:
    pattern = f"{ContainerPaths.SESSION_STORAGE}/{SESSION_PREFIX}*{SESSION_SUFFIX}"
    return ["sh", "-c", f"ls -t {pattern} 2>/dev/null | head -n1"]


def find_resumable_session(runtime: "ContainerRuntime", container: str) -> str:
    """Most recently modified session id in the container, or "".

    A failed exec, an empty listing or an unexpected filename all mean there
    is nothing to resume.
    """
    try:
        exit_code, output = runtime.exec_capture(container, session_listing_command())
    except RuntimeInvocationError as e:
        logger.debug(f"Session lookup in {container} failed: {e}")
        return ""
    if exit_code != 0:
        return ""
    session_id = parse_session_listing(output)
    if not session_id:
        logger.debug(f"No resumable session in {container}")
    return session_id
