# /*
# Copyright 2026 The Sonar Infra Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */

"""Bounded fixed-interval polling shared by every waiting stage."""

from __future__ import annotations

import time
from collections.abc import Callable
from enum import Enum

from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_result,
    stop_after_attempt,
    stop_any,
    wait_fixed,
)

from sonar_infra import logger
from sonar_infra.errors import StageTimeoutError


class TimeoutPolicy(Enum):
    """What a bounded wait does once its attempts are exhausted."""

    FATAL = "fatal"
    DEGRADED = "degraded"


class StageStatus(Enum):
    """Outcome of a pipeline stage that did not abort."""

    SUCCESS = "success"
    DEGRADED = "degraded"
    SKIPPED = "skipped"


def _log_retry(description: str, max_attempts: int) -> Callable[[RetryCallState], None]:
    def _before_sleep(state: RetryCallState) -> None:
        logger.debug(
            "%s: attempt %d/%d not satisfied, retrying in %.1fs",
            description, state.attempt_number, max_attempts, state.upcoming_sleep,
        )
    return _before_sleep


def poll_until(
    predicate: Callable[[], bool],
    *,
    max_attempts: int,
    interval: float,
    policy: TimeoutPolicy,
    description: str,
    sleep: Callable[[float], None] | None = None,
    deadline: float | None = None,
) -> bool:
    """Call *predicate* until it returns True or the attempts run out.

    The predicate is called at most *max_attempts* times with a fixed
    *interval* between calls; there is no sleep after the last attempt.
    Exceptions raised by the predicate propagate unchanged.

    Args:
        predicate: Zero-argument check returning True once satisfied.
        max_attempts: Upper bound on predicate calls.
        interval: Seconds to wait between attempts.
        policy: FATAL raises on exhaustion, DEGRADED returns False.
        description: Human-readable name used in logs and errors.
        sleep: Sleep function override, defaults to ``time.sleep``.
        deadline: ``time.monotonic()`` value after which no further attempt
            starts; sleeps are shortened so they never cross it.

    Returns:
        True if the predicate succeeded, False on exhaustion under DEGRADED.

    Raises:
        StageTimeoutError: On exhaustion under the FATAL policy.
    """
    stop = stop_after_attempt(max_attempts)
    wait = wait_fixed(interval)
    if deadline is not None:
        def _past_deadline(state: RetryCallState) -> bool:
            return time.monotonic() >= deadline

        def _wait_within_deadline(state: RetryCallState) -> float:
            return min(interval, max(0.0, deadline - time.monotonic()))

        stop = stop_any(stop, _past_deadline)
        wait = _wait_within_deadline

    retrying = Retrying(
        stop=stop,
        wait=wait,
        retry=retry_if_result(lambda ok: not ok),
        before_sleep=_log_retry(description, max_attempts),
        sleep=sleep or time.sleep,
    )
    try:
        return retrying(predicate)
    except RetryError as err:
        attempts = err.last_attempt.attempt_number
        if policy is TimeoutPolicy.FATAL:
            raise StageTimeoutError(f"{description} not satisfied after {attempts} attempt(s)") from None
        logger.debug("%s: giving up after %d attempt(s)", description, attempts)
        return False
