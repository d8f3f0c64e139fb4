"""Fixed-interval polling for asynchronous cluster conditions."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from ..shared.logging import get_logger

logger = get_logger(__name__)


class PollState(Enum):
    """Result of a single poll."""

    PENDING = "pending"
    SATISFIED = "satisfied"
    FAILED = "failed"  # Terminal, stop waiting


class WaitOutcome(Enum):
    """How a wait ended."""

    SUCCESS = "success"
    TIMEOUT = "timeout"
    TERMINAL_FAILURE = "terminal_failure"


@dataclass
class WaitResult:
    """Result of a wait."""

    outcome: WaitOutcome
    attempts: int = 0
    elapsed_seconds: float = 0.0
    description: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome == WaitOutcome.SUCCESS


class ConditionWaiter:
    """Block until a polled condition is satisfied, fails, or times out."""

    def __init__(
        self,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize waiter.

        Args:
            sleep: Function used to wait between polls.
            clock: Monotonic clock in seconds.
        """
        self.sleep = sleep
        self.clock = clock

    def wait_until(
        self,
        poll_fn: Callable[[], PollState],
        interval: float,
        timeout: float,
        description: str = "",
        on_attempt: Callable[[int, PollState], None] | None = None,
    ) -> WaitResult:
        """Poll until satisfied, failed, or out of time.

        The condition is always polled at least once. Between polls the
        caller is blocked for ``interval`` seconds.

        Args:
            poll_fn: Returns the current PollState.
            interval: Seconds between polls.
            timeout: Total budget in seconds.
            description: Human-readable name for logs.
            on_attempt: Optional callback with (attempt, state).

        Returns:
            WaitResult with the outcome and attempt count.
        """
        start = self.clock()
        attempt = 0

        while True:
            attempt += 1
            state = poll_fn()
            elapsed = self.clock() - start

            if on_attempt:
                on_attempt(attempt, state)

            if state == PollState.SATISFIED:
                logger.debug("wait satisfied", wait=description, attempts=attempt)
                return WaitResult(WaitOutcome.SUCCESS, attempt, elapsed, description)
            if state == PollState.FAILED:
                logger.warning("wait failed", wait=description, attempts=attempt)
                return WaitResult(WaitOutcome.TERMINAL_FAILURE, attempt, elapsed, description)
            if elapsed + interval > timeout:
                logger.warning("wait timed out", wait=description, timeout=timeout)
                return WaitResult(WaitOutcome.TIMEOUT, attempt, elapsed, description)

            self.sleep(interval)
