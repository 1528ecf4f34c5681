"""Run states and the shared "wait for a terminal state" primitive."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum

from coachrelay.core.config import CR_POLL_INTERVAL, CR_POLL_MAX_ATTEMPTS
from coachrelay.core.errors import UpstreamTimeout

logger = logging.getLogger("coachrelay.runs.polling")

_PROGRESS_EVERY = 10


class JobState(str, Enum):
    queued = "queued"
    running = "running"
    requires_action = "requires_action"
    completed = "completed"
    failed = "failed"
    expired = "expired"  # local polling ceiling hit; the remote run may still finish

    @property
    def terminal(self) -> bool:
        return self not in (JobState.queued, JobState.running, JobState.requires_action)


_REMOTE_STATES = {
    "queued": JobState.queued,
    "in_progress": JobState.running,
    "cancelling": JobState.running,
    "requires_action": JobState.requires_action,
    "completed": JobState.completed,
    "failed": JobState.failed,
    "cancelled": JobState.failed,
    "incomplete": JobState.failed,
    "expired": JobState.failed,
}


def job_state(run: dict) -> JobState:
    """Map a remote run object's status onto JobState."""
    status = run.get("status", "")
    try:
        return _REMOTE_STATES[status]
    except KeyError:
        logger.warning("Unknown run status %r treated as failed", status)
        return JobState.failed


def failure_reason(run: dict) -> str:
    error = run.get("last_error") or {}
    incomplete = run.get("incomplete_details") or {}
    return error.get("message") or incomplete.get("reason") or run.get("status") or "Unknown error"


class Waiter:
    """Poll a run until it is terminal, at a fixed interval, up to a ceiling."""

    def __init__(
        self,
        interval: float = CR_POLL_INTERVAL,
        max_attempts: int = CR_POLL_MAX_ATTEMPTS,
    ) -> None:
        self.interval = interval
        self.max_attempts = max_attempts

    async def await_terminal(
        self,
        fetch: Callable[[], Awaitable[dict]],
        label: str = "run",
    ) -> dict:
        """Return the first fetched run object whose state is terminal.

        Performs at most ``max_attempts`` fetches. When none of them is terminal
        the outcome is JobState.expired, raised as UpstreamTimeout.
        """
        run: dict = {}
        for attempt in range(1, self.max_attempts + 1):
            run = await fetch()
            if job_state(run).terminal:
                return run
            if attempt % _PROGRESS_EVERY == 0:
                logger.info(
                    "[WAIT] Still waiting for %s... %d/%d polls (status=%s)",
                    label, attempt, self.max_attempts, run.get("status"),
                )
            if attempt < self.max_attempts:
                await asyncio.sleep(self.interval)

        logger.error(
            "[WAIT] %s %s after %d polls (last status=%s)",
            label, JobState.expired.value, self.max_attempts, run.get("status"),
        )
        raise UpstreamTimeout(
            f"{label} did not complete after {self.max_attempts} polls",
            state=JobState.expired,
            last_run=run,
        )
