"""Error taxonomy shared by the session, run and profile layers."""

from __future__ import annotations

GENERIC_ERROR_MESSAGE = "Something went wrong. Please try again."


class AuthError(Exception):
    """Raised when a bearer token is expired, tampered with, or unverifiable."""


class UpstreamError(Exception):
    """Base class for failures talking to the remote assistant service."""


class UpstreamUnavailable(UpstreamError):
    """Network/transport error or unexpected HTTP status from the remote service."""


class UpstreamTimeout(UpstreamError):
    """A run did not reach a terminal state within the polling ceiling.

    ``state`` is the locally synthesized outcome and ``last_run`` the final
    remote snapshot; the remote run itself may still finish.
    """

    def __init__(self, message: str, state: object = None, last_run: dict | None = None) -> None:
        super().__init__(message)
        self.state = state
        self.last_run = last_run


class UpstreamFailure(UpstreamError):
    """A run finished in a failed state; ``reason`` is the remote-provided text."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Assistant run failed: {reason}")
        self.reason = reason
