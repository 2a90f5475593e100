"""Failure taxonomy for DSP socket operations."""

from __future__ import annotations


class DspError(RuntimeError):
    """Base class for every failure surfaced by the DSP client."""


class DspConnectionError(DspError, ConnectionError):
    """Raised when a socket is not open or its handshake fails."""


class DspTimeoutError(DspError, TimeoutError):
    """Raised when no matching reply arrives before the deadline."""


class DspCancelledError(DspError):
    """Raised when an operation is torn down by an explicit cancellation."""


class DspProtocolError(DspError, ValueError):
    """Raised when a reply envelope cannot be decoded."""


class DspCommandError(DspError):
    """Raised when the server answers a command with an ``Error`` result."""

    def __init__(self, command: str, message: str) -> None:
        super().__init__(f"DSP command failed: {command} - {message}")
        self.command = command
        self.server_message = message


class DspConfigError(DspError, ValueError):
    """Raised before upload when the document references undefined names."""

    def __init__(self, problems: list[str]) -> None:
        super().__init__("Invalid configuration: " + "; ".join(problems))
        self.problems = list(problems)
