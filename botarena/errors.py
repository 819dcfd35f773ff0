# SPDX-License-Identifier: GPL-2.0-or-later
"""Exceptions raised while building, running and adjudicating matches.

Errors fall in four families:

* :class:`BuildError` and :class:`ProcessError` happen before the first ply;
  the match ends in the ``error`` state without a winner.
* :class:`TurnError` happens during a ply; the side to move loses.
* :class:`ArbiterTransientError` is a single failed arbiter attempt. The
  arbiter client retries it and only gives up with
  :class:`ArbiterUnavailable` once every backend failed.
"""


class BaseError(Exception):
    """Base class for all exceptions here."""

    pass


# Build


class BuildError(BaseError):
    """Raised when a program cannot be turned into an executable."""

    pass


class CompileError(BuildError):
    """Raised when the compiler fails or produces no artifact."""

    def __init__(self, source, exit_code, stderr):
        self.source = source
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(
            f"compilation of {source} failed (exit code {exit_code})\n{stderr}"
        )


class CompileTimeout(BuildError):
    def __init__(self, source, timeout):
        self.source = source
        self.timeout = timeout
        super().__init__(
            f"compilation of {source} timed out after {timeout} seconds"
        )


# Process lifecycle


class ProcessError(BaseError):
    """Raised when a program cannot be started or does not get ready."""

    pass


class SpawnError(ProcessError):
    pass


class HandshakeError(ProcessError):
    pass


class HandshakeTimeout(HandshakeError):
    pass


class RequestInFlight(BaseError):
    """Raised when a second request is sent to a busy process handle."""

    pass


# Turns


class TurnError(BaseError):
    """Raised during a ply. The side to move loses the match."""

    pass


class MoveTimeout(TurnError):
    pass


class InvalidMove(TurnError):
    pass


class ProcessExited(TurnError):
    pass


class MissingPosition(TurnError):
    """Raised when the arbiter does not return the new position."""

    pass


class ArbiterUnavailable(TurnError):
    """Raised when no arbiter backend could answer a request."""

    pass


# Arbiter attempts


class ArbiterTransientError(BaseError):
    """Raised when a single arbiter attempt fails."""

    pass


class InvalidResponse(ArbiterTransientError):
    """Raised when the arbiter answers something we cannot use."""

    pass


class LocalEngineError(ArbiterTransientError):
    pass


# Match records


class InvalidTransition(BaseError):
    """Raised when a match record is moved to an unreachable status."""

    pass
