""" Exceptions raised by the runner fleet manager. """

from __future__ import annotations

from typing import Optional


class RunnerFleetError(Exception):
    """Base class for every error raised on purpose by the fleet manager."""


class ConfigError(RunnerFleetError):
    """The fleet configuration file is missing, malformed or fails schema validation."""


class FleetError(RunnerFleetError):
    """A batch-wide precondition does not hold (e.g. the base directory is gone)."""


class TokenError(RunnerFleetError):
    """Base class for failures while requesting a token from the GitHub API.

    Attributes:
        status_code: HTTP status of the response, ``None`` when no response was received.
    """
    status_code: Optional[int]

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthError(TokenError):
    """HTTP 401: the access token is invalid or expired."""


class AuthorizationError(TokenError):
    """HTTP 403: the access token lacks the scope needed to manage org runners."""


class NotFoundError(TokenError):
    """HTTP 404: the organization (or API URL) does not exist."""


class TransientError(TokenError):
    """Any other non-2xx response, or a network level failure."""


class ProtocolError(TokenError):
    """The response did not carry the expected token field."""


class ArtifactError(RunnerFleetError):
    """The runner archive could not be downloaded or is not a valid archive."""


class UnitError(RunnerFleetError):
    """A single runner unit could not be provisioned or decommissioned."""


class ServiceError(UnitError):
    """The OS service manager failed to query, start, stop or delete a service."""


class AgentError(UnitError):
    """The runner agent's configuration executable exited with a non-zero status."""
