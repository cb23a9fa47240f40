"""
Exception hierarchy for the AI proxy.

Every error the gateway raises on purpose derives from AIProxyException and
carries the HTTP status it maps to. Handlers in aiproxy.api.main render them as
a single ``{"error": message}`` body.
"""

from typing import Any


class AIProxyException(Exception):
    """Base exception for all gateway errors."""

    status_code: int = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details
        super().__init__(message)


class ValidationError(AIProxyException):
    """Missing or malformed request field."""

    status_code = 400


class AuthenticationError(AIProxyException):
    """No pre-validated caller identity was forwarded."""

    status_code = 401


class CallerNotFoundError(AIProxyException):
    """The caller has no profile record."""

    status_code = 404


class NoEligibleProviderError(AIProxyException):
    """Resolution found no enabled provider with a usable model."""

    status_code = 400


class MissingCredentialError(AIProxyException):
    """The selected provider has no credential configured."""

    status_code = 400


class UnsupportedParameterError(AIProxyException):
    """The adapter cannot build a valid call for the target provider."""

    status_code = 400


class UpstreamError(AIProxyException):
    """The provider failed or answered with a non-success status.

    Reported as 4xx by convention even though 502 would be more precise;
    the status is taken from ``settings.upstream_error_status_code``.
    """

    def __init__(
        self,
        message: str,
        upstream_status: int | None = None,
        provider: str | None = None,
    ):
        super().__init__(
            message,
            details={"upstream_status": upstream_status, "provider": provider},
        )
        self.upstream_status = upstream_status
        self.provider = provider

    @property
    def status_code(self) -> int:  # type: ignore[override]
        from aiproxy.core.config import settings

        return settings.upstream_error_status_code
