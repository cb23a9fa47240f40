"""
Core package initialization.
"""

from aiproxy.core.config import Settings, get_settings, settings
from aiproxy.core.exceptions import (
    AIProxyException,
    AuthenticationError,
    CallerNotFoundError,
    MissingCredentialError,
    NoEligibleProviderError,
    UnsupportedParameterError,
    UpstreamError,
    ValidationError,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    "settings",
    # Exceptions
    "AIProxyException",
    "ValidationError",
    "AuthenticationError",
    "CallerNotFoundError",
    "NoEligibleProviderError",
    "MissingCredentialError",
    "UnsupportedParameterError",
    "UpstreamError",
]
