"""
API Middleware package.

- Wide Events: canonical log line per request
"""

from aiproxy.api.middleware.wide_events import WideEventMiddleware

__all__ = ["WideEventMiddleware"]
