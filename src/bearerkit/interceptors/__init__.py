"""Interceptor pipeline -- pluggable request/response transformers.

Key classes:

* :class:`Interceptor` -- Abstract base class that all interceptors extend.
* :class:`InterceptorPipeline` / :class:`AsyncInterceptorPipeline` --
  ordered request-side and response-side folds.
* Built-ins: :class:`AuthHeaderInterceptor`, :class:`RequestTimingInterceptor`,
  :class:`EndpointStatusInterceptor`, :class:`RefreshInterceptor`,
  :class:`AsyncRefreshInterceptor`.
"""

from bearerkit.interceptors.base import AsyncInterceptorPipeline, Interceptor, InterceptorPipeline
from bearerkit.interceptors.builtin import (
    AsyncRefreshInterceptor,
    AuthHeaderInterceptor,
    EndpointStatusInterceptor,
    RefreshInterceptor,
    RequestTimingInterceptor,
)

__all__ = [
    "AsyncInterceptorPipeline",
    "AsyncRefreshInterceptor",
    "AuthHeaderInterceptor",
    "EndpointStatusInterceptor",
    "Interceptor",
    "InterceptorPipeline",
    "RefreshInterceptor",
    "RequestTimingInterceptor",
]
