"""Transport layer: request descriptors, single-shot execution, retry, and single-flight.

Everything here is stateless apart from the single-flight gates, and knows
nothing about tokens or interceptors:

Classes:
    :class:`RequestDescriptor` / :class:`RequestBuilder` -- immutable request values.
    :class:`Response` -- a received response with its decoded body.
    :class:`RequestExecutor` / :class:`AsyncRequestExecutor` -- one call, classified.
    :class:`RetryPolicy` / :class:`AsyncRetryPolicy` -- exponential backoff.
    :class:`SingleFlight` / :class:`AsyncSingleFlight` -- one shared call.
"""

from bearerkit.transport.executor import AsyncRequestExecutor, RequestExecutor, build_url
from bearerkit.transport.request import RequestBuilder, RequestDescriptor, Response
from bearerkit.transport.retry import AsyncRetryPolicy, RetryPolicy
from bearerkit.transport.singleflight import AsyncSingleFlight, SingleFlight

__all__ = [
    "AsyncRequestExecutor",
    "AsyncRetryPolicy",
    "AsyncSingleFlight",
    "RequestBuilder",
    "RequestDescriptor",
    "RequestExecutor",
    "Response",
    "RetryPolicy",
    "SingleFlight",
    "build_url",
]
