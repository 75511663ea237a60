"""Interceptor base class and the pipelines that fold over interceptors.

This module provides two core components:

* :class:`Interceptor` -- abstract base with three optional hooks:
  ``on_request``, ``on_response`` and ``on_response_error``.
* :class:`InterceptorPipeline` / :class:`AsyncInterceptorPipeline` -- two
  ordered interceptor lists (request side and response side) applied as a
  left fold.

The pipeline follows a chain pattern: each interceptor receives the output
of the previous one. Request interceptors transform the outgoing
:class:`~bearerkit.transport.request.RequestDescriptor`; response
interceptors transform the :class:`~bearerkit.transport.request.Response`.
On failure, ``on_response_error`` receives the error and returns either
the error (possibly a different one) to pass it on, or a ``Response`` to
*convert* the failure into a success, which ends the fold.

Replays re-enter the pipeline from the top, so interceptors must be
idempotent.
"""

from __future__ import annotations

import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, Optional, Union

from bearerkit.exceptions import BearerkitError, ClientError, InterceptorError
from bearerkit.transport.request import RequestDescriptor, Response

logger = logging.getLogger(__name__)

ErrorOutcome = Union[ClientError, Response]


class Interceptor(ABC):
    """Base class for request/response interceptors.

    Subclasses must implement the :attr:`name` property. All hooks default
    to pass-through so an interceptor only overrides what it needs. Hooks
    may be plain methods or coroutines; coroutine hooks are only supported
    by :class:`AsyncInterceptorPipeline`.

    Hooks may raise a :class:`~bearerkit.exceptions.ClientError` to abort
    the request; any other exception is wrapped in
    :class:`~bearerkit.exceptions.InterceptorError`.

    Example::

        class TraceIdInterceptor(Interceptor):
            @property
            def name(self) -> str:
                return "trace-id"

            def on_request(self, descriptor):
                return descriptor.with_header("X-Trace-Id", new_trace_id())
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Short identifier used in logs and error messages."""
        ...

    def on_request(self, descriptor: RequestDescriptor) -> Any:
        return descriptor

    def on_response(self, response: Response) -> Any:
        return response

    def on_response_error(self, error: ClientError) -> Any:
        return error


class _PipelineBase:
    def __init__(
        self,
        request: Optional[Iterable[Interceptor]] = None,
        response: Optional[Iterable[Interceptor]] = None,
    ) -> None:
        self._request: list[Interceptor] = list(request or [])
        self._response: list[Interceptor] = list(response or [])

    @property
    def request_interceptors(self) -> tuple[Interceptor, ...]:
        return tuple(self._request)

    @property
    def response_interceptors(self) -> tuple[Interceptor, ...]:
        return tuple(self._response)

    def use_request(self, interceptor: Interceptor) -> _PipelineBase:
        """Append *interceptor* to the request side. Returns ``self`` for chaining."""
        self._request.append(interceptor)
        return self

    def use_response(self, interceptor: Interceptor) -> _PipelineBase:
        """Append *interceptor* to the response side. Returns ``self`` for chaining."""
        self._response.append(interceptor)
        return self

    def use(self, interceptor: Interceptor) -> _PipelineBase:
        """Append *interceptor* to both sides."""
        self._request.append(interceptor)
        self._response.append(interceptor)
        return self

    @staticmethod
    def _wrap(interceptor: Interceptor, exc: Exception) -> InterceptorError:
        logger.warning("Interceptor %s failed: %s", interceptor.name, exc)
        return InterceptorError(interceptor.name, str(exc))


class InterceptorPipeline(_PipelineBase):
    """Synchronous interceptor pipeline used by :class:`~bearerkit.client.SyncClient`.

    Args:
        request: Initial request-side interceptors, in order.
        response: Initial response-side interceptors, in order.
    """

    def apply_request(self, descriptor: RequestDescriptor) -> RequestDescriptor:
        """Fold request interceptors over *descriptor*."""
        for interceptor in self._request:
            descriptor = self._call(interceptor, interceptor.on_request, descriptor)
        return descriptor

    def apply_response(self, response: Response) -> Response:
        """Fold response interceptors over *response*."""
        for interceptor in self._response:
            response = self._call(interceptor, interceptor.on_response, response)
        return response

    def apply_response_error(self, error: ClientError) -> Response:
        """Fold ``on_response_error`` over *error*.

        Returns:
            The :class:`Response` an interceptor converted the failure into.

        Raises:
            ClientError: The failure left at the end of the fold.
        """
        outcome: ErrorOutcome = error
        for interceptor in self._response:
            outcome = self._call(interceptor, interceptor.on_response_error, outcome)
            if isinstance(outcome, Response):
                return outcome
        raise outcome

    def _call(self, interceptor: Interceptor, hook: Callable[[Any], Any], value: Any) -> Any:
        try:
            result = hook(value)
        except BearerkitError:
            raise
        except Exception as exc:
            raise self._wrap(interceptor, exc) from exc
        if inspect.isawaitable(result):
            close = getattr(result, "close", None)
            if close is not None:
                close()
            raise InterceptorError(
                interceptor.name, "coroutine hooks require the async client"
            )
        return value if result is None else result


class AsyncInterceptorPipeline(_PipelineBase):
    """Asyncio interceptor pipeline; awaits hooks that return awaitables."""

    async def apply_request(self, descriptor: RequestDescriptor) -> RequestDescriptor:
        for interceptor in self._request:
            descriptor = await self._call(interceptor, interceptor.on_request, descriptor)
        return descriptor

    async def apply_response(self, response: Response) -> Response:
        for interceptor in self._response:
            response = await self._call(interceptor, interceptor.on_response, response)
        return response

    async def apply_response_error(self, error: ClientError) -> Response:
        """Async counterpart of :meth:`InterceptorPipeline.apply_response_error`."""
        outcome: ErrorOutcome = error
        for interceptor in self._response:
            outcome = await self._call(interceptor, interceptor.on_response_error, outcome)
            if isinstance(outcome, Response):
                return outcome
        raise outcome

    async def _call(
        self, interceptor: Interceptor, hook: Callable[[Any], Any], value: Any
    ) -> Any:
        try:
            result = hook(value)
            if inspect.isawaitable(result):
                result = await result
        except BearerkitError:
            raise
        except Exception as exc:
            raise self._wrap(interceptor, exc) from exc
        return value if result is None else result
