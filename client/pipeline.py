"""
Outbound request pipeline.

Interceptors wrap one another around a transport. Each receives the request,
its RequestContext and `call_next`, and returns the response. The context is
immutable; a replay passes a new context marked as retried.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Callable, Sequence

import requests

from client.session import ClientSession

logger = logging.getLogger(__name__)

Handler = Callable[[requests.Request, "RequestContext"], requests.Response]


class RefreshFailed(Exception):
    """The refresh endpoint rejected the session; it has been logged out."""


@dataclass(frozen=True)
class RequestContext:
    retried: bool = False

    def mark_retried(self) -> "RequestContext":
        return replace(self, retried=True)


def with_headers(request: requests.Request, headers: dict) -> requests.Request:
    return requests.Request(
        method=request.method,
        url=request.url,
        headers=headers,
        files=request.files,
        data=request.data,
        json=request.json,
        params=request.params,
        auth=request.auth,
        cookies=request.cookies,
        hooks=request.hooks,
    )


class InterceptorChain:
    def __init__(self, interceptors: Sequence, transport: Handler):
        self.interceptors = list(interceptors)
        self.transport = transport

    def send(self, request: requests.Request, context: RequestContext | None = None) -> requests.Response:
        return self._dispatch(0, request, context or RequestContext())

    def _dispatch(self, index: int, request: requests.Request, context: RequestContext) -> requests.Response:
        if index == len(self.interceptors):
            return self.transport(request, context)
        interceptor = self.interceptors[index]
        return interceptor(request, context, lambda req, ctx: self._dispatch(index + 1, req, ctx))


class BearerTokenInterceptor:
    """Attach the session's current access token at send time."""

    def __init__(self, session: ClientSession):
        self.session = session

    def __call__(self, request, context, call_next):
        headers = dict(request.headers or {})
        header = self.session.authorization_header()
        if header:
            headers["Authorization"] = header
        else:
            headers.pop("Authorization", None)
        return call_next(with_headers(request, headers), context)


class RefreshRetryInterceptor:
    """
    On a 401, refresh once and replay the request once.

    `refresh` must be shared by all concurrent requests (single-flight) and raise
    RefreshFailed when the session cannot be recovered. A replayed request that
    gets 401 again is returned to the caller as is.
    """

    def __init__(self, session: ClientSession, refresh: Callable[[], object]):
        self.session = session
        self.refresh = refresh

    def __call__(self, request, context, call_next):
        response = call_next(request, context)
        if response.status_code != 401 or context.retried:
            return response

        sent = response.request.headers.get("Authorization") if response.request is not None else None
        if self.session.authorization_header() == sent:
            try:
                self.refresh()
            except RefreshFailed:
                logger.info("Session could not be refreshed; returning original 401")
                return response
        else:
            # A refresh finished while this request was in flight; reuse its token
            logger.debug("Access token rotated concurrently; replaying without refresh")
        return call_next(request, context.mark_retried())
