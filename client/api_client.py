"""
HTTP client for the storefront API that keeps a session alive.

The access token is held in memory (ClientSession) and attached per request.
The refresh token arrives as an HTTP-only cookie and stays in the requests
cookie jar. A 401 triggers one shared refresh and one replay of the request.
"""
from __future__ import annotations

import logging
from typing import Callable

import requests

from client.pipeline import (
    BearerTokenInterceptor,
    InterceptorChain,
    RefreshFailed,
    RefreshRetryInterceptor,
    RequestContext,
)
from client.session import ClientSession
from client.singleflight import SingleFlight

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 25


class ApiError(Exception):
    def __init__(self, status: int, message: str, payload: dict | None = None):
        super().__init__(f"HTTP {status}: {message}")
        self.status = status
        self.message = message
        self.payload = payload or {}


def _json(resp: requests.Response) -> dict:
    try:
        j = resp.json() if resp.content else {}
    except ValueError:
        j = {}
    return j if isinstance(j, dict) else {"payload": j}


def raise_for_api_error(resp: requests.Response) -> dict:
    """Return the JSON body of a 2xx response, raise ApiError otherwise."""
    j = _json(resp)
    if resp.status_code < 200 or resp.status_code >= 300:
        msg = (j.get("message") or f"HTTP {resp.status_code}").strip()
        raise ApiError(resp.status_code, msg, j)
    return j


class StorefrontClient:
    def __init__(
        self,
        base_url: str,
        session: ClientSession | None = None,
        http: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        refresh_cookie_name: str = "refreshToken",
        on_logout: Callable[[], None] | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or ClientSession()
        self.http = http or requests.Session()
        self.timeout = timeout
        self.refresh_cookie_name = refresh_cookie_name
        self.on_logout = on_logout
        self._refresh_flight: SingleFlight[dict] = SingleFlight()
        self._chain = InterceptorChain(
            [
                RefreshRetryInterceptor(self.session, self._refresh_shared),
                BearerTokenInterceptor(self.session),
            ],
            self._transport,
        )

    # -- plumbing --------------------------------------------------------

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _transport(self, request: requests.Request, context: RequestContext) -> requests.Response:
        prepared = self.http.prepare_request(request)
        return self.http.send(prepared, timeout=self.timeout)

    def _send_raw(self, method: str, path: str, **kwargs) -> requests.Response:
        """Send outside the interceptor chain: no token refresh, no replay."""
        return self._transport(requests.Request(method, self.url(path), **kwargs), RequestContext(retried=True))

    def _start(self, j: dict) -> dict:
        data = j.get("data") or {}
        self.session.update(data.get("accessToken"), data.get("user"))
        return data.get("user") or {}

    def _has_refresh_cookie(self) -> bool:
        return any(cookie.name == self.refresh_cookie_name for cookie in self.http.cookies)

    def _drop_refresh_cookie(self) -> None:
        for cookie in list(self.http.cookies):
            if cookie.name == self.refresh_cookie_name:
                self.http.cookies.clear(cookie.domain, cookie.path, cookie.name)

    # -- requests through the pipeline -----------------------------------

    def request(self, method: str, path: str, **kwargs) -> requests.Response:
        return self._chain.send(requests.Request(method.upper(), self.url(path), **kwargs))

    def get(self, path: str, **kwargs) -> requests.Response:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, **kwargs) -> requests.Response:
        return self.request("POST", path, **kwargs)

    def put(self, path: str, **kwargs) -> requests.Response:
        return self.request("PUT", path, **kwargs)

    def patch(self, path: str, **kwargs) -> requests.Response:
        return self.request("PATCH", path, **kwargs)

    def delete(self, path: str, **kwargs) -> requests.Response:
        return self.request("DELETE", path, **kwargs)

    # -- session lifecycle -----------------------------------------------

    def register(self, email: str, password: str, name: str) -> dict:
        resp = self._send_raw("POST", "/auth/register", json={"email": email, "password": password, "name": name})
        return self._start(raise_for_api_error(resp))

    def login(self, email: str, password: str) -> dict:
        resp = self._send_raw("POST", "/auth/login", json={"email": email, "password": password})
        return self._start(raise_for_api_error(resp))

    def refresh(self) -> dict:
        """Refresh the session now; concurrent callers share one request."""
        return self._refresh_shared()

    def _refresh_shared(self) -> dict:
        return self._refresh_flight.do(self._refresh_once)

    def _refresh_once(self) -> dict:
        resp = self._send_raw("POST", "/auth/refresh")
        if resp.status_code < 200 or resp.status_code >= 300:
            logger.info("Refresh rejected with HTTP %s; logging out", resp.status_code)
            self.force_logout()
            raise RefreshFailed(_json(resp).get("message") or f"HTTP {resp.status_code}")
        return self._start(_json(resp))

    def logout(self) -> None:
        """Revoke the session on the server, then forget it locally.

        Goes through the pipeline, so an expired or missing access token is
        refreshed from the cookie first and the logout is replayed once.
        """
        if not self.session.is_authenticated and not self._has_refresh_cookie():
            self._end_session()
            return
        try:
            resp = self.post("/auth/logout")
            if resp.status_code >= 400:
                logger.info("Server logout returned HTTP %s", resp.status_code)
        finally:
            self._end_session()

    def force_logout(self) -> None:
        """Best-effort logout used when the session is already unrecoverable."""
        header = self.session.authorization_header()
        try:
            if header:
                self._send_raw("POST", "/auth/logout", headers={"Authorization": header})
        except requests.RequestException as exc:
            logger.warning("Server logout failed: %s", exc)
        finally:
            self._end_session()

    def _end_session(self) -> None:
        active = self.session.is_authenticated or self._has_refresh_cookie()
        self.session.clear()
        self._drop_refresh_cookie()
        if active and self.on_logout:
            self.on_logout()

    # -- convenience -----------------------------------------------------

    def me(self) -> dict:
        return raise_for_api_error(self.get("/users/me")).get("data") or {}
