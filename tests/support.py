from __future__ import annotations

import time
from http.client import HTTPMessage
from types import SimpleNamespace

import requests
from requests.adapters import BaseAdapter
from requests.cookies import extract_cookies_to_jar
from requests.structures import CaseInsensitiveDict

from api import create_app
from models.db_storage import DBStorage

BASE_HOST = "http://shop.test"
API_BASE = f"{BASE_HOST}/api/v1"


def make_app():
    """Fresh app over its own in-memory database."""
    storage = DBStorage("sqlite://")
    storage.reload()
    app = create_app("test", storage=storage)
    return app, storage


def unique_email(prefix: str = "user") -> str:
    return f"{prefix}-{time.time_ns()}@shop.test"


class FlaskAdapter(BaseAdapter):
    """
    requests transport that hands prepared requests to a Flask test client.

    Cookies travel through real Set-Cookie/Cookie headers, so the requests cookie
    jar behaves as it would against a live server. `force(path, status, times)`
    answers the next `times` calls to `path` with a bare error response.
    """

    def __init__(self, app):
        super().__init__()
        self.client = app.test_client(use_cookies=False)
        self.calls: list[tuple[str, str]] = []
        self._forced: dict[str, list[int]] = {}

    def force(self, path: str, status: int, times: int = 1) -> None:
        self._forced.setdefault(path, []).extend([status] * times)

    def count(self, path: str) -> int:
        return sum(1 for _, p in self.calls if p == path)

    def send(self, request, stream=False, timeout=None, verify=True, cert=None, proxies=None):
        path = request.path_url
        self.calls.append((request.method, path))
        forced = self._forced.get(path)
        if forced:
            status = forced.pop(0)
            return _build_response(request, status, [("Content-Type", "application/json")],
                                   b'{"success": false, "message": "forced"}')
        res = self.client.open(
            path,
            method=request.method,
            headers=list(request.headers.items()),
            data=request.body,
        )
        return _build_response(request, res.status_code, list(res.headers.items()), res.get_data())

    def close(self):
        pass


def _build_response(request, status: int, headers: list, body: bytes) -> requests.Response:
    msg = HTTPMessage()
    for key, value in headers:
        msg[key] = value

    response = requests.Response()
    response.status_code = status
    response.headers = CaseInsensitiveDict(headers)
    response._content = body
    response._content_consumed = True
    response.encoding = "utf-8"
    response.url = request.url
    response.request = request
    # Session.send reads Set-Cookie from raw._original_response.msg
    response.raw = SimpleNamespace(_original_response=SimpleNamespace(msg=msg))
    extract_cookies_to_jar(response.cookies, request, response.raw)
    return response


def make_http(app) -> tuple[requests.Session, FlaskAdapter]:
    adapter = FlaskAdapter(app)
    http = requests.Session()
    http.mount(BASE_HOST, adapter)
    return http, adapter
