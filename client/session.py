from __future__ import annotations

import threading


class ClientSession:
    """
    In-memory session state of one client: the access token and a profile snapshot.

    The refresh token is never stored here; it lives in the HTTP cookie jar and is
    only ever sent to the refresh endpoint by the transport.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._access_token: str | None = None
        self._user: dict | None = None

    @property
    def access_token(self) -> str | None:
        return self._access_token

    @property
    def user(self) -> dict | None:
        return self._user

    @property
    def is_authenticated(self) -> bool:
        return self._user is not None

    def authorization_header(self) -> str | None:
        token = self._access_token
        return f"Bearer {token}" if token else None

    def update(self, access_token: str, user: dict | None) -> None:
        with self._lock:
            self._access_token = access_token
            self._user = user

    def clear(self) -> None:
        with self._lock:
            self._access_token = None
            self._user = None
