from __future__ import annotations

import logging
import time
from typing import Any, Callable

import jwt
import requests

logger = logging.getLogger(__name__)


class SessionExpired(Exception):
    """The access token expired and could not be refreshed; log in again."""


class ApiError(Exception):
    def __init__(self, status_code: int, message: str, error: str | None = None, payload: Any = None):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message
        self.error = error
        self.payload = payload


def token_expiry(token: str | None) -> float | None:
    """Read the ``exp`` claim of a JWT without verifying it."""

    if not token:
        return None
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.DecodeError:
        return None
    exp = claims.get("exp")
    return float(exp) if exp is not None else None


class ApiSession:
    """Explicit client session for the BookBazaar API.

    Holds the access and refresh tokens and is passed to every call instead of
    living in process-wide state. An access token that is expired (or about to
    be, within ``leeway`` seconds) is refreshed before the request; a 401 from
    the server triggers one refresh and a single retry.
    """

    def __init__(
        self,
        base_url: str,
        *,
        access: str | None = None,
        refresh: str | None = None,
        http: requests.Session | None = None,
        clock: Callable[[], float] = time.time,
        leeway: float = 30.0,
        timeout: float = 10.0,
    ):
        self.base_url = base_url.rstrip("/") + "/"
        self.http = http or requests.Session()
        self.clock = clock
        self.leeway = leeway
        self.timeout = timeout
        self.access: str | None = None
        self.refresh_token: str | None = refresh
        self.access_expires_at: float | None = None
        if access:
            self._set_access(access)

    def _set_access(self, access: str) -> None:
        self.access = access
        self.access_expires_at = token_expiry(access)

    def _url(self, path: str) -> str:
        return self.base_url + path.lstrip("/")

    @property
    def access_expired(self) -> bool:
        if not self.access:
            return True
        if self.access_expires_at is None:
            return False
        return self.clock() + self.leeway >= self.access_expires_at

    def login(self, identifier: str, password: str) -> dict:
        field = "email" if "@" in identifier else "username"
        response = self.http.post(
            self._url("auth/login/"),
            json={field: identifier, "password": password},
            timeout=self.timeout,
        )
        data = self._parse(response)
        self._set_access(data["access"])
        self.refresh_token = data.get("refresh")
        return data["user"]

    def refresh(self) -> None:
        if not self.refresh_token:
            raise SessionExpired("No refresh token available")

        response = self.http.post(
            self._url("auth/token/refresh/"),
            json={"refresh": self.refresh_token},
            timeout=self.timeout,
        )
        if response.status_code != 200:
            logger.info("token refresh rejected with status %s", response.status_code)
            self.access = None
            self.access_expires_at = None
            raise SessionExpired("Session expired; please log in again")

        data = response.json()
        self._set_access(data["access"])
        # Present when the server rotates refresh tokens.
        if data.get("refresh"):
            self.refresh_token = data["refresh"]

    def request(self, method: str, path: str, **kwargs) -> Any:
        if self.access_expired:
            self.refresh()

        response = self._send(method, path, **kwargs)
        if response.status_code == 401 and self.refresh_token:
            self.refresh()
            response = self._send(method, path, **kwargs)
        if response.status_code == 401:
            raise SessionExpired("Session expired; please log in again")
        return self._parse(response)

    def _send(self, method: str, path: str, **kwargs) -> requests.Response:
        headers = dict(kwargs.pop("headers", None) or {})
        headers["Authorization"] = f"Bearer {self.access}"
        kwargs.setdefault("timeout", self.timeout)
        return self.http.request(method, self._url(path), headers=headers, **kwargs)

    @staticmethod
    def _parse(response: requests.Response) -> Any:
        if response.status_code == 204 or not response.content:
            payload = None
        else:
            try:
                payload = response.json()
            except ValueError:
                payload = response.text

        if response.status_code >= 400:
            message = payload.get("message") if isinstance(payload, dict) else None
            error = payload.get("error") if isinstance(payload, dict) else None
            raise ApiError(response.status_code, message or response.reason or "Request failed", error, payload)
        return payload

    # Conversations

    def open_conversation(self, book_id: int) -> dict:
        return self.request("POST", "conversations/", json={"book_id": book_id})

    def conversations(self) -> list[dict]:
        return self.request("GET", "conversations/")

    def delete_conversation(self, conversation_id: int) -> None:
        self.request("DELETE", f"conversations/{conversation_id}/")

    def messages(self, conversation_id: int) -> list[dict]:
        return self.request("GET", f"conversations/{conversation_id}/messages/")

    def send_message(self, conversation_id: int, text: str) -> dict:
        return self.request("POST", f"conversations/{conversation_id}/messages/", json={"text": text})
