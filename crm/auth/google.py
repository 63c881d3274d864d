from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import urlencode

import httpx

from crm.config import settings

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"


class GoogleOAuthError(RuntimeError):
    def __init__(self, *, message: str, status_code: int = 502) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class GoogleProfile:
    google_id: str
    email: str
    name: str
    avatar: Optional[str] = None


class GoogleOAuthClient:
    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._timeout = settings.GOOGLE_REQUEST_TIMEOUT_SECONDS
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    def build_authorize_url(self, *, state: str) -> str:
        query = urlencode(
            {
                "client_id": settings.GOOGLE_CLIENT_ID,
                "redirect_uri": settings.GOOGLE_REDIRECT_URI,
                "response_type": "code",
                "scope": "openid email profile",
                "state": state,
                "prompt": "select_account",
            }
        )
        return f"{GOOGLE_AUTHORIZE_URL}?{query}"

    async def exchange_code(self, *, code: str) -> str:
        payload = {
            "client_id": settings.GOOGLE_CLIENT_ID,
            "client_secret": settings.GOOGLE_CLIENT_SECRET,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": settings.GOOGLE_REDIRECT_URI,
        }
        try:
            async with self._client() as client:
                response = await client.post(GOOGLE_TOKEN_URL, data=payload)
        except httpx.RequestError as exc:
            raise GoogleOAuthError(message=f"Network error while calling Google: {exc}") from exc
        data = self._parse(response, action="token exchange")
        access_token = data.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise GoogleOAuthError(message="Google token exchange response is missing access_token")
        return access_token

    async def fetch_profile(self, *, access_token: str) -> GoogleProfile:
        try:
            async with self._client() as client:
                response = await client.get(
                    GOOGLE_USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"}
                )
        except httpx.RequestError as exc:
            raise GoogleOAuthError(message=f"Network error while calling Google: {exc}") from exc
        data = self._parse(response, action="userinfo")
        google_id = data.get("sub")
        email = data.get("email")
        if not isinstance(google_id, str) or not google_id:
            raise GoogleOAuthError(message="Google profile is missing sub")
        if not isinstance(email, str) or not email:
            raise GoogleOAuthError(message="Google profile is missing email")
        return GoogleProfile(
            google_id=google_id,
            email=email,
            name=data.get("name") or email.split("@")[0],
            avatar=data.get("picture"),
        )

    @staticmethod
    def _parse(response: httpx.Response, *, action: str) -> dict[str, Any]:
        if response.status_code >= 400:
            raise GoogleOAuthError(
                message=f"Google {action} failed with status {response.status_code}",
                status_code=502 if response.status_code >= 500 else 400,
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise GoogleOAuthError(message=f"Google {action} returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise GoogleOAuthError(message=f"Google {action} returned an unexpected payload")
        return data
