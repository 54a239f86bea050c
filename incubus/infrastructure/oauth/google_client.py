from __future__ import annotations

from typing import Any
from urllib.parse import urlencode

import httpx


class GoogleOAuthError(RuntimeError):
    pass


class GoogleOAuthClient:
    def __init__(
        self,
        *,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        oauth_scopes: str,
        authorize_url: str,
        token_url: str,
        userinfo_url: str,
        timeout_seconds: float = 15.0,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.oauth_scopes = oauth_scopes
        self.authorize_url = authorize_url
        self.token_url = token_url
        self.userinfo_url = userinfo_url
        self.timeout_seconds = timeout_seconds

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.redirect_uri)

    def build_authorize_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": self.oauth_scopes,
            "state": state,
            "access_type": "online",
            "prompt": "select_account",
        }
        return f"{self.authorize_url}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> dict[str, Any]:
        payload = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.redirect_uri,
        }
        headers = {"Content-Type": "application/x-www-form-urlencoded"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(self.token_url, data=payload, headers=headers)
        except httpx.HTTPError as exc:
            raise GoogleOAuthError(f"Google token exchange failed: {exc}") from exc
        if response.status_code >= 400:
            raise GoogleOAuthError(
                f"Google token exchange failed ({response.status_code}): {response.text}"
            )
        data = response.json()
        if "access_token" not in data:
            raise GoogleOAuthError("Google token exchange returned no access_token")
        return data

    async def fetch_user(self, access_token: str) -> dict[str, Any]:
        headers = {"Authorization": f"Bearer {access_token}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.get(self.userinfo_url, headers=headers)
        except httpx.HTTPError as exc:
            raise GoogleOAuthError(f"Google userinfo failed: {exc}") from exc
        if response.status_code >= 400:
            raise GoogleOAuthError(
                f"Google userinfo failed ({response.status_code}): {response.text}"
            )
        payload = response.json()
        if not isinstance(payload, dict) or not payload.get("sub") or not payload.get("email"):
            raise GoogleOAuthError("Google userinfo response is missing sub or email")
        return payload
