"""
Google service-account authentication
Signs an RS256 JWT assertion and exchanges it for an OAuth access token
"""

import logging
import time
from typing import Optional

import httpx
from jose import JWTError, jwt

from ..config import GOOGLE_SERVICE_ACCOUNT_EMAIL, GOOGLE_SERVICE_ACCOUNT_PRIVATE_KEY

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
DEFAULT_SCOPES = (
    "https://www.googleapis.com/auth/drive",
    "https://www.googleapis.com/auth/spreadsheets",
)
ASSERTION_LIFETIME = 3600
EXPIRY_MARGIN = 60


class GoogleAuthError(Exception):
    pass


def is_configured() -> bool:
    return bool(GOOGLE_SERVICE_ACCOUNT_EMAIL and GOOGLE_SERVICE_ACCOUNT_PRIVATE_KEY)


class ServiceAccountCredentials:
    def __init__(
        self,
        client_email: Optional[str] = None,
        private_key: Optional[str] = None,
        scopes: tuple = DEFAULT_SCOPES,
    ):
        self.client_email = client_email or GOOGLE_SERVICE_ACCOUNT_EMAIL
        self.private_key = private_key or GOOGLE_SERVICE_ACCOUNT_PRIVATE_KEY
        self.scopes = scopes
        self._access_token: Optional[str] = None
        self._expires_at = 0.0

    def build_assertion(self, now: Optional[int] = None) -> str:
        now = int(now if now is not None else time.time())
        claims = {
            "iss": self.client_email,
            "scope": " ".join(self.scopes),
            "aud": GOOGLE_TOKEN_URL,
            "iat": now,
            "exp": now + ASSERTION_LIFETIME,
        }
        try:
            return jwt.encode(claims, self.private_key, algorithm="RS256")
        except JWTError as e:
            raise GoogleAuthError(f"Could not sign service account assertion: {e}") from e

    async def get_access_token(self) -> str:
        """Cached until EXPIRY_MARGIN seconds before the token expires"""
        if self._access_token and time.time() < self._expires_at - EXPIRY_MARGIN:
            return self._access_token

        if not (self.client_email and self.private_key):
            raise GoogleAuthError("Google service account is not configured")

        async with httpx.AsyncClient(timeout=15.0) as client:
            response = await client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "grant_type": "urn:ietf:params:oauth:grant-type:jwt-bearer",
                    "assertion": self.build_assertion(),
                },
            )

        if response.status_code != 200:
            logger.error(f"❌ Google token exchange failed: {response.text}")
            raise GoogleAuthError(f"Token exchange failed with status {response.status_code}")

        tokens = response.json()
        self._access_token = tokens.get("access_token")
        if not self._access_token:
            raise GoogleAuthError("No access token in token response")
        self._expires_at = time.time() + int(tokens.get("expires_in", ASSERTION_LIFETIME))
        logger.info("🔐 Google service account token refreshed")
        return self._access_token

    async def auth_headers(self) -> dict:
        return {"Authorization": f"Bearer {await self.get_access_token()}"}
