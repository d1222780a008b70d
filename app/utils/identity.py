"""
Google ID-token verification.

The front end signs users in with Google and forwards the resulting ID token
as ``Authorization: Bearer <token>``.  The token is checked against Google's
published signing keys; the verified, lower-cased email becomes the caller's
linking identity.
"""

from __future__ import annotations

import asyncio
from typing import Any

import jwt
import structlog

from app.errors import Unauthenticated

logger = structlog.get_logger("cozy.identity")

GOOGLE_ISSUERS = ("accounts.google.com", "https://accounts.google.com")


class GoogleIdentityVerifier:
    def __init__(
        self,
        client_id: str,
        jwks_url: str = "https://www.googleapis.com/oauth2/v3/certs",
        *,
        jwks_client: Any = None,
    ) -> None:
        self._client_id = client_id
        # PyJWKClient caches fetched keys between calls.
        self._jwks_client = jwks_client or jwt.PyJWKClient(jwks_url)

    def decode(self, token: str) -> dict[str, Any]:
        if not self._client_id:
            raise Unauthenticated("Sign-in is not configured: GOOGLE_CLIENT_ID is missing")
        try:
            signing_key = self._jwks_client.get_signing_key_from_jwt(token)
            claims = jwt.decode(
                token,
                signing_key.key,
                algorithms=["RS256"],
                audience=self._client_id,
                options={"require": ["exp", "iss", "aud", "email"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise Unauthenticated("Token expired") from exc
        except jwt.PyJWTError as exc:
            logger.info("id_token_rejected", error=str(exc))
            raise Unauthenticated("Invalid token") from exc

        if claims.get("iss") not in GOOGLE_ISSUERS:
            raise Unauthenticated("Invalid token issuer")
        if claims.get("email_verified") not in (True, "true"):
            raise Unauthenticated("Email address is not verified")
        return claims

    async def verify(self, token: str) -> str:
        """Verify *token* and return the caller's lower-cased email."""
        # Key lookup may hit the network; keep it off the event loop.
        claims = await asyncio.to_thread(self.decode, token)
        return str(claims["email"]).strip().lower()
