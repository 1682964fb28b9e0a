"""
Auth0 identity provider client: token verification and profile lookup
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional, Protocol
from urllib.parse import quote

import httpx
import jwt

from estate_kit.core.exceptions import AuthenticationError, DependencyTimeoutError
from estate_kit.schemas.session import TokenClaims, UserProfile

logger = logging.getLogger(__name__)


class IdentityProvider(Protocol):
    async def verify_token(self, credential: str) -> TokenClaims:
        ...

    async def get_user_info(self, subject: str) -> UserProfile:
        ...


class Auth0IdentityProvider:
    """
    Verifies RS256 access tokens against the tenant JWKS and reads user
    profiles from the Auth0 Management API
    """

    def __init__(
        self,
        domain: str,
        audience: str,
        management_token: Optional[str] = None,
        timeout: float = 5.0,
        http_client: Optional[httpx.AsyncClient] = None,
        jwks_client: Optional[jwt.PyJWKClient] = None,
    ):
        if not domain or not audience:
            raise AuthenticationError("Auth0 domain and audience must be configured")

        self.domain = domain.replace("https://", "").rstrip("/")
        self.audience = audience
        self.issuer = f"https://{self.domain}/"
        self.management_token = management_token
        self.timeout = timeout
        self._http_client = http_client
        self._jwks_client = jwks_client or jwt.PyJWKClient(
            f"https://{self.domain}/.well-known/jwks.json",
            cache_keys=True,
            timeout=int(max(timeout, 1)),
        )

    async def verify_token(self, credential: str) -> TokenClaims:
        """
        Verify signature, audience, issuer and expiry of an access token

        Returns:
            Verified claims (subject and expiry)
        """
        if not credential:
            raise AuthenticationError("Empty credential")

        try:
            signing_key = await asyncio.to_thread(
                self._jwks_client.get_signing_key_from_jwt, credential
            )
            claims = jwt.decode(
                credential,
                signing_key.key,
                algorithms=["RS256"],
                audience=self.audience,
                issuer=self.issuer,
            )
        except jwt.PyJWKClientConnectionError as e:
            logger.error(f"JWKS endpoint unreachable: {e}")
            raise DependencyTimeoutError("Identity provider key set unavailable")
        except jwt.PyJWTError as e:
            logger.warning(f"Token verification failed: {e}")
            raise AuthenticationError(str(e))

        subject = claims.get("sub")
        if not subject:
            raise AuthenticationError("Token has no subject")

        expires_at = None
        if claims.get("exp"):
            expires_at = datetime.fromtimestamp(claims["exp"], tz=timezone.utc)
        return TokenClaims(subject=subject, expires_at=expires_at)

    async def get_user_info(self, subject: str) -> UserProfile:
        """
        Fetch the canonical profile for a subject from the Management API
        """
        if not self.management_token:
            raise AuthenticationError("Auth0 management token not configured")

        url = f"https://{self.domain}/api/v2/users/{quote(subject, safe='')}"
        headers = {"Authorization": f"Bearer {self.management_token}"}

        try:
            if self._http_client is not None:
                response = await self._http_client.get(url, headers=headers, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url, headers=headers)
        except httpx.TimeoutException as e:
            logger.error(f"Auth0 user lookup timed out: {e}")
            raise DependencyTimeoutError("Identity provider timed out")
        except httpx.HTTPError as e:
            logger.error(f"Auth0 user lookup failed: {e}")
            raise AuthenticationError(f"User lookup failed: {e}")

        if response.status_code != 200:
            logger.warning(f"Auth0 user lookup returned {response.status_code}")
            raise AuthenticationError(f"User lookup returned {response.status_code}")

        data = response.json()
        if not data or not data.get("user_id"):
            raise AuthenticationError("Identity provider returned no profile")

        return UserProfile(
            user_id=data["user_id"],
            email=data.get("email"),
            name=data.get("name"),
            email_verified=bool(data.get("email_verified", False)),
            roles=list(data.get("app_metadata", {}).get("roles", [])),
            metadata=data.get("user_metadata") or {},
        )
