"""
Authentication Collaborator

The tracker core does not validate credentials. It consumes a session
provider with three primitives (sign in, sign out, validity check) and
treats the resulting session as opaque, passing its access token to the
remote storage client.

SupabaseAuth talks to the Supabase GoTrue endpoints over httpx.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx
import structlog
from pydantic import BaseModel

logger = structlog.get_logger()


class AuthError(Exception):
    """Credentials rejected or the auth service failed."""
    pass


class Session(BaseModel):
    """An authenticated session (opaque to the core)."""
    access_token: str
    refresh_token: Optional[str] = None
    user_id: Optional[str] = None
    email: Optional[str] = None
    expires_at: Optional[datetime] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or datetime.now(timezone.utc)) >= self.expires_at


class SessionProvider(ABC):
    """Login/logout primitive plus a validity check."""

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> Session:
        """
        Authenticate with email and password.

        Raises:
            AuthError: If the credentials are rejected
        """
        pass

    @abstractmethod
    async def sign_out(self, session: Session) -> None:
        pass

    @abstractmethod
    async def is_session_valid(self, access_token: str) -> bool:
        """True if the token still identifies a user."""
        pass


class SupabaseAuth(SessionProvider):
    """GoTrue (Supabase Auth) session provider."""

    def __init__(
        self,
        url: str,
        anon_key: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._anon_key = anon_key
        self._client = httpx.AsyncClient(
            base_url=f"{url.rstrip('/')}/auth/v1",
            headers={"apikey": anon_key},
            timeout=timeout,
            transport=transport,
        )

    async def sign_in(self, email: str, password: str) -> Session:
        try:
            response = await self._client.post(
                "/token",
                params={"grant_type": "password"},
                json={"email": email, "password": password},
            )
        except httpx.TransportError as e:
            raise AuthError(f"Auth service unreachable: {e}") from e

        if response.status_code in (400, 401, 422):
            logger.warning("sign_in_rejected", email=email, status=response.status_code)
            raise AuthError("Invalid email or password")
        if response.is_error:
            raise AuthError(f"Auth service error {response.status_code}")

        body = response.json()
        user = body.get("user") or {}
        expires_in = body.get("expires_in")
        session = Session(
            access_token=body["access_token"],
            refresh_token=body.get("refresh_token"),
            user_id=user.get("id"),
            email=user.get("email", email),
            expires_at=(
                datetime.now(timezone.utc) + timedelta(seconds=int(expires_in))
                if expires_in else None
            ),
        )
        logger.info("signed_in", user_id=session.user_id)
        return session

    async def sign_out(self, session: Session) -> None:
        try:
            response = await self._client.post(
                "/logout",
                headers={"Authorization": f"Bearer {session.access_token}"},
            )
        except httpx.TransportError as e:
            raise AuthError(f"Auth service unreachable: {e}") from e
        # An already-invalid token is as good as signed out
        if response.is_error and response.status_code not in (401, 403):
            raise AuthError(f"Sign out failed with {response.status_code}")
        logger.info("signed_out", user_id=session.user_id)

    async def is_session_valid(self, access_token: str) -> bool:
        if not access_token:
            return False
        try:
            response = await self._client.get(
                "/user",
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.TransportError as e:
            logger.warning("session_check_failed", error=str(e))
            return False
        return response.status_code == 200

    async def close(self) -> None:
        await self._client.aclose()
