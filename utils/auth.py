"""Auth helpers -- FastAPI dependencies for moderators and guest sessions.

Moderators present an HS256 JWT issued by the staff login service:
``Authorization: Bearer <jwt>`` with ``sub`` (moderator id) and ``role``
claims. Guests present the opaque token handed out when their live chat
session was created: ``Authorization: Bearer <session_token>``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException, Request, status
from jose import JWTError, jwt

from models.errors import AuthenticationError, AuthorizationError
from models.session_record import GuestSession

MODERATOR_ROLES = frozenset({"admin", "penyiar"})


@dataclass(frozen=True)
class Moderator:
    """Verified staff identity handed to the moderation engine."""

    id: str
    role: str


class ModeratorAuthenticator:
    """Validate moderator JWTs and enforce the moderator role gate."""

    def __init__(self, secret: str, algorithm: str = "HS256") -> None:
        if not secret:
            raise ValueError("A JWT secret is required for moderator auth")
        self._secret = secret
        self._algorithm = algorithm

    def verify(self, token: Optional[str]) -> Moderator:
        """Return the Moderator for `token`.

        Raises:
            AuthenticationError: token missing, malformed, expired or without subject.
            AuthorizationError: token valid but the role may not moderate.
        """
        if not token:
            raise AuthenticationError("Not authenticated")
        try:
            claims = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except JWTError as exc:
            raise AuthenticationError("Invalid token") from exc

        subject = claims.get("sub")
        if not subject:
            raise AuthenticationError("Token has no subject")
        role = str(claims.get("role") or "")
        if role not in MODERATOR_ROLES:
            raise AuthorizationError("Insufficient role for moderation", details={"role": role})
        return Moderator(id=str(subject), role=role)


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Extract the credential from an ``Authorization: Bearer`` header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def get_current_moderator(request: Request, authorization: Optional[str] = Header(None)) -> Moderator:
    """FastAPI dependency returning the verified moderator, or raising 401/403."""
    authenticator: ModeratorAuthenticator = request.app.state.moderator_auth
    try:
        return authenticator.verify(bearer_token(authorization))
    except AuthenticationError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.message,
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
    except AuthorizationError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=exc.message) from exc


async def get_guest_session(request: Request, authorization: Optional[str] = Header(None)) -> GuestSession:
    """FastAPI dependency resolving the guest's session token.

    Inactive sessions are returned as-is; the message store refuses their
    submissions with SessionInactiveError.
    """
    token = bearer_token(authorization)
    session = await request.app.state.session_manager.find_session_by_token(token)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing session token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return session
