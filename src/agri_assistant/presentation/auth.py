"""JWT authentication helpers.

Identity is owned by an external provider; this module only verifies the
``Authorization: Bearer <token>`` header and exposes the caller's user id.

When ``AUTH_ENABLED=false`` in settings, the dependency returns a mock user
so the API can be used without authentication during development.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import jwt
from fastapi import HTTPException, Request
from loguru import logger

from agri_assistant.config import Settings, get_settings

# ---------------------------------------------------------------------------
# Data
# ---------------------------------------------------------------------------

ALGORITHM = "HS256"


@dataclass
class AuthenticatedUser:
    """The user extracted from a valid JWT."""

    user_id: str
    name: str = ""


def _mock_user() -> AuthenticatedUser:
    return AuthenticatedUser(user_id="dev-user", name="Dev Farmer")


# ---------------------------------------------------------------------------
# Token helpers
# ---------------------------------------------------------------------------


def create_token(user_id: str, name: str = "", settings: Settings | None = None) -> str:
    """Create a signed JWT containing user claims."""
    s = settings or get_settings()
    now = datetime.now(UTC)
    payload = {
        "sub": user_id,
        "name": name,
        "exp": now + timedelta(hours=s.jwt_expiry_hours),
        "iat": now,
    }
    return jwt.encode(payload, s.jwt_secret, algorithm=ALGORITHM)


def decode_token(token: str, settings: Settings | None = None) -> dict:
    """Decode and verify a JWT. Raises on invalid/expired tokens."""
    s = settings or get_settings()
    return jwt.decode(token, s.jwt_secret, algorithms=[ALGORITHM])


# ---------------------------------------------------------------------------
# FastAPI dependency
# ---------------------------------------------------------------------------


async def get_current_user(request: Request) -> AuthenticatedUser:
    """FastAPI dependency: extract user from JWT or return mock when auth disabled."""
    settings: Settings = getattr(request.app.state, "settings", None) or get_settings()

    if not settings.auth_enabled:
        return _mock_user()

    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header")

    token = auth_header[7:]
    try:
        claims = decode_token(token, settings)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        logger.warning("Invalid JWT presented")
        raise HTTPException(status_code=401, detail="Invalid token")

    if not claims.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid token")

    return AuthenticatedUser(user_id=claims["sub"], name=claims.get("name", ""))
