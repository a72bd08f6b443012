from __future__ import annotations

from fastapi import Depends, Request
from jose import JWTError, jwt
from pydantic import BaseModel

from app.core.config import settings
from app.core.errors import AuthenticationError
from app.core.supabase import SupabaseClient, get_supabase

SUPABASE_AUDIENCE = "authenticated"


class AuthenticatedUser(BaseModel):
    id: str
    email: str | None = None


def _bearer_token(request: Request) -> str:
    header = request.headers.get("Authorization")
    if not header:
        raise AuthenticationError("No authorization header")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Malformed authorization header")
    return token.strip()


def _decode_locally(token: str) -> AuthenticatedUser:
    try:
        payload = jwt.decode(
            token,
            settings.supabase_jwt_secret,
            algorithms=["HS256"],
            audience=SUPABASE_AUDIENCE,
        )
    except JWTError as e:
        raise AuthenticationError("Unable to authenticate user", details=f"Invalid token: {e}")

    if not payload.get("sub"):
        raise AuthenticationError("Unable to authenticate user", details="Token has no subject")
    return AuthenticatedUser(id=payload["sub"], email=payload.get("email"))


async def get_current_user(
    request: Request,
    supabase: SupabaseClient = Depends(get_supabase),
) -> AuthenticatedUser:
    """Verify the caller on every request; nothing is cached between calls."""
    token = _bearer_token(request)

    if settings.supabase_jwt_secret:
        return _decode_locally(token)

    user = await supabase.get_user(token)
    return AuthenticatedUser(id=user["id"], email=user.get("email"))
