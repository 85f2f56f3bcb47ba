"""Bearer token verification.

Tokens are issued by the platform's account service. The registry only
needs to know which user is acting, so imported rows carry provenance and
role checks can gate writes.
"""

from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt
from pydantic import BaseModel

from app.config import get_settings

ACCESS_TOKEN_TYPE = "access"
ACCESS_TOKEN_TTL = timedelta(minutes=30)


class TokenData(BaseModel):
    """Claims the registry reads from an access token."""

    user_id: str
    email: str | None = None
    expires_at: datetime | None = None


def _signing_params() -> tuple[str, str]:
    settings = get_settings()
    return settings.secret_key, settings.algorithm


def create_access_token(
    user_id: str,
    email: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Sign an access token for ``user_id``.

    Meant for scripts and tests. Interactive logins go through the account
    service, which signs with the same key.

    Args:
        user_id: User's UUID, stored as ``sub``.
        email: Optional email claim.
        expires_delta: Lifetime, ``ACCESS_TOKEN_TTL`` when omitted. Negative
            values produce an already expired token.

    Returns:
        str: Encoded JWT.
    """
    claims = {
        "sub": user_id,
        "type": ACCESS_TOKEN_TYPE,
        "exp": datetime.now(UTC) + (expires_delta or ACCESS_TOKEN_TTL),
    }
    if email:
        claims["email"] = email

    key, algorithm = _signing_params()
    return jwt.encode(claims, key, algorithm=algorithm)


def decode_access_token(token: str) -> TokenData | None:
    """Verify ``token`` and return its claims, or None if it is unusable.

    Bad signatures, expired tokens, non-access tokens and tokens without a
    subject all yield None.
    """
    key, algorithm = _signing_params()
    try:
        claims = jwt.decode(token, key, algorithms=[algorithm])
    except JWTError:
        return None

    if claims.get("type") != ACCESS_TOKEN_TYPE or not claims.get("sub"):
        return None

    exp = claims.get("exp")
    return TokenData(
        user_id=claims["sub"],
        email=claims.get("email"),
        expires_at=datetime.fromtimestamp(exp, UTC) if exp is not None else None,
    )
