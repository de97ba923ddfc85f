"""Security utilities: tenant-scoped JWT helpers."""

from datetime import datetime, timedelta, timezone

from jose import jwt

from chatgate.core.config import Settings

DEFAULT_JWT_EXPIRY = timedelta(hours=1)


def create_jwt(
    tenant_id: str,
    settings: Settings,
    expires_delta: timedelta | None = None,
) -> str:
    """Issue a token that pins its bearer to ``tenant_id``."""
    expire = datetime.now(timezone.utc) + (expires_delta or DEFAULT_JWT_EXPIRY)
    payload = {
        "sub": tenant_id,
        "tid": tenant_id,
        "exp": expire,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_jwt(token: str, settings: Settings) -> dict:
    """Decode and verify a JWT. Raises jose.JWTError on failure."""
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
