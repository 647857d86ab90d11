"""Security utilities: trading PIN hashing, JWT tokens."""
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from trade_chat.core.config import get_settings

pin_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_pin(pin: str) -> str:
    """Hash a trading PIN."""
    return pin_context.hash(pin)


def verify_pin(plain_pin: str, hashed_pin: Optional[str]) -> bool:
    """Verify a PIN against a stored hash. A missing hash never matches."""
    if not hashed_pin:
        return False
    return pin_context.verify(plain_pin, hashed_pin)


def is_pin_format(text: str) -> bool:
    """True when ``text`` looks like PIN input (digits only, configured length)."""
    settings = get_settings()
    candidate = (text or "").strip()
    return (
        candidate.isdigit()
        and settings.pin_min_length <= len(candidate) <= settings.pin_max_length
    )


def create_access_token(payload: dict, secret: str = None, exp_minutes: int = None) -> str:
    """Create a JWT access token with standard claims."""
    settings = get_settings()
    secret = secret or settings.jwt_secret
    exp_minutes = exp_minutes or settings.jwt_exp_minutes

    to_encode = payload.copy()
    now = datetime.now(timezone.utc)
    expire = now + timedelta(minutes=exp_minutes)

    # Standard JWT claims
    to_encode.update({
        "exp": expire,
        "iat": now,
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience
    })

    return jwt.encode(to_encode, secret, algorithm="HS256")


def decode_access_token(token: str) -> Optional[dict]:
    """Decode and verify a JWT token with standard claims."""
    settings = get_settings()
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=["HS256"],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer
        )
    except JWTError:
        return None
