import uuid
from datetime import datetime, timedelta, timezone

from jose import jwt
from passlib.context import CryptContext

from .config import Settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# expired tokens can still be exchanged for a new one within this window
REFRESH_GRACE = timedelta(hours=24)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def dummy_verify() -> None:
    # keeps the unknown-user path as slow as a real hash check
    pwd_context.dummy_verify()


def create_jwt(data: dict, settings: Settings) -> str:
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    to_encode.update(
        {
            "jti": uuid.uuid4().hex,
            "iat": int(now.timestamp()),
            "exp": now + timedelta(hours=settings.jwt_expires_hours),
        }
    )
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_jwt(token: str, settings: Settings, verify_exp: bool = True) -> dict:
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
        options={"verify_exp": verify_exp},
    )


def expired_too_long_ago(payload: dict) -> bool:
    exp = payload.get("exp")
    if exp is None:
        return True
    expired_at = datetime.fromtimestamp(exp, tz=timezone.utc)
    return datetime.now(timezone.utc) - expired_at > REFRESH_GRACE
