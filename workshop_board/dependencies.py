import logging
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from pydantic import BaseModel

from .config import Settings
from .errors import Forbidden, ServerError, Unauthorized, error_response
from .token_crypto import TOKEN_COOKIE, DecryptFailure, MissingKey, decrypt_token
from .utils import decode_jwt

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


class SessionUser(BaseModel):
    sub: str
    role: str
    jti: Optional[str] = None

    @property
    def id(self) -> int:
        return int(self.sub)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def _session_token(request: Request, credentials, settings: Settings) -> Optional[str]:
    if credentials is not None:
        return credentials.credentials
    cookie = request.cookies.get(TOKEN_COOKIE)
    if not cookie:
        return None
    try:
        return decrypt_token(cookie, settings.token_secret)
    except MissingKey:
        logger.error("Token encryption secret is not configured")
        raise ServerError("Server configuration error")
    except DecryptFailure:
        raise Unauthorized("Invalid or expired token")


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> SessionUser:
    token = _session_token(request, credentials, settings)
    if not token:
        raise Unauthorized("Access token required")
    if not settings.jwt_secret:
        logger.error("JWT_SECRET not configured")
        raise ServerError("Server configuration error")

    try:
        payload = decode_jwt(token, settings)
    except JWTError as e:
        logger.info("Token verification failed: %s", e)
        raise Unauthorized("Invalid or expired token")

    sub, role = payload.get("sub"), payload.get("role")
    if not sub or not role or not str(sub).isdigit():
        raise Unauthorized("Invalid or expired token")

    user = SessionUser(sub=str(sub), role=role, jti=payload.get("jti"))
    request.state.user = user
    return user


def require_role(*roles):
    def role_checker(user: SessionUser = Depends(get_current_user)) -> SessionUser:
        if user.role not in roles:
            raise Forbidden()
        return user
    return role_checker


PROTECTED_PREFIXES = ("/users", "/appointments", "/job-orders", "/auth/verify")


def _has_credentials(request: Request) -> bool:
    scheme, _, token = request.headers.get("authorization", "").partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return True
    return bool(request.cookies.get(TOKEN_COOKIE))


async def require_session_credentials(request: Request, call_next):
    """Reject anonymous calls to protected routes before the body is parsed."""
    path = request.url.path
    if (
        request.method != "OPTIONS"
        and path.startswith(PROTECTED_PREFIXES)
        and not _has_credentials(request)
    ):
        return error_response(401, "Access token required")
    return await call_next(request)
