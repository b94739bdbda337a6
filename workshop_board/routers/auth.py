# workshop_board/routers/auth.py

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.security import HTTPAuthorizationCredentials
from jose import ExpiredSignatureError, JWTError
from sqlalchemy.orm import Session

from .. import models, schemas
from ..config import Settings
from ..database import get_db
from ..dependencies import bearer_scheme, get_current_user, get_settings, SessionUser
from ..errors import InvalidCredentials, ServerError, Unauthorized
from ..logs import audit
from ..utils import create_jwt, decode_jwt, dummy_verify, expired_too_long_ago, verify_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


# ────────────────────────────── HELPERS ──────────────────────────────

def authenticate(db: Session, payload: schemas.LoginRequest) -> models.User:
    """Look the user up and check the password.

    Unknown users and wrong passwords fail the same way so callers cannot
    tell which accounts exist.
    """
    query = db.query(models.User)
    if payload.email:
        user = query.filter(models.User.email == payload.email).first()
    else:
        user = query.filter(models.User.username == payload.username).first()

    if user is None:
        dummy_verify()
        audit("Login failed - user not found", email=payload.email, username=payload.username)
        raise InvalidCredentials()
    if not verify_password(payload.password, user.password_hash):
        audit("Login failed - bad password", user_id=user.id)
        raise InvalidCredentials()
    return user


def issue_token(user: models.User, settings: Settings) -> str:
    if not settings.jwt_secret:
        logger.error("JWT_SECRET not configured")
        raise ServerError("Server configuration error")
    return create_jwt({"sub": str(user.id), "role": user.role}, settings)


# ────────────────────────────── ENDPOINTS ──────────────────────────────

@router.post("/login", response_model=schemas.LoginResponse)
def login(
    payload: schemas.LoginRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    user = authenticate(db, payload)
    token = issue_token(user, settings)
    audit("Login success", user_id=user.id, role=user.role)
    return {"token": token, "user": user}


@router.post("/verify", response_model=schemas.VerifyResponse)
def verify(session: SessionUser = Depends(get_current_user), db: Session = Depends(get_db)):
    user = db.get(models.User, session.id)
    if user is None:
        raise Unauthorized("User not found")
    return {"user": user}


@router.post("/refresh", response_model=schemas.Token)
def refresh(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    if credentials is None:
        raise Unauthorized("No token provided")
    if not settings.jwt_secret:
        logger.error("JWT_SECRET not configured")
        raise ServerError("Server configuration error")

    try:
        payload = decode_jwt(credentials.credentials, settings)
    except ExpiredSignatureError:
        # a recently expired token may still be exchanged
        try:
            payload = decode_jwt(credentials.credentials, settings, verify_exp=False)
        except JWTError:
            raise Unauthorized("Invalid token")
        if expired_too_long_ago(payload):
            raise Unauthorized("Token expired too long ago")
    except JWTError:
        raise Unauthorized("Invalid token")

    sub = str(payload.get("sub") or "")
    user = db.get(models.User, int(sub)) if sub.isdigit() else None
    if user is None:
        raise Unauthorized("User not found")

    return {"token": issue_token(user, settings)}
