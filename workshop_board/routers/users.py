from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import models, schemas
from ..database import get_db
from ..dependencies import SessionUser, get_current_user, require_role
from ..errors import Conflict, NotFound
from ..logs import audit
from ..utils import hash_password

router = APIRouter(prefix="/users", tags=["Users"])

admin_only = require_role("administrator")


@router.get("/me", response_model=schemas.SessionInfoResponse)
def who_am_i(user: SessionUser = Depends(get_current_user)):
    return {"user": {"id": user.sub, "role": user.role}}


@router.get("", response_model=schemas.UserList)
def list_users(
    role: Optional[str] = None,
    user: SessionUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = db.query(models.User)
    if role:
        query = query.filter(models.User.role == role)
    return {"users": query.order_by(models.User.created_at.desc(), models.User.id.desc()).all()}


@router.post("", response_model=schemas.UserCreated, status_code=201)
def create_user(
    payload: schemas.UserCreate,
    user: SessionUser = Depends(admin_only),
    db: Session = Depends(get_db),
):
    if db.query(models.User).filter(models.User.email == payload.email).first():
        raise Conflict("Email already exists")
    if payload.username and db.query(models.User).filter(models.User.username == payload.username).first():
        raise Conflict("Username already exists")

    new = models.User(
        name=payload.name,
        username=payload.username or None,
        email=payload.email,
        password_hash=hash_password(payload.password),
        role=payload.role,
        level=(payload.level or "untrained") if payload.role == "technician" else None,
        picture_url=payload.picture_url or None,
    )
    db.add(new)
    db.commit()
    db.refresh(new)
    audit("User created", user, created_user_id=new.id)
    return {"id": new.id}


@router.put("/{user_id}", response_model=schemas.UserUpdated)
def update_user(
    user_id: int,
    payload: schemas.UserUpdate,
    user: SessionUser = Depends(admin_only),
    db: Session = Depends(get_db),
):
    target = db.get(models.User, user_id)
    if target is None:
        raise NotFound()

    data = payload.model_dump(exclude_unset=True)
    if data.get("email") and data["email"] != target.email:
        if db.query(models.User).filter(models.User.email == data["email"]).first():
            raise Conflict("Email already exists")
        target.email = data["email"]
    if data.get("name"):
        target.name = data["name"]
    if data.get("role"):
        target.role = data["role"]
    if "level" in data:
        target.level = data["level"]
    if "picture_url" in data:
        target.picture_url = data["picture_url"] or None
    if data.get("password"):
        target.password_hash = hash_password(data["password"])
    if payload.break_times is not None:
        target.break_times = [b.model_dump(by_alias=True) for b in payload.break_times]

    db.commit()
    db.refresh(target)
    audit("User updated", user, target_user_id=user_id, fields=",".join(sorted(data)))
    return {"ok": True, "user": target}


@router.delete("/{user_id}", response_model=schemas.Ok)
def delete_user(user_id: int, user: SessionUser = Depends(admin_only), db: Session = Depends(get_db)):
    target = db.get(models.User, user_id)
    if target is None:
        raise NotFound()
    db.delete(target)
    db.commit()
    audit("User deleted", user, target_user_id=user_id)
    return {"ok": True}
