from datetime import datetime, timezone
from pathlib import Path
from typing import Literal

from fastapi import APIRouter, Request, Response
from fastapi.responses import FileResponse

from .. import schemas
from ..config import Settings
from ..errors import NotFound
from ..logs import audit
from ..token_crypto import TOKEN_COOKIE, encrypt_token
from .proxy import call_backend, forward, relay, session_jwt

router = APIRouter(prefix="/api")

MANIFEST_CACHE = "public, max-age=31536000, immutable"
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

JobOrderAction = Literal["toggle-important", "submit-qi", "approve-qi", "reject-qi", "complete", "mark-complete", "redo"]


def _store_session(response: Response, token: str, settings: Settings) -> None:
    response.set_cookie(
        TOKEN_COOKIE,
        encrypt_token(token, settings.token_secret),
        max_age=settings.jwt_expires_hours * 3600,
        path="/",
        secure=settings.is_production,
        httponly=True,
        samesite="lax",
    )


# ────────────────────────────── SESSION ──────────────────────────────

@router.post("/login")
async def login(payload: schemas.LoginRequest, request: Request, response: Response):
    settings = request.app.state.settings
    backend = await call_backend(
        request, "POST", "/auth/login", json=payload.model_dump(by_alias=True, exclude_none=True)
    )
    if backend.status_code != 200:
        return relay(backend)

    data = backend.json()
    _store_session(response, data["token"], settings)
    audit("Web session started", role=data["user"]["role"])
    return {"ok": True, "role": data["user"]["role"], "user": data["user"]}


@router.post("/logout")
def logout(response: Response):
    response.set_cookie(TOKEN_COOKIE, "", max_age=0, expires=EPOCH, path="/", httponly=True, samesite="lax")
    return {"ok": True}


@router.post("/auth/refresh")
async def refresh(request: Request, response: Response):
    settings = request.app.state.settings
    token = session_jwt(request, settings)
    backend = await call_backend(request, "POST", "/auth/refresh", token=token)
    if backend.status_code != 200:
        return relay(backend)
    _store_session(response, backend.json()["token"], settings)
    return {"ok": True}


@router.get("/auth/me")
async def me(request: Request):
    return await forward(request, "/auth/verify", method="POST")


# ────────────────────────────── APPOINTMENTS ──────────────────────────────

@router.api_route("/appointments", methods=["GET", "POST"])
async def appointments(request: Request):
    return await forward(request)


@router.delete("/appointments/delete-all-no-show")
async def delete_all_no_show(request: Request):
    return await forward(request)


@router.api_route("/appointments/{appointment_id}", methods=["GET", "PUT", "DELETE"])
async def appointment(appointment_id: str, request: Request):
    return await forward(request)


@router.post("/appointments/{appointment_id}/create-job-order")
async def appointment_to_job_order(appointment_id: str, request: Request):
    return await forward(request)


@router.post("/appointments/{appointment_id}/check-conflicts")
async def appointment_check_conflicts(appointment_id: str, request: Request):
    return await forward(request)


@router.post("/appointments/{appointment_id}/resolve-conflicts")
async def appointment_resolve_conflicts(appointment_id: str, request: Request):
    return await forward(request)


# ────────────────────────────── JOB ORDERS ──────────────────────────────

@router.api_route("/job-orders", methods=["GET", "POST"])
async def job_orders(request: Request):
    return await forward(request)


@router.post("/job-orders/end-of-day")
async def end_of_day(request: Request):
    return await forward(request)


@router.post("/job-orders/check-carry-over")
async def check_carry_over(request: Request):
    return await forward(request)


@router.get("/job-orders/snapshots")
async def snapshots(request: Request):
    return await forward(request)


@router.get("/job-orders/snapshot/{day}")
async def snapshot(day: str, request: Request):
    return await forward(request)


@router.get("/job-orders/queues/by-status")
async def queues(request: Request):
    return await forward(request)


@router.get("/job-orders/technicians/available")
async def available_technicians(request: Request):
    return await forward(request)


@router.get("/job-orders/walk-in-slots")
async def walk_in_slots(request: Request):
    return await forward(request)


@router.get("/job-orders/workshop-slots")
async def workshop_slots(request: Request):
    return await forward(request)


@router.get("/job-orders/available-for-slot")
async def available_for_slot(request: Request):
    return await forward(request)


@router.api_route("/job-orders/{ref}", methods=["GET", "PUT", "DELETE"])
async def job_order(ref: str, request: Request):
    return await forward(request)


@router.patch("/job-orders/{ref}/{action}")
async def job_order_action(ref: str, action: JobOrderAction, request: Request):
    return await forward(request)


@router.get("/dashboard")
async def dashboard(request: Request):
    return await forward(request, "/job-orders/dashboard")


# ────────────────────────────── USERS ──────────────────────────────

@router.api_route("/users", methods=["GET", "POST"])
async def users(request: Request):
    return await forward(request)


@router.get("/users/me")
async def users_me(request: Request):
    return await forward(request)


@router.api_route("/users/{user_id}", methods=["PUT", "DELETE"])
async def user(user_id: str, request: Request):
    return await forward(request)


# ────────────────────────────── STATIC ──────────────────────────────

@router.get("/manifest")
def manifest(request: Request):
    path = Path(request.app.state.settings.public_dir) / "site.webmanifest"
    if not path.is_file():
        raise NotFound("Manifest not found")
    return FileResponse(path, media_type="application/manifest+json", headers={"Cache-Control": MANIFEST_CACHE})
