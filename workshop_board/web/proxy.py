"""Forwarding of browser calls to the backend API.

The browser only ever holds the encrypted ``token`` cookie. Each proxied
call decrypts it, sends the raw JWT to the backend as a bearer token and
hands the backend's status code and JSON body back unchanged.
"""

import logging
from typing import Optional

import httpx
from fastapi import Request
from fastapi.responses import JSONResponse, Response

from ..config import Settings
from ..errors import ServerError, Unauthorized
from ..token_crypto import TOKEN_COOKIE, DecryptFailure, MissingKey, decrypt_token

logger = logging.getLogger(__name__)

API_PREFIX = "/api"


def session_jwt(request: Request, settings: Settings) -> str:
    """Return the JWT held in the session cookie or raise 401."""
    cookie = request.cookies.get(TOKEN_COOKIE)
    if not cookie:
        raise Unauthorized()
    try:
        return decrypt_token(cookie, settings.token_secret)
    except MissingKey:
        logger.error("Token encryption secret is not configured")
        raise ServerError("Server configuration error")
    except DecryptFailure:
        # a cookie we cannot read is treated like no cookie at all
        raise Unauthorized()


async def call_backend(
    request: Request,
    method: str,
    path: str,
    token: Optional[str] = None,
    json: Optional[dict] = None,
) -> httpx.Response:
    client: httpx.AsyncClient = request.app.state.client
    headers = {}
    if token:
        headers["Authorization"] = f"Bearer {token}"

    kwargs = {}
    if json is not None:
        kwargs["json"] = json
    elif method in ("POST", "PUT", "PATCH", "DELETE"):
        body = await request.body()
        if body:
            kwargs["content"] = body
            headers["Content-Type"] = request.headers.get("content-type", "application/json")

    try:
        return await client.request(
            method,
            path,
            params=list(request.query_params.multi_items()),
            headers=headers,
            **kwargs,
        )
    except httpx.HTTPError as e:
        logger.warning("Backend request %s %s failed: %s", method, path, e)
        raise ServerError()


def relay(response: httpx.Response) -> Response:
    """Pass the backend response through with its status code."""
    try:
        content = response.json()
    except ValueError:
        return Response(
            content=response.content,
            status_code=response.status_code,
            media_type=response.headers.get("content-type"),
        )
    return JSONResponse(content=content, status_code=response.status_code)


async def forward(request: Request, path: Optional[str] = None, method: Optional[str] = None) -> Response:
    """Proxy an authenticated call; the backend path defaults to the gateway path minus ``/api``."""
    token = session_jwt(request, request.app.state.settings)
    if path is None:
        path = request.url.path[len(API_PREFIX):]
    response = await call_backend(request, method or request.method, path, token=token)
    return relay(response)
