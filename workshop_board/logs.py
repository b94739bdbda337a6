import logging
import time

from fastapi import Request

audit_logger = logging.getLogger("workshop_board.audit")
request_logger = logging.getLogger("workshop_board.requests")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def audit(message: str, user=None, **context) -> None:
    """Record a security relevant event (logins, account and job changes)."""
    audit_logger.info(
        "%s user=%s role=%s %s",
        message,
        getattr(user, "sub", None),
        getattr(user, "role", None),
        " ".join(f"{k}={v}" for k, v in sorted(context.items())),
    )


async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000

    user = getattr(request.state, "user", None)
    forwarded = request.headers.get("x-forwarded-for")
    ip = forwarded.split(",")[0].strip() if forwarded else (request.client.host if request.client else None)

    if response.status_code >= 500:
        level = logging.ERROR
    elif response.status_code >= 400:
        level = logging.WARNING
    else:
        level = logging.INFO
    request_logger.log(
        level,
        "%s %s -> %s (%.1fms) ip=%s user=%s role=%s",
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
        ip,
        getattr(user, "sub", None),
        getattr(user, "role", None),
    )
    return response
