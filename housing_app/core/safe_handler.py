import logging
from functools import wraps

from fastapi import HTTPException, Request

from .friendly_msg import get_friendly_message
from .lifecycle_errors import LifecycleError

logger = logging.getLogger(__name__)


def _request_context(request: Request | None):
    if request is None:
        return "none", "unknown", "unknown"
    client_ip = request.client.host if request.client else "unknown"
    trace_id = request.headers.get("X-Request-ID", "none")
    return trace_id, request.url.path, client_ip


def safe_handler(func):
    @wraps(func)
    async def wrapper(*args, **kwargs):
        request: Request | None = None
        for arg in list(args) + list(kwargs.values()):
            if isinstance(arg, Request):
                request = arg
                break

        try:
            return await func(*args, **kwargs)
        except LifecycleError as e:
            trace_id, path, client_ip = _request_context(request)
            logger.warning(
                f"[{type(e).__name__}] TraceID={trace_id} | {e.status_code} - {path} "
                f"from {client_ip}: {e.detail}"
            )
            raise
        except HTTPException as e:
            trace_id, path, client_ip = _request_context(request)
            logger.warning(
                f"[HTTPException] TraceID={trace_id} | {e.status_code} - {path} "
                f"from {client_ip}: {e.detail}"
            )
            raise
        except Exception as e:
            trace_id, path, client_ip = _request_context(request)
            logger.error(
                f"[Unhandled Error] TraceID={trace_id} | in {func.__name__} | Path: {path} | "
                f"Client: {client_ip} | Error: {e}",
                exc_info=True,
            )
            raise HTTPException(status_code=500, detail=get_friendly_message(e))

    return wrapper
