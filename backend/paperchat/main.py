from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.gzip import GZipMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from .api.middleware.security import SecurityMiddleware
from .api.v1.router import api_router
from .config import settings
from .core.exceptions import CompletionError, MissingContextError, PaperChatError, PreferenceError
from .utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


# Most specific first.
_ERROR_STATUS: tuple[tuple[type[PaperChatError], int], ...] = (
    (MissingContextError, status.HTTP_400_BAD_REQUEST),
    (PreferenceError, status.HTTP_400_BAD_REQUEST),
    (CompletionError, status.HTTP_502_BAD_GATEWAY),
)


async def paperchat_error_handler(request: Request, exc: PaperChatError) -> JSONResponse:
    status_code = next(
        (code for error_type, code in _ERROR_STATUS if isinstance(exc, error_type)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    logger.warning(
        "Request failed: %s",
        exc,
        extra={"path": request.url.path, "status_code": status_code, "error_type": type(exc).__name__},
    )
    return JSONResponse(status_code=status_code, content={"error": str(exc) or type(exc).__name__})


def create_app() -> FastAPI:
    setup_logging()

    app = FastAPI(
        title="PaperChat Completion API",
        debug=settings.debug,
        version="0.1.0",
        root_path=settings.root_path or "",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_origin_regex=settings.cors_origin_regex,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=[
            "Accept",
            "Accept-Language",
            "Content-Language",
            "Content-Type",
            "X-Requested-With",
        ],
        max_age=600,  # Cache preflight requests for 10 minutes
    )

    # Proxy headers (X-Forwarded-*) when behind a reverse proxy
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=["*"])

    # Trusted hosts (configure in env for production)
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.trusted_hosts)

    # GZip compression
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    app.add_middleware(SecurityMiddleware)

    app.add_exception_handler(PaperChatError, paperchat_error_handler)
    app.include_router(api_router, prefix=settings.api_prefix)
    return app


app = create_app()
