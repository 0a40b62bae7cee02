import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from omcard.ai import ProviderRegistry
from omcard.config import Settings, load_settings
from omcard.errors import OmCardError, RateLimitExceeded
from omcard.rate_limit import RateLimiter
from omcard.routes.chat import router as chat_router
from omcard.routes.draw import router as draw_router

log = logging.getLogger("omcard.main")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(
    settings: Optional[Settings] = None,
    providers: Optional[ProviderRegistry] = None,
    limiter: Optional[RateLimiter] = None,
) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="Om Card", version="0.1.0")
    app.state.settings = settings
    app.state.providers = providers or ProviderRegistry(settings)
    app.state.limiter = limiter or RateLimiter.from_uri(settings.rate_limit_storage_uri)

    app.include_router(draw_router)
    app.include_router(chat_router)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RateLimitExceeded)
    async def rate_limited(request: Request, exc: RateLimitExceeded):
        log.info("rate limited %s retry_after=%s", request.url.path, exc.retry_after)
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.message, "retryAfter": exc.retry_after},
            headers={
                "Retry-After": str(exc.retry_after),
                "X-RateLimit-Remaining": "0",
                "X-RateLimit-Reset": str(int(exc.reset_time)),
            },
        )

    @app.exception_handler(OmCardError)
    async def omcard_error(request: Request, exc: OmCardError):
        if exc.status_code >= 500:
            log.error("%s failed: %s", request.url.path, exc)
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def invalid_request(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": "请求参数无效"})

    @app.exception_handler(Exception)
    async def unexpected(request: Request, exc: Exception):
        log.exception("unhandled error on %s", request.url.path)
        return JSONResponse(status_code=500, content={"error": "服务器错误，请稍后重试"})

    @app.get("/health")
    def health():
        return {"ok": True}

    if settings.cards_dir.is_dir():
        app.mount("/cards", StaticFiles(directory=str(settings.cards_dir)), name="cards")
    else:
        log.warning("cards directory %s not found; pre-rendered images are not served", settings.cards_dir)

    return app


app = create_app()
