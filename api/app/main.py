import asyncio
import contextlib
import logging
import math
from contextlib import asynccontextmanager
from email.utils import format_datetime
from typing import Literal

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.background import BackgroundTask

from .bundle import bundle_filename, iter_zip
from .catalog import WorldCatalog
from .db import DownloadStore, import_legacy_counts, make_engine, run_migrations
from .errors import ArchiveError, RateLimitExceededError, WorldNotFoundError
from .files import SecureFileServer, content_type_for
from .guardrails import RateLimitConfig, RateLimitDecision, SlidingWindowRateLimiter, TTLCache
from .scanner import ArchiveScanner
from .schemas import ErrorResponse, StatsResponse, WorldInfoResponse, WorldsListResponse
from .settings import Settings, load_settings
from .validation import sanitize_filename

logger = logging.getLogger(__name__)

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}

DEV_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
    "https://localhost:3000",
]

RATE_LIMIT_HEADERS = ["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset", "Retry-After"]


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _rate_limit_headers(decision: RateLimitDecision) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(math.ceil(decision.reset_time)),
    }


def _error_response(exc: ArchiveError, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload(), headers=headers)


def _attachment(filename: str) -> str:
    return f'attachment; filename="{sanitize_filename(filename)}"'


def _record_download(downloads: DownloadStore, filename: str, request: Request) -> None:
    try:
        count = downloads.increment(filename, _client_ip(request), request.headers.get("user-agent"))
    except SQLAlchemyError:
        logger.exception("Failed to record download of %s", filename)
        return
    logger.info("Download count for %s incremented to %d", filename, count)


async def _sweep_periodically(limiter: SlidingWindowRateLimiter, cache: TTLCache, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        removed = limiter.sweep()
        purged = cache.purge_expired()
        if removed or purged:
            logger.debug("Sweep removed %d idle clients and %d expired cache entries", removed, purged)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or load_settings()
    logging.basicConfig(level=settings.log_level)

    engine = make_engine(settings.database_url)
    downloads = DownloadStore(engine)
    files = SecureFileServer(settings.worlds_dir)
    scanner = ArchiveScanner(files, downloads)
    cache = TTLCache(ttl_seconds=settings.cache_duration, max_items=settings.cache_max_size)
    catalog = WorldCatalog(scanner, cache)
    rate_limiter = SlidingWindowRateLimiter(
        RateLimitConfig(max_requests=settings.rate_limit_max_requests, window_seconds=settings.rate_limit_window)
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        run_migrations(engine)
        if settings.legacy_downloads_json is not None:
            import_legacy_counts(downloads, settings.legacy_downloads_json)
        sweeper = asyncio.create_task(
            _sweep_periodically(rate_limiter, cache, settings.rate_limit_sweep_interval)
        )
        logger.info("Serving worlds from %s", settings.worlds_dir)
        try:
            yield
        finally:
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper
            engine.dispose()

    error_responses = {status: {"model": ErrorResponse} for status in (400, 403, 404, 429, 500)}
    app = FastAPI(title="World Archive API", version="1.0.0", lifespan=lifespan, responses=error_responses)
    app.state.settings = settings
    app.state.downloads = downloads
    app.state.files = files
    app.state.scanner = scanner
    app.state.cache = cache
    app.state.catalog = catalog
    app.state.rate_limiter = rate_limiter

    @app.exception_handler(ArchiveError)
    async def archive_error_handler(request: Request, exc: ArchiveError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return _error_response(exc)

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.error("%s %s failed unexpectedly", request.method, request.url.path, exc_info=exc)
        return _error_response(ArchiveError("Unexpected server error."))

    @app.middleware("http")
    async def guard_requests(request: Request, call_next):
        if request.url.path.startswith("/api/"):
            decision = request.app.state.rate_limiter.is_allowed(_client_ip(request))
            headers = _rate_limit_headers(decision)
            if decision.allowed:
                response = await call_next(request)
                response.headers.update(headers)
            else:
                logger.warning("Rate limit exceeded for %s", _client_ip(request))
                headers["Retry-After"] = str(decision.retry_after)
                exc = RateLimitExceededError(
                    "Too many requests. Please try again later.",
                    reset_time=math.ceil(decision.reset_time),
                )
                response = _error_response(exc, headers)
        else:
            response = await call_next(request)

        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.cors_origin, *DEV_ORIGINS],
        allow_methods=["GET", "HEAD", "OPTIONS"],
        allow_headers=["Content-Type", "X-Requested-With"],
        expose_headers=[*RATE_LIMIT_HEADERS, "Content-Disposition", "X-Estimated-Size"],
        max_age=86400,
    )

    @app.get("/health")
    def health():
        return {"ok": True}

    @app.get("/api/worlds", response_model=WorldsListResponse)
    def list_worlds(request: Request, refresh: bool = False, sort: Literal["name", "modified"] = "name"):
        snapshot = request.app.state.catalog.listing(sort=sort, refresh=refresh)
        return {
            "success": True,
            "data": {
                "worlds": snapshot.worlds,
                "statistics": snapshot.statistics,
                "generated_at": snapshot.generated_at,
                "cache_expires": snapshot.cache_expires,
            },
        }

    @app.head("/api/worlds")
    def head_worlds(request: Request, refresh: bool = False):
        catalog = request.app.state.catalog
        if refresh or not catalog.is_cached():
            catalog.listing(refresh=refresh)
        return Response(
            status_code=200,
            media_type="application/json",
            headers={"Cache-Control": f"public, max-age={settings.cache_duration}"},
        )

    @app.get("/api/worlds/{filename}", response_model=WorldInfoResponse)
    def world_info(filename: str, request: Request):
        world = request.app.state.scanner.scan_world(filename)
        return {"success": True, "data": {"world": world}}

    @app.get("/api/stats", response_model=StatsResponse)
    def stats(request: Request):
        return {"success": True, "data": {"statistics": request.app.state.catalog.statistics()}}

    # must be registered before /api/download/{filename}
    @app.get("/api/download/all")
    def download_all(request: Request):
        state = request.app.state
        result = state.scanner.scan_all()
        if not result.worlds:
            raise WorldNotFoundError("No worlds available for download.")

        body = iter_zip(
            state.files,
            [world.filename for world in result.worlds],
            on_added=lambda name: _record_download(state.downloads, name, request),
        )
        return StreamingResponse(
            body,
            media_type="application/zip",
            headers={"Content-Disposition": _attachment(bundle_filename()), **NO_CACHE_HEADERS},
        )

    @app.head("/api/download/all")
    def head_download_all(request: Request):
        result = request.app.state.scanner.scan_all()
        if not result.worlds:
            raise WorldNotFoundError("No worlds available for download.")
        return Response(
            status_code=200,
            media_type="application/zip",
            headers={
                "Content-Disposition": _attachment(bundle_filename()),
                "X-Estimated-Size": str(result.statistics.total_size_bytes),
                **NO_CACHE_HEADERS,
            },
        )

    @app.get("/api/download/{filename}")
    def download_world(filename: str, request: Request):
        served = request.app.state.files.serve(filename)
        try:
            _record_download(request.app.state.downloads, filename, request)
        except Exception:
            served.close()
            raise

        headers = {
            "Content-Length": str(served.size_bytes),
            "Content-Disposition": _attachment(filename),
            **NO_CACHE_HEADERS,
        }
        if served.modified_at is not None:
            headers["Last-Modified"] = format_datetime(served.modified_at, usegmt=True)
        return StreamingResponse(
            served.iter_chunks(),
            media_type=served.content_type,
            headers=headers,
            background=BackgroundTask(served.close),
        )

    @app.head("/api/download/{filename}")
    def head_download_world(filename: str, request: Request):
        st = request.app.state.files.stat(filename)
        if not st.exists:
            raise WorldNotFoundError("File not found.")
        return Response(
            status_code=200,
            media_type=content_type_for(filename),
            headers={
                "Content-Length": str(st.size_bytes),
                "Content-Disposition": _attachment(filename),
                **NO_CACHE_HEADERS,
            },
        )

    return app


app = create_app()


def run() -> None:
    settings = app.state.settings
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
