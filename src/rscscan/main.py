# src/rscscan/main.py

from datetime import timedelta
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from rscscan.api.ratelimit import RateLimiter, SlidingWindowRateLimiter
from rscscan.api.routes import RateLimitExceeded, router
from rscscan.config import Settings
from rscscan.engine.db import init_db
from rscscan.engine.job_manager import JobManager
from rscscan.engine.job_store import JobStore
from rscscan.engine.orchestrator import ScanOrchestrator
from rscscan.engine.result_cache import SqlResultCache
from rscscan.tools.fingerprint import Fingerprinter
from rscscan.tools.probe import VulnerabilityProber
from rscscan.utils.urls import socket_resolver
import logging
import uuid


def build_orchestrator(settings: Settings) -> ScanOrchestrator:
    session_factory = init_db(settings.database_url)
    resolver = socket_resolver if settings.resolve_hosts else None
    return ScanOrchestrator(
        store=JobStore(session_factory),
        cache=SqlResultCache(session_factory, ttl=timedelta(seconds=settings.cache_ttl_seconds)),
        job_manager=JobManager(max_workers=settings.max_workers),
        fingerprinter=Fingerprinter(settings.fingerprint_timeout, resolver=resolver, verify_tls=settings.verify_tls),
        prober=VulnerabilityProber(settings.probe_timeout, verify_tls=settings.verify_tls),
        resolver=resolver,
    )


def create_app(settings: Optional[Settings] = None, orchestrator: Optional[ScanOrchestrator] = None,
               rate_limiter: Optional[RateLimiter] = None) -> FastAPI:
    settings = settings or Settings.from_env()

    # Configure structured logging
    logging.basicConfig(
        level=settings.log_level,
        format='%(asctime)s %(levelname)s %(name)s %(message)s'
    )

    app = FastAPI(title="React2Shell Scanner Core")
    app.state.settings = settings
    app.state.orchestrator = orchestrator or build_orchestrator(settings)
    app.state.rate_limiter = rate_limiter or SlidingWindowRateLimiter(
        settings.rate_limit_requests, settings.rate_limit_window
    )

    @app.middleware("http")
    async def add_trace_id_and_log(request: Request, call_next):
        trace_id = str(uuid.uuid4())
        request.state.trace_id = trace_id
        logging.info(f"[trace_id={trace_id}] Incoming request: {request.method} {request.url.path}")
        try:
            response = await call_next(request)
        except Exception as exc:
            logging.error(f"[trace_id={trace_id}] Unhandled error: {exc}")
            return JSONResponse(
                status_code=500,
                content={"success": False, "error": "Internal server error", "trace_id": trace_id}
            )
        response.headers["X-Trace-Id"] = trace_id
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"error": "Validation error", "details": jsonable_encoder(exc.errors())}
        )

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        return JSONResponse(
            status_code=429,
            content={"error": "Too many requests", "message": "Please wait before starting another scan."},
            headers=exc.decision.headers(),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        trace_id = getattr(request.state, "trace_id", str(uuid.uuid4()))
        logging.error(f"[trace_id={trace_id}] Exception: {exc}")
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Internal server error", "trace_id": trace_id}
        )

    app.include_router(router)

    @app.on_event("startup")
    def on_startup():
        logging.info("React2Shell scanner API started.")

    @app.on_event("shutdown")
    def on_shutdown():
        app.state.orchestrator.job_manager.shutdown(wait=False)

    return app


def run():
    import uvicorn

    settings = Settings.from_env()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
