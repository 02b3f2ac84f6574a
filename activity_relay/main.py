from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from loguru import logger

from .activities import router as activities_router
from .auth import router as auth_router
from .backfill import router as backfill_router
from .config import Settings, settings as default_settings
from .datastore import Datastore
from .errors import MalformedPayload, RelayError, UpstreamUnavailable, VerificationFailed
from .logger import setup_logger
from .sync import ActivitySync, StravaActivitySync
from .webhook import router as webhook_router

def create_app(
    settings: Settings | None = None,
    *,
    http: httpx.AsyncClient | None = None,
    sync: ActivitySync | None = None,
) -> FastAPI:
    settings = settings or default_settings
    http = http or httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT)

    for problem in settings.misconfigurations():
        logger.warning(f"Misconfiguration: {problem}")

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        await http.aclose()

    app = FastAPI(title="Strava Activity Relay", lifespan=lifespan)
    app.state.settings = settings
    app.state.http = http
    app.state.datastore = Datastore(http, settings)
    app.state.sync = sync or StravaActivitySync(http, settings, app.state.datastore)

    app.include_router(webhook_router)
    app.include_router(activities_router)
    app.include_router(auth_router)
    app.include_router(backfill_router)

    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

    @app.exception_handler(MalformedPayload)
    async def malformed(_: Request, exc: MalformedPayload):
        logger.info(f"Rejected malformed payload: {exc}")
        return PlainTextResponse(str(exc), status_code=400)

    @app.exception_handler(VerificationFailed)
    async def forbidden(_: Request, exc: VerificationFailed):
        return PlainTextResponse("Verification failed", status_code=403)

    @app.exception_handler(UpstreamUnavailable)
    async def upstream(_: Request, exc: UpstreamUnavailable):
        # TODO: stop echoing datastore errors once /api/activities is exposed publicly
        return PlainTextResponse(f"Error: {exc}", status_code=500)

    @app.exception_handler(RelayError)
    async def relay_error(_: Request, exc: RelayError):
        logger.error(f"Unhandled relay error: {exc}")
        return PlainTextResponse("Upstream error", status_code=502)

    @app.get("/", response_class=PlainTextResponse)
    async def root():
        return "Strava Backend API"

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app

setup_logger(default_settings.LOG_LEVEL)
app = create_app()

def run():
    import uvicorn

    logger.info("listening on 0.0.0.0:3000")
    uvicorn.run(app, host="0.0.0.0", port=3000)
