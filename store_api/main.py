# store_api/main.py
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, WebSocket
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from .broadcast import ChangeBroadcaster
from .catalog import CatalogClient
from .config import Settings, configure_logging
from .database import Gateway, StoreError, create_gateway
from .routes import RESOURCE_ROUTES, catalog_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await app.state.gateway.connect()
    if app.state.broadcaster is not None:
        await app.state.broadcaster.start()
    try:
        yield
    finally:
        if app.state.broadcaster is not None:
            await app.state.broadcaster.stop()
        await app.state.catalog.aclose()
        await app.state.gateway.close()


def _field_errors(exc: RequestValidationError):
    out = []
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ())]
        # drop the "body" / "query" prefix; a bare prefix means the whole body
        field = ".".join(loc[1:]) or ".".join(loc)
        out.append({"field": field, "message": err.get("msg"), "type": err.get("type")})
    return out


def create_app(settings: Optional[Settings] = None, gateway: Optional[Gateway] = None,
               catalog: Optional[CatalogClient] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    app = FastAPI(title="rest-store", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.gateway = gateway or create_gateway(settings)
    app.state.catalog = catalog or CatalogClient(settings.catalog_url, settings.catalog_timeout)
    app.state.broadcaster = ChangeBroadcaster() if settings.broadcast_enabled else None
    logger.info("using %s store, broadcast %s", app.state.gateway.backend,
                "on" if settings.broadcast_enabled else "off")

    # ---------------------------
    # Error handlers
    # ---------------------------
    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        errors = _field_errors(exc)
        logger.debug("rejected %s %s: %s", request.method, request.url.path, errors)
        return JSONResponse(status_code=400, content={"detail": "Validation failed", "errors": errors})

    @app.exception_handler(StoreError)
    async def store_error(request: Request, exc: StoreError):
        logger.error("store failure on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.exception("unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    # ---------------------------
    # Routes
    # ---------------------------
    @app.get("/", response_class=PlainTextResponse)
    async def read_root():
        return "Hello World!"

    for routes in RESOURCE_ROUTES:
        app.include_router(routes().router())
    app.include_router(catalog_router)

    if app.state.broadcaster is not None:
        @app.websocket("/ws")
        async def changes_feed(websocket: WebSocket):
            await websocket.app.state.broadcaster.listen(websocket)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = app.state.settings
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
