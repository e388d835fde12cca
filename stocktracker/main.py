from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse

from stocktracker.api.routes import APP_NAME, APP_VERSION, router
from stocktracker.api.ws import ws_router
from stocktracker.config.logging import configure_logging
from stocktracker.config.settings import Settings, get_settings
from stocktracker.db.session import build_engine, build_session_factory, create_schema
from stocktracker.services.broadcast import PriceBroadcaster
from stocktracker.services.price_simulation import StockPriceSimulator
from stocktracker.services.price_store import PriceStore

logger = logging.getLogger(__name__)


def wire_state(app: FastAPI, settings: Settings) -> None:
    engine = build_engine(settings.STOCK_DATABASE_URL)
    create_schema(engine)
    app.state.engine = engine
    app.state.price_store = PriceStore(build_session_factory(engine))
    app.state.broadcaster = PriceBroadcaster(max_queue_size=settings.STOCK_WS_QUEUE_SIZE)
    app.state.simulator = StockPriceSimulator(
        store=app.state.price_store,
        publisher=app.state.broadcaster,
        interval_sec=settings.STOCK_UPDATE_INTERVAL_SEC,
    )


def ensure_state(app: FastAPI) -> None:
    if getattr(app.state, "price_store", None) is None:
        wire_state(app, app.state.get_settings())


class SettingsCORSMiddleware(CORSMiddleware):
    """CORS middleware whose origins are read when the middleware stack is built."""

    def __init__(self, app, get_settings) -> None:
        super().__init__(
            app,
            allow_origins=get_settings().STOCK_CORS_ORIGINS,
            allow_methods=["GET", "OPTIONS"],
            allow_headers=["*"],
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = app.state.get_settings()
    configure_logging(settings.STOCK_LOG_LEVEL)
    ensure_state(app)
    create_schema(app.state.engine)
    app.state.broadcaster.bind_loop(asyncio.get_running_loop())
    if settings.STOCK_SIMULATION_ENABLED:
        app.state.simulator.start()

    try:
        yield
    finally:
        app.state.simulator.stop()
        app.state.broadcaster.unbind_loop()


app = FastAPI(title=APP_NAME, version=APP_VERSION, lifespan=lifespan)
app.add_middleware(SettingsCORSMiddleware, get_settings=lambda: app.state.get_settings())
app.include_router(router, prefix="/api")
app.include_router(ws_router)

# NOTE: settings and services are lazy-loaded so app import does not read env.
app.state.get_settings = get_settings


@app.get("/health", include_in_schema=False)
def health_check():
    return {"status": "ok", "stocks": app.state.price_store.count()}


@app.get("/", include_in_schema=False)
def redirect_to_docs():
    return RedirectResponse(url="/docs")


def run() -> None:
    settings = get_settings()
    configure_logging(settings.STOCK_LOG_LEVEL)
    uvicorn.run(app, host="0.0.0.0", port=8080, log_level=settings.STOCK_LOG_LEVEL.lower())


if __name__ == "__main__":
    run()
