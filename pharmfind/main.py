"""Main FastAPI application."""
from fastapi import FastAPI
from contextlib import asynccontextmanager

from pharmfind.core.config import settings
from pharmfind.core.dependencies import fetch_available_pool, get_alert_center
from pharmfind.core.logging import setup_logging
from pharmfind.db.database import init_db
from pharmfind.api import driver, health, orders, pharmacist
from pharmfind.api.errors import register_exception_handlers
from pharmfind.services.sync.poller import DispatchPoller


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    setup_logging()
    if settings.order_store == "sql":
        await init_db()
    poller = DispatchPoller(
        fetch_pool=fetch_available_pool,
        alert_center=get_alert_center(),
        interval_seconds=settings.dispatch_poll_interval_seconds,
    )
    if settings.dispatch_polling_enabled:
        poller.start()
    app.state.dispatch_poller = poller
    yield
    # Shutdown
    await poller.stop()


app = FastAPI(
    title=settings.app_name,
    description="Order fulfillment lifecycle for patients, pharmacists and drivers",
    version="0.1.0",
    lifespan=lifespan,
)

register_exception_handlers(app)

app.include_router(health.router, tags=["health"])
app.include_router(orders.router, tags=["orders"])
app.include_router(pharmacist.router, tags=["pharmacist"])
app.include_router(driver.router, tags=["driver"])


@app.get("/")
async def root():
    """Service banner."""
    return {
        "message": settings.app_name,
        "version": "0.1.0",
        "store": settings.order_store,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("pharmfind.main:app", host=settings.host, port=settings.port)
