import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from starlette.concurrency import run_in_threadpool

from pdv.core.config import settings
from pdv.core.errors import PdvError
from pdv.middleware.checkout_guard import install_checkout_guard
from pdv.routers import cart, cash, checkout, health, products, sales, sync

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def _poll_connectivity(terminal, every: float):
    # detecta offline -> online y dispara la sincronizacion
    while True:
        await asyncio.sleep(every)
        try:
            await run_in_threadpool(terminal.monitor.check)
        except PdvError as exc:
            logger.error("background sync failed: %s", exc)
        except Exception:
            logger.exception("connectivity poll failed")


def create_app(terminal=None, poll_seconds=None) -> FastAPI:
    configure_logging(settings.log_level)
    if terminal is None:
        from pdv.db import init_db
        from pdv.services.terminal import build_terminal

        # Crea tablas faltantes (desarrollo)
        init_db()
        terminal = build_terminal(settings)
    every = settings.connectivity_poll_seconds if poll_seconds is None else poll_seconds

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        task = asyncio.create_task(_poll_connectivity(terminal, every)) if every > 0 else None
        try:
            yield
        finally:
            if task is not None:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)
    app.state.terminal = terminal

    install_checkout_guard(app)
    app.include_router(health.router)
    app.include_router(cart.router)
    app.include_router(checkout.router)
    app.include_router(cash.router)
    app.include_router(sync.router)
    app.include_router(sales.router)
    app.include_router(products.router)
    return app
