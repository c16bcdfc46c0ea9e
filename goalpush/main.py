import asyncio
from contextlib import asynccontextmanager, suppress

import httpx
from fastapi import FastAPI
from loguru import logger

from goalpush.core.logging import setup_logging
from goalpush.core.init_db import init_db
from goalpush.core.config import EXPO_ACCESS_TOKEN, MAINTENANCE_INTERVAL_SECONDS
from goalpush.core.db import SessionLocal
from goalpush.core.push_config import HTTP_TIMEOUT_SECONDS
from goalpush.api.router import api_router
from goalpush.services.dispatcher import Dispatcher
from goalpush.services.expo_gateway import ExpoGateway
from goalpush.services.maintenance import maintenance_loop
from goalpush.services.receipt_reconciler import ReceiptReconciler

setup_logging()
logger.info("Starting goalpush backend")


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS) as client:
        gateway = ExpoGateway(EXPO_ACCESS_TOKEN, client=client)
        if not gateway.configured:
            logger.warning("EXPO_ACCESS_TOKEN not set, push sends will be rejected")

        app.state.dispatcher = Dispatcher(SessionLocal, gateway)
        app.state.reconciler = ReceiptReconciler(SessionLocal, gateway)

        maintenance = None
        if MAINTENANCE_INTERVAL_SECONDS > 0:
            maintenance = asyncio.create_task(
                maintenance_loop(app.state.reconciler, SessionLocal, MAINTENANCE_INTERVAL_SECONDS)
            )

        yield

        if maintenance:
            maintenance.cancel()
            with suppress(asyncio.CancelledError):
                await maintenance
    logger.info("goalpush backend stopped")


app = FastAPI(
    title="goalpush",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(api_router)

# Init DB after app is created
init_db()

@app.get("/health")
def health():
    logger.debug("Health check hit")
    return {"status": "ok"}
