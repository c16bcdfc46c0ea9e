from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from loguru import logger
from sqlalchemy.orm import Session

from goalpush.core import config
from goalpush.core.db import get_db
from goalpush.core.errors import ConfigurationError, UserRateLimited, ValidationError
from goalpush.schemas.push import (
    MaintenanceReport,
    NotificationCheckResult,
    RegisterPushTokenIn,
    SendPushIn,
    SendResult,
    UnregisterPushTokenIn,
)
from goalpush.services.dispatcher import Dispatcher
from goalpush.services.maintenance import run_maintenance
from goalpush.services.receipt_reconciler import ReceiptReconciler
from goalpush.services.token_registry import register_token, unregister_tokens

router = APIRouter(prefix="/push", tags=["push"])


# ---------------------------
# Dependencies
# ---------------------------

def get_dispatcher(request: Request) -> Dispatcher:
    return request.app.state.dispatcher


def get_reconciler(request: Request) -> ReceiptReconciler:
    return request.app.state.reconciler


def _require_webhook_secret(x_webhook_secret: Optional[str]) -> None:
    expected = config.WEBHOOK_SECRET
    if not expected:
        raise HTTPException(status_code=500, detail="WEBHOOK_SECRET not set on server")
    if not x_webhook_secret or x_webhook_secret != expected:
        raise HTTPException(status_code=401, detail="Invalid webhook secret")


# ---------------------------
# Routes
# ---------------------------

@router.post("/register")
def register_push_token(
    body: RegisterPushTokenIn,
    x_user_id: str = Header(...),
    db: Session = Depends(get_db),
):
    try:
        register_token(db, x_user_id, body.token, body.platform, body.device_id)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"ok": True}


@router.post("/unregister")
def unregister_push_token(
    body: UnregisterPushTokenIn,
    x_user_id: str = Header(...),
    db: Session = Depends(get_db),
):
    removed = unregister_tokens(db, x_user_id, body.token)
    return {"ok": True, "removed": removed}


@router.post("/send", response_model=SendResult, response_model_exclude_none=True)
async def send_push(
    body: SendPushIn,
    x_user_id: str = Header(...),
    dispatcher: Dispatcher = Depends(get_dispatcher),
):
    try:
        return await dispatcher.send_to_user(x_user_id, body)
    except ConfigurationError as e:
        logger.error(f"Push send rejected | user={x_user_id} error={e}")
        raise HTTPException(status_code=503, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except UserRateLimited as e:
        raise HTTPException(status_code=429, detail=str(e))


@router.post("/test", response_model=NotificationCheckResult, response_model_exclude_none=True)
async def send_test_push(
    x_user_id: str = Header(...),
    dispatcher: Dispatcher = Depends(get_dispatcher),
):
    try:
        return await dispatcher.send_test_notification(x_user_id)
    except ConfigurationError as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.post("/maintenance/run", response_model=MaintenanceReport)
async def run_push_maintenance(
    x_webhook_secret: Optional[str] = Header(None),
    reconciler: ReceiptReconciler = Depends(get_reconciler),
):
    """For an external cron when the in-process loop is disabled."""
    _require_webhook_secret(x_webhook_secret)
    return await run_maintenance(reconciler, reconciler.session_factory)
