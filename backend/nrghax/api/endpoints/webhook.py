# backend/nrghax/api/endpoints/webhook.py
"""
聊天机器人角色同步 Webhook。

请求必须携带 X-Webhook-Secret 头，与配置中的 WEBHOOK_SECRET 一致。
"""
import logging
from datetime import datetime, UTC
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError
from sqlalchemy.orm import Session

from nrghax.config.dependency_injection import get_db
from nrghax.core.config import settings
from nrghax.schemas.webhook import RoleChangeWebhook, RoleWebhookResponse
from nrghax.services.role_sync_service import ROLE_CHANGE_EVENT, role_sync_service, verify_webhook_secret

logger = logging.getLogger(__name__)

router = APIRouter()


def _require_secret(x_webhook_secret: Optional[str]):
    if not verify_webhook_secret(x_webhook_secret, settings.WEBHOOK_SECRET):
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.post("/roles", response_model=RoleWebhookResponse)
async def sync_roles(
        request: Request,
        x_webhook_secret: Optional[str] = Header(None),
        db: Session = Depends(get_db)
):
    _require_secret(x_webhook_secret)

    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")

    if not isinstance(body, dict) or body.get("type") != ROLE_CHANGE_EVENT:
        raise HTTPException(status_code=400, detail="Invalid webhook type")

    try:
        payload = RoleChangeWebhook.model_validate(body)
    except ValidationError as e:
        logger.warning(f"Webhook: 请求体校验失败: {e}")
        raise HTTPException(status_code=400, detail="Missing required fields")

    results = await run_in_threadpool(role_sync_service.apply_webhook, db, payload)
    return RoleWebhookResponse(
        success=all(result.success for result in results),
        results=results,
        timestamp=datetime.now(UTC)
    )


@router.get("/roles")
def webhook_health(x_webhook_secret: Optional[str] = Header(None)):
    """供机器人确认 Webhook 可用的健康检查"""
    _require_secret(x_webhook_secret)
    return {
        "status": "healthy",
        "endpoint": f"{settings.API_V1_STR}/webhook/roles",
        "timestamp": datetime.now(UTC).isoformat()
    }
