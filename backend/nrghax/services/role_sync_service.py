import hmac
import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from nrghax.crud.crud_role import UserRoleCreate, user_role as crud_user_role
from nrghax.schemas.webhook import RoleChange, RoleChangeAction, RoleChangeWebhook, RoleSyncResult

logger = logging.getLogger(__name__)

ROLE_CHANGE_EVENT = "ROLE_CHANGE"


def verify_webhook_secret(provided: Optional[str], expected: Optional[str]) -> bool:
    """
    校验 Webhook 共享密钥。未配置密钥时拒绝所有请求。
    """
    if not expected:
        logger.warning("WEBHOOK_SECRET 未配置，拒绝 Webhook 请求")
        return False
    if not provided:
        return False
    return hmac.compare_digest(provided, expected)


class RoleSyncService:
    """把聊天机器人上报的角色变更同步到用户角色表"""

    def apply_change(self, db: Session, *, user_id: str, external_id: str, change: RoleChange) -> RoleSyncResult:
        try:
            if change.action == RoleChangeAction.ADD:
                crud_user_role.upsert(db, obj_in=UserRoleCreate(
                    user_id=user_id,
                    external_id=external_id,
                    role_id=change.role_id,
                    role_name=change.role_name,
                    synced_at=change.timestamp
                ))
                logger.info(f"RoleSync: 用户 {user_id} 新增角色 {change.role_name}")
                return RoleSyncResult(role=change.role_name, success=True, added=[change.role_name])

            removed = crud_user_role.remove_role(db, user_id=user_id, role_id=change.role_id)
            logger.info(f"RoleSync: 用户 {user_id} 移除角色 {change.role_name}")
            return RoleSyncResult(
                role=change.role_name,
                success=True,
                removed=[change.role_name] if removed else []
            )
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"RoleSync: 同步用户 {user_id} 的角色 {change.role_name} 失败: {e}")
            return RoleSyncResult(role=change.role_name, success=False, error=str(e))

    def apply_webhook(self, db: Session, payload: RoleChangeWebhook) -> List[RoleSyncResult]:
        """逐条应用角色变更，单条失败不影响其他变更"""
        return [
            self.apply_change(db, user_id=payload.user_id, external_id=payload.external_id, change=change)
            for change in payload.changes
        ]

role_sync_service = RoleSyncService()
