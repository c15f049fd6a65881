from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class RoleChangeAction(str, Enum):
    ADD = "add"
    REMOVE = "remove"


class RoleChange(BaseModel):
    """聊天机器人上报的单个角色变更"""
    model_config = ConfigDict(populate_by_name=True)

    action: RoleChangeAction
    role_name: str = Field(..., alias="roleName")
    role_id: str = Field(..., alias="roleId")
    timestamp: Optional[datetime] = None


class RoleChangeWebhook(BaseModel):
    """角色同步 Webhook 请求体

    Attributes:
        type: 事件类型，目前只接受 'ROLE_CHANGE'
        user_id: 站内用户ID
        external_id: 聊天平台用户ID
        changes: 角色变更列表
    """
    model_config = ConfigDict(populate_by_name=True)

    type: str
    user_id: str = Field(..., alias="userId", min_length=1)
    external_id: str = Field(..., alias="externalId", min_length=1)
    changes: List[RoleChange]


class RoleSyncResult(BaseModel):
    role: str
    success: bool
    added: List[str] = Field(default_factory=list)
    removed: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class RoleWebhookResponse(BaseModel):
    success: bool
    results: List[RoleSyncResult]
    timestamp: datetime
