from enum import Enum
from typing import List, Set

from pydantic import BaseModel, ConfigDict, Field, model_validator


class PrerequisiteKind(str, Enum):
    """依赖图的类型：hack 之间或 level 之间"""
    HACK = "hack"
    LEVEL = "level"


class PrerequisiteEdgeCreate(BaseModel):
    """新增前置依赖边

    Attributes:
        content_id: 被锁定的内容ID
        prerequisite_content_id: 必须先完成的内容ID
        content_kind: 依赖图类型
    """
    content_id: str = Field(..., min_length=1)
    prerequisite_content_id: str = Field(..., min_length=1)
    content_kind: PrerequisiteKind = PrerequisiteKind.HACK

    @model_validator(mode="after")
    def validate_not_self_loop(self):
        """验证内容不能依赖自身"""
        if self.content_id == self.prerequisite_content_id:
            raise ValueError("内容不能作为自己的前置条件")
        return self


class PrerequisiteEdgeUpdate(BaseModel):
    content_kind: PrerequisiteKind


class PrerequisiteEdgeOut(PrerequisiteEdgeCreate):
    model_config = ConfigDict(from_attributes=True)

    id: int


class UnlockStatus(BaseModel):
    """解锁状态（派生数据，不持久化）

    Attributes:
        content_id: 内容ID
        is_locked: 是否仍被锁定
        missing_prerequisite_ids: 尚未完成的前置内容ID
    """
    content_id: str
    is_locked: bool
    missing_prerequisite_ids: Set[str] = Field(default_factory=set)


class LevelTreeNode(BaseModel):
    """等级树中的一个节点"""
    level_id: str
    name: str
    slug: str
    prerequisites: List[str]
    children: List[str]
    hacks_completed: int
    total_required_hacks: int
    progress_percentage: int
    is_locked: bool
    is_completed: bool
