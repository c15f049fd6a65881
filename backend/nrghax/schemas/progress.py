from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ContentKind(str, Enum):
    """可被完成并计数的内容类型"""
    HACK = "hack"
    ROUTINE = "routine"


class AnonymousProgressRecord(BaseModel):
    """匿名进度记录

    未登录访客在本地（Redis）累积的完成记录，迁移成功后被清除。

    Attributes:
        content_id: 内容ID
        content_kind: 内容类型
        completion_count: 完成次数，非负整数
        last_updated: 最后一次完成的时间
    """
    content_id: str = Field(..., min_length=1)
    content_kind: ContentKind
    completion_count: int = Field(0, ge=0)
    last_updated: datetime


class AnonymousViewRecord(BaseModel):
    """匿名浏览记录

    Attributes:
        hack_id: hack ID
        view_count: 浏览次数
        last_viewed_at: 最近一次浏览时间
    """
    hack_id: str = Field(..., min_length=1)
    view_count: int = Field(0, ge=0)
    last_viewed_at: datetime


class AnonymousCheckRecord(BaseModel):
    """某个 hack 的匿名检查项进度：已勾选的检查项ID"""
    hack_id: str = Field(..., min_length=1)
    completed_check_ids: List[str] = Field(default_factory=list)


class AnonymousSnapshot(BaseModel):
    """一个访客全部匿名数据的快照，迁移时整体提交"""
    records: List[AnonymousProgressRecord] = Field(default_factory=list)
    views: List[AnonymousViewRecord] = Field(default_factory=list)
    checks: List[AnonymousCheckRecord] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.records or self.views or self.checks)

    def without_empty(self) -> "AnonymousSnapshot":
        """去掉没有实际进度的条目"""
        return AnonymousSnapshot(
            records=[record for record in self.records if record.completion_count > 0],
            views=[view for view in self.views if view.view_count > 0],
            checks=[check for check in self.checks if check.completed_check_ids],
        )


class UserProgressBase(BaseModel):
    """已登录用户进度的通用字段"""
    user_id: str
    content_id: str
    content_kind: ContentKind = ContentKind.HACK


class UserProgressCreate(UserProgressBase):
    """创建用户进度记录"""
    completion_count: int = Field(0, ge=0)
    completed_at: Optional[datetime] = None
    view_count: int = Field(0, ge=0)
    last_viewed_at: Optional[datetime] = None


class UserProgressUpdate(BaseModel):
    """更新用户进度记录"""
    completion_count: Optional[int] = Field(None, ge=0)
    completed_at: Optional[datetime] = None
    view_count: Optional[int] = Field(None, ge=0)
    last_viewed_at: Optional[datetime] = None


class UserProgressRecord(UserProgressBase):
    """用户进度记录

    数据从数据库进入核心逻辑时统一转换为该类型，避免直接传递ORM行。
    """
    model_config = ConfigDict(from_attributes=True)

    completion_count: int = Field(0, ge=0)
    completed_at: Optional[datetime] = None
    view_count: int = Field(0, ge=0)

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None


class CompletionRequest(BaseModel):
    """完成一次内容的请求"""
    content_id: str = Field(..., min_length=1)
    content_kind: ContentKind = ContentKind.HACK


class CompletionResponse(BaseModel):
    content_id: str
    content_kind: ContentKind
    completion_count: int


class ViewRequest(BaseModel):
    hack_id: str = Field(..., min_length=1)


class CheckRequest(BaseModel):
    """勾选或取消某个 hack 的检查项"""
    check_id: str = Field(..., min_length=1)
    completed: bool = True


class AnonymousProgressResponse(BaseModel):
    visitor_id: str
    records: List[AnonymousProgressRecord]
    views: List[AnonymousViewRecord] = Field(default_factory=list)
    checks: List[AnonymousCheckRecord] = Field(default_factory=list)


class UserProgressResponse(BaseModel):
    """用户学习进度响应模型

    Attributes:
        user_id: 用户ID
        records: 全部进度记录
        completed_content_ids: 已完成（completed_at 非空）的内容ID列表
        completed_check_ids: 按 hack 分组的已完成检查项ID
    """
    user_id: str
    records: List[UserProgressRecord]
    completed_content_ids: List[str]
    completed_check_ids: Dict[str, List[str]] = Field(default_factory=dict)


class MergeOutcome(BaseModel):
    """单条匿名记录的合并结果

    part 表示记录来源：completion（完成次数）、view（浏览）或 check（检查项）。
    """
    content_id: str
    part: str = "completion"
    success: bool
    completion_count: Optional[int] = None
    error: Optional[str] = None


class MergeResult(BaseModel):
    """一批匿名记录的合并结果

    success 仅在全部记录都写入成功时为 True。
    """
    success: bool
    outcomes: List[MergeOutcome] = Field(default_factory=list)
    already_applied: bool = False


class MigrationRequest(BaseModel):
    """登录事件：访客ID与刚可用的用户ID"""
    visitor_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)


class MigrationStatusResponse(BaseModel):
    visitor_id: str
    user_id: Optional[str] = None
    state: str
    attempts: int
    last_error: Optional[str] = None


class ProgressionEntry(BaseModel):
    """内容的完成次数与进度等级（locked / white / green / blue / purple / orange）"""
    content_id: str
    content_kind: ContentKind
    completion_count: int
    is_locked: bool
    tier: str
