import logging
from datetime import datetime, UTC
from typing import List, Optional, Set

from sqlalchemy.orm import Session

from nrghax.crud.base import CRUDBase
from nrghax.models.user_progress import UserProgress
from nrghax.schemas.progress import (
    ContentKind,
    UserProgressCreate,
    UserProgressRecord,
    UserProgressUpdate,
)

logger = logging.getLogger(__name__)


class CRUDProgress(CRUDBase[UserProgress, UserProgressCreate, UserProgressUpdate]):
    def get_by_user_content(self, db: Session, *, user_id: str, content_id: str) -> Optional[UserProgress]:
        """查询 (user_id, content_id) 对应的进度记录"""
        results = self.get_multi(
            db,
            filter_conditions={"user_id": user_id, "content_id": content_id},
            limit=1
        )
        return results[0] if results else None

    def get_records_by_user(self, db: Session, *, user_id: str) -> List[UserProgressRecord]:
        """
        查询指定用户的全部进度记录，并转换为 UserProgressRecord。
        """
        rows = self.get_multi(
            db,
            filter_conditions={"user_id": user_id},
            sort_by="id",
            limit=None
        )
        return [UserProgressRecord.model_validate(row) for row in rows]

    def get_completed_content_ids(self, db: Session, *, user_id: str) -> Set[str]:
        """
        查询指定用户已完成（completed_at 非空）的内容ID集合
        """
        return {
            record.content_id
            for record in self.get_records_by_user(db, user_id=user_id)
            if record.is_completed
        }

    def add_completions(
        self,
        db: Session,
        *,
        user_id: str,
        content_id: str,
        content_kind: ContentKind = ContentKind.HACK,
        count: int = 1,
        now: Optional[datetime] = None
    ) -> UserProgress:
        """
        为用户的某个内容累加完成次数。

        - 记录不存在时新建，completion_count = count
        - 记录存在时 completion_count = 原值 + count，只加不覆盖
        - completed_at 已有值时保持不变，否则在累加后次数 >= 1 时设为 now

        Args:
            db: 数据库会话
            user_id: 用户ID
            content_id: 内容ID
            content_kind: 内容类型
            count: 要累加的次数，必须非负
            now: 当前时间，默认使用 UTC 当前时间

        Returns:
            UserProgress: 更新后的记录
        """
        if count < 0:
            raise ValueError("count must be non-negative")
        now = now or datetime.now(UTC)

        existing = self.get_by_user_content(db, user_id=user_id, content_id=content_id)
        if existing is None:
            return self.create(db, obj_in=UserProgressCreate(
                user_id=user_id,
                content_id=content_id,
                content_kind=content_kind,
                completion_count=count,
                completed_at=now if count >= 1 else None
            ))

        merged_count = (existing.completion_count or 0) + count
        update_data = {"completion_count": merged_count}
        if existing.completed_at is None and merged_count >= 1:
            update_data["completed_at"] = now
        return self.update(db, db_obj=existing, obj_in=update_data)

    def merge_views(
        self,
        db: Session,
        *,
        user_id: str,
        hack_id: str,
        view_count: int,
        last_viewed_at: Optional[datetime] = None
    ) -> UserProgress:
        """
        合并 hack 的浏览次数，取两者较大值；浏览时间取较晚的一个。

        记录不存在时新建一条未完成（completion_count=0）的记录。
        """
        existing = self.get_by_user_content(db, user_id=user_id, content_id=hack_id)
        if existing is None:
            return self.create(db, obj_in=UserProgressCreate(
                user_id=user_id,
                content_id=hack_id,
                content_kind=ContentKind.HACK,
                view_count=view_count,
                last_viewed_at=last_viewed_at
            ))

        update_data = {"view_count": max(existing.view_count or 0, view_count)}
        if last_viewed_at is not None:
            previous = existing.last_viewed_at
            if previous is not None and previous.tzinfo is None:
                previous = previous.replace(tzinfo=UTC)
            if last_viewed_at.tzinfo is None:
                last_viewed_at = last_viewed_at.replace(tzinfo=UTC)
            if previous is None or last_viewed_at > previous:
                update_data["last_viewed_at"] = last_viewed_at
        return self.update(db, db_obj=existing, obj_in=update_data)

# 实例化并暴露给 API 层使用
progress = CRUDProgress(UserProgress)
