from sqlalchemy import Column, Integer, String, DateTime, UniqueConstraint
from datetime import datetime, UTC
from nrghax.db.base_class import Base

class UserProgress(Base):
    """用户进度模型

    记录已登录用户对某个内容（hack 或 routine）的完成情况。

    Attributes:
        id: 自增ID
        user_id: 用户ID
        content_id: 内容ID
        content_kind: 内容类型，'hack' 或 'routine'
        completion_count: 完成次数
        completed_at: 首次完成时间，未完成时为空
        view_count: 浏览次数
        last_viewed_at: 最近一次浏览时间
        updated_at: 最后更新时间
    """
    __tablename__ = "user_progress"
    __table_args__ = (
        UniqueConstraint("user_id", "content_id", name="uq_user_progress_user_content"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, index=True, nullable=False)
    content_id = Column(String, index=True, nullable=False)
    content_kind = Column(String, nullable=False, default="hack")
    completion_count = Column(Integer, nullable=False, default=0)
    completed_at = Column(DateTime, nullable=True)
    view_count = Column(Integer, nullable=False, default=0)
    last_viewed_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC))
