from sqlalchemy import Column, Integer, String, DateTime, UniqueConstraint
from datetime import datetime, UTC
from nrghax.db.base_class import Base

class UserHackCheck(Base):
    """用户已完成的 hack 检查项

    Attributes:
        user_id: 用户ID
        hack_id: 检查项所属的 hack
        check_id: 检查项ID
        completed_at: 完成时间
    """
    __tablename__ = "user_hack_checks"
    __table_args__ = (
        UniqueConstraint("user_id", "check_id", name="uq_user_hack_check"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, index=True, nullable=False)
    hack_id = Column(String, index=True, nullable=False)
    check_id = Column(String, nullable=False)
    completed_at = Column(DateTime, default=lambda: datetime.now(UTC))
