from sqlalchemy import Column, Integer, String, DateTime, UniqueConstraint
from datetime import datetime, UTC
from nrghax.db.base_class import Base

class UserRole(Base):
    """从聊天机器人同步过来的用户角色

    Attributes:
        user_id: 站内用户ID
        external_id: 聊天平台上的用户ID
        role_id: 聊天平台角色ID
        role_name: 角色名称
        synced_at: 最近一次同步时间
    """
    __tablename__ = "user_roles"
    __table_args__ = (
        UniqueConstraint("user_id", "role_id", name="uq_user_role"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, index=True, nullable=False)
    external_id = Column(String, index=True, nullable=False)
    role_id = Column(String, nullable=False)
    role_name = Column(String, nullable=False)
    synced_at = Column(DateTime, default=lambda: datetime.now(UTC))
