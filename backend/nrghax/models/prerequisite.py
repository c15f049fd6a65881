from sqlalchemy import Column, Integer, String, CheckConstraint, UniqueConstraint
from nrghax.db.base_class import Base

class PrerequisiteEdge(Base):
    """前置依赖边

    content_id 依赖 prerequisite_content_id：只有后者完成后前者才会解锁。
    hack 之间、level 之间各自构成一张依赖图。

    Attributes:
        id: 自增ID
        content_id: 被锁定的内容ID
        prerequisite_content_id: 前置内容ID
        content_kind: 'hack' 或 'level'
    """
    __tablename__ = "prerequisite_edges"
    __table_args__ = (
        UniqueConstraint("content_id", "prerequisite_content_id", name="uq_prerequisite_pair"),
        CheckConstraint("content_id != prerequisite_content_id", name="ck_prerequisite_no_self_loop"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    content_id = Column(String, index=True, nullable=False)
    prerequisite_content_id = Column(String, index=True, nullable=False)
    content_kind = Column(String, nullable=False, default="hack")
