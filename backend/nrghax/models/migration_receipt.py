from sqlalchemy import Column, Integer, String, DateTime, UniqueConstraint
from datetime import datetime, UTC
from nrghax.db.base_class import Base

class MigrationReceipt(Base):
    """迁移回执

    记录已完整合并的匿名进度快照，防止相同快照被重复累加。
    """
    __tablename__ = "migration_receipts"
    __table_args__ = (
        UniqueConstraint("user_id", "snapshot_token", name="uq_migration_receipt"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, index=True, nullable=False)
    snapshot_token = Column(String, nullable=False)
    record_count = Column(Integer, nullable=False, default=0)
    applied_at = Column(DateTime, default=lambda: datetime.now(UTC))
