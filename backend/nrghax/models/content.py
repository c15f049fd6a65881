from sqlalchemy import Column, Integer, String, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from nrghax.db.base_class import Base


class Level(Base):
    """等级：一组 hack 的集合，有自己的前置等级"""
    __tablename__ = "levels"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, nullable=False)
    position = Column(Integer, nullable=True)

    hacks = relationship("Hack", back_populates="level", order_by="Hack.position")


class Hack(Base):
    """单个学习单元（文章、视频或链接）"""
    __tablename__ = "hacks"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, nullable=False)
    level_id = Column(String, ForeignKey("levels.id"), nullable=True, index=True)
    # 是否计入所属等级的完成条件
    is_required = Column(Boolean, nullable=False, default=True)
    position = Column(Integer, nullable=True)

    level = relationship("Level", back_populates="hacks")


class Routine(Base):
    """Routine：按顺序排列的 hack 播放列表"""
    __tablename__ = "routines"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, nullable=False)

    items = relationship("RoutineHack", order_by="RoutineHack.position", cascade="all, delete-orphan")

    @property
    def hack_ids(self):
        return [item.hack_id for item in self.items]


class RoutineHack(Base):
    __tablename__ = "routine_hacks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    routine_id = Column(String, ForeignKey("routines.id"), nullable=False, index=True)
    hack_id = Column(String, ForeignKey("hacks.id"), nullable=False)
    position = Column(Integer, nullable=False, default=0)
