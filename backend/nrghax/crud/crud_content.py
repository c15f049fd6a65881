from typing import Dict, List

from sqlalchemy.orm import Session

from nrghax.crud.base import CRUDBase
from nrghax.models.content import Hack, Level, Routine, RoutineHack
from nrghax.schemas.content import (
    HackCreate,
    HackUpdate,
    LevelCreate,
    LevelUpdate,
    RoutineCreate,
    RoutineUpdate,
)


class CRUDLevel(CRUDBase[Level, LevelCreate, LevelUpdate]):
    def get_ordered(self, db: Session) -> List[Level]:
        """按 position 排序获取全部等级"""
        return self.get_multi(db, sort_by=[("position", "asc"), ("id", "asc")], limit=None)


class CRUDHack(CRUDBase[Hack, HackCreate, HackUpdate]):
    def get_all(self, db: Session) -> List[Hack]:
        return self.get_multi(db, sort_by="id", limit=None)

    def get_required_by_level(self, db: Session) -> Dict[str, List[str]]:
        """
        获取每个等级的必修 hack ID 列表。

        Returns:
            Dict[str, List[str]]: level_id -> 必修 hack ID 列表
        """
        required: Dict[str, List[str]] = {}
        for hack in self.get_multi(db, filter_conditions={"is_required": True}, sort_by="id", limit=None):
            if hack.level_id:
                required.setdefault(hack.level_id, []).append(hack.id)
        return required


class CRUDRoutine(CRUDBase[Routine, RoutineCreate, RoutineUpdate]):
    def create(self, db: Session, *, obj_in: RoutineCreate) -> Routine:
        """创建 Routine 及其有序的 hack 列表"""
        routine = Routine(id=obj_in.id, name=obj_in.name, slug=obj_in.slug)
        routine.items = [
            RoutineHack(hack_id=hack_id, position=position)
            for position, hack_id in enumerate(obj_in.hack_ids)
        ]
        db.add(routine)
        db.commit()
        db.refresh(routine)
        return routine

level = CRUDLevel(Level)
hack = CRUDHack(Hack)
routine = CRUDRoutine(Routine)
