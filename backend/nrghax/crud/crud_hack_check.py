from collections import defaultdict
from datetime import datetime, UTC
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel
from sqlalchemy.orm import Session

from nrghax.crud.base import CRUDBase
from nrghax.models.user_hack_check import UserHackCheck


class UserHackCheckCreate(BaseModel):
    user_id: str
    hack_id: str
    check_id: str
    completed_at: Optional[datetime] = None


class CRUDUserHackCheck(CRUDBase[UserHackCheck, UserHackCheckCreate, UserHackCheckCreate]):
    def get_completed_ids(self, db: Session, *, user_id: str) -> Dict[str, List[str]]:
        """按 hack 分组返回用户已完成的检查项ID"""
        grouped = defaultdict(list)
        for row in self.get_multi(db, filter_conditions={"user_id": user_id}, sort_by="id", limit=None):
            grouped[row.hack_id].append(row.check_id)
        return dict(grouped)

    def add_checks(
        self,
        db: Session,
        *,
        user_id: str,
        hack_id: str,
        check_ids: Iterable[str],
        now: Optional[datetime] = None
    ) -> int:
        """
        记录用户完成的检查项，已存在的跳过。

        Returns:
            int: 新插入的条数
        """
        now = now or datetime.now(UTC)
        existing = {
            row.check_id
            for row in self.get_multi(db, filter_conditions={"user_id": user_id}, limit=None)
        }
        added = 0
        for check_id in check_ids:
            if check_id in existing:
                continue
            self.create(db, obj_in=UserHackCheckCreate(
                user_id=user_id, hack_id=hack_id, check_id=check_id, completed_at=now
            ))
            existing.add(check_id)
            added += 1
        return added

user_hack_check = CRUDUserHackCheck(UserHackCheck)
