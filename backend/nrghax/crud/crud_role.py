from datetime import datetime, UTC
from typing import List, Optional

from pydantic import BaseModel
from sqlalchemy.orm import Session

from nrghax.crud.base import CRUDBase
from nrghax.models.user_role import UserRole


class UserRoleCreate(BaseModel):
    user_id: str
    external_id: str
    role_id: str
    role_name: str
    synced_at: Optional[datetime] = None


class CRUDUserRole(CRUDBase[UserRole, UserRoleCreate, UserRoleCreate]):
    def get_by_user(self, db: Session, *, user_id: str) -> List[UserRole]:
        return self.get_multi(db, filter_conditions={"user_id": user_id}, sort_by="id", limit=None)

    def get_by_user_role(self, db: Session, *, user_id: str, role_id: str) -> Optional[UserRole]:
        results = self.get_multi(db, filter_conditions={"user_id": user_id, "role_id": role_id}, limit=1)
        return results[0] if results else None

    def upsert(self, db: Session, *, obj_in: UserRoleCreate) -> UserRole:
        """存在则更新角色名和同步时间，否则新建"""
        synced_at = obj_in.synced_at or datetime.now(UTC)
        existing = self.get_by_user_role(db, user_id=obj_in.user_id, role_id=obj_in.role_id)
        if existing:
            return self.update(db, db_obj=existing, obj_in={
                "role_name": obj_in.role_name,
                "external_id": obj_in.external_id,
                "synced_at": synced_at
            })
        return self.create(db, obj_in=obj_in.model_copy(update={"synced_at": synced_at}))

    def remove_role(self, db: Session, *, user_id: str, role_id: str) -> Optional[UserRole]:
        existing = self.get_by_user_role(db, user_id=user_id, role_id=role_id)
        if existing is None:
            return None
        return self.remove(db, obj_id=existing.id)

user_role = CRUDUserRole(UserRole)
