from typing import Optional

from pydantic import BaseModel
from sqlalchemy.orm import Session

from nrghax.crud.base import CRUDBase
from nrghax.models.migration_receipt import MigrationReceipt


class MigrationReceiptCreate(BaseModel):
    user_id: str
    snapshot_token: str
    record_count: int = 0


class CRUDMigrationReceipt(CRUDBase[MigrationReceipt, MigrationReceiptCreate, MigrationReceiptCreate]):
    def get_by_token(self, db: Session, *, user_id: str, snapshot_token: str) -> Optional[MigrationReceipt]:
        results = self.get_multi(
            db,
            filter_conditions={"user_id": user_id, "snapshot_token": snapshot_token},
            limit=1
        )
        return results[0] if results else None

migration_receipt = CRUDMigrationReceipt(MigrationReceipt)
