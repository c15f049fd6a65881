import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from nrghax.core.exceptions import DuplicatePrerequisiteError, PrerequisiteCycleError
from nrghax.crud.base import CRUDBase
from nrghax.models.prerequisite import PrerequisiteEdge
from nrghax.schemas.prerequisite import PrerequisiteEdgeCreate, PrerequisiteEdgeUpdate, PrerequisiteKind
from nrghax.services.unlock_evaluator import Edge, to_edges, would_create_cycle

logger = logging.getLogger(__name__)


class CRUDPrerequisite(CRUDBase[PrerequisiteEdge, PrerequisiteEdgeCreate, PrerequisiteEdgeUpdate]):
    def get_by_kind(self, db: Session, *, content_kind: PrerequisiteKind) -> List[PrerequisiteEdge]:
        """获取某一类依赖图的全部边"""
        return self.get_multi(
            db,
            filter_conditions={"content_kind": content_kind.value},
            sort_by="id",
            limit=None
        )

    def get_edges(self, db: Session, *, content_kind: PrerequisiteKind) -> List[Edge]:
        return to_edges(self.get_by_kind(db, content_kind=content_kind))

    def get_pair(self, db: Session, *, content_id: str, prerequisite_content_id: str) -> Optional[PrerequisiteEdge]:
        results = self.get_multi(
            db,
            filter_conditions={
                "content_id": content_id,
                "prerequisite_content_id": prerequisite_content_id
            },
            limit=1
        )
        return results[0] if results else None

    def create_edge(self, db: Session, *, obj_in: PrerequisiteEdgeCreate) -> PrerequisiteEdge:
        """
        新增前置依赖边，写入前校验重复和成环。

        Raises:
            DuplicatePrerequisiteError: 相同的边已存在
            PrerequisiteCycleError: 新边会使依赖图成环
        """
        if self.get_pair(db, content_id=obj_in.content_id, prerequisite_content_id=obj_in.prerequisite_content_id):
            raise DuplicatePrerequisiteError(obj_in.content_id, obj_in.prerequisite_content_id)

        new_edge = Edge(obj_in.content_id, obj_in.prerequisite_content_id)
        cycle = would_create_cycle(self.get_edges(db, content_kind=obj_in.content_kind), new_edge)
        if cycle:
            logger.warning(f"拒绝成环的前置依赖: {' -> '.join(cycle)}")
            raise PrerequisiteCycleError(cycle)

        return self.create(db, obj_in=obj_in)

    def remove_edge(self, db: Session, *, content_id: str, prerequisite_content_id: str) -> Optional[PrerequisiteEdge]:
        edge = self.get_pair(db, content_id=content_id, prerequisite_content_id=prerequisite_content_id)
        if edge is None:
            return None
        return self.remove(db, obj_id=edge.id)

prerequisite = CRUDPrerequisite(PrerequisiteEdge)
