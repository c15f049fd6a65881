from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from nrghax.config.dependency_injection import get_db
from nrghax.core.exceptions import NotFoundError
from nrghax.crud.crud_prerequisite import prerequisite
from nrghax.schemas.prerequisite import (
    LevelTreeNode,
    PrerequisiteEdgeCreate,
    PrerequisiteEdgeOut,
    PrerequisiteKind,
    UnlockStatus,
)
from nrghax.schemas.response import StandardResponse
from nrghax.services.unlock_service import unlock_service

router = APIRouter()


@router.post("", response_model=StandardResponse[PrerequisiteEdgeOut], status_code=status.HTTP_201_CREATED)
def create_prerequisite(edge_in: PrerequisiteEdgeCreate, db: Session = Depends(get_db)):
    """
    新增前置依赖边，重复或成环时返回 409
    """
    edge = prerequisite.create_edge(db, obj_in=edge_in)
    return StandardResponse(code=201, data=PrerequisiteEdgeOut.model_validate(edge))


@router.get("", response_model=StandardResponse[List[PrerequisiteEdgeOut]])
def list_prerequisites(kind: PrerequisiteKind = PrerequisiteKind.HACK, db: Session = Depends(get_db)):
    edges = prerequisite.get_by_kind(db, content_kind=kind)
    return StandardResponse(data=[PrerequisiteEdgeOut.model_validate(edge) for edge in edges])


@router.delete("", response_model=StandardResponse[PrerequisiteEdgeOut])
def delete_prerequisite(content_id: str, prerequisite_content_id: str, db: Session = Depends(get_db)):
    removed = prerequisite.remove_edge(db, content_id=content_id, prerequisite_content_id=prerequisite_content_id)
    if removed is None:
        raise NotFoundError("Prerequisite not found")
    return StandardResponse(data=PrerequisiteEdgeOut.model_validate(removed))


@router.get("/users/{user_id}/unlocks", response_model=StandardResponse[List[UnlockStatus]])
def get_unlock_statuses(
        user_id: str,
        kind: PrerequisiteKind = PrerequisiteKind.HACK,
        content_ids: Optional[List[str]] = Query(None),
        db: Session = Depends(get_db)
):
    """
    计算用户视角下的解锁状态

    - kind=hack: hack 自身的前置依赖之外，所属等级未解锁时也视为锁定
    - kind=level: 等级的前置等级必须全部完成
    - 未指定 content_ids 时计算该类型的全部内容
    """
    if kind == PrerequisiteKind.LEVEL:
        return StandardResponse(data=unlock_service.level_statuses(db, user_id, content_ids))
    return StandardResponse(data=unlock_service.hack_statuses(db, user_id, content_ids))


@router.get("/users/{user_id}/level-tree", response_model=StandardResponse[List[LevelTreeNode]])
def get_level_tree(user_id: str, db: Session = Depends(get_db)):
    return StandardResponse(data=unlock_service.level_tree(db, user_id))
