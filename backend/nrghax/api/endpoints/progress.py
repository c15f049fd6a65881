import logging
from typing import Callable, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from nrghax.config.dependency_injection import get_db, get_migration_registry, get_store_factory
from nrghax.core.exceptions import NotFoundError
from nrghax.crud.crud_hack_check import user_hack_check
from nrghax.crud.crud_progress import progress
from nrghax.schemas.progress import (
    AnonymousCheckRecord,
    AnonymousProgressResponse,
    AnonymousViewRecord,
    CheckRequest,
    CompletionRequest,
    CompletionResponse,
    ContentKind,
    MigrationRequest,
    MigrationStatusResponse,
    ProgressionEntry,
    UserProgressResponse,
    ViewRequest,
)
from nrghax.schemas.response import StandardResponse
from nrghax.services.anonymous_progress_store import AnonymousProgressStore
from nrghax.services.progress_migrator import MigrationSession, MigrationSessionRegistry, MigrationState
from nrghax.services.unlock_service import unlock_service
from nrghax.tasks.db_tasks import record_completion_task

logger = logging.getLogger(__name__)

router = APIRouter()

StoreFactory = Callable[[str], AnonymousProgressStore]


def _get_session(registry: MigrationSessionRegistry, visitor_id: str) -> MigrationSession:
    session = registry.get(visitor_id)
    if session is None:
        raise NotFoundError(f"No migration session for visitor {visitor_id}")
    return session


def _session_status(session: MigrationSession) -> MigrationStatusResponse:
    return MigrationStatusResponse(
        visitor_id=session.visitor_id,
        user_id=session.user_id,
        state=session.state.value,
        attempts=session.attempts,
        last_error=session.last_error
    )


# --- 匿名访客 ---

@router.post("/anonymous/{visitor_id}/completions", response_model=StandardResponse[CompletionResponse])
def record_anonymous_completion(
        visitor_id: str,
        completion_in: CompletionRequest,
        store_factory: StoreFactory = Depends(get_store_factory)
):
    """
    记录匿名访客的一次完成

    同一内容在冷却时间内重复完成时返回 429。
    """
    store = store_factory(visitor_id)
    wait_minutes = store.cooldown_minutes(completion_in.content_id, completion_in.content_kind)
    if wait_minutes > 0:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Completed recently, try again in {wait_minutes} minutes"
        )

    new_count = store.record_completion(completion_in.content_id, completion_in.content_kind)
    return StandardResponse(data=CompletionResponse(
        content_id=completion_in.content_id,
        content_kind=completion_in.content_kind,
        completion_count=new_count
    ))


@router.get("/anonymous/{visitor_id}", response_model=StandardResponse[AnonymousProgressResponse])
def get_anonymous_progress(
        visitor_id: str,
        kind: Optional[ContentKind] = None,
        store_factory: StoreFactory = Depends(get_store_factory)
):
    store = store_factory(visitor_id)
    records = list(store.read_all(kind)) if kind else store.snapshot()
    return StandardResponse(data=AnonymousProgressResponse(
        visitor_id=visitor_id,
        records=records,
        views=store.read_views(),
        checks=store.read_checks()
    ))


@router.post("/anonymous/{visitor_id}/views", response_model=StandardResponse[AnonymousViewRecord])
def record_anonymous_view(
        visitor_id: str,
        view_in: ViewRequest,
        store_factory: StoreFactory = Depends(get_store_factory)
):
    """记录匿名访客对某个 hack 的一次浏览"""
    store = store_factory(visitor_id)
    view = None
    if store.record_view(view_in.hack_id) > 0:
        view = next((v for v in store.read_views() if v.hack_id == view_in.hack_id), None)
    if view is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Progress storage unavailable")
    return StandardResponse(data=view)


@router.put("/anonymous/{visitor_id}/checks/{hack_id}", response_model=StandardResponse[AnonymousCheckRecord])
def set_anonymous_check(
        visitor_id: str,
        hack_id: str,
        check_in: CheckRequest,
        store_factory: StoreFactory = Depends(get_store_factory)
):
    """勾选或取消匿名访客在某个 hack 上的检查项"""
    check_ids = store_factory(visitor_id).set_check(hack_id, check_in.check_id, completed=check_in.completed)
    return StandardResponse(data=AnonymousCheckRecord(hack_id=hack_id, completed_check_ids=check_ids))


# --- 已登录用户 ---

@router.post("/users/{user_id}/completions", status_code=status.HTTP_202_ACCEPTED, summary="记录用户完成")
def record_user_completion(user_id: str, completion_in: CompletionRequest):
    """
    将已登录用户的完成记录分派到`db_writer_queue`异步持久化，立即返回 `202 Accepted`。
    """
    record_completion_task.apply_async(
        args=[user_id, completion_in.content_id, completion_in.content_kind.value],
        queue='db_writer_queue'
    )
    return {"status": "Completion received for processing"}


@router.get("/users/{user_id}", response_model=StandardResponse[UserProgressResponse])
def get_user_progress(user_id: str, db: Session = Depends(get_db)):
    records = progress.get_records_by_user(db, user_id=user_id)
    response_data = UserProgressResponse(
        user_id=user_id,
        records=records,
        completed_content_ids=[record.content_id for record in records if record.is_completed],
        completed_check_ids=user_hack_check.get_completed_ids(db, user_id=user_id)
    )
    return StandardResponse(data=response_data)


@router.get("/users/{user_id}/progression", response_model=StandardResponse[List[ProgressionEntry]])
def get_user_progression(user_id: str, db: Session = Depends(get_db)):
    """每个 hack / routine 的完成次数与进度等级"""
    return StandardResponse(data=unlock_service.progression(db, user_id))


# --- 迁移 ---

@router.post("/migrations", response_model=StandardResponse[MigrationStatusResponse])
async def sign_in(
        migration_in: MigrationRequest,
        registry: MigrationSessionRegistry = Depends(get_migration_registry)
):
    """
    登录事件：把用户ID发布到访客会话的身份通道，触发匿名进度迁移

    同一用户再次登录且上次迁移失败时，直接重试。
    """
    session = registry.get_or_create(migration_in.visitor_id)
    already_signed_in = session.auth.current == migration_in.user_id

    await session.auth.publish(migration_in.user_id)

    if already_signed_in and session.state == MigrationState.FAILED:
        logger.info(f"访客 {session.visitor_id} 重新登录，重试失败的迁移")
        await registry.migrator.run(session)

    return StandardResponse(data=_session_status(session))


@router.get("/migrations/{visitor_id}", response_model=StandardResponse[MigrationStatusResponse])
def get_migration_status(
        visitor_id: str,
        registry: MigrationSessionRegistry = Depends(get_migration_registry)
):
    session = _get_session(registry, visitor_id)
    return StandardResponse(data=_session_status(session))


@router.delete("/migrations/{visitor_id}", response_model=StandardResponse[MigrationStatusResponse])
async def sign_out(
        visitor_id: str,
        registry: MigrationSessionRegistry = Depends(get_migration_registry)
):
    """
    登出事件：向身份通道发布 None

    会话随之从注册表移除；合并仍在进行时，等合并结束后再移除。
    """
    session = _get_session(registry, visitor_id)
    await session.auth.publish(None)
    return StandardResponse(data=_session_status(session))
