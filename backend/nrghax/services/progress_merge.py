"""
匿名进度合并

把访客的匿名完成记录累加到已登录用户的进度记录中。每条记录独立提交，
某条失败不会回滚已经写入的记录；整批是否成功由 MergeResult.success 表示。

浏览次数按较大值合并，检查项按并集合并，这两部分重复合并不会改变结果。

注意：完成次数的合并是累加的，同一份快照合并两次会被计两次。调用方只在整批成功后
清除本地数据，并可以传入 snapshot_token 让重复提交的快照被识别出来。
"""
import hashlib
import json
import logging
from datetime import datetime, UTC
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from nrghax.crud.crud_hack_check import user_hack_check as crud_hack_check
from nrghax.crud.crud_migration_receipt import MigrationReceiptCreate, migration_receipt as crud_receipt
from nrghax.crud.crud_progress import progress as crud_progress
from nrghax.schemas.progress import (
    AnonymousCheckRecord,
    AnonymousProgressRecord,
    AnonymousViewRecord,
    MergeOutcome,
    MergeResult,
)

logger = logging.getLogger(__name__)


def compute_snapshot_token(
    records: Iterable[AnonymousProgressRecord],
    views: Iterable[AnonymousViewRecord] = (),
    checks: Iterable[AnonymousCheckRecord] = ()
) -> str:
    """对快照内容（与顺序无关）计算 SHA-256 摘要"""
    canonical = {
        "records": sorted(
            (record.content_kind.value, record.content_id, record.completion_count, record.last_updated.isoformat())
            for record in records
        ),
        "views": sorted((view.hack_id, view.view_count, view.last_viewed_at.isoformat()) for view in views),
        "checks": sorted((check.hack_id, sorted(check.completed_check_ids)) for check in checks),
    }
    return hashlib.sha256(json.dumps(canonical).encode("utf-8")).hexdigest()


def merge_anonymous_progress(
    db: Session,
    user_id: str,
    records: List[AnonymousProgressRecord],
    snapshot_token: Optional[str] = None,
    now: Optional[datetime] = None,
    views: Optional[List[AnonymousViewRecord]] = None,
    checks: Optional[List[AnonymousCheckRecord]] = None
) -> MergeResult:
    """
    将匿名进度合并到用户进度。

    Args:
        db: 数据库会话
        user_id: 用户ID
        records: 匿名完成记录
        snapshot_token: 快照标识；提供时，已成功合并过的相同快照不会再次累加
        now: 合并时间，默认使用 UTC 当前时间
        views: 匿名浏览记录
        checks: 匿名检查项进度

    Returns:
        MergeResult: 每条记录的结果，以及整批是否全部成功
    """
    now = now or datetime.now(UTC)
    views = views or []
    checks = checks or []

    if snapshot_token and crud_receipt.get_by_token(db, user_id=user_id, snapshot_token=snapshot_token):
        logger.info(f"ProgressMerge: 用户 {user_id} 的快照 {snapshot_token[:12]} 已合并过，跳过")
        return MergeResult(success=True, already_applied=True)

    outcomes = []
    for record in records:
        try:
            merged = crud_progress.add_completions(
                db,
                user_id=user_id,
                content_id=record.content_id,
                content_kind=record.content_kind,
                count=record.completion_count,
                now=now
            )
            outcomes.append(MergeOutcome(
                content_id=record.content_id,
                success=True,
                completion_count=merged.completion_count
            ))
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"ProgressMerge: 合并用户 {user_id} 的记录 {record.content_id} 失败: {e}")
            outcomes.append(MergeOutcome(content_id=record.content_id, success=False, error=str(e)))

    for view in views:
        try:
            merged = crud_progress.merge_views(
                db,
                user_id=user_id,
                hack_id=view.hack_id,
                view_count=view.view_count,
                last_viewed_at=view.last_viewed_at
            )
            outcomes.append(MergeOutcome(
                content_id=view.hack_id,
                part="view",
                success=True,
                completion_count=merged.completion_count
            ))
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"ProgressMerge: 合并用户 {user_id} 对 {view.hack_id} 的浏览记录失败: {e}")
            outcomes.append(MergeOutcome(content_id=view.hack_id, part="view", success=False, error=str(e)))

    for check in checks:
        try:
            crud_hack_check.add_checks(
                db,
                user_id=user_id,
                hack_id=check.hack_id,
                check_ids=check.completed_check_ids,
                now=now
            )
            outcomes.append(MergeOutcome(content_id=check.hack_id, part="check", success=True))
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"ProgressMerge: 合并用户 {user_id} 在 {check.hack_id} 上的检查项失败: {e}")
            outcomes.append(MergeOutcome(content_id=check.hack_id, part="check", success=False, error=str(e)))

    success = all(outcome.success for outcome in outcomes)
    if success and snapshot_token:
        crud_receipt.create(db, obj_in=MigrationReceiptCreate(
            user_id=user_id,
            snapshot_token=snapshot_token,
            record_count=len(records)
        ))

    logger.info(
        f"ProgressMerge: 用户 {user_id} 合并 {len(records)} 条完成记录、{len(views)} 条浏览记录、"
        f"{len(checks)} 组检查项，成功 {sum(1 for o in outcomes if o.success)} 条"
    )
    return MergeResult(success=success, outcomes=outcomes)
