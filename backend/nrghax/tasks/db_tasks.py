import logging

from nrghax.celery_app import celery_app
from nrghax.db.database import SessionLocal
from nrghax.crud.crud_progress import progress as crud_progress
from nrghax.schemas.progress import ContentKind

logger = logging.getLogger(__name__)


@celery_app.task(name='nrghax.tasks.db_tasks.record_completion_task')
def record_completion_task(user_id: str, content_id: str, content_kind: str = ContentKind.HACK.value) -> int:
    """一个专门用于记录已登录用户完成次数的轻量级任务"""
    db = SessionLocal()
    try:
        record = crud_progress.add_completions(
            db,
            user_id=user_id,
            content_id=content_id,
            content_kind=ContentKind(content_kind),
            count=1
        )
        logger.info(f"DB Task: 用户 {user_id} 完成 {content_kind} {content_id}，累计 {record.completion_count} 次")
        return record.completion_count
    except Exception as e:
        logger.error(f"DB Task: 记录用户 {user_id} 的完成记录失败: {e}")
        raise
    finally:
        db.close()
