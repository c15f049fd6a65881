import logging
from celery import Celery
from nrghax.core.config import settings

# 配置日志记录器
logger = logging.getLogger(__name__)

# 创建 Celery 应用实例
celery_app = Celery(
    "nrghax_progress",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=[
        "nrghax.tasks.db_tasks",
    ]
)

# Celery 配置
celery_app.conf.update(
    # 任务序列化格式
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    enable_utc=True,

    # 队列配置
    task_routes={
        'nrghax.tasks.db_tasks.record_completion_task': {'queue': 'db_writer_queue'},
    },
    task_default_queue='default',
)
