import json
import logging
from datetime import timedelta
from typing import Optional

import redis
import redis.asyncio as aioredis
from fastapi import Request
from fastapi.concurrency import run_in_threadpool

from nrghax.core.config import settings
from nrghax.db.database import SessionLocal, get_db
from nrghax.schemas.progress import AnonymousSnapshot, MergeResult
from nrghax.services.anonymous_progress_store import AnonymousProgressStore
from nrghax.services.progress_merge import merge_anonymous_progress
from nrghax.services.progress_migrator import MigrationSessionRegistry, ProgressMigrator

logger = logging.getLogger(__name__)

_redis_client_instance = None
_aioredis_instance = None


def get_redis_client() -> redis.Redis:
    """
    获取 Redis 客户端单例实例
    """
    global _redis_client_instance
    if _redis_client_instance is None:
        _redis_client_instance = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True
        )
    return _redis_client_instance


def get_aioredis() -> aioredis.Redis:
    """
    获取异步 Redis 客户端单例实例（用于发布/订阅）
    """
    global _aioredis_instance
    if _aioredis_instance is None:
        _aioredis_instance = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True
        )
    return _aioredis_instance


def create_anonymous_store(visitor_id: str, redis_client: Optional[redis.Redis] = None) -> AnonymousProgressStore:
    """
    为指定访客创建匿名进度存储
    """
    return AnonymousProgressStore(
        redis_client=redis_client or get_redis_client(),
        visitor_id=visitor_id,
        cooldown=timedelta(minutes=settings.COMPLETION_COOLDOWN_MINUTES),
        ttl=timedelta(days=settings.ANON_PROGRESS_TTL_DAYS)
    )


async def run_merge(user_id: str, snapshot: AnonymousSnapshot, snapshot_token: Optional[str]) -> MergeResult:
    """
    在线程池中执行同步的数据库合并，避免阻塞事件循环
    """
    def _merge():
        db = SessionLocal()
        try:
            return merge_anonymous_progress(
                db, user_id, snapshot.records,
                snapshot_token=snapshot_token,
                views=snapshot.views,
                checks=snapshot.checks
            )
        finally:
            db.close()

    return await run_in_threadpool(_merge)


async def publish_refresh(user_id: str, payload: dict) -> None:
    """
    通过 Redis 频道 ws:user:{user_id} 通知该用户的 WebSocket 连接刷新
    """
    await get_aioredis().publish(f"ws:user:{user_id}", json.dumps(payload))


def create_migration_registry() -> MigrationSessionRegistry:
    """
    创建迁移会话注册表，注入所有依赖
    """
    migrator = ProgressMigrator(
        store_factory=create_anonymous_store,
        merge=run_merge,
        notifier=publish_refresh,
        debounce_seconds=settings.MIGRATION_DEBOUNCE_SECONDS
    )
    return MigrationSessionRegistry(migrator)


# --- FastAPI 依赖项 ---

def get_store_factory():
    """
    返回按访客ID创建匿名进度存储的工厂函数
    """
    return create_anonymous_store


def get_migration_registry(request: Request) -> MigrationSessionRegistry:
    """
    获取挂在应用实例上的迁移会话注册表
    """
    registry = getattr(request.app.state, "migration_registry", None)
    if registry is None:
        registry = create_migration_registry()
        request.app.state.migration_registry = registry
    return registry


__all__ = [
    "get_db",
    "get_redis_client",
    "get_aioredis",
    "create_anonymous_store",
    "get_store_factory",
    "get_migration_registry",
    "run_merge",
    "publish_refresh",
]
