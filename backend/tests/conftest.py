"""
测试公共夹具

- 内存 SQLite 数据库（StaticPool，所有会话共享同一连接）
- 内存版 Redis 替身，只实现匿名进度存储用到的命令
- 覆盖了 get_db / get_store_factory / get_migration_registry 的 TestClient
"""
import os
from typing import Generator

os.environ.setdefault("WEBHOOK_SECRET", "test-secret")
os.environ.setdefault("ENABLE_WS_SUBSCRIBER", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from nrghax import models  # noqa: F401  注册全部模型
from nrghax.config.dependency_injection import (
    create_anonymous_store,
    get_db,
    get_migration_registry,
    get_store_factory,
)
from nrghax.db.base_class import Base
from nrghax.main import app
from nrghax.schemas.progress import MergeResult
from nrghax.services.progress_merge import merge_anonymous_progress
from nrghax.services.progress_migrator import MigrationSessionRegistry, ProgressMigrator
from tests.fakes import InMemoryRedis


@pytest.fixture(scope="function")
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db(session_factory) -> Generator[Session, None, None]:
    """创建测试数据库会话"""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="function")
def fake_redis() -> InMemoryRedis:
    return InMemoryRedis()


@pytest.fixture(scope="function")
def store_factory(fake_redis):
    def factory(visitor_id: str):
        return create_anonymous_store(visitor_id, redis_client=fake_redis)
    return factory


@pytest.fixture(scope="function")
def migration_registry(store_factory, session_factory) -> MigrationSessionRegistry:
    """迁移注册表：合并直接写入测试数据库，不做防抖"""

    async def merge(user_id, snapshot, snapshot_token) -> MergeResult:
        db = session_factory()
        try:
            return merge_anonymous_progress(
                db, user_id, snapshot.records,
                snapshot_token=snapshot_token,
                views=snapshot.views,
                checks=snapshot.checks
            )
        finally:
            db.close()

    migrator = ProgressMigrator(store_factory=store_factory, merge=merge, notifier=None, debounce_seconds=0)
    return MigrationSessionRegistry(migrator)


@pytest.fixture(scope="function")
def client(session_factory, store_factory, migration_registry) -> Generator[TestClient, None, None]:
    """创建测试客户端，所有外部依赖都替换为测试替身"""

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_store_factory] = lambda: store_factory
    app.dependency_overrides[get_migration_registry] = lambda: migration_registry
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
