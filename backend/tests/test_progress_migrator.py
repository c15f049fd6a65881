"""
匿名进度迁移状态机测试

覆盖 idle -> migrating -> complete / failed 的转换、失败后保留本地数据并重试、
同一会话只迁移一次，以及登出后重新登录的行为。
"""
import asyncio
from unittest.mock import AsyncMock

import pytest

from nrghax.crud import progress, user_hack_check
from nrghax.schemas.progress import ContentKind, MergeOutcome, MergeResult
from nrghax.services.anonymous_progress_store import AnonymousProgressStore
from nrghax.services.auth_state import AuthStateChannel, AuthTransition
from nrghax.services.progress_migrator import (
    MigrationSession,
    MigrationSessionRegistry,
    MigrationState,
    ProgressMigrator,
)
from tests.fakes import UnavailableRedis


def _fill_store(store_factory, visitor_id="visitor-1"):
    """访客完成 A 两次、B 一次"""
    store = store_factory(visitor_id)
    store.record_completion("A", ContentKind.HACK)
    store.record_completion("A", ContentKind.HACK)
    store.record_completion("B", ContentKind.HACK)
    return store


class TestAuthStateChannel:
    @pytest.mark.asyncio
    async def test_notifies_once_per_change(self):
        channel = AuthStateChannel()
        seen = []

        async def listener(transition: AuthTransition):
            seen.append(transition)

        channel.subscribe(listener)
        await channel.publish("user-1")
        await channel.publish("user-1")
        await channel.publish(None)

        assert seen == [AuthTransition(None, "user-1"), AuthTransition("user-1", None)]
        assert seen[0].is_sign_in and seen[1].is_sign_out

    @pytest.mark.asyncio
    async def test_unsubscribe_and_listener_errors(self):
        channel = AuthStateChannel()
        calls = []

        async def broken(transition):
            raise RuntimeError("boom")

        async def listener(transition):
            calls.append(transition.current)

        channel.subscribe(broken)
        unsubscribe = channel.subscribe(listener)
        await channel.publish("user-1")
        unsubscribe()
        await channel.publish("user-2")

        assert calls == ["user-1"]
        assert channel.current == "user-2"


class TestProgressMigrator:
    @pytest.mark.asyncio
    async def test_sign_in_migrates_and_clears(self, db, migration_registry, store_factory):
        store = _fill_store(store_factory)
        session = migration_registry.get_or_create("visitor-1")

        await session.auth.publish("user-1")

        assert session.state == MigrationState.COMPLETE
        assert session.attempts == 1
        assert store.snapshot() == []
        a = progress.get_by_user_content(db, user_id="user-1", content_id="A")
        b = progress.get_by_user_content(db, user_id="user-1", content_id="B")
        assert (a.completion_count, b.completion_count) == (2, 1)
        assert a.completed_at is not None and b.completed_at is not None

    @pytest.mark.asyncio
    async def test_existing_user_counts_are_added(self, db, migration_registry, store_factory):
        progress.add_completions(db, user_id="user-1", content_id="A", count=3)
        _fill_store(store_factory)
        session = migration_registry.get_or_create("visitor-1")

        await session.auth.publish("user-1")

        db.expire_all()
        assert progress.get_by_user_content(db, user_id="user-1", content_id="A").completion_count == 5

    @pytest.mark.asyncio
    async def test_empty_store_completes_without_merge(self, store_factory):
        merge = AsyncMock()
        migrator = ProgressMigrator(store_factory, merge, debounce_seconds=0)
        session = MigrationSession(visitor_id="visitor-1", user_id="user-1")

        assert await migrator.run(session) == MigrationState.COMPLETE
        merge.assert_not_called()
        assert session.attempts == 0

    @pytest.mark.asyncio
    async def test_failed_merge_preserves_local_data_and_retries(self, store_factory):
        store = _fill_store(store_factory)
        merge = AsyncMock(side_effect=[
            ConnectionError("backend unreachable"),
            MergeResult(success=True, outcomes=[]),
        ])
        registry = MigrationSessionRegistry(ProgressMigrator(store_factory, merge, debounce_seconds=0))
        session = registry.get_or_create("visitor-1")

        await session.auth.publish("user-1")

        assert session.state == MigrationState.FAILED
        assert "backend unreachable" in session.last_error
        assert sorted((r.content_id, r.completion_count) for r in store.snapshot()) == [("A", 2), ("B", 1)]

        # 登出后会话被移除，再次登录时新会话重试
        await session.auth.publish(None)
        assert registry.get("visitor-1") is None
        session = registry.get_or_create("visitor-1")
        await session.auth.publish("user-1")

        assert session.state == MigrationState.COMPLETE
        assert session.last_error is None
        assert merge.await_count == 2
        assert store.snapshot() == []

    @pytest.mark.asyncio
    async def test_partial_failure_is_treated_as_failed(self, store_factory):
        store = _fill_store(store_factory)
        merge = AsyncMock(return_value=MergeResult(success=False, outcomes=[
            MergeOutcome(content_id="A", success=True, completion_count=2),
            MergeOutcome(content_id="B", success=False, error="write failed"),
        ]))
        migrator = ProgressMigrator(store_factory, merge, debounce_seconds=0)
        session = MigrationSession(visitor_id="visitor-1", user_id="user-1")

        assert await migrator.run(session) == MigrationState.FAILED
        assert "B" in session.last_error
        assert len(store.snapshot()) == 2

    @pytest.mark.asyncio
    async def test_unreadable_store_fails_instead_of_completing(self):
        merge = AsyncMock()
        migrator = ProgressMigrator(lambda visitor_id: AnonymousProgressStore(UnavailableRedis(), visitor_id), merge,
                                    debounce_seconds=0)
        session = MigrationSession(visitor_id="visitor-1", user_id="user-1")

        assert await migrator.run(session) == MigrationState.FAILED
        merge.assert_not_called()

    @pytest.mark.asyncio
    async def test_completed_session_does_not_migrate_again(self, store_factory):
        merge = AsyncMock(return_value=MergeResult(success=True, outcomes=[]))
        migrator = ProgressMigrator(store_factory, merge, debounce_seconds=0)
        session = MigrationSession(visitor_id="visitor-1", user_id="user-1")

        _fill_store(store_factory)
        await migrator.run(session)
        _fill_store(store_factory)
        await migrator.run(session)

        assert merge.await_count == 1
        assert session.state == MigrationState.COMPLETE

    @pytest.mark.asyncio
    async def test_concurrent_triggers_merge_once(self, store_factory):
        """迁移进行中的并发触发不会重复提交"""
        release = asyncio.Event()

        async def slow_merge(user_id, snapshot, snapshot_token):
            await release.wait()
            return MergeResult(success=True, outcomes=[])

        merge = AsyncMock(side_effect=slow_merge)
        migrator = ProgressMigrator(store_factory, merge, debounce_seconds=0)
        session = MigrationSession(visitor_id="visitor-1", user_id="user-1")
        _fill_store(store_factory)

        first = asyncio.create_task(migrator.run(session))
        await asyncio.sleep(0)
        assert session.state == MigrationState.MIGRATING
        assert await migrator.run(session) == MigrationState.MIGRATING

        release.set()
        assert await first == MigrationState.COMPLETE
        assert merge.await_count == 1

    @pytest.mark.asyncio
    async def test_no_user_no_migration(self, store_factory):
        merge = AsyncMock()
        migrator = ProgressMigrator(store_factory, merge, debounce_seconds=0)
        _fill_store(store_factory)

        assert await migrator.run(MigrationSession(visitor_id="visitor-1")) == MigrationState.IDLE
        merge.assert_not_called()

    @pytest.mark.asyncio
    async def test_notifier_receives_refresh(self, store_factory):
        notifier = AsyncMock()
        merge = AsyncMock(return_value=MergeResult(success=True, outcomes=[]))
        migrator = ProgressMigrator(store_factory, merge, notifier=notifier, debounce_seconds=0)
        _fill_store(store_factory)

        await migrator.run(MigrationSession(visitor_id="visitor-1", user_id="user-1"))

        notifier.assert_awaited_once_with("user-1", {
            "type": "progress_migrated",
            "record_count": 2,
            "already_applied": False
        })

    @pytest.mark.asyncio
    async def test_notifier_failure_does_not_fail_migration(self, store_factory):
        notifier = AsyncMock(side_effect=ConnectionError("redis down"))
        merge = AsyncMock(return_value=MergeResult(success=True, outcomes=[]))
        migrator = ProgressMigrator(store_factory, merge, notifier=notifier, debounce_seconds=0)
        _fill_store(store_factory)

        session = MigrationSession(visitor_id="visitor-1", user_id="user-1")
        assert await migrator.run(session) == MigrationState.COMPLETE

    @pytest.mark.asyncio
    async def test_sign_out_resets_session(self, migration_registry, store_factory):
        _fill_store(store_factory)
        session = migration_registry.get_or_create("visitor-1")
        await session.auth.publish("user-1")
        assert session.state == MigrationState.COMPLETE

        await session.auth.publish(None)

        assert session.state == MigrationState.IDLE
        assert session.user_id is None
        assert session.attempts == 0
        assert migration_registry.get("visitor-1") is None


def test_registry_reuses_and_discards_sessions(migration_registry):
    session = migration_registry.get_or_create("visitor-1")
    assert migration_registry.get_or_create("visitor-1") is session
    assert migration_registry.get("visitor-2") is None

    migration_registry.discard("visitor-1")
    assert migration_registry.get("visitor-1") is None


def _held_merge(calls, release: asyncio.Event, fail_first: bool = False):
    """第一次合并等待 release 后才返回，其余立即返回"""

    async def merge(user_id, snapshot, snapshot_token):
        calls.append((user_id, sorted(record.content_id for record in snapshot.records)))
        if len(calls) == 1:
            await release.wait()
            if fail_first:
                raise ConnectionError("backend unreachable")
        return MergeResult(success=True, outcomes=[])

    return merge


class TestSessionLifecycle:
    @pytest.mark.asyncio
    async def test_sign_out_during_merge_then_other_user_signs_in(self, store_factory):
        calls, release = [], asyncio.Event()
        registry = MigrationSessionRegistry(
            ProgressMigrator(store_factory, _held_merge(calls, release), debounce_seconds=0)
        )
        store = store_factory("visitor-1")
        store.record_completion("A", ContentKind.HACK)

        session = registry.get_or_create("visitor-1")
        first = asyncio.create_task(session.auth.publish("user-1"))
        await asyncio.sleep(0)
        assert session.state == MigrationState.MIGRATING

        await session.auth.publish(None)
        # 合并尚未结束，会话仍保留
        assert registry.get("visitor-1") is session

        release.set()
        await first
        assert session.state == MigrationState.IDLE
        assert session.user_id is None
        assert registry.get("visitor-1") is None

        store.record_completion("B", ContentKind.HACK)
        next_session = registry.get_or_create("visitor-1")
        await next_session.auth.publish("user-2")

        assert calls == [("user-1", ["A"]), ("user-2", ["B"])]
        assert next_session.state == MigrationState.COMPLETE
        assert store.snapshot() == []

    @pytest.mark.asyncio
    async def test_sign_in_during_failed_merge_migrates_for_new_user(self, store_factory):
        calls, release = [], asyncio.Event()
        migrator = ProgressMigrator(store_factory, _held_merge(calls, release, fail_first=True), debounce_seconds=0)
        session = MigrationSession(visitor_id="visitor-1")
        migrator.attach(session)
        store = store_factory("visitor-1")
        store.record_completion("A", ContentKind.HACK)

        first = asyncio.create_task(session.auth.publish("user-1"))
        await asyncio.sleep(0)
        await session.auth.publish(None)
        # 合并进行中的登录先挂起
        await session.auth.publish("user-2")
        assert session.state == MigrationState.MIGRATING

        release.set()
        await first

        assert calls == [("user-1", ["A"]), ("user-2", ["A"])]
        assert session.user_id == "user-2"
        assert session.state == MigrationState.COMPLETE
        assert session.attempts == 1
        assert store.snapshot() == []

    @pytest.mark.asyncio
    async def test_switching_user_does_not_migrate(self, store_factory):
        store = _fill_store(store_factory)
        merge = AsyncMock(side_effect=ConnectionError("backend unreachable"))
        registry = MigrationSessionRegistry(ProgressMigrator(store_factory, merge, debounce_seconds=0))
        session = registry.get_or_create("visitor-1")

        await session.auth.publish("alice")
        assert session.state == MigrationState.FAILED

        merge.side_effect = None
        merge.return_value = MergeResult(success=True, outcomes=[])
        await session.auth.publish("bob")

        assert [call.args[0] for call in merge.await_args_list] == ["alice"]
        assert session.user_id == "bob"
        assert session.state == MigrationState.IDLE
        assert session.attempts == 0
        assert len(store.snapshot()) == 2

        # 本地进度留到下一次真正的登录
        await session.auth.publish(None)
        session = registry.get_or_create("visitor-1")
        await session.auth.publish("bob")

        assert [call.args[0] for call in merge.await_args_list] == ["alice", "bob"]
        assert session.state == MigrationState.COMPLETE

    @pytest.mark.asyncio
    async def test_switching_user_during_merge(self, store_factory):
        calls, release = [], asyncio.Event()
        registry = MigrationSessionRegistry(
            ProgressMigrator(store_factory, _held_merge(calls, release, fail_first=True), debounce_seconds=0)
        )
        _fill_store(store_factory)
        session = registry.get_or_create("visitor-1")

        first = asyncio.create_task(session.auth.publish("alice"))
        await asyncio.sleep(0)
        await session.auth.publish("bob")
        release.set()
        await first

        assert calls == [("alice", ["A", "B"])]
        assert session.user_id == "bob"
        assert session.state == MigrationState.IDLE
        assert registry.get("visitor-1") is session

    @pytest.mark.asyncio
    async def test_registry_shrinks_after_sign_out(self, migration_registry, store_factory):
        for index in range(5):
            visitor_id = f"visitor-{index}"
            _fill_store(store_factory, visitor_id)
            session = migration_registry.get_or_create(visitor_id)
            await session.auth.publish(f"user-{index}")
        assert len(migration_registry) == 5

        for index in range(5):
            await migration_registry.get(f"visitor-{index}").auth.publish(None)

        assert len(migration_registry) == 0


@pytest.mark.asyncio
async def test_sign_in_migrates_views_and_checks(db, migration_registry, store_factory):
    store = store_factory("visitor-1")
    store.record_view("breathing")
    store.record_view("breathing")
    store.set_check("breathing", "check-1")
    session = migration_registry.get_or_create("visitor-1")

    await session.auth.publish("user-1")

    assert session.state == MigrationState.COMPLETE
    record = progress.get_by_user_content(db, user_id="user-1", content_id="breathing")
    assert (record.view_count, record.completion_count) == (2, 0)
    assert user_hack_check.get_completed_ids(db, user_id="user-1") == {"breathing": ["check-1"]}
    assert store.export().is_empty


def test_auth_transition_between_users_is_neither_sign_in_nor_out():
    transition = AuthTransition("alice", "bob")
    assert not transition.is_sign_in
    assert not transition.is_sign_out
