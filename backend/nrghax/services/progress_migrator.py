"""
匿名进度迁移

状态机：

    idle -> migrating -> complete   （终态）
    idle -> migrating -> failed     （下次登录时重试）

只有会话身份通道上 None -> 用户ID 的变化（登录）会触发迁移。合并成功后才清除本地数据，
合并失败时保留本地数据并记录日志，不向调用方抛出异常。

登出或直接切换到另一个用户都会结束当前会话。合并进行中结束的会话不会取消合并，
而是在合并结束后重置为新会话；切换用户不会把本地进度迁移给新用户，
本地进度留到下一次真正的登录时再迁移。
"""
import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional

from nrghax.schemas.progress import AnonymousSnapshot, MergeResult
from nrghax.services.anonymous_progress_store import AnonymousProgressStore
from nrghax.services.auth_state import AuthStateChannel, AuthTransition
from nrghax.services.progress_merge import compute_snapshot_token

logger = logging.getLogger(__name__)

# (user_id, snapshot, snapshot_token) -> MergeResult
MergeFunction = Callable[[str, AnonymousSnapshot, Optional[str]], Awaitable[MergeResult]]
# (user_id, payload) -> None
RefreshNotifier = Callable[[str, dict], Awaitable[None]]


class MigrationState(str, Enum):
    IDLE = "idle"
    MIGRATING = "migrating"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass
class MigrationSession:
    """
    一个浏览器会话的迁移上下文。

    Attributes:
        visitor_id: 匿名访客ID
        auth: 该会话的身份通道
        user_id: 当前已登录的用户ID
        state: 迁移状态
        attempts: 已尝试的合并次数
        last_error: 最近一次失败的原因
        ended_during_merge: 合并进行中会话已被登出或切换
        sign_in_pending: 合并进行中又发生了一次登录，合并结束后需要为新会话迁移
        on_release: 会话彻底结束（已登出且没有进行中的合并）时的回调
    """
    visitor_id: str
    auth: AuthStateChannel = field(default_factory=AuthStateChannel)
    user_id: Optional[str] = None
    state: MigrationState = MigrationState.IDLE
    attempts: int = 0
    last_error: Optional[str] = None
    ended_during_merge: bool = False
    sign_in_pending: bool = False
    on_release: Optional[Callable[["MigrationSession"], None]] = field(default=None, repr=False, compare=False)

    def reset(self, user_id: Optional[str] = None):
        self.user_id = user_id
        self.state = MigrationState.IDLE
        self.attempts = 0
        self.last_error = None
        self.ended_during_merge = False
        self.sign_in_pending = False

    def release(self):
        if self.on_release:
            self.on_release(self)


class ProgressMigrator:
    def __init__(
        self,
        store_factory: Callable[[str], AnonymousProgressStore],
        merge: MergeFunction,
        notifier: Optional[RefreshNotifier] = None,
        debounce_seconds: float = 1.0
    ):
        self.store_factory = store_factory
        self.merge = merge
        self.notifier = notifier
        self.debounce_seconds = debounce_seconds

    def attach(self, session: MigrationSession) -> Callable[[], None]:
        """让迁移器监听会话的身份通道，返回取消监听的函数"""

        async def on_transition(transition: AuthTransition):
            if transition.is_sign_in:
                session.user_id = transition.current
                if session.ended_during_merge:
                    session.sign_in_pending = True
                await self.run(session)
            elif transition.is_sign_out:
                self.end_session(session)
                if session.state != MigrationState.MIGRATING:
                    session.release()
            else:
                # 用户A -> 用户B：结束旧会话，新会话不触发迁移
                logger.info(
                    f"ProgressMigrator: 访客 {session.visitor_id} 从用户 {transition.previous} "
                    f"切换到 {transition.current}，本地进度留待下次登录迁移"
                )
                self.end_session(session)
                session.user_id = transition.current

        return session.auth.subscribe(on_transition)

    def end_session(self, session: MigrationSession):
        """结束会话：进行中的合并不取消，等它结束后再重置；其余情况立即重置"""
        if session.state == MigrationState.MIGRATING:
            logger.info(f"ProgressMigrator: 访客 {session.visitor_id} 的会话在迁移过程中结束，等待合并自然结束")
            session.user_id = None
            session.ended_during_merge = True
            session.sign_in_pending = False
            return
        session.reset()

    async def _settle(self, session: MigrationSession, state: MigrationState) -> MigrationState:
        """合并结束后落定状态；会话在合并期间已结束时按新会话处理"""
        session.state = state
        if not session.ended_during_merge:
            return state

        user_id, sign_in_pending = session.user_id, session.sign_in_pending
        session.reset(user_id)
        logger.info(f"ProgressMigrator: 访客 {session.visitor_id} 的旧会话合并结束（{state.value}），已重置为新会话")
        if sign_in_pending:
            return await self.run(session)
        if user_id is None:
            session.release()
        return session.state

    async def run(self, session: MigrationSession) -> MigrationState:
        """
        尝试执行一次迁移。

        满足以下条件才会调用合并：会话有用户ID、本会话尚未完成迁移、
        没有正在进行的迁移、本地存储非空。

        Returns:
            MigrationState: 本次尝试后的状态
        """
        if session.user_id is None:
            return session.state
        if session.state in (MigrationState.COMPLETE, MigrationState.MIGRATING):
            return session.state

        user_id = session.user_id
        store = self.store_factory(session.visitor_id)
        session.state = MigrationState.MIGRATING
        try:
            # 等待身份稳定后再读取
            if self.debounce_seconds > 0:
                await asyncio.sleep(self.debounce_seconds)

            snapshot = store.export(strict=True).without_empty()
            if snapshot.is_empty:
                logger.info(f"ProgressMigrator: 访客 {session.visitor_id} 没有需要迁移的匿名进度")
                return await self._settle(session, MigrationState.COMPLETE)

            session.attempts += 1
            token = compute_snapshot_token(snapshot.records, snapshot.views, snapshot.checks)
            result = await self.merge(user_id, snapshot, token)
            if not result.success:
                failed = [outcome.content_id for outcome in result.outcomes if not outcome.success]
                raise RuntimeError(f"partial merge failure for {failed}")
        except Exception as e:
            session.last_error = str(e)
            logger.error(
                f"ProgressMigrator: 访客 {session.visitor_id} -> 用户 {user_id} 迁移失败，保留本地进度: {e}",
                exc_info=True
            )
            return await self._settle(session, MigrationState.FAILED)

        if not store.clear():
            logger.warning(f"ProgressMigrator: 访客 {session.visitor_id} 的本地进度清除失败")
        session.last_error = None
        logger.info(
            f"ProgressMigrator: 访客 {session.visitor_id} 的 {len(snapshot.records)} 条完成记录、"
            f"{len(snapshot.views)} 条浏览记录和 {len(snapshot.checks)} 组检查项已迁移到用户 {user_id}"
        )

        if self.notifier:
            try:
                await self.notifier(user_id, {
                    "type": "progress_migrated",
                    "record_count": len(snapshot.records),
                    "already_applied": result.already_applied
                })
            except Exception as e:
                logger.error(f"ProgressMigrator: 发送刷新通知失败: {e}")
        return await self._settle(session, MigrationState.COMPLETE)


class MigrationSessionRegistry:
    """
    按访客ID保存迁移会话，生命周期与应用实例一致。

    会话登出后（进行中的合并结束后）从注册表中移除，下次登录会创建新会话。
    """

    def __init__(self, migrator: ProgressMigrator):
        self.migrator = migrator
        self._sessions: Dict[str, MigrationSession] = {}
        self._detach: Dict[str, Callable[[], None]] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, visitor_id: str) -> Optional[MigrationSession]:
        return self._sessions.get(visitor_id)

    def get_or_create(self, visitor_id: str) -> MigrationSession:
        session = self._sessions.get(visitor_id)
        if session is None:
            session = MigrationSession(visitor_id=visitor_id, on_release=self._release)
            self._sessions[visitor_id] = session
            self._detach[visitor_id] = self.migrator.attach(session)
        return session

    def _release(self, session: MigrationSession):
        # 同一访客可能已经创建了新会话
        if self._sessions.get(session.visitor_id) is session:
            self.discard(session.visitor_id)

    def discard(self, visitor_id: str):
        detach = self._detach.pop(visitor_id, None)
        if detach:
            detach()
        self._sessions.pop(visitor_id, None)
