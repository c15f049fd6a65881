"""
身份状态通道

宿主应用（登录回调、会话中间件）向通道发布当前用户ID或 None，
订阅者在值发生变化时被通知一次。
"""
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthTransition:
    previous: Optional[str]
    current: Optional[str]

    @property
    def is_sign_in(self) -> bool:
        return self.previous is None and self.current is not None

    @property
    def is_sign_out(self) -> bool:
        return self.previous is not None and self.current is None


AuthListener = Callable[[AuthTransition], Awaitable[None]]


class AuthStateChannel:
    """
    身份状态的观察者接口。

    每次值发生变化时，每个订阅者恰好收到一次 AuthTransition；
    重复发布相同的值不会触发通知。
    """

    def __init__(self, initial: Optional[str] = None):
        self._current = initial
        self._listeners: List[AuthListener] = []

    @property
    def current(self) -> Optional[str]:
        return self._current

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        """注册订阅者，返回取消订阅的函数"""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def publish(self, user_id: Optional[str]) -> None:
        if user_id == self._current:
            return
        transition = AuthTransition(previous=self._current, current=user_id)
        self._current = user_id
        for listener in list(self._listeners):
            try:
                await listener(transition)
            except Exception as e:
                logger.error(f"AuthStateChannel: 订阅者处理 {transition} 时出错: {e}", exc_info=True)
