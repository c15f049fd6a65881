import asyncio
import logging
from typing import Dict, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class WebSocketManager:
    """
    按用户ID管理 WebSocket 连接。同一用户可以同时打开多个标签页，
    每个连接都会收到刷新通知。
    """

    def __init__(self):
        self.active_connections: Dict[str, Set[WebSocket]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, user_id: str, websocket: WebSocket):
        await websocket.accept()
        async with self._lock:
            self.active_connections.setdefault(user_id, set()).add(websocket)

    async def disconnect(self, user_id: str, websocket: WebSocket):
        async with self._lock:
            connections = self.active_connections.get(user_id)
            if not connections:
                return
            connections.discard(websocket)
            if not connections:
                del self.active_connections[user_id]

    def connection_count(self, user_id: str) -> int:
        return len(self.active_connections.get(user_id, ()))

    async def send_to_user(self, user_id: str, message: str) -> bool:
        """
        把消息发给该用户的所有连接，发送失败的连接会被移除。

        Returns:
            bool: 是否至少有一个连接收到消息
        """
        connections = list(self.active_connections.get(user_id, ()))
        delivered = False
        for websocket in connections:
            try:
                await websocket.send_text(message)
                delivered = True
            except Exception as e:
                logger.warning(f"向用户 {user_id} 推送失败，移除连接: {e}")
                await self.disconnect(user_id, websocket)
        return delivered

ws_manager = WebSocketManager()
