"""
刷新通知测试：Redis 订阅消息 -> WebSocket 连接
"""
import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from nrghax.config.dependency_injection import publish_refresh
from nrghax.core.redis_subscriber import dispatch_message, redis_subscriber
from nrghax.core.websocket_manager import WebSocketManager, ws_manager


def _socket(send_side_effect=None):
    websocket = MagicMock()
    websocket.accept = AsyncMock()
    websocket.send_text = AsyncMock(side_effect=send_side_effect)
    return websocket


@pytest.mark.asyncio
async def test_manager_sends_to_every_connection_of_user():
    manager = WebSocketManager()
    first, second, other = _socket(), _socket(), _socket()
    await manager.connect("user-1", first)
    await manager.connect("user-1", second)
    await manager.connect("user-2", other)

    assert await manager.send_to_user("user-1", "hello")

    first.send_text.assert_awaited_once_with("hello")
    second.send_text.assert_awaited_once_with("hello")
    other.send_text.assert_not_awaited()


@pytest.mark.asyncio
async def test_manager_drops_broken_connections():
    manager = WebSocketManager()
    broken = _socket(send_side_effect=RuntimeError("closed"))
    await manager.connect("user-1", broken)

    assert not await manager.send_to_user("user-1", "hello")
    assert manager.connection_count("user-1") == 0
    assert not await manager.send_to_user("nobody", "hello")


@pytest.mark.asyncio
async def test_dispatch_routes_by_channel_suffix():
    payload = json.dumps({"type": "progress_migrated", "record_count": 2})
    with patch.object(ws_manager, "send_to_user", AsyncMock(return_value=True)) as send:
        delivered = await dispatch_message({"type": "pmessage", "channel": b"ws:user:user-1", "data": payload})

    assert delivered
    send.assert_awaited_once_with("user-1", payload)


@pytest.mark.asyncio
@pytest.mark.parametrize("message", [
    {"type": "psubscribe", "channel": "ws:user:*", "data": 1},
    {"type": "pmessage", "channel": "ws:user:user-1", "data": "not json"},
])
async def test_dispatch_ignores_other_messages(message):
    with patch.object(ws_manager, "send_to_user", AsyncMock()) as send:
        assert not await dispatch_message(message)
    send.assert_not_awaited()


@pytest.mark.asyncio
async def test_publish_refresh_uses_user_channel():
    redis_client = MagicMock()
    redis_client.publish = AsyncMock()
    with patch("nrghax.config.dependency_injection.get_aioredis", return_value=redis_client):
        await publish_refresh("user-1", {"type": "progress_migrated"})

    redis_client.publish.assert_awaited_once_with("ws:user:user-1", json.dumps({"type": "progress_migrated"}))


@pytest.mark.asyncio
async def test_subscriber_closes_pubsub_before_reconnecting():
    pubsub = MagicMock()
    pubsub.psubscribe = AsyncMock(side_effect=ConnectionError("redis down"))
    pubsub.aclose = AsyncMock()
    redis_client = MagicMock()
    redis_client.pubsub.return_value = pubsub

    with patch("nrghax.core.redis_subscriber.get_aioredis", return_value=redis_client), \
            patch("nrghax.core.redis_subscriber.asyncio.sleep", AsyncMock(side_effect=asyncio.CancelledError)):
        with pytest.raises(asyncio.CancelledError):
            await redis_subscriber()

    pubsub.aclose.assert_awaited_once()


def test_websocket_endpoint_accepts_keepalive(client):
    with client.websocket_connect("/ws/progress/user-1") as websocket:
        # 客户端消息只用于保活，服务端不回复
        websocket.send_text("ping")
