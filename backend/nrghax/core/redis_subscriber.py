# 把 Redis 频道 ws:user:{user_id} 上的消息转发给对应用户的 WebSocket 连接
import asyncio
import json
import logging

from nrghax.config.dependency_injection import get_aioredis
from nrghax.core.websocket_manager import ws_manager

logger = logging.getLogger(__name__)

RESTART_DELAY_SECONDS = 5


async def dispatch_message(message: dict) -> bool:
    """
    处理一条 pubsub 消息，返回是否转发给了用户。
    """
    # 只处理模式消息
    if message.get("type") != "pmessage":
        return False
    channel = message["channel"]
    if isinstance(channel, bytes):
        channel = channel.decode()
    raw_data = message["data"]
    if isinstance(raw_data, bytes):
        raw_data = raw_data.decode()

    try:
        json.loads(raw_data)
    except json.JSONDecodeError:
        logger.warning(f"收到非JSON消息: {raw_data} (channel={channel})")
        return False

    user_id = channel.split(":")[-1]
    logger.debug(f"准备分发消息给用户 {user_id}: {raw_data}")
    return await ws_manager.send_to_user(user_id, raw_data)


async def _close_pubsub(pubsub):
    try:
        await pubsub.aclose()
    except Exception as e:
        logger.warning(f"关闭 Redis 订阅连接失败: {e}")


async def redis_subscriber():
    while True:
        pubsub = None
        try:
            redis = get_aioredis()
            pubsub = redis.pubsub()
            await pubsub.psubscribe("ws:user:*")
            logger.info("已订阅 ws:user:*")

            async for message in pubsub.listen():
                try:
                    await dispatch_message(message)
                except Exception as e:
                    logger.error(f"处理消息出错: {e}", exc_info=True)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.critical("Redis 订阅器崩溃，稍后重连", exc_info=True)
        finally:
            # 每次重连前释放旧连接
            if pubsub is not None:
                await _close_pubsub(pubsub)
        await asyncio.sleep(RESTART_DELAY_SECONDS)
