# backend/nrghax/api/endpoints/websocket.py
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from nrghax.core.websocket_manager import ws_manager

router = APIRouter()

@router.websocket("/progress/{user_id}")
async def progress_websocket(websocket: WebSocket, user_id: str):
    """保持连接，迁移完成等刷新通知通过 Redis 订阅器推送"""
    await ws_manager.connect(user_id, websocket)
    try:
        while True:
            # 客户端消息只用于保活
            await websocket.receive_text()
    except WebSocketDisconnect:
        await ws_manager.disconnect(user_id, websocket)
