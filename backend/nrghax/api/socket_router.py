from fastapi import APIRouter
from nrghax.api.endpoints import websocket

ws_router = APIRouter()
ws_router.include_router(websocket.router, tags=["ws"])
