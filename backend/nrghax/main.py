import asyncio
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from nrghax.api.api import api_router
from nrghax.api import socket_router
from nrghax.config.dependency_injection import create_migration_registry
from nrghax.core.config import settings
from nrghax.core.exceptions import ProgressServiceError
from nrghax.core.redis_subscriber import redis_subscriber
from nrghax.schemas.response import StandardResponse

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    在应用生命周期里启动 redis_subscriber 作为后台任务，并在关闭时取消它。
    保证订阅器和 ws_manager 在同一进程内。
    """
    app.state.migration_registry = create_migration_registry()
    if settings.ENABLE_WS_SUBSCRIBER:
        logger.info("启动 Redis 订阅器任务")
        app.state.redis_task = asyncio.create_task(redis_subscriber())

    try:
        yield
    finally:
        # 关闭时取消任务并等待其结束
        task = getattr(app.state, "redis_task", None)
        if task:
            logger.info("取消 Redis 订阅器任务")
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                logger.info("Redis 订阅器已取消")

app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan
)

# Set all CORS enabled origins
if settings.BACKEND_CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(origin) for origin in settings.BACKEND_CORS_ORIGINS],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(ProgressServiceError)
async def progress_service_error_handler(request: Request, exc: ProgressServiceError):
    logger.warning(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    body = StandardResponse.error(exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


app.include_router(api_router, prefix=settings.API_V1_STR)
app.include_router(socket_router.ws_router, prefix="/ws")


if __name__ == '__main__':
    uvicorn.run(
        'nrghax.main:app',
        host='0.0.0.0',
        port=settings.BACKEND_PORT,
        reload=True
    )
