from fastapi import APIRouter
from nrghax.api.endpoints import progress, prerequisites, webhook

api_router = APIRouter()
api_router.include_router(progress.router, prefix="/progress", tags=["progress"])
api_router.include_router(prerequisites.router, prefix="/prerequisites", tags=["prerequisites"])
api_router.include_router(webhook.router, prefix="/webhook", tags=["webhook"])
