from fastapi import APIRouter

from postqueue.api.routes import dispatch, health, ingest, posts, queue

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(ingest.router, prefix="/ingest", tags=["trigger"])
api_router.include_router(dispatch.router, prefix="/dispatch", tags=["trigger"])
api_router.include_router(posts.router, prefix="/post", tags=["trigger"])
api_router.include_router(queue.router, prefix="/queue", tags=["admin"])
