from fastapi import APIRouter, Depends

from live_poll.core.config import settings
from live_poll.core.time import utc_now
from live_poll.dependencies import Runtime, get_runtime

router = APIRouter()


@router.get("/")
async def root():
    return {"message": "Live Poll server is running"}


@router.get("/health")
async def health(runtime: Runtime = Depends(get_runtime)):
    return {
        "status": "OK",
        "environment": settings.environment,
        "timestamp": utc_now().isoformat(),
        "live_sessions": len(runtime.sessions),
        "connections": len(runtime.connections),
    }
