"""
Internal router: POST /v1/internal/matching, hit on a fixed cadence by the
scheduler inside the deployment.
"""
import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.redis_client import get_redis
from app.services.matching import run_dispatch

router = APIRouter(prefix="/v1/internal", tags=["Internal"])


@router.post("/matching", status_code=status.HTTP_204_NO_CONTENT)
async def matching(
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
):
    await run_dispatch(db, redis)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
