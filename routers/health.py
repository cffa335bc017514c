"""
Health endpoints: /health, /health/live, /health/ready

Readiness checks the database and, when the change feed runs on Redis,
the Redis server.
"""
from typing import Optional

from fastapi import APIRouter, Response, status
from redis.asyncio import Redis
from sqlalchemy import text

import db
from dependencies import SettingsDepends
from settings import Settings

router = APIRouter(prefix="/health", tags=["Health"])


async def _database_problem() -> Optional[str]:
    if db.SessionLocal is None:
        return "database: not initialized"
    try:
        async with db.SessionLocal() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        return f"database: {e!s}"
    return None


async def _redis_problem(settings: Settings) -> Optional[str]:
    if not settings.uses_redis:
        return None
    client = Redis.from_url(settings.redis.url, decode_responses=True)
    try:
        await client.ping()
    except Exception as e:
        return f"redis: {e!s}"
    finally:
        await client.aclose()
    return None


@router.get("")
async def health():
    return {"status": "ok"}


@router.get("/live")
async def live():
    """Процесс жив, зависимости не проверяются"""
    return {"status": "ok"}


@router.get("/ready")
async def ready(settings: SettingsDepends, response: Response):
    """Готовность принимать запросы; 503 если БД или Redis недоступны"""
    problems = [p for p in (await _database_problem(), await _redis_problem(settings)) if p]
    if problems:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "unhealthy", "detail": "; ".join(problems)}
    return {"status": "ok"}
