"""Health check endpoint.

Learn: Reports each dependency separately so a load balancer can tell
"process up, Postgres down" apart from "process down". Redis is
optional (it only backs rate limiting), but an unreachable Redis still
marks the service degraded. The realtime registry is in-process, so its
counts are always available.
"""

from fastapi import APIRouter, Request
from sqlalchemy import text

from taskhub import __version__
from taskhub.db.engine import engine

router = APIRouter()


async def _check_postgres() -> str:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        return f"error: {e}"
    return "ok"


async def _check_redis() -> str:
    from taskhub.redis_client import get_redis

    try:
        await get_redis().ping()
    except RuntimeError:
        return "error: not connected"
    except Exception as e:
        return f"error: {e}"
    return "ok"


@router.get("/health")
async def health_check(request: Request):
    """Server status, dependency checks and live connection counts."""
    checks = {"postgres": await _check_postgres(), "redis": await _check_redis()}
    healthy = all(v == "ok" for v in checks.values())
    return {
        "status": "healthy" if healthy else "degraded",
        "server": "ok",
        "version": __version__,
        **checks,
        "realtime": request.app.state.registry.stats(),
    }
