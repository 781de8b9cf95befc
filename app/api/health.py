"""Health check and monitoring endpoints"""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Dict, Any
import redis.asyncio as redis

from app.core.database import get_db
from app.core.config import settings
from app.utils.helpers import utcnow

router = APIRouter()

@router.get("/health")
async def health_check():
    """Basic health check"""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "timestamp": utcnow().isoformat()
    }

@router.get("/health/detailed")
async def detailed_health_check(
    db: AsyncSession = Depends(get_db)
) -> Dict[str, Any]:
    """Detailed health check with component status"""
    health_status = {
        "status": "healthy",
        "timestamp": utcnow().isoformat(),
        "components": {}
    }

    # Check database
    try:
        await db.execute(text("SELECT 1"))
        health_status["components"]["database"] = {"status": "healthy"}
    except Exception as e:
        health_status["components"]["database"] = {
            "status": "unhealthy",
            "error": str(e)
        }
        health_status["status"] = "unhealthy"

    # Check task broker; webhooks keep working without it
    health_status["components"]["broker"] = await check_broker()
    if health_status["components"]["broker"]["status"] != "healthy" and health_status["status"] == "healthy":
        health_status["status"] = "degraded"

    return health_status

async def check_broker() -> Dict[str, Any]:
    """Check Celery broker health"""
    client = redis.from_url(settings.CELERY_BROKER_URL, socket_connect_timeout=1)
    try:
        await client.ping()
        return {"status": "healthy"}
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}
    finally:
        await client.aclose()
