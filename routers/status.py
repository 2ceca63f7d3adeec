import logging
from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.concurrency import run_in_threadpool
from pymongo.errors import PyMongoError

from config import settings
from database import db_ping

logger = logging.getLogger("STATUS")

router = APIRouter(prefix="/status", tags=["System Status"])


@router.get("")
async def get_system_status():
    """
    Live status of the backend and its database.
    """
    # if this handler runs, the backend is up
    backend_status = "Operational"

    try:
        await run_in_threadpool(db_ping)
        db_status = "Connected"
    except PyMongoError as e:
        logger.error(f"Database ping failed: {e}")
        db_status = "Unreachable"
        backend_status = "Degraded"

    return {
        "backend_service": {
            "status": backend_status,
            "database": db_status,
            "timestamp": datetime.now(timezone.utc).isoformat()
        },
        "frontend_service": {
            "url": settings.FRONTEND_URL
        }
    }
