import logging
from datetime import datetime

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from elearn import __version__
from elearn.core.database import get_db
from elearn.core.responses import success_response, failure_response

logger = logging.getLogger(__name__)

router = APIRouter(tags=["System"])


@router.get("/health")
async def health(db: AsyncIOMotorDatabase = Depends(get_db)):
    """
    Liveness plus a database round trip. Answers 503 when MongoDB is unreachable.
    """
    record = {"timestamp": datetime.utcnow().isoformat(), "version": __version__, "status": {}}

    try:
        start = datetime.utcnow()
        await db.command("ping")
        record["status"]["database"] = "UP"
        record["latency_ms"] = (datetime.utcnow() - start).total_seconds() * 1000
    except PyMongoError as e:
        logger.error("Health check database ping failed: %s", e)
        record["status"]["database"] = "DOWN"
        return JSONResponse(status_code=503, content=failure_response("Service degraded", 503, record))

    return success_response("Service healthy", 200, record)
