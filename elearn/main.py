"""
E-learning backend - application entry point

Run with:
    uvicorn elearn.main:app --reload
"""

import logging
import sys

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException

from elearn import __version__
from elearn.core import config
from elearn.core.database import db_manager, apply_validators, create_indexes
from elearn.core.responses import (
    http_exception_handler, validation_exception_handler, unhandled_exception_handler
)
from elearn.admin.admin_router import router as admin_router
from elearn.admin.admin_service import seed_admin
from elearn.cart.cart_router import router as cart_router
from elearn.courses.course_router import router as course_router
from elearn.messaging.messaging_router import router as messaging_router
from elearn.payments.webhook_router import router as webhook_router
from elearn.progress.progress_router import router as progress_router
from elearn.students.student_router import router as student_router
from elearn.system.health_router import router as health_router
from elearn.tutors.tutor_router import router as tutor_router
from elearn.uploads.upload_router import router as upload_router

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger(__name__)

app = FastAPI(title="E-Learning API", version=__version__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)


@app.on_event("startup")
async def startup_event():
    db_manager.connect()
    db = db_manager.get_database()
    await apply_validators(db)
    await create_indexes(db)
    await seed_admin(db)
    logger.info("E-learning API started")


@app.on_event("shutdown")
async def shutdown_event():
    db_manager.disconnect()


# ==================== ROUTER REGISTRATION ====================
API_PREFIX = "/api/v1"

app.include_router(student_router, prefix=API_PREFIX)
app.include_router(admin_router, prefix=API_PREFIX)
app.include_router(tutor_router, prefix=API_PREFIX)
app.include_router(course_router, prefix=API_PREFIX)
app.include_router(cart_router, prefix=API_PREFIX)
app.include_router(webhook_router, prefix=API_PREFIX)
app.include_router(upload_router, prefix=API_PREFIX)
app.include_router(progress_router, prefix=API_PREFIX)
app.include_router(messaging_router, prefix=API_PREFIX)
app.include_router(health_router, prefix=API_PREFIX)
# ============================================================
