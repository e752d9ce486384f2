from fastapi import APIRouter, Depends, Query
from motor.motor_asyncio import AsyncIOMotorDatabase

from elearn.admin import admin_service as service
from elearn.admin import analytics
from elearn.admin.admin_schemas import AccountCreate, SetPasswordRequest, AccountLogin
from elearn.core.database import get_db
from elearn.core.permissions import ActorContext, get_current_admin
from elearn.core.responses import success_response
from elearn.courses import course_service
from elearn.courses.course_models import CourseStatus
from elearn.courses.course_schemas import CourseRejection
from elearn.utils.mail import Mailer, get_mailer

router = APIRouter(prefix="/admin", tags=["Admin"])

# ==================== ACCOUNTS ====================

@router.post("/register")
async def register_account(
    data: AccountCreate,
    admin: ActorContext = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
    mailer: Mailer = Depends(get_mailer)
):
    """
    Create an admin, tutor or staff account (role "0", "1" or "2")
    """
    user = await service.create_account(db, mailer, data.dict())
    return success_response("User created successfully", 200, {"user": user})


@router.post("/set-password")
async def set_password(data: SetPasswordRequest, db: AsyncIOMotorDatabase = Depends(get_db)):
    await service.set_password(db, data.registration_token, data.password)
    return success_response("Password updated successfully")


@router.post("/login")
async def login(data: AccountLogin, db: AsyncIOMotorDatabase = Depends(get_db)):
    result = await service.login(db, data.email, data.password)
    return success_response("Login successful", 200, result)

# ==================== PEOPLE ====================

@router.get("/tutors")
async def list_tutors(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    admin: ActorContext = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    result = await service.get_all_tutors(db, page, limit)
    return success_response("Tutors Found", 200, result)


@router.get("/tutors/{tutor_id}")
async def get_tutor(
    tutor_id: str,
    admin: ActorContext = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    tutor = await service.get_tutor_by_id(db, tutor_id)
    return success_response("Tutor found", 200, tutor)


@router.get("/students")
async def list_students(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    admin: ActorContext = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    result = await service.list_students(db, page, limit)
    return success_response("Students Found", 200, result)

# ==================== DASHBOARD ====================

@router.get("/overview")
async def overview(
    admin: ActorContext = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    data = await analytics.admin_overview(db)
    return success_response("Admin Overview fetched successfully", 200, data)

# ==================== COURSE MODERATION ====================

@router.get("/courses/pending")
async def pending_courses(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    admin: ActorContext = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    result = await course_service.list_pending_courses(db, page, limit)
    return success_response("Courses awaiting review", 200, result)


@router.put("/courses/{course_id}/approve")
async def approve_course(
    course_id: str,
    admin: ActorContext = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    course = await course_service.review_course(db, admin, course_id, CourseStatus.APPROVED)
    return success_response("Course approved", 200, course)


@router.put("/courses/{course_id}/reject")
async def reject_course(
    course_id: str,
    data: CourseRejection,
    admin: ActorContext = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    course = await course_service.review_course(db, admin, course_id, CourseStatus.REJECTED, data.reason)
    return success_response("Course rejected", 200, course)
