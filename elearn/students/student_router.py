from typing import Optional

from fastapi import APIRouter, Depends, Query
from motor.motor_asyncio import AsyncIOMotorDatabase

from elearn.core.database import get_db
from elearn.core.permissions import ActorContext, get_current_student
from elearn.core.responses import success_response
from elearn.students import student_service as service
from elearn.students.student_schemas import (
    StudentSignup, StudentLogin, ForgotPasswordRequest, VerifyPinRequest,
    ResetPasswordRequest, StudentUpdate, PasswordUpdate, PrivacySettings
)
from elearn.utils.mail import Mailer, get_mailer

router = APIRouter(tags=["Students"])

# ==================== AUTH ====================

@router.post("/signup", status_code=201)
async def signup(
    data: StudentSignup,
    db: AsyncIOMotorDatabase = Depends(get_db),
    mailer: Mailer = Depends(get_mailer)
):
    student = await service.signup(db, mailer, data.dict())
    return success_response("Registeration successful", 201, student)


@router.get("/verified-email")
async def verify_email(
    verificationToken: Optional[str] = Query(None),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    await service.verify_signup(db, verificationToken)
    return success_response("Email verified successfully! Proceed to login")


@router.post("/login")
async def login(data: StudentLogin, db: AsyncIOMotorDatabase = Depends(get_db)):
    result = await service.login(db, data.email, data.password)
    return success_response("Login successful", 200, result)


@router.post("/forgot-password")
async def forgot_password(
    data: ForgotPasswordRequest,
    db: AsyncIOMotorDatabase = Depends(get_db),
    mailer: Mailer = Depends(get_mailer)
):
    await service.forgot_password(db, mailer, data.email)
    return success_response("Reset pin sent successfully", 200, {})


@router.post("/verify-pin")
async def verify_pin(data: VerifyPinRequest, db: AsyncIOMotorDatabase = Depends(get_db)):
    await service.verify_reset_pin(db, data.reset_pin)
    return success_response("Reset Pin still valid")


@router.post("/reset-password")
async def reset_password(data: ResetPasswordRequest, db: AsyncIOMotorDatabase = Depends(get_db)):
    result = await service.reset_password(db, data.email, data.password)
    return success_response("Password Reset Successful", 200, result)

# ==================== DASHBOARD ====================

@router.get("/dashboard")
async def my_courses(
    student: ActorContext = Depends(get_current_student),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    Purchased courses with watch progress and resume point
    """
    courses = await service.get_student_courses(db, student.actor_id)
    return success_response("Your courses are", 200, courses)


@router.get("/overview")
async def overview(
    student: ActorContext = Depends(get_current_student),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    stats = await service.get_student_overview(db, student.actor_id)
    return success_response("Course details", 200, stats)


@router.get("/recommendations")
async def recommendations(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    type: str = Query("random"),
    student: ActorContext = Depends(get_current_student),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    result = await service.get_recommendations(db, student.actor_id, page, limit, type)
    return success_response("Your recommended courses are: ", 200, result)


@router.get("/dashboard/{course_id}")
async def my_course_detail(
    course_id: str,
    student: ActorContext = Depends(get_current_student),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    course = await service.get_each_course(db, student.actor_id, course_id)
    return success_response("Course fetched successfully", 200, course)

# ==================== PROFILE ====================

@router.put("/update-user")
async def update_user(
    data: StudentUpdate,
    student: ActorContext = Depends(get_current_student),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    updated = await service.update_student(db, student.actor_id, data.dict(exclude_none=True))
    return success_response("student details updated successfully", 200, updated)


@router.put("/update-password")
async def update_password(
    data: PasswordUpdate,
    student: ActorContext = Depends(get_current_student),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    await service.update_password(db, student.profile, data.old_password, data.new_password)
    return success_response("student password updated successfully")


@router.patch("/delete-account")
async def delete_account(
    student: ActorContext = Depends(get_current_student),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    deleted = await service.delete_account(db, student.actor_id)
    return success_response("Account deleted successfully", 200, deleted)


@router.put("/privacy")
async def privacy(
    data: PrivacySettings,
    student: ActorContext = Depends(get_current_student),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    updated = await service.update_privacy_settings(db, student.actor_id, data.dict())
    return success_response("Privacy settings updated successfully", 200, updated)
