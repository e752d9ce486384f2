from typing import Optional

from fastapi import APIRouter, Depends, Query
from motor.motor_asyncio import AsyncIOMotorDatabase

from elearn.core.database import get_db
from elearn.core.permissions import (
    ActorContext, Role, get_current_actor, get_current_student, get_current_tutor, require_roles
)
from elearn.core.responses import success_response
from elearn.courses import course_service as service
from elearn.courses.course_schemas import (
    CourseCreate, CourseDraftUpdate, WhatYouWillLearnUpdate, CourseRating, CommentCreate
)

router = APIRouter(prefix="/courses", tags=["Courses"])

# ==================== AUTHORING ====================

@router.post("/create-courses", status_code=201)
async def create_course(
    data: CourseCreate,
    tutor: ActorContext = Depends(get_current_tutor),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    course = await service.create_course(db, tutor, data.dict())
    message = (
        "The Course has been published successfully."
        if course["is_published"]
        else "The Course has been saved as a draft successfully."
    )
    return success_response(message, 201, course)


@router.put("/{course_id}/publish")
async def update_and_publish(
    course_id: str,
    data: CourseDraftUpdate,
    tutor: ActorContext = Depends(get_current_tutor),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    Edit a draft and optionally publish it in one call
    """
    payload = data.dict(exclude_unset=True)
    publish = payload.get("is_published", False)
    course = await service.update_and_publish_course(db, tutor, course_id, payload)
    message = (
        "The course has been published successfully"
        if publish
        else "Your draft is saved successfully"
    )
    return success_response(message, 200, course)


@router.put("/{course_id}/what-you-will-learn")
async def update_what_you_will_learn(
    course_id: str,
    data: WhatYouWillLearnUpdate,
    tutor: ActorContext = Depends(get_current_tutor),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    course = await service.update_what_you_will_learn(db, course_id, data.what_you_will_learn)
    return success_response("Course updated successfully", 200, course)


@router.delete("/{course_id}/delete")
async def delete_course(
    course_id: str,
    actor: ActorContext = Depends(require_roles(Role.TUTOR, Role.ADMIN)),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    await service.delete_course(db, actor, course_id)
    return success_response("Course deleted successfully")

# ==================== CATALOGUE ====================

@router.get("")
async def list_courses(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    category: Optional[str] = None,
    level: Optional[str] = None,
    language: Optional[str] = None,
    tutor_id: Optional[str] = None,
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    filters = {
        "basic_information.category": category,
        "basic_information.level": level,
        "basic_information.language": language,
        "tutor_id": tutor_id,
    }
    result = await service.get_all_courses(db, page, limit, filters)
    return success_response("Successfully fetched all courses", 200, result)


@router.get("/search")
async def search_courses(
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    courses = await service.find_course(db, search, page, limit)
    return success_response("Here's what you're looking for", 200, courses)


@router.get("/{course_id}")
async def get_course(course_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    course = await service.get_each_course(db, course_id)
    return success_response("Course fetched successfully", 200, course)


@router.get("/{course_id}/view")
async def view_course(
    course_id: str,
    actor: ActorContext = Depends(get_current_actor),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    await service.course_views(db, course_id)
    return success_response("View count incremented")

# ==================== REVIEWS ====================

@router.post("/{course_id}/rate")
async def rate_course(
    course_id: str,
    data: CourseRating,
    student: ActorContext = Depends(get_current_student),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    course = await service.rate_course(db, student.actor_id, course_id, data.rating, data.review_text)
    return success_response("Course rating updated successfully", 200, course)


@router.get("/{course_id}/reviews")
async def course_reviews(course_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    title, summary = await service.fetch_reviews(db, course_id)
    message = f"Reviews for {title}" if summary["total_reviews"] else f"There are no reviews for {title}"
    return success_response(message, 200, summary)

# ==================== COMMENTS ====================

@router.post("/{course_id}/comments", status_code=201)
async def add_comment(
    course_id: str,
    data: CommentCreate,
    student: ActorContext = Depends(get_current_student),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    comment = await service.leave_comment(db, student.actor_id, course_id, data.text)
    return success_response("Comment added successfully", 201, comment)


@router.get("/{course_id}/comments")
async def list_comments(course_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    comments = await service.get_comments(db, course_id)
    return success_response("Comments fetched successfully", 200, comments)


@router.delete("/comments/{comment_id}")
async def delete_comment(
    comment_id: str,
    student: ActorContext = Depends(get_current_student),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    await service.delete_comment(db, student.actor_id, comment_id)
    return success_response("Comment deleted successfully")
