from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from elearn.core.database import get_db
from elearn.core.permissions import ActorContext, get_current_student
from elearn.core.responses import success_response
from elearn.progress import progress_service as service
from elearn.progress.progress_schemas import ProgressUpdate

router = APIRouter(prefix="/progress", tags=["Progress"])


@router.get("/continue-watching")
async def continue_watching(
    student: ActorContext = Depends(get_current_student),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    data = await service.continue_watching(db, student.actor_id)
    return success_response("Continue watching data fetched successfully", 200, data)


@router.put("/{course_id}")
async def update_progress(
    course_id: str,
    data: ProgressUpdate,
    student: ActorContext = Depends(get_current_student),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    purchase = await service.update_progress(
        db, student.actor_id, course_id,
        data.lecture_id, data.video_id, data.timestamp, data.is_completed
    )
    return success_response("Progress updated successfully", 200, purchase)
