from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from starlette.concurrency import run_in_threadpool

from elearn.core.permissions import ActorContext, Role, require_roles
from elearn.core.responses import success_response
from elearn.uploads.media import measure_duration
from elearn.uploads.storage import MediaStorage, StorageError, get_storage, is_video

router = APIRouter(prefix="/upload", tags=["Uploads"])


@router.post("")
async def upload_file(
    file: UploadFile = File(...),
    duration: Optional[float] = Form(None),
    actor: ActorContext = Depends(require_roles(Role.TUTOR, Role.ADMIN)),
    storage: MediaStorage = Depends(get_storage)
):
    """
    Upload course media

    Video duration (seconds) is measured on the server; the `duration` form
    field is only used when ffprobe cannot read the file.
    """
    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")

    try:
        stored = await run_in_threadpool(storage.upload_bytes, data, file.filename, file.content_type)
    except StorageError:
        raise HTTPException(status_code=400, detail="failed to upload")

    video_duration = None
    if is_video(file.filename):
        video_duration = await run_in_threadpool(measure_duration, data, file.filename)
        if video_duration is None:
            video_duration = duration

    return success_response("upload successful", 200, {
        "url": stored["url"],
        "filename": file.filename,
        "duration": video_duration,
    })
