from pydantic import BaseModel, Field
from typing import Optional


class ProgressUpdate(BaseModel):
    lecture_id: Optional[str] = None
    video_id: Optional[str] = None
    timestamp: Optional[float] = Field(None, ge=0)  # seconds into the video
    is_completed: bool = False
