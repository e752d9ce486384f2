from pydantic import BaseModel, Field, validator
from typing import Optional, List

from elearn.courses.course_models import CourseLevel


class VideoItem(BaseModel):
    url: str
    filename: str
    duration: float = Field(0, ge=0)  # seconds


class Lecture(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    lecture_number: Optional[int] = Field(None, ge=1)
    videos: List[VideoItem] = []


class BasicInformation(BaseModel):
    language: Optional[str] = None
    level: Optional[CourseLevel] = None
    category: Optional[str] = None

    class Config:
        use_enum_values = True


class CourseCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    thumbnail_url: Optional[str] = None
    price: float = Field(0, ge=0)
    basic_information: BasicInformation = BasicInformation()
    what_you_will_learn: List[str] = []
    lectures: List[Lecture] = []
    is_published: bool = False


class CourseDraftUpdate(BaseModel):
    """Edit a draft; is_published=True publishes it in the same call"""
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    thumbnail_url: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    basic_information: Optional[BasicInformation] = None
    what_you_will_learn: Optional[List[str]] = None
    lectures: Optional[List[Lecture]] = None
    is_published: bool = False


class WhatYouWillLearnUpdate(BaseModel):
    what_you_will_learn: List[str]

    @validator("what_you_will_learn")
    def drop_blank_items(cls, v):
        return [item.strip() for item in v if item and item.strip()]


class CourseRating(BaseModel):
    rating: float
    review_text: Optional[str] = Field(None, max_length=2000)


class CommentCreate(BaseModel):
    text: str = Field(..., min_length=1, max_length=2000)


class CourseRejection(BaseModel):
    reason: Optional[str] = None
