from enum import Enum


class CourseStatus(str, Enum):
    """Moderation state set by admins"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class CourseLevel(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
