from pydantic import BaseModel, Field, EmailStr, validator
from typing import Optional


class StudentSignup(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone: Optional[str] = None

    @validator("first_name", "last_name")
    def strip_names(cls, v):
        if not v.strip():
            raise ValueError("name cannot be blank")
        return v.strip()


class StudentLogin(BaseModel):
    email: EmailStr
    password: str


class ForgotPasswordRequest(BaseModel):
    email: Optional[str] = None


class VerifyPinRequest(BaseModel):
    reset_pin: Optional[str] = None


class ResetPasswordRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)


class StudentUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = None
    bio: Optional[str] = Field(None, max_length=1000)
    profile_picture: Optional[str] = None


class PasswordUpdate(BaseModel):
    old_password: str
    new_password: str = Field(..., min_length=6)


class PrivacySettings(BaseModel):
    show_profile: bool = True
    show_courses: bool = True
    block_popups: bool = False
    store_activity_history: bool = True
