from pydantic import BaseModel, Field, EmailStr
from typing import Optional

from elearn.core.permissions import AccountRole


class AccountCreate(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    phone: Optional[str] = None
    description: Optional[str] = None
    role: AccountRole = AccountRole.STAFF

    class Config:
        use_enum_values = True


class SetPasswordRequest(BaseModel):
    registration_token: str
    password: str = Field(..., min_length=6)


class AccountLogin(BaseModel):
    email: EmailStr
    password: str
