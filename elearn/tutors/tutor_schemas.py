from pydantic import BaseModel, Field, validator
from typing import Optional


class TutorPasswordUpdate(BaseModel):
    old_password: Optional[str] = None
    new_password: Optional[str] = None


class TutorProfileUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = None
    description: Optional[str] = Field(None, max_length=2000)
    profile_picture: Optional[str] = None


class BankAccountCreate(BaseModel):
    account_name: str = Field(..., min_length=1)
    account_number: str = Field(..., min_length=10, max_length=10)
    bank_name: str = Field(..., min_length=1)
    bank_code: str = Field(..., min_length=1)

    @validator("account_number")
    def digits_only(cls, v):
        if not v.isdigit():
            raise ValueError("account number must contain only digits")
        return v


class WithdrawalRequest(BaseModel):
    amount: float = Field(..., gt=0)
    account_id: str
