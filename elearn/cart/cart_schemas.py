from pydantic import BaseModel, Field
from typing import List


class CartAdd(BaseModel):
    course_id: str = Field(..., min_length=1)


class CartRemove(BaseModel):
    course_ids: List[str] = []


class CheckoutRequest(BaseModel):
    cart_ids: List[str] = []
