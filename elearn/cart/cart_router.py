from fastapi import APIRouter, Depends, HTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase

from elearn.cart import cart_service as service
from elearn.cart.cart_schemas import CartAdd, CartRemove, CheckoutRequest
from elearn.core.database import get_db
from elearn.core.permissions import ActorContext, get_current_student
from elearn.core.responses import success_response
from elearn.payments.paystack import PaystackClient, get_gateway

router = APIRouter(prefix="/cart", tags=["Cart"])


@router.post("/add")
async def add_to_cart(
    data: CartAdd,
    student: ActorContext = Depends(get_current_student),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    cart = await service.add_to_cart(db, student.actor_id, data.course_id)
    return success_response("Here are your cart items", 200, cart)


@router.post("/remove")
async def remove_from_cart(
    data: CartRemove,
    student: ActorContext = Depends(get_current_student),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    cart = await service.remove_from_cart(db, student.actor_id, data.course_ids)
    message = "Successfully removed from cart" if cart["cart_items"] else "Cart is now empty"
    return success_response(message, 200, cart)


@router.post("/checkout")
async def checkout(
    data: CheckoutRequest,
    student: ActorContext = Depends(get_current_student),
    db: AsyncIOMotorDatabase = Depends(get_db),
    gateway: PaystackClient = Depends(get_gateway)
):
    result = await service.initiate_payment(db, gateway, student, data.cart_ids)
    return success_response("Payment initialized successfully", 200, result)


@router.get("/{student_id}")
async def get_cart(
    student_id: str,
    student: ActorContext = Depends(get_current_student),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    if student_id != student.actor_id:
        raise HTTPException(status_code=403, detail="You can only view your own cart")

    cart = await service.get_cart_items(db, student_id)
    return success_response("Cart items retrieved successfully", 200, cart)
