from fastapi import APIRouter, Depends, Query
from motor.motor_asyncio import AsyncIOMotorDatabase

from elearn.core.database import get_db
from elearn.core.permissions import ActorContext, get_current_tutor
from elearn.core.responses import success_response
from elearn.payments.paystack import PaystackClient, get_gateway
from elearn.tutors import tutor_service as service
from elearn.tutors.tutor_schemas import (
    TutorPasswordUpdate, TutorProfileUpdate, BankAccountCreate, WithdrawalRequest
)

router = APIRouter(prefix="/tutor", tags=["Tutors"])

# ==================== DASHBOARD ====================

@router.get("/dashboard")
async def dashboard(
    time_period: str = Query("month"),
    tutor: ActorContext = Depends(get_current_tutor),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """
    Quick stats, course statistics, reviews and performance for week, month or year
    """
    stats = await service.tutor_stats(db, tutor.actor_id, time_period)
    return success_response("Tutor overview statistics", 200, stats)


@router.get("/my-courses")
async def my_courses(
    tutor: ActorContext = Depends(get_current_tutor),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    data = await service.tutor_courses(db, tutor.actor_id)
    return success_response("Tutor Courses Statistics", 200, data)


@router.get("/transactions")
async def transactions(
    tutor: ActorContext = Depends(get_current_tutor),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    data = await service.tutor_transactions(db, tutor.actor_id)
    return success_response("Tutor Transaction Details", 200, data)


@router.get("/students")
async def students(
    tutor: ActorContext = Depends(get_current_tutor),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    data = await service.tutor_students(db, tutor.actor_id)
    return success_response("Tutor student statistics", 200, data)


@router.get("/analytics")
async def course_analytics(
    tutor: ActorContext = Depends(get_current_tutor),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    data = await service.tutor_course_analytics(db, tutor.actor_id)
    return success_response("Tutor Course analytics retrieved successfully", 200, data)

# ==================== PROFILE ====================

@router.put("/update-password")
async def update_password(
    data: TutorPasswordUpdate,
    tutor: ActorContext = Depends(get_current_tutor),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    await service.change_password(db, tutor.profile, data.old_password, data.new_password)
    return success_response("Tutor password updated successfully")


@router.put("/profile")
async def update_profile(
    data: TutorProfileUpdate,
    tutor: ActorContext = Depends(get_current_tutor),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    profile = await service.update_profile(db, tutor.actor_id, data.dict(exclude_unset=True))
    return success_response("Tutor Information updated successfully", 200, profile)


@router.patch("/delete-account")
async def delete_account(
    tutor: ActorContext = Depends(get_current_tutor),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    profile = await service.delete_account(db, tutor.actor_id)
    return success_response("Account deleted successfully", 200, profile)

# ==================== PAYOUTS ====================

@router.post("/bank-accounts")
async def add_bank_account(
    data: BankAccountCreate,
    tutor: ActorContext = Depends(get_current_tutor),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    account = await service.add_bank_details(db, tutor.actor_id, data.dict())
    return success_response("Account details added successfully", 200, account)


@router.get("/bank-accounts")
async def list_bank_accounts(
    tutor: ActorContext = Depends(get_current_tutor),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    accounts = await service.get_bank_accounts(db, tutor.actor_id)
    return success_response("Accounts displayed", 200, accounts)


@router.delete("/bank-accounts/{account_id}")
async def delete_bank_account(
    account_id: str,
    tutor: ActorContext = Depends(get_current_tutor),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    await service.delete_bank_account(db, tutor.actor_id, account_id)
    return success_response("Bank account deleted successfully")


@router.get("/balance")
async def balance(
    tutor: ActorContext = Depends(get_current_tutor),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    available = await service.available_balance(db, tutor.actor_id)
    return success_response("Available balance", 200, {"available_balance": available})


@router.post("/withdrawals")
async def request_withdrawal(
    data: WithdrawalRequest,
    tutor: ActorContext = Depends(get_current_tutor),
    db: AsyncIOMotorDatabase = Depends(get_db),
    gateway: PaystackClient = Depends(get_gateway)
):
    withdrawal = await service.request_withdrawal(db, gateway, tutor.actor_id, data.amount, data.account_id)
    message = "Withdrawal completed" if withdrawal["status"] == "success" else "Withdrawal initiated"
    return success_response(message, 200, withdrawal)


@router.get("/withdrawals")
async def withdrawal_history(
    tutor: ActorContext = Depends(get_current_tutor),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    withdrawals = await service.list_withdrawals(db, tutor.actor_id)
    return success_response("Withdrawal history", 200, withdrawals)
