import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from motor.motor_asyncio import AsyncIOMotorDatabase

from elearn.core.database import get_db
from elearn.core.responses import success_response
from elearn.payments import webhook_service as service
from elearn.payments.paystack import PaystackClient, PaystackError, get_gateway
from elearn.utils.mail import Mailer, get_mailer

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Payments"])


@router.post("/webhook")
async def paystack_webhook(
    request: Request,
    db: AsyncIOMotorDatabase = Depends(get_db),
    gateway: PaystackClient = Depends(get_gateway),
    mailer: Mailer = Depends(get_mailer)
):
    """
    Paystack webhook - NO AUTH (signature verification instead)
    """
    body = await request.body()

    if not gateway.verify_signature(body, request.headers.get("x-paystack-signature")):
        logger.warning("Webhook signature verification failed")
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        payload = json.loads(body)
    except ValueError:
        payload = None

    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    message, data = await service.handle_webhook(db, gateway, mailer, payload)
    return success_response(message, 200, data)


@router.get("/banks")
async def list_banks(gateway: PaystackClient = Depends(get_gateway)):
    """Banks supported for tutor payouts"""
    try:
        banks = await gateway.list_banks()
    except PaystackError:
        raise HTTPException(status_code=500, detail="Unable to retrieve bank list")

    return success_response(
        "Banks retrieved successfully",
        200,
        [{"name": bank.get("name"), "code": bank.get("code")} for bank in banks]
    )
