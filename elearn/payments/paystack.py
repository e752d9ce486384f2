"""
Paystack REST client

Amounts sent to Paystack are in kobo (minor units).
"""

import hashlib
import hmac
import logging
from typing import Optional

import httpx

from elearn.core import config

logger = logging.getLogger(__name__)


class PaystackError(Exception):
    """Gateway rejected a call or could not be reached"""


class PaystackClient:
    def __init__(self, base_url: str = None, secret_key: str = None, timeout: float = None):
        self.base_url = (base_url or config.PAYSTACK_BASE_URL).rstrip("/")
        self.secret_key = secret_key if secret_key is not None else config.PAYSTACK_SECRET_KEY
        self.timeout = timeout or config.PAYSTACK_TIMEOUT_SECONDS

    @property
    def headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, json: Optional[dict] = None, params: Optional[dict] = None) -> dict:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.request(method, url, json=json, params=params, headers=self.headers)
        except httpx.HTTPError as e:
            logger.error("Paystack %s %s failed: %s", method, path, e)
            raise PaystackError(f"Payment gateway unreachable: {e}")

        try:
            body = resp.json()
        except ValueError:
            body = {}

        if resp.status_code >= 400 or not body.get("status"):
            message = body.get("message") or f"HTTP {resp.status_code}"
            logger.error("Paystack %s %s rejected: %s", method, path, message)
            raise PaystackError(message)

        return body.get("data") or {}

    async def initialize_transaction(self, email: str, amount_kobo: int, reference: str, metadata: dict) -> dict:
        return await self._request("POST", "/transaction/initialize", json={
            "email": email,
            "amount": amount_kobo,
            "reference": reference,
            "metadata": metadata,
        })

    async def verify_transaction(self, reference: str) -> dict:
        return await self._request("GET", f"/transaction/verify/{reference}")

    async def list_banks(self, currency: str = config.PAYMENT_CURRENCY) -> list:
        return await self._request("GET", "/bank", params={"currency": currency})

    async def create_transfer_recipient(self, account_name: str, account_number: str, bank_code: str) -> dict:
        return await self._request("POST", "/transferrecipient", json={
            "type": "nuban",
            "name": account_name,
            "account_number": account_number,
            "bank_code": bank_code,
            "currency": config.PAYMENT_CURRENCY,
        })

    async def initiate_transfer(self, amount_kobo: int, recipient_code: str, reference: str, reason: str) -> dict:
        return await self._request("POST", "/transfer", json={
            "source": "balance",
            "amount": amount_kobo,
            "recipient": recipient_code,
            "reference": reference,
            "reason": reason,
        })

    def verify_signature(self, body: bytes, signature: Optional[str]) -> bool:
        """x-paystack-signature is the HMAC-SHA512 of the raw body keyed with the secret key"""
        if not signature or not self.secret_key:
            return False
        expected = hmac.new(self.secret_key.encode(), body, hashlib.sha512).hexdigest()
        return hmac.compare_digest(expected, signature)


paystack_client = PaystackClient()


def get_gateway() -> PaystackClient:
    """FastAPI dependency for the payment gateway"""
    return paystack_client


def to_kobo(amount: float) -> int:
    return int(round(amount * 100))
