import re
from datetime import datetime, timedelta

import pytest
from fastapi import HTTPException
from jose import jwt

from elearn.core import config
from elearn.core.database import generate_id, paginate
from elearn.core.security import (
    create_access_token, decode_access_token, generate_pin, hash_password, verify_password
)
from elearn.payments.paystack import PaystackClient, to_kobo
from elearn.utils.references import generate_reference, generate_withdrawal_reference
from elearn.utils.templates import get_template


def test_payment_reference_format():
    assert re.fullmatch(r"TWP_TF\d{11}", generate_reference())
    assert re.fullmatch(r"TWP_WD-[0-9A-F]{12}", generate_withdrawal_reference())
    assert generate_reference() != generate_reference()


def test_generate_id_prefix():
    assert re.fullmatch(r"COURSE_[0-9A-F]{12}", generate_id("COURSE"))


def test_paginate_clamps_values():
    assert paginate(3, 20) == (3, 20, 40)
    assert paginate(0, 0) == (1, config.DEFAULT_PAGE_SIZE, 0)


def test_password_hashing():
    hashed = hash_password("hunter22")

    assert hashed != "hunter22"
    assert verify_password("hunter22", hashed)
    assert not verify_password("hunter23", hashed)
    assert not verify_password("hunter22", None)


def test_reset_pin_is_six_digits():
    assert re.fullmatch(r"\d{6}", generate_pin())


def test_token_round_trip():
    token = create_access_token("STU_1", "student", "ada@example.com")

    claims = decode_access_token(token)

    assert claims["sub"] == "STU_1"
    assert claims["kind"] == "student"


def test_expired_token_is_rejected():
    token = jwt.encode(
        {"sub": "STU_1", "kind": "student", "exp": datetime.utcnow() - timedelta(minutes=1)},
        config.JWT_SECRET,
        algorithm=config.JWT_ALGORITHM,
    )

    with pytest.raises(HTTPException) as exc:
        decode_access_token(token)
    assert exc.value.status_code == 401


def test_webhook_signature():
    gateway = PaystackClient(secret_key="sk_test_secret")
    body = b'{"event": "charge.success"}'
    signature = "2f1e5e7e"

    assert not gateway.verify_signature(body, signature)
    assert not gateway.verify_signature(body, None)
    assert not PaystackClient(secret_key="").verify_signature(body, signature)


def test_to_kobo():
    assert to_kobo(49.99) == 4999
    assert to_kobo(5000) == 500000


def test_templates_render_placeholders():
    html = get_template("resetpin.html", first_name="Ada", reset_pin="424242")

    assert "Ada" in html
    assert "424242" in html
