import json

import pytest

from elearn.payments import webhook_service

from conftest import auth, create_account, create_course, create_student, signed_webhook


async def checkout(client, db, token, course_ids) -> str:
    for course_id in course_ids:
        await client.post("/api/v1/cart/add", json={"course_id": course_id}, headers=auth(token))
    carts = await db.carts.find({}).to_list(length=None)
    res = await client.post(
        "/api/v1/cart/checkout", json={"cart_ids": [c["cart_id"] for c in carts]}, headers=auth(token)
    )
    return res.json()["data"]["reference"]


async def test_charge_success_enrols_student(client, db, gateway, mailer):
    tutor, _ = await create_account(db)
    first = await create_course(db, tutor)
    second = await create_course(db, tutor, title="Second", price=2000)
    student, token = await create_student(db)
    reference = await checkout(client, db, token, [first["course_id"], second["course_id"]])

    body, headers = signed_webhook(gateway, {"event": "charge.success", "data": {"reference": reference}})
    res = await client.post("/api/v1/webhook", content=body, headers=headers)

    assert res.status_code == 200
    assert sorted(res.json()["data"]["enrolled_courses"]) == sorted([first["course_id"], second["course_id"]])

    payment = await db.payments.find_one({"reference": reference})
    assert payment["status"] == "success"
    assert payment["channel"] == "card"

    purchases = await db.purchased_courses.find({"student_id": student["student_id"]}).to_list(length=None)
    assert len(purchases) == 2
    assert {p["amount"] for p in purchases} == {5000, 2000}
    assert all(p["is_completed"] == 0 and p["progress"] == [] for p in purchases)

    assert await db.carts.count_documents({}) == 0
    stored = await db.courses.find_one({"course_id": first["course_id"]})
    assert stored["purchase_count"] == 1

    notices = [m for m in mailer.sent if m["to"] == tutor["email"]]
    assert len(notices) == 2


async def test_repeat_delivery_is_a_no_op(client, db, gateway):
    tutor, _ = await create_account(db)
    course = await create_course(db, tutor)
    _, token = await create_student(db)
    reference = await checkout(client, db, token, [course["course_id"]])
    body, headers = signed_webhook(gateway, {"event": "charge.success", "data": {"reference": reference}})

    await client.post("/api/v1/webhook", content=body, headers=headers)
    res = await client.post("/api/v1/webhook", content=body, headers=headers)

    assert res.status_code == 200
    assert res.json()["message"] == "Transaction already processed"
    assert await db.purchased_courses.count_documents({}) == 1


async def test_redelivery_finishes_a_partial_enrolment(client, db, gateway, mailer, monkeypatch):
    tutor, _ = await create_account(db)
    first = await create_course(db, tutor)
    second = await create_course(db, tutor, title="Second", price=2000)
    student, token = await create_student(db)
    reference = await checkout(client, db, token, [first["course_id"], second["course_id"]])
    payload = {"event": "charge.success", "data": {"reference": reference}}

    notify_tutor = webhook_service.notify_tutor

    async def flaky_notify(*args):
        raise RuntimeError("connection reset")

    monkeypatch.setattr(webhook_service, "notify_tutor", flaky_notify)
    with pytest.raises(RuntimeError):
        await webhook_service.handle_webhook(db, gateway, mailer, payload)

    payment = await db.payments.find_one({"reference": reference})
    assert payment["status"] == "pending"
    assert await db.purchased_courses.count_documents({}) == 1

    monkeypatch.setattr(webhook_service, "notify_tutor", notify_tutor)
    body, headers = signed_webhook(gateway, payload)
    res = await client.post("/api/v1/webhook", content=body, headers=headers)

    assert res.status_code == 200
    assert res.json()["message"] == "Transaction verified and noted"
    purchases = await db.purchased_courses.find({"student_id": student["student_id"]}).to_list(length=None)
    assert sorted(p["course_id"] for p in purchases) == sorted([first["course_id"], second["course_id"]])
    assert (await db.payments.find_one({"reference": reference}))["status"] == "success"
    assert await db.carts.count_documents({}) == 0


async def test_tutor_mail_failure_does_not_fail_webhook(client, db, gateway, mailer):
    tutor, _ = await create_account(db)
    course = await create_course(db, tutor)
    _, token = await create_student(db)
    reference = await checkout(client, db, token, [course["course_id"]])
    mailer.fail = True

    body, headers = signed_webhook(gateway, {"event": "charge.success", "data": {"reference": reference}})
    res = await client.post("/api/v1/webhook", content=body, headers=headers)

    assert res.status_code == 200
    assert await db.purchased_courses.count_documents({}) == 1


async def test_bad_signature(client, gateway):
    body = json.dumps({"event": "charge.success", "data": {"reference": "x"}}).encode()

    res = await client.post("/api/v1/webhook", content=body, headers={"x-paystack-signature": "forged"})
    assert res.status_code == 401

    res = await client.post("/api/v1/webhook", content=body)
    assert res.status_code == 401


async def test_unknown_reference(client, gateway):
    body, headers = signed_webhook(gateway, {"event": "charge.success", "data": {"reference": "TWP_TF0"}})

    res = await client.post("/api/v1/webhook", content=body, headers=headers)

    assert res.status_code == 404


async def test_unhandled_event(client, gateway):
    body, headers = signed_webhook(gateway, {"event": "subscription.create", "data": {}})

    res = await client.post("/api/v1/webhook", content=body, headers=headers)

    assert res.status_code == 400


async def test_failed_verification(client, db, gateway):
    tutor, _ = await create_account(db)
    course = await create_course(db, tutor)
    _, token = await create_student(db)
    reference = await checkout(client, db, token, [course["course_id"]])
    gateway.verify_status = "failed"

    body, headers = signed_webhook(gateway, {"event": "charge.success", "data": {"reference": reference}})
    res = await client.post("/api/v1/webhook", content=body, headers=headers)

    assert res.status_code == 500
    assert await db.purchased_courses.count_documents({}) == 0


async def test_transfer_events_update_withdrawal(client, db, gateway):
    await db.withdrawals.insert_one({
        "withdrawal_id": "WD_1", "tutor_id": "ACC_1", "amount": 100,
        "reference": "TWP_WD-ABC", "status": "pending",
    })

    body, headers = signed_webhook(gateway, {"event": "transfer.success", "data": {"reference": "TWP_WD-ABC"}})
    res = await client.post("/api/v1/webhook", content=body, headers=headers)
    assert res.status_code == 200
    assert res.json()["data"]["status"] == "success"

    body, headers = signed_webhook(gateway, {"event": "transfer.failed", "data": {"reference": "TWP_WD-NOPE"}})
    res = await client.post("/api/v1/webhook", content=body, headers=headers)
    assert res.status_code == 404


async def test_list_banks(client):
    res = await client.get("/api/v1/banks")

    assert res.status_code == 200
    assert res.json()["data"] == [{"name": "Test Bank", "code": "999"}]
