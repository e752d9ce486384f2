from conftest import auth, create_account, create_course, create_student


async def test_add_and_view_cart(client, db):
    tutor, _ = await create_account(db)
    course = await create_course(db, tutor)
    student, token = await create_student(db)

    res = await client.post("/api/v1/cart/add", json={"course_id": course["course_id"]}, headers=auth(token))

    assert res.status_code == 200
    cart = res.json()["data"]
    assert cart["total_price"] == 5000
    assert cart["cart_items"][0]["course"]["title"] == course["title"]
    assert cart["cart_items"][0]["status"] == "pending"

    res = await client.get(f"/api/v1/cart/{student['student_id']}", headers=auth(token))
    assert res.status_code == 200
    assert len(res.json()["data"]["cart_items"]) == 1


async def test_add_missing_course(client, db):
    _, token = await create_student(db)

    res = await client.post("/api/v1/cart/add", json={"course_id": "COURSE_MISSING"}, headers=auth(token))

    assert res.status_code == 404


async def test_cannot_view_someone_elses_cart(client, db):
    _, token = await create_student(db)
    other, _ = await create_student(db, email="bob@example.com")

    res = await client.get(f"/api/v1/cart/{other['student_id']}", headers=auth(token))

    assert res.status_code == 403


async def test_empty_cart(client, db):
    student, token = await create_student(db)

    res = await client.get(f"/api/v1/cart/{student['student_id']}", headers=auth(token))

    assert res.status_code == 404


async def test_remove_from_cart(client, db):
    tutor, _ = await create_account(db)
    course = await create_course(db, tutor)
    _, token = await create_student(db)
    await client.post("/api/v1/cart/add", json={"course_id": course["course_id"]}, headers=auth(token))

    res = await client.post("/api/v1/cart/remove", json={"course_ids": []}, headers=auth(token))
    assert res.status_code == 400

    res = await client.post(
        "/api/v1/cart/remove", json={"course_ids": [course["course_id"]]}, headers=auth(token)
    )
    assert res.status_code == 200
    assert res.json()["data"]["cart_items"] == []
    assert res.json()["message"] == "Cart is now empty"


async def test_checkout_records_pending_payment(client, db, gateway):
    tutor, _ = await create_account(db)
    first = await create_course(db, tutor)
    second = await create_course(db, tutor, price=2500)
    student, token = await create_student(db)
    for course in (first, second):
        await client.post("/api/v1/cart/add", json={"course_id": course["course_id"]}, headers=auth(token))
    carts = await db.carts.find({"student_id": student["student_id"]}).to_list(length=None)
    cart_ids = [c["cart_id"] for c in carts]

    res = await client.post("/api/v1/cart/checkout", json={"cart_ids": cart_ids}, headers=auth(token))

    assert res.status_code == 200
    data = res.json()["data"]
    assert data["authorization_url"].endswith(data["reference"])
    assert data["reference"].startswith("TWP_TF")

    transaction = gateway.transactions[data["reference"]]
    assert transaction["amount"] == 750000
    assert sorted(transaction["metadata"]["cart_ids"]) == sorted(cart_ids)

    payment = await db.payments.find_one({"reference": data["reference"]})
    assert payment["status"] == "pending"
    assert payment["amount"] == 7500
    assert await db.carts.count_documents({"status": "initiated"}) == 2


async def test_checkout_ignores_foreign_carts(client, db):
    tutor, _ = await create_account(db)
    course = await create_course(db, tutor)
    _, token = await create_student(db)
    _, other_token = await create_student(db, email="bob@example.com")
    await client.post("/api/v1/cart/add", json={"course_id": course["course_id"]}, headers=auth(other_token))
    foreign = await db.carts.find_one({})

    res = await client.post("/api/v1/cart/checkout", json={"cart_ids": [foreign["cart_id"]]}, headers=auth(token))

    assert res.status_code == 400
    assert await db.payments.count_documents({}) == 0


async def test_checkout_gateway_failure(client, db, gateway):
    tutor, _ = await create_account(db)
    course = await create_course(db, tutor)
    _, token = await create_student(db)
    await client.post("/api/v1/cart/add", json={"course_id": course["course_id"]}, headers=auth(token))
    cart = await db.carts.find_one({})
    gateway.fail = True

    res = await client.post("/api/v1/cart/checkout", json={"cart_ids": [cart["cart_id"]]}, headers=auth(token))

    assert res.status_code == 500
    assert await db.payments.count_documents({}) == 0
