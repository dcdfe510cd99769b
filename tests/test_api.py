from app.core.security import add_token_to_blacklist, create_access_token
from app.models.user import UserRole
from app.services.claim_service import claim_service
from app.services.realtime_service import realtime_service
from factories import (
    auth_headers,
    backdate_claim,
    make_business,
    make_coupon,
    make_notification,
    make_product,
    make_user,
)

API = "/api/v1"


async def seed(db):
    business_id = (await make_business(db)).id
    other_business_id = (await make_business(db, name="Olga", business_name="Olga's Deli")).id
    alice_id = (await make_user(db, name="Alice")).id
    carol_id = (await make_user(db, name="Carol")).id
    coupon_id = (await make_coupon(db, business_id, code="SAVE10")).id
    return business_id, other_business_id, alice_id, carol_id, coupon_id


async def test_claim_coupon(client, db):
    business_id, _, alice_id, _, coupon_id = await seed(db)
    product_id = (await make_product(db, business_id)).id

    response = await client.post(
        f"{API}/coupons/claim",
        json={"coupon_id": coupon_id, "product_id": product_id},
        headers=auth_headers(alice_id),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "success"
    assert body["message"] == "Coupon claimed successfully!"
    claimed = body["data"]["claimed_coupon"]
    assert claimed["coupon_code"] == "SAVE10"
    assert claimed["status"] == "claimed"
    assert claimed["discount_display"] == "$10.00"
    assert claimed["is_usable"] is True
    assert claimed["business"]["name"] == "Bob's Bakery"
    assert claimed["product"]["name"] == "Croissant"

    response = await client.post(
        f"{API}/coupons/claim", json={"coupon_id": coupon_id}, headers=auth_headers(alice_id)
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "You have already claimed this coupon"


async def test_claim_errors(client, db):
    business_id, _, alice_id, _, _ = await seed(db)

    response = await client.post(f"{API}/coupons/claim", json={"coupon_id": 999}, headers=auth_headers(alice_id))
    assert response.status_code == 404
    assert response.json()["detail"] == "Coupon not found or inactive"

    response = await client.post(f"{API}/coupons/claim", json={"coupon_id": 999})
    assert response.status_code == 401

    response = await client.post(
        f"{API}/coupons/claim", json={"coupon_id": 999}, headers=auth_headers(business_id)
    )
    assert response.status_code == 403


async def test_blacklisted_token_is_rejected(client, db, fake_redis):
    _, _, alice_id, _, coupon_id = await seed(db)
    token = create_access_token(alice_id)
    await add_token_to_blacklist(token, fake_redis)

    response = await client.post(
        f"{API}/coupons/claim", json={"coupon_id": coupon_id}, headers={"Authorization": f"Bearer {token}"}
    )
    assert response.status_code == 401


async def test_list_claimed_coupons(client, db):
    business_id, _, alice_id, _, coupon_id = await seed(db)
    second_id = (await make_coupon(db, business_id, code="SECOND")).id
    for cid in (coupon_id, second_id):
        await claim_service.claim_coupon(db, consumer_id=alice_id, coupon_id=cid)

    response = await client.get(f"{API}/coupons/claimed?page=1&limit=1", headers=auth_headers(alice_id))

    assert response.status_code == 200
    body = response.json()
    assert [c["coupon_code"] for c in body["data"]] == ["SECOND"]
    assert body["pagination"] == {
        "current_page": 1,
        "total_pages": 2,
        "total_count": 2,
        "per_page": 1,
        "has_more": True,
    }

    response = await client.get(f"{API}/coupons/claimed?status=used", headers=auth_headers(alice_id))
    assert response.json()["data"] == []

    response = await client.get(f"{API}/coupons/claimed?status=bogus", headers=auth_headers(alice_id))
    assert response.status_code == 422


async def test_scan_and_redeem_flow(client, db, status_task):
    business_id, other_business_id, alice_id, _, coupon_id = await seed(db)
    claim_id = (await claim_service.claim_coupon(db, consumer_id=alice_id, coupon_id=coupon_id)).id
    scan = {"couponCode": "SAVE10", "userId": alice_id, "businessId": business_id, "timestamp": 1760000000}

    response = await client.post(f"{API}/coupons/validate-qr-direct", json=scan, headers=auth_headers(business_id))
    assert response.status_code == 200
    coupon = response.json()["coupon"]
    assert coupon["claimedCouponId"] == claim_id
    assert coupon["customerName"] == "Alice"
    assert coupon["productName"] == "General Store Discount"

    response = await client.post(
        f"{API}/coupons/validate-qr-direct", json=scan, headers=auth_headers(other_business_id)
    )
    assert response.status_code == 403
    assert response.json()["detail"] == "You can only scan coupons for your own business"

    response = await client.post(
        f"{API}/coupons/validate-scan", json={**scan, "claimedCouponId": claim_id}, headers=auth_headers(business_id)
    )
    assert response.status_code == 200

    response = await client.post(
        f"{API}/coupons/mark-as-used", json={"claimedCouponId": claim_id}, headers=auth_headers(business_id)
    )
    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Coupon marked as used successfully"
    assert body["data"]["claimedCoupon"]["status"] == "used"
    assert body["data"]["claimedCoupon"]["usage_notes"] == "Scanned and validated by business"
    assert status_task.calls[0]["user_id"] == alice_id

    response = await client.post(
        f"{API}/coupons/mark-as-used", json={"claimedCouponId": claim_id}, headers=auth_headers(business_id)
    )
    assert response.status_code == 404
    assert response.json()["detail"] == "Coupon has already been used"

    response = await client.post(f"{API}/coupons/validate-qr-direct", json=scan, headers=auth_headers(business_id))
    assert response.status_code == 400


async def test_validate_manual_disambiguation(client, db):
    business_id, _, alice_id, carol_id, coupon_id = await seed(db)
    alice_claim_id = (await claim_service.claim_coupon(db, consumer_id=alice_id, coupon_id=coupon_id)).id
    carol_claim_id = (await claim_service.claim_coupon(db, consumer_id=carol_id, coupon_id=coupon_id)).id

    response = await client.post(
        f"{API}/coupons/validate-manual", json={"couponCode": "SAVE10"}, headers=auth_headers(business_id)
    )
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "multiple"
    assert [c["claimedCouponId"] for c in body["customers"]] == [alice_claim_id, carol_claim_id]
    assert body["customers"][0]["customerEmail"] == "alice@example.com"

    response = await client.post(
        f"{API}/coupons/validate-specific", json={"claimedCouponId": carol_claim_id}, headers=auth_headers(business_id)
    )
    assert response.status_code == 200
    assert response.json()["coupon"]["customerName"] == "Carol"

    response = await client.post(
        f"{API}/coupons/search-customers",
        json={"couponCode": "SAVE10", "searchQuery": "car"},
        headers=auth_headers(business_id),
    )
    assert response.status_code == 200
    assert response.json()["total"] == 1

    response = await client.post(
        f"{API}/coupons/search-customers", json={"couponCode": "SAVE10"}, headers=auth_headers(business_id)
    )
    assert response.status_code == 400

    response = await client.post(
        f"{API}/coupons/validate-manual", json={"couponCode": "NOPE"}, headers=auth_headers(business_id)
    )
    assert response.status_code == 404


async def test_validate_manual_single_and_expired(client, db):
    business_id, _, alice_id, _, coupon_id = await seed(db)
    claim_id = (await claim_service.claim_coupon(db, consumer_id=alice_id, coupon_id=coupon_id)).id

    response = await client.post(
        f"{API}/coupons/validate-manual", json={"couponCode": "SAVE10"}, headers=auth_headers(business_id)
    )
    assert response.status_code == 200
    assert response.json()["status"] == "success"
    assert response.json()["coupon"]["claimedCouponId"] == claim_id

    await backdate_claim(db, claim_id)
    response = await client.post(
        f"{API}/coupons/mark-as-used", json={"claimedCouponId": claim_id}, headers=auth_headers(business_id)
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Coupon has expired"


async def test_scanner_routes_require_business(client, db):
    _, _, alice_id, _, _ = await seed(db)

    response = await client.post(
        f"{API}/coupons/validate-manual", json={"couponCode": "SAVE10"}, headers=auth_headers(alice_id)
    )
    assert response.status_code == 403


async def test_business_coupon_management(client, db):
    business_id, other_business_id, alice_id, _, claimed_coupon_id = await seed(db)
    await claim_service.claim_coupon(db, consumer_id=alice_id, coupon_id=claimed_coupon_id)
    headers = auth_headers(business_id)

    response = await client.post(
        f"{API}/business/coupons/",
        json={"title": "Weekend deal", "discount_type": "percentage", "discount_percentage": "20"},
        headers=headers,
    )
    assert response.status_code == 201
    created = response.json()
    assert len(created["code"]) == 8
    assert created["status"] == "active"
    assert created["formatted_discount"] == "20.00%"

    response = await client.get(f"{API}/business/coupons/?status=active", headers=headers)
    assert response.status_code == 200
    assert response.json()["total"] == 2

    response = await client.post(f"{API}/business/coupons/{created['id']}/toggle-featured", headers=headers)
    assert response.json()["is_featured"] is True

    response = await client.put(
        f"{API}/business/coupons/{created['id']}", json={"title": "Long weekend deal"}, headers=headers
    )
    assert response.json()["title"] == "Long weekend deal"

    response = await client.get(
        f"{API}/business/coupons/{created['id']}", headers=auth_headers(other_business_id)
    )
    assert response.status_code == 404

    response = await client.delete(f"{API}/business/coupons/{claimed_coupon_id}", headers=headers)
    assert response.status_code == 400

    response = await client.delete(f"{API}/business/coupons/{created['id']}", headers=headers)
    assert response.status_code == 204


async def test_admin_cancel_claim(client, db):
    _, _, alice_id, _, coupon_id = await seed(db)
    admin_id = (await make_user(db, name="Ada", role=UserRole.ADMIN)).id
    claim_id = (await claim_service.claim_coupon(db, consumer_id=alice_id, coupon_id=coupon_id)).id

    response = await client.post(f"{API}/admin/claimed-coupons/{claim_id}/cancel", headers=auth_headers(alice_id))
    assert response.status_code == 403

    response = await client.post(f"{API}/admin/claimed-coupons/{claim_id}/cancel", headers=auth_headers(admin_id))
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"

    response = await client.post(f"{API}/admin/claimed-coupons/{claim_id}/cancel", headers=auth_headers(admin_id))
    assert response.status_code == 400


async def test_recent_notifications(client, db, fake_redis):
    business_id = (await make_business(db)).id
    await realtime_service.push_notification(fake_redis, business_id, {"id": 1, "title": "New Coupon Claimed! 🎉"})

    response = await client.get(f"{API}/notifications/recent", headers=auth_headers(business_id))
    assert response.status_code == 200
    assert response.json() == [{"id": 1, "title": "New Coupon Claimed! 🎉"}]

    response = await client.delete(f"{API}/notifications/recent", headers=auth_headers(business_id))
    assert response.status_code == 204
    assert await realtime_service.get_user_notifications(fake_redis, business_id) == []


async def test_token_role_must_match_user(client, db):
    _, _, alice_id, _, coupon_id = await seed(db)
    stale = create_access_token(alice_id, role=UserRole.BUSINESS.value)
    current = create_access_token(alice_id, role=UserRole.CONSUMER.value)

    response = await client.post(
        f"{API}/coupons/claim", json={"coupon_id": coupon_id}, headers={"Authorization": f"Bearer {stale}"}
    )
    assert response.status_code == 401

    response = await client.post(
        f"{API}/coupons/claim", json={"coupon_id": coupon_id}, headers={"Authorization": f"Bearer {current}"}
    )
    assert response.status_code == 200


async def test_business_storefront(client, db):
    business_id, _, alice_id, _, coupon_id = await seed(db)
    product = await make_product(db, business_id)
    await make_coupon(db, business_id, code="PASTRY", products=[product])
    await client.post(f"{API}/coupons/claim", json={"coupon_id": coupon_id}, headers=auth_headers(alice_id))

    response = await client.get(f"{API}/business/{business_id}/products", headers=auth_headers(alice_id))
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["business"]["business_name"] == "Bob's Bakery"
    assert data["stats"] == {"total_products": 1, "products_with_coupons": 1, "general_coupons": 1}
    product_coupon = data["products"]["with_coupons"][0]["coupons"][0]
    assert product_coupon["code"] == "PASTRY"
    assert product_coupon["is_claimed_by_user"] is False
    assert data["products"]["all"][0]["has_coupons"] is True
    general = data["general_coupons"][0]
    assert general["code"] == "SAVE10"
    assert general["is_claimed_by_user"] is True
    assert general["discount_display"] == "$10.00"

    response = await client.get(f"{API}/business/{alice_id}/products", headers=auth_headers(alice_id))
    assert response.status_code == 404
    assert response.json()["detail"] == "Business not found"

    response = await client.get(f"{API}/business/{business_id}/products", headers=auth_headers(business_id))
    assert response.status_code == 403


async def test_notification_inbox(client, db):
    business_id = (await make_business(db)).id
    alice_id = (await make_user(db, name="Alice")).id
    first_id = (await make_notification(db, [business_id], title="New Coupon Claimed! 🎉")).id
    second_id = (await make_notification(db, [business_id], title="Coupon redeemed")).id
    private_id = (await make_notification(db, [alice_id], title="Welcome")).id

    response = await client.get(f"{API}/notifications/", headers=auth_headers(business_id))
    assert response.status_code == 200
    body = response.json()
    assert [n["id"] for n in body["data"]] == [second_id, first_id]
    assert body["data"][0]["is_read"] is False
    assert body["pagination"] == {"current_page": 1, "last_page": 1, "per_page": 25, "total": 2}

    response = await client.post(f"{API}/notifications/{first_id}/read", headers=auth_headers(business_id))
    assert response.status_code == 200
    assert response.json() == {"message": "Notification marked as read", "updated": 1}

    response = await client.post(f"{API}/notifications/{private_id}/read", headers=auth_headers(business_id))
    assert response.status_code == 404

    response = await client.get(f"{API}/notifications/?status=unread", headers=auth_headers(business_id))
    assert [n["id"] for n in response.json()["data"]] == [second_id]

    response = await client.post(f"{API}/notifications/read-all", headers=auth_headers(business_id))
    assert response.json() == {"message": "All notifications marked as read", "updated": 1}
