from types import SimpleNamespace

import pytest

from app.models.coupon import ClaimedCouponStatus
from app.services.claim_service import claim_service
from app.services.exceptions import (
    BusinessMismatch,
    ClaimedCouponNotFound,
    CouponAlreadyUsed,
    CouponExpired,
    InvalidClaimTransition,
    InvalidCouponData,
)
from app.services.redemption_service import DEFAULT_USAGE_NOTES, GENERAL_STORE_DISCOUNT, redemption_service
from factories import backdate_claim, make_business, make_coupon, make_user


@pytest.fixture
async def scenario(db):
    business_id = (await make_business(db)).id
    other_business_id = (await make_business(db, name="Olga", business_name="Olga's Deli")).id
    alice_id = (await make_user(db, name="Alice")).id
    carol_id = (await make_user(db, name="Carol")).id
    coupon_id = (await make_coupon(db, business_id, code="SAVE10")).id
    claim = await claim_service.claim_coupon(db, consumer_id=alice_id, coupon_id=coupon_id)
    return SimpleNamespace(
        business_id=business_id,
        other_business_id=other_business_id,
        alice_id=alice_id,
        carol_id=carol_id,
        coupon_id=coupon_id,
        claim_id=claim.id,
        code="SAVE10",
    )


async def validate_direct(db, s, **overrides):
    kwargs = dict(
        scanner_id=s.business_id,
        coupon_code=s.code,
        consumer_id=s.alice_id,
        business_id=s.business_id,
    )
    kwargs.update(overrides)
    return await redemption_service.validate_direct(db, **kwargs)


async def test_validate_direct(db, scenario):
    view = await validate_direct(db, scenario)

    assert view.claimed_coupon_id == scenario.claim_id
    assert view.coupon_code == "SAVE10"
    assert view.customer_name == "Alice"
    assert view.customer_email == "alice@example.com"
    assert view.business_name == "Bob's Bakery"
    assert view.product_name == GENERAL_STORE_DISCOUNT
    assert view.discount_display == "$10.00"


async def test_validate_direct_rejects_other_business_before_lookup(db, scenario):
    with pytest.raises(BusinessMismatch):
        await validate_direct(db, scenario, scanner_id=scenario.other_business_id)

    # 即使券码不存在也先返回 403，不泄露其他商家的数据
    with pytest.raises(BusinessMismatch):
        await validate_direct(db, scenario, scanner_id=scenario.other_business_id, coupon_code="NOPE")


async def test_validate_direct_unknown_consumer(db, scenario):
    with pytest.raises(ClaimedCouponNotFound) as exc_info:
        await validate_direct(db, scenario, consumer_id=scenario.carol_id)
    assert exc_info.value.message == "Coupon not found for this user"


async def test_validate_scan_checks_claim_id(db, scenario):
    view = await validate_direct(db, scenario, claim_id=scenario.claim_id)
    assert view.claimed_coupon_id == scenario.claim_id

    with pytest.raises(ClaimedCouponNotFound):
        await validate_direct(db, scenario, claim_id=scenario.claim_id + 100)


async def test_validate_direct_reports_used_claim(db, scenario):
    await redemption_service.mark_as_used(db, business_id=scenario.business_id, claim_id=scenario.claim_id)

    with pytest.raises(CouponAlreadyUsed):
        await validate_direct(db, scenario)


async def test_expired_snapshot_fails_every_mode(db, scenario):
    await backdate_claim(db, scenario.claim_id)

    with pytest.raises(CouponExpired):
        await validate_direct(db, scenario)
    with pytest.raises(CouponExpired):
        await redemption_service.validate_manual(db, business_id=scenario.business_id, coupon_code=scenario.code)
    with pytest.raises(CouponExpired):
        await redemption_service.validate_specific(db, business_id=scenario.business_id, claim_id=scenario.claim_id)
    with pytest.raises(CouponExpired):
        await redemption_service.mark_as_used(db, business_id=scenario.business_id, claim_id=scenario.claim_id)

    claim = await claim_service.get_claim(db, scenario.claim_id)
    assert claim.status == ClaimedCouponStatus.CLAIMED
    assert claim.used_at is None


async def test_validate_manual_single_and_multiple(db, scenario):
    result = await redemption_service.validate_manual(
        db, business_id=scenario.business_id, coupon_code=scenario.code
    )
    assert result.kind == "single"
    assert result.coupon.claimed_coupon_id == scenario.claim_id

    carol_claim = await claim_service.claim_coupon(db, consumer_id=scenario.carol_id, coupon_id=scenario.coupon_id)
    result = await redemption_service.validate_manual(
        db, business_id=scenario.business_id, coupon_code=scenario.code
    )
    assert result.kind == "multiple"
    assert [c.claimed_coupon_id for c in result.customers] == [scenario.claim_id, carol_claim.id]
    assert all(not c.is_used and not c.is_expired for c in result.customers)


async def test_three_candidates_flags_and_targeted_redemption(db, scenario):
    dave_id = (await make_user(db, name="Dave")).id
    carol_claim = await claim_service.claim_coupon(db, consumer_id=scenario.carol_id, coupon_id=scenario.coupon_id)
    carol_claim_id = carol_claim.id
    dave_claim = await claim_service.claim_coupon(db, consumer_id=dave_id, coupon_id=scenario.coupon_id)
    dave_claim_id = dave_claim.id
    await backdate_claim(db, dave_claim_id)

    result = await redemption_service.validate_manual(
        db, business_id=scenario.business_id, coupon_code=scenario.code
    )
    assert result.kind == "multiple"
    candidates = {c.claimed_coupon_id: c for c in result.customers}
    assert list(candidates) == [scenario.claim_id, carol_claim_id, dave_claim_id]
    assert [c.customer_name for c in result.customers] == ["Alice", "Carol", "Dave"]
    assert candidates[dave_claim_id].is_expired is True
    assert candidates[scenario.claim_id].is_expired is False
    assert candidates[carol_claim_id].is_expired is False
    assert all(c.is_used is False for c in result.customers)

    view = await redemption_service.validate_specific(db, business_id=scenario.business_id, claim_id=carol_claim_id)
    assert view.customer_name == "Carol"
    used = await redemption_service.mark_as_used(db, business_id=scenario.business_id, claim_id=carol_claim_id)
    assert used.status == ClaimedCouponStatus.USED

    assert (await claim_service.get_claim(db, scenario.claim_id)).status == ClaimedCouponStatus.CLAIMED
    assert (await claim_service.get_claim(db, dave_claim_id)).status == ClaimedCouponStatus.CLAIMED

    result = await redemption_service.validate_manual(
        db, business_id=scenario.business_id, coupon_code=scenario.code
    )
    assert [c.claimed_coupon_id for c in result.customers] == [scenario.claim_id, dave_claim_id]


async def test_validate_manual_is_scoped_to_business(db, scenario):
    with pytest.raises(ClaimedCouponNotFound):
        await redemption_service.validate_manual(
            db, business_id=scenario.other_business_id, coupon_code=scenario.code
        )
    with pytest.raises(ClaimedCouponNotFound):
        await redemption_service.validate_manual(db, business_id=scenario.business_id, coupon_code="UNKNOWN")


async def test_validate_specific_is_scoped_to_business(db, scenario):
    with pytest.raises(ClaimedCouponNotFound):
        await redemption_service.validate_specific(
            db, business_id=scenario.other_business_id, claim_id=scenario.claim_id
        )


async def test_search_customers(db, scenario):
    await claim_service.claim_coupon(db, consumer_id=scenario.carol_id, coupon_id=scenario.coupon_id)

    found = await redemption_service.search_customers(
        db, business_id=scenario.business_id, coupon_code=scenario.code, query="ALI"
    )
    assert [c.customer_name for c in found] == ["Alice"]

    found = await redemption_service.search_customers(
        db, business_id=scenario.business_id, coupon_code=scenario.code, query="example.com"
    )
    assert [c.customer_name for c in found] == ["Alice", "Carol"]

    await redemption_service.mark_as_used(db, business_id=scenario.business_id, claim_id=scenario.claim_id)
    found = await redemption_service.search_customers(
        db, business_id=scenario.business_id, coupon_code=scenario.code, query="example.com"
    )
    assert [c.customer_name for c in found] == ["Carol"]


async def test_search_customers_requires_code_and_query(db, scenario):
    with pytest.raises(InvalidCouponData):
        await redemption_service.search_customers(
            db, business_id=scenario.business_id, coupon_code=scenario.code, query=None
        )
    with pytest.raises(InvalidCouponData):
        await redemption_service.search_customers(
            db, business_id=scenario.business_id, coupon_code="", query="alice"
        )


async def test_mark_as_used_is_terminal(db, scenario, status_task):
    claim = await redemption_service.mark_as_used(
        db, business_id=scenario.business_id, claim_id=scenario.claim_id
    )
    assert claim.status == ClaimedCouponStatus.USED
    assert claim.used_at is not None
    assert claim.usage_notes == DEFAULT_USAGE_NOTES
    assert claim.active_claim is True
    first_used_at = claim.used_at

    assert len(status_task.calls) == 1
    assert status_task.calls[0]["user_id"] == scenario.alice_id
    assert status_task.calls[0]["payload"]["status"] == "used"
    assert status_task.calls[0]["payload"]["business"]["name"] == "Bob's Bakery"

    with pytest.raises(CouponAlreadyUsed):
        await redemption_service.mark_as_used(
            db, business_id=scenario.business_id, claim_id=scenario.claim_id, notes="again"
        )

    claim = await claim_service.get_claim(db, scenario.claim_id)
    assert claim.status == ClaimedCouponStatus.USED
    assert claim.used_at == first_used_at
    assert claim.usage_notes == DEFAULT_USAGE_NOTES
    assert len(status_task.calls) == 1


async def test_mark_as_used_keeps_notes(db, scenario):
    claim = await redemption_service.mark_as_used(
        db, business_id=scenario.business_id, claim_id=scenario.claim_id, notes="Table 4"
    )
    assert claim.usage_notes == "Table 4"


async def test_mark_as_used_for_other_business(db, scenario):
    with pytest.raises(ClaimedCouponNotFound):
        await redemption_service.mark_as_used(
            db, business_id=scenario.other_business_id, claim_id=scenario.claim_id
        )

    claim = await claim_service.get_claim(db, scenario.claim_id)
    assert claim.status == ClaimedCouponStatus.CLAIMED


async def test_status_event_failure_does_not_undo_redemption(db, scenario, status_task):
    status_task.error = RuntimeError("broker unavailable")

    claim = await redemption_service.mark_as_used(
        db, business_id=scenario.business_id, claim_id=scenario.claim_id
    )

    assert claim.status == ClaimedCouponStatus.USED


async def test_cancel_claim(db, scenario, status_task):
    claim = await redemption_service.cancel_claim(db, claim_id=scenario.claim_id)

    assert claim.status == ClaimedCouponStatus.CANCELLED
    assert claim.active_claim is None
    assert status_task.calls[0]["payload"]["status"] == "cancelled"

    with pytest.raises(InvalidClaimTransition):
        await redemption_service.cancel_claim(db, claim_id=scenario.claim_id)
    with pytest.raises(ClaimedCouponNotFound):
        await redemption_service.cancel_claim(db, claim_id=9999)


async def test_cancel_used_claim_is_rejected(db, scenario):
    await redemption_service.mark_as_used(db, business_id=scenario.business_id, claim_id=scenario.claim_id)

    with pytest.raises(CouponAlreadyUsed):
        await redemption_service.cancel_claim(db, claim_id=scenario.claim_id)


async def test_expire_overdue_claims(db, scenario):
    carol_claim = await claim_service.claim_coupon(db, consumer_id=scenario.carol_id, coupon_id=scenario.coupon_id)
    carol_claim_id = carol_claim.id
    await backdate_claim(db, scenario.claim_id)

    assert await redemption_service.expire_overdue_claims(db) == 1
    assert await redemption_service.expire_overdue_claims(db) == 0

    expired = await claim_service.get_claim(db, scenario.claim_id)
    assert expired.status == ClaimedCouponStatus.EXPIRED
    assert expired.active_claim is None
    assert (await claim_service.get_claim(db, carol_claim_id)).status == ClaimedCouponStatus.CLAIMED

    with pytest.raises(CouponExpired):
        await validate_direct(db, scenario)
