import logging
import secrets
import string
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, func, update, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.coupon import ACTIVE_CLAIM_STATUSES, Coupon, ClaimedCoupon
from app.models.product import Product
from app.models.user import User, UserRole
from app.schemas.coupon import CouponCreate, CouponUpdate
from app.schemas.storefront import (
    BusinessStorefront,
    StorefrontBusiness,
    StorefrontCoupon,
    StorefrontProduct,
    StorefrontProducts,
    StorefrontStats,
)
from app.services.coupon_rules import as_utc, can_be_used, coupon_status, utcnow
from app.services.exceptions import (
    BusinessNotFound,
    CouponCodeTaken,
    CouponHasClaims,
    CouponNotFound,
    InvalidCouponData,
    ProductNotFound,
)

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 8


def build_storefront_coupon(
        coupon: Coupon, claimed_at: Dict[int, datetime], now: Optional[datetime] = None
) -> StorefrontCoupon:
    now = now or utcnow()
    return StorefrontCoupon.model_validate(coupon).model_copy(update=dict(
        is_valid=coupon_status(coupon, now) == "active",
        can_be_used=can_be_used(coupon, now),
        is_claimed_by_user=coupon.id in claimed_at,
        claimed_at=claimed_at.get(coupon.id),
    ))


class CouponService:
    """商家优惠券目录管理"""

    async def get_coupon(self, db: AsyncSession, coupon_id: int) -> Optional[Coupon]:  # noqa
        """通过ID获取优惠券，预加载适用商品"""
        result = await db.execute(
            select(Coupon).where(Coupon.id == coupon_id).options(selectinload(Coupon.products))
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def get_active_coupon(self, db: AsyncSession, coupon_id: int) -> Optional[Coupon]:  # noqa
        """获取已激活的优惠券，用于领取"""
        result = await db.execute(
            select(Coupon).where(Coupon.id == coupon_id, Coupon.is_active.is_(True))
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def get_business_coupon(self, db: AsyncSession, *, business_id: int, coupon_id: int) -> Coupon:
        """获取属于该商家的优惠券，其他商家的优惠券视为不存在"""
        coupon = await self.get_coupon(db, coupon_id)
        if not coupon or coupon.user_id != business_id:
            raise CouponNotFound("Coupon not found")
        return coupon

    async def list_coupons(  # noqa
            self,
            db: AsyncSession,
            *,
            business_id: int,
            search: Optional[str] = None,
            status: Optional[str] = None,
            page: int = 1,
            size: int = 20,
    ) -> Tuple[List[Coupon], int]:
        """
        获取商家的优惠券列表（分页）
        status 可选: active / inactive / expired / featured
        """
        if page < 1:
            page = 1
        if size < 1:
            size = 20
        skip = (page - 1) * size

        base_query = select(Coupon).where(Coupon.user_id == business_id)

        if search:
            base_query = base_query.where(
                or_(
                    Coupon.title.icontains(search, autoescape=True),
                    Coupon.code.icontains(search, autoescape=True),
                    Coupon.description.icontains(search, autoescape=True),
                )
            )

        now = utcnow()
        if status == "active":
            base_query = base_query.where(
                Coupon.is_active.is_(True),
                or_(Coupon.starts_at.is_(None), Coupon.starts_at <= now),
                or_(Coupon.expires_at.is_(None), Coupon.expires_at >= now),
            )
        elif status == "inactive":
            base_query = base_query.where(Coupon.is_active.is_(False))
        elif status == "expired":
            base_query = base_query.where(Coupon.expires_at < now)
        elif status == "featured":
            base_query = base_query.where(Coupon.is_featured.is_(True))

        count_query = select(func.count()).select_from(base_query.subquery())
        total = (await db.execute(count_query)).scalar_one()

        result = await db.execute(
            base_query
            .options(selectinload(Coupon.products))
            .order_by(Coupon.created_at.desc(), Coupon.id.desc())
            .offset(skip)
            .limit(size)
        )
        return list(result.scalars().all()), total

    async def _generate_coupon_code(self, db: AsyncSession) -> str:  # noqa
        """生成唯一的优惠券码"""
        while True:
            code = "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))
            result = await db.execute(select(Coupon.id).where(Coupon.code == code))
            if result.scalar_one_or_none() is None:
                return code

    async def _ensure_code_available(  # noqa
            self, db: AsyncSession, code: str, exclude_id: Optional[int] = None
    ) -> None:
        query = select(Coupon.id).where(Coupon.code == code)
        if exclude_id is not None:
            query = query.where(Coupon.id != exclude_id)
        if (await db.execute(query)).scalar_one_or_none() is not None:
            raise CouponCodeTaken()

    async def _resolve_products(  # noqa
            self, db: AsyncSession, business_id: int, product_ids: List[int]
    ) -> List[Product]:
        """适用商品必须都属于该商家"""
        if not product_ids:
            return []
        unique_ids = set(product_ids)
        result = await db.execute(
            select(Product).where(Product.id.in_(unique_ids), Product.user_id == business_id)
        )
        products = list(result.scalars().all())
        if len(products) != len(unique_ids):
            missing = sorted(unique_ids - {p.id for p in products})
            raise ProductNotFound(f"Products not found: {missing}")
        return products

    async def create_coupon(self, db: AsyncSession, *, business_id: int, coupon_in: CouponCreate) -> Coupon:
        """创建优惠券，未指定券码时自动生成"""
        data = coupon_in.model_dump(exclude={"product_ids", "code"})
        data["starts_at"] = as_utc(data.get("starts_at"))
        data["expires_at"] = as_utc(data.get("expires_at"))
        if data.get("per_user_limit") is None:
            data["per_user_limit"] = 1

        if coupon_in.code:
            code = coupon_in.code.strip().upper()
            await self._ensure_code_available(db, code)
        else:
            code = await self._generate_coupon_code(db)

        products = await self._resolve_products(db, business_id, coupon_in.product_ids or [])

        coupon = Coupon(user_id=business_id, code=code, used_count=0, products=products, **data)
        db.add(coupon)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise CouponCodeTaken()

        logger.info(f"商家 {business_id} 创建优惠券 {coupon.code} (id={coupon.id})")
        return await self.get_coupon(db, coupon.id)

    async def update_coupon(
            self, db: AsyncSession, *, business_id: int, coupon_id: int, coupon_in: CouponUpdate
    ) -> Coupon:
        """
        更新优惠券（部分更新）
        已领取的记录保存了领取时的快照，不受此处修改影响
        """
        coupon = await self.get_business_coupon(db, business_id=business_id, coupon_id=coupon_id)

        update_data = coupon_in.model_dump(exclude_unset=True)
        product_ids = update_data.pop("product_ids", None)

        if "code" in update_data:
            code = (update_data.pop("code") or "").strip().upper()
            if code and code != coupon.code:
                await self._ensure_code_available(db, code, exclude_id=coupon.id)
                coupon.code = code

        for field in ("starts_at", "expires_at"):
            if field in update_data:
                update_data[field] = as_utc(update_data[field])

        for field, value in update_data.items():
            setattr(coupon, field, value)

        starts_at, expires_at = as_utc(coupon.starts_at), as_utc(coupon.expires_at)
        if starts_at and expires_at and expires_at <= starts_at:
            await db.rollback()
            raise InvalidCouponData("expires_at must be after starts_at")

        if product_ids is not None:
            coupon.products = await self._resolve_products(db, business_id, product_ids)

        db.add(coupon)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise CouponCodeTaken()

        return await self.get_coupon(db, coupon.id)

    async def toggle_featured(self, db: AsyncSession, *, business_id: int, coupon_id: int) -> Coupon:
        coupon = await self.get_business_coupon(db, business_id=business_id, coupon_id=coupon_id)
        coupon.is_featured = not coupon.is_featured
        db.add(coupon)
        await db.commit()
        return await self.get_coupon(db, coupon.id)

    async def delete_coupon(self, db: AsyncSession, *, business_id: int, coupon_id: int) -> None:
        """
        删除优惠券
        已有用户领取时不允许删除，领取台账需要永久保留，可以将其设置为未激活
        """
        coupon = await self.get_business_coupon(db, business_id=business_id, coupon_id=coupon_id)

        claim_check = await db.execute(
            select(ClaimedCoupon.id).where(ClaimedCoupon.coupon_id == coupon.id).limit(1)
        )
        if claim_check.scalar_one_or_none() is not None:
            raise CouponHasClaims()

        await db.delete(coupon)
        await db.commit()
        logger.info(f"商家 {business_id} 删除优惠券 {coupon_id}")

    async def get_business_storefront(  # noqa
            self, db: AsyncSession, *, business_id: int, consumer_id: int
    ) -> BusinessStorefront:
        """
        消费者查看商家的商品及优惠券
        优惠券只在当前可领取，或该用户已领取（claimed/used）时展示
        """
        business_result = await db.execute(
            select(User).where(User.id == business_id, User.role == UserRole.BUSINESS)
        )
        business = business_result.scalars().first()
        if business is None:
            raise BusinessNotFound()

        product_result = await db.execute(
            select(Product)
            .where(Product.user_id == business_id, Product.is_active.is_(True))
            .options(selectinload(Product.coupons))
            .order_by(Product.name.asc(), Product.id.asc())
            .execution_options(populate_existing=True)
        )
        products = list(product_result.scalars().all())

        general_result = await db.execute(
            select(Coupon)
            .where(Coupon.user_id == business_id, ~Coupon.products.any())
            .order_by(Coupon.created_at.desc(), Coupon.id.desc())
            .execution_options(populate_existing=True)
        )
        general_coupons = list(general_result.scalars().all())

        claim_result = await db.execute(
            select(ClaimedCoupon.coupon_id, ClaimedCoupon.created_at)
            .where(
                ClaimedCoupon.user_id == consumer_id,
                ClaimedCoupon.business_id == business_id,
                ClaimedCoupon.status.in_(ACTIVE_CLAIM_STATUSES),
            )
        )
        claimed_at = {coupon_id: created_at for coupon_id, created_at in claim_result.all()}

        now = utcnow()

        def visible(coupons: List[Coupon]) -> List[StorefrontCoupon]:
            return [
                build_storefront_coupon(coupon, claimed_at, now)
                for coupon in sorted(coupons, key=lambda c: c.id)
                if coupon.id in claimed_at or can_be_used(coupon, now)
            ]

        all_products = [
            StorefrontProduct(
                id=product.id,
                name=product.name,
                description=product.description,
                price=product.price,
                image=product.image,
                coupons=visible(product.coupons),
                created_at=product.created_at,
                updated_at=product.updated_at,
            )
            for product in products
        ]
        with_coupons = [p for p in all_products if p.has_coupons]
        general_views = visible(general_coupons)

        return BusinessStorefront(
            business=StorefrontBusiness.model_validate(business),
            products=StorefrontProducts(all=all_products, with_coupons=with_coupons),
            general_coupons=general_views,
            stats=StorefrontStats(
                total_products=len(all_products),
                products_with_coupons=len(with_coupons),
                general_coupons=len(general_views),
            ),
        )

    async def reconcile_usage_counts(self, db: AsyncSession) -> int:  # noqa
        """
        将 used_count 校准为台账中的领取记录数，返回被修正的优惠券数量
        单条 UPDATE 完成，不会与并发领取的原子自增互相覆盖
        """
        claim_count = (
            select(func.count(ClaimedCoupon.id))
            .where(ClaimedCoupon.coupon_id == Coupon.id)
            .scalar_subquery()
        )
        result = await db.execute(
            update(Coupon)
            .where(Coupon.used_count != claim_count)
            .values(used_count=claim_count)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        corrected = result.rowcount or 0
        if corrected:
            logger.warning(f"校准了 {corrected} 个优惠券的领取计数")
        return corrected


coupon_service = CouponService()
