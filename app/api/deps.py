"""
api依赖项
"""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jwt.exceptions import PyJWTError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.core.redis_client import get_redis
from app.core.security import decode_token, is_token_blacklisted
from app.db.session import get_db
from app.models.user import User, UserRole
from app.services.exceptions import CouponException, NOT_FOUND, FORBIDDEN

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")

__all__ = [
    "get_db",
    "get_current_user",
    "get_current_consumer",
    "get_current_business",
    "get_current_admin",
    "raise_http_error",
]


async def get_current_user(
        token: Annotated[str, Depends(oauth2_scheme)],
        db: AsyncSession = Depends(get_db),
        redis_pool=Depends(get_redis)
) -> User:
    """
    获取当前用户
    """
    # 检查令牌是否在黑名单中
    if await is_token_blacklisted(token, redis_pool):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="令牌已失效",
            headers={"WWW-Authenticate": "Bearer"},
        )

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="无法验证凭据",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_token(token)
        user_id = payload.get("sub")
        if user_id is None:
            raise credentials_exception

        # 验证令牌类型
        if payload.get("type") != "access":
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="无效的令牌类型",
                headers={"WWW-Authenticate": "Bearer"},
            )
        token_role = payload.get("role")
        user_id = int(user_id)
    except (PyJWTError, ValueError):
        raise credentials_exception

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalars().first()

    if user is None:
        raise credentials_exception
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="用户已被禁用")
    # 角色变更后，旧令牌失效
    if token_role is not None and token_role != user.role.value:
        raise credentials_exception
    return user


def has_role(required_role: UserRole):
    """
    检查用户是否有特定角色，管理员不自动拥有其他角色
    """

    async def role_checker(current_user: Annotated[User, Depends(get_current_user)]) -> User:
        if current_user.role != required_role:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"需要角色: {required_role.value}"
            )
        return current_user

    return role_checker


get_current_consumer = has_role(UserRole.CONSUMER)
get_current_business = has_role(UserRole.BUSINESS)
get_current_admin = has_role(UserRole.ADMIN)


def raise_http_error(exc: CouponException) -> None:
    """将领域异常映射为 HTTP 错误：NotFound -> 404, Forbidden -> 403, 其余 -> 400"""
    if exc.kind == NOT_FOUND:
        status_code = status.HTTP_404_NOT_FOUND
    elif exc.kind == FORBIDDEN:
        status_code = status.HTTP_403_FORBIDDEN
    else:
        status_code = status.HTTP_400_BAD_REQUEST
    raise HTTPException(status_code=status_code, detail=exc.message)
