import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Any, Dict

import jwt

from app.core.config import settings

logger = logging.getLogger(__name__)

# 令牌黑名单前缀
TOKEN_BLACKLIST_PREFIX = "token:blacklist:"


def create_access_token(
        subject: str | Any, expires_delta: Optional[timedelta] = None, role: Optional[str] = None
) -> str:
    """创建访问令牌，role 写入令牌后会在每次请求时与用户当前角色比对"""
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode = {"exp": expire, "sub": str(subject), "type": "access"}
    if role:
        to_encode["role"] = role
    encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return encoded_jwt


def decode_token(token: str) -> Dict[str, Any]:
    """解码令牌"""
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])


async def add_token_to_blacklist(token: str, redis_pool) -> None:
    """
    将令牌添加到黑名单，黑名单记录在令牌过期时由Redis自动删除
    """
    try:
        payload = decode_token(token)
    except jwt.PyJWTError as e:
        # 令牌无效或已过期，不需要加入黑名单
        logger.info(f"令牌无效，跳过加入黑名单: {e}")
        return

    exp_timestamp = payload.get("exp")
    if exp_timestamp:
        current_timestamp = datetime.now(timezone.utc).timestamp()
        ttl = max(int(exp_timestamp - current_timestamp), 1)
        await redis_pool.set(f"{TOKEN_BLACKLIST_PREFIX}{token}", "1", ex=ttl)


async def is_token_blacklisted(token: str, redis_pool) -> bool:
    """
    检查令牌是否在黑名单中
    """
    key = f"{TOKEN_BLACKLIST_PREFIX}{token}"
    return await redis_pool.exists(key) > 0
