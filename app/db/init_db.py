import asyncio
import logging

from sqlalchemy import select

from app.core.config import settings
from app.db.session import engine, async_session
from app.db.base import Base  # noqa 导入所有模型，确保它们被注册到Base.metadata中
from app.models.user import User, UserRole

logger = logging.getLogger(__name__)


async def create_tables() -> None:
    """创建所有表（开发环境使用，生产环境请使用 alembic upgrade head）"""
    logger.info("创建数据库表...")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("数据库表创建完成")


async def ensure_admin(session_factory=async_session) -> None:
    """按配置创建管理员账号，已存在时只确保其角色为管理员"""
    if not settings.FIRST_ADMIN_EMAIL:
        logger.info("未配置 FIRST_ADMIN_EMAIL，跳过创建管理员")
        return

    async with session_factory() as session:
        result = await session.execute(select(User).where(User.email == settings.FIRST_ADMIN_EMAIL))
        admin = result.scalars().first()
        if admin is None:
            admin = User(email=settings.FIRST_ADMIN_EMAIL, name=settings.FIRST_ADMIN_NAME, role=UserRole.ADMIN)
            session.add(admin)
            logger.info(f"创建管理员账号: {settings.FIRST_ADMIN_EMAIL}")
        elif admin.role != UserRole.ADMIN:
            admin.role = UserRole.ADMIN
            logger.info(f"已将 {settings.FIRST_ADMIN_EMAIL} 设置为管理员")
        await session.commit()


async def init_db() -> None:
    """初始化数据库"""
    await create_tables()
    await ensure_admin()
    logger.info("数据库初始化完成")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    asyncio.run(init_db())
