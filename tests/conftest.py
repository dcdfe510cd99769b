import os

# 必须在导入 app 之前设置，避免模块级引擎使用 MySQL 配置
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_import.db")
os.environ.setdefault("SMTP_HOST", "")

from typing import Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.redis_client import get_redis
from app.db.base import Base
from app.db.session import build_engine, get_db
from app.main import app
from app.services import notification_service


class FakeRedis:
    """只实现用到的 Redis 命令"""

    def __init__(self):
        self.values = {}
        self.lists = {}
        self.ttls = {}
        self.published = []
        self.closed = False

    @staticmethod
    def _slice(items, start, end):
        n = len(items)
        start = start if start >= 0 else max(n + start, 0)
        end = end if end >= 0 else n + end
        return items[start:end + 1]

    async def exists(self, *keys):
        return sum(1 for key in keys if key in self.values or key in self.lists)

    async def set(self, key, value, ex=None):
        self.values[key] = value
        if ex is not None:
            self.ttls[key] = ex
        return True

    async def publish(self, channel, message):
        self.published.append((channel, message))
        return 1

    async def rpush(self, key, *values):
        items = self.lists.setdefault(key, [])
        items.extend(values)
        return len(items)

    async def ltrim(self, key, start, end):
        self.lists[key] = self._slice(self.lists.get(key, []), start, end)
        return True

    async def lrange(self, key, start, end):
        return self._slice(self.lists.get(key, []), start, end)

    async def expire(self, key, seconds):
        self.ttls[key] = seconds
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            removed += int(self.values.pop(key, None) is not None)
            removed += int(self.lists.pop(key, None) is not None)
        return removed

    async def aclose(self):
        self.closed = True


class TaskRecorder:
    """替代 Celery 任务的 delay，记录入队参数"""

    def __init__(self):
        self.calls = []
        self.error: Optional[Exception] = None

    def delay(self, **kwargs):
        if self.error is not None:
            raise self.error
        self.calls.append(kwargs)


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'coupons.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture(autouse=True)
def notification_task(monkeypatch):
    recorder = TaskRecorder()
    monkeypatch.setattr(notification_service, "send_notification_task", recorder)
    return recorder


@pytest.fixture(autouse=True)
def status_task(monkeypatch):
    recorder = TaskRecorder()
    monkeypatch.setattr(notification_service, "publish_coupon_status_changed_task", recorder)
    return recorder


@pytest.fixture
async def client(session_factory, fake_redis):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    async def override_get_redis():
        return fake_redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()

