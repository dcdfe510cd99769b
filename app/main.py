from contextlib import asynccontextmanager
import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.api import api_router
from app.core.config import settings
from app.db.session import close_db_connection

# 配置日志
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler()]
)
logger = logging.getLogger(__name__)

# 只记录会修改数据的请求（领取、核销、作废、目录管理）
LOGGED_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """
    应用生命周期管理器
    """
    logger.info(f"{settings.PROJECT_NAME} 启动...")
    yield
    logger.info("应用关闭...")
    await close_db_connection()
    logger.info("数据库连接已关闭")


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="基于FastAPI的优惠券领取与核销API",
    version="0.1.0",
    lifespan=lifespan,
)

# 配置CORS
app.add_middleware(
    CORSMiddleware,  # type: ignore
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_write_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    if request.method in LOGGED_METHODS:
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f}ms)")
    return response


@app.get("/")
async def root():
    return {"message": f"Welcome to the {settings.PROJECT_NAME}!"}


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


# 注册API路由
app.include_router(api_router, prefix=settings.API_V1_STR)
