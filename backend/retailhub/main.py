from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, NoResultFound

from retailhub.api.api_v1.api import api_router
from retailhub.core.config import settings
from retailhub.core.logging_config import setup_logging, get_logger
from retailhub.services.scheduler import init_scheduler, shutdown_scheduler
from retailhub.db.init_db import ensure_tables_exist

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 启动时
    setup_logging(settings.LOG_LEVEL)
    logger.info("🚀 应用启动中...")

    # 确保数据库表存在
    try:
        await ensure_tables_exist()
        logger.info("📊 数据库表已就绪")
    except Exception as e:
        logger.warning(f"数据库表初始化警告: {e}")

    init_scheduler()
    yield
    # 关闭时
    logger.info("🛑 应用关闭中...")
    shutdown_scheduler()

app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    description="零售管理系统 - 多组织版",
    lifespan=lifespan
)

# CORS配置
if settings.BACKEND_CORS_ORIGINS:
    logger.info(f"配置CORS，允许的源: {settings.BACKEND_CORS_ORIGINS}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(origin) for origin in settings.BACKEND_CORS_ORIGINS],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    """数据库约束冲突（唯一约束、外键等）"""
    hint = str(exc.orig) if exc.orig is not None else ""
    logger.warning(f"数据冲突 {request.method} {request.url.path}: {hint}")
    return JSONResponse(status_code=409, content={"detail": f"数据冲突：{hint}" if hint else "数据冲突"})


@app.exception_handler(NoResultFound)
async def not_found_handler(request: Request, exc: NoResultFound):
    return JSONResponse(status_code=404, content={"detail": "记录不存在"})


logger.info(f"注册API路由，前缀: {settings.API_V1_STR}")
app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/")
async def root():
    return {"message": "零售管理系统 - 多组织版"}


@app.get("/health")
async def health():
    return {"status": "ok"}
