import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from discipline_journal.core.config import settings
from discipline_journal.core.logging_config import setup_logging
from discipline_journal.models.db import SessionLocal, engine, init_models, redis_client

# 初始化系统日志
setup_logging(settings.LOG_LEVEL)

from discipline_journal.core.exceptions import (
    DisciplineViolation,
    InvalidSetup,
    InvalidState,
    NotFound,
    TradeJournalError,
)
from discipline_journal.jobs.review_worker import review_queue
from discipline_journal.routers import ai as ai_router
from discipline_journal.routers import settings as settings_router
from discipline_journal.routers import trade_plans
from discipline_journal.services.app_settings_service import AppSettingsService

logger = logging.getLogger(__name__)

# 业务异常 → HTTP 状态码
ERROR_STATUS = {
    DisciplineViolation: 400,
    InvalidSetup: 400,
    InvalidState: 409,
    NotFound: 404,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理：启动时建表、写入默认设置并启动复盘 worker，关闭时清理"""
    await init_models()
    async with SessionLocal() as session:
        await AppSettingsService(session).ensure_defaults()

    if settings.ENABLE_REVIEW_WORKER:
        review_queue.start()
    else:
        logger.info("Review worker disabled (ENABLE_REVIEW_WORKER=false)")

    yield

    await review_queue.stop()
    if redis_client:
        await redis_client.close()
        logger.info("Redis connection closed")
    await engine.dispose()
    logger.info("Database engine disposed")


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(TradeJournalError)
async def trade_journal_error_handler(request: Request, exc: TradeJournalError):
    status_code = ERROR_STATUS.get(type(exc), 400)
    logger.warning(f"{request.method} {request.url.path} rejected: {exc.code} - {exc.message}")
    return JSONResponse(status_code=status_code, content={"error": exc.code, "message": exc.message})


# 注册路由
app.include_router(trade_plans.router, prefix="/api/v1")
app.include_router(settings_router.router, prefix="/api/v1")
app.include_router(ai_router.router, prefix="/api/v1")


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "review_worker": review_queue.running,
        "pending_reviews": review_queue.pending(),
    }
