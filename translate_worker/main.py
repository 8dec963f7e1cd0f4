"""FastAPI应用主文件.

Review note:
- 只挂载翻译任务接口；任务快照目录在启动时创建。
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging
import os

from translate_worker.config import settings

logger = logging.getLogger("uvicorn.error")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    logger.info("启动小说翻译任务服务...")
    os.makedirs(settings.JOB_DATA_DIR, exist_ok=True)
    logger.info("书库地址: %s", settings.CATALOG_BASE_URL)

    yield

    logger.info("关闭小说翻译任务服务...")


# 创建FastAPI应用
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="小说批量翻译任务服务API",
    lifespan=lifespan,
)

# 配置CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def root():
    """根路径"""
    return {
        "message": "欢迎使用小说翻译任务服务API",
        "version": settings.APP_VERSION,
        "docs": "/docs"
    }


@app.get("/health")
async def health_check():
    """健康检查"""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION
    }


# 导入并注册路由
from translate_worker.api.v1 import jobs
app.include_router(jobs.router, prefix="/api/v1/jobs", tags=["jobs"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "translate_worker.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
