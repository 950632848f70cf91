#!/usr/bin/env python3
"""
Duo 决策服务 - 后端主入口
"""

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from duo.core.config import settings
from duo.core.logging_setup import setup_logging
from duo.api import api_router
from duo.core.database import init_db

logger = setup_logging()

app = FastAPI(
    title=settings.APP_NAME,
    description="两人共同决策（vote / poll）后端API",
    version=settings.VERSION
)

# CORS设置
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 注册API路由
app.include_router(api_router, prefix="/api")

@app.on_event("startup")
async def startup_event():
    """应用启动时的初始化"""
    logger.info("🚀 启动Duo决策后端服务...")
    init_db()

@app.get("/")
async def root():
    """根路径健康检查"""
    return {"message": f"{settings.APP_NAME}运行中", "status": "healthy"}

@app.get("/health")
async def health_check():
    """健康检查端点"""
    return {"status": "healthy", "service": "duo-decisions"}

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
