"""
API路由模块
"""

from fastapi import APIRouter
from .decision_routes import router as decision_router
from .websocket_routes import router as ws_router

# 创建主路由器
api_router = APIRouter()

# 注册各个功能模块的路由
api_router.include_router(decision_router, prefix="/decisions", tags=["决策管理"])
api_router.include_router(ws_router, prefix="/ws", tags=["WebSocket"])
