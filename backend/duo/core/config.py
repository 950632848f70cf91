"""
应用配置模块
"""

from typing import List
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    """应用设置"""

    # 基础设置
    APP_NAME: str = "Duo 决策服务"
    VERSION: str = "1.0.0"
    DEBUG: bool = True

    # 服务器设置
    HOST: str = "0.0.0.0"
    PORT: int = 8001
    CORS_ORIGINS: List[str] = ["http://localhost:8081", "http://localhost:19006"]

    # 数据库设置
    DATABASE_URL: str = "sqlite:///./duo.db"
    DATABASE_ECHO: bool = False  # 设置为True可以看到SQL查询日志

    # 日志设置
    LOG_LEVEL: str = "INFO"

    # 投票设置
    VOTE_MODE_ROUND: int = 1   # vote模式固定为第1轮
    FINAL_POLL_ROUND: int = 3  # poll模式最后一轮：只需partner一票即可结束

    # WebSocket设置
    WS_HEARTBEAT_INTERVAL: int = 30

    class Config:
        env_file = ".env"
        case_sensitive = True

# 全局设置实例
settings = Settings()
