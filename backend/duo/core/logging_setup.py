"""
日志配置模块
"""

import logging
from typing import Optional

from duo.core.config import settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """初始化应用日志（重复调用不会重复添加handler）"""
    numeric_level = getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO)
    logging.basicConfig(level=numeric_level, format=LOG_FORMAT)

    logger = logging.getLogger("duo")
    logger.setLevel(numeric_level)

    # 避免重复的控制台handler
    if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    logger.propagate = False
    return logger

def get_logger(name: Optional[str] = None) -> logging.Logger:
    """获取duo下的子logger"""
    base = logging.getLogger("duo")
    if not name:
        return base
    if name.startswith("duo."):
        name = name[len("duo."):]
    return base.getChild(name)
