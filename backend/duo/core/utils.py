"""
工具函数模块
"""

from typing import Optional
from datetime import datetime, timezone


def format_timestamp_with_timezone(timestamp: Optional[datetime]) -> Optional[str]:
    """格式化时间戳，确保包含UTC时区标识符"""
    if not timestamp:
        return None
    # SQLite返回的时间不带时区，按UTC处理
    if timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone(timezone.utc).replace(tzinfo=None)
    return timestamp.isoformat() + 'Z'
