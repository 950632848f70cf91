"""
决策变更通知服务（WebSocket连接管理）
"""

from fastapi import WebSocket
from typing import Dict, List
import json
from duo.core.logging_setup import get_logger

logger = get_logger(__name__)

class DecisionNotifier:
    """按决策分组的WebSocket连接管理器

    通知只是让其他会话尽快刷新，丢失不会影响正确性：任何客户端都可以重新读取数据库得到当前状态。
    """

    def __init__(self):
        # 决策观察者连接
        self.decision_connections: Dict[int, List[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, decision_id: int):
        """连接观察者WebSocket"""
        await websocket.accept()
        connections = self.decision_connections.setdefault(decision_id, [])

        # 检查是否已存在，避免重复连接
        if websocket not in connections:
            connections.append(websocket)
            logger.info(f"新连接加入决策 {decision_id}，当前连接数: {len(connections)}")

    def disconnect(self, websocket: WebSocket, decision_id: int):
        """断开观察者连接"""
        connections = self.decision_connections.get(decision_id)
        if connections and websocket in connections:
            connections.remove(websocket)
            logger.info(f"连接断开决策 {decision_id}，当前连接数: {len(connections)}")
            if not connections:
                del self.decision_connections[decision_id]

    async def send_personal_message(self, message: dict, websocket: WebSocket):
        """发送个人消息"""
        try:
            await websocket.send_text(json.dumps(message, ensure_ascii=False))
        except Exception as e:
            logger.warning(f"发送个人消息失败: {e}")

    async def publish(self, decision_id: int, payload: dict) -> int:
        """向关注该决策的所有连接广播，返回成功发送数"""
        connections = list(self.decision_connections.get(decision_id, []))
        if not connections:
            logger.debug(f"决策 {decision_id} 没有活跃连接，跳过广播 {payload.get('type', 'unknown')}")
            return 0

        message_text = json.dumps({"decision_id": decision_id, **payload}, ensure_ascii=False, default=str)
        failed_connections = []
        success_count = 0

        for connection in connections:
            try:
                await connection.send_text(message_text)
                success_count += 1
            except Exception as e:
                logger.warning(f"广播消息失败: {e}")
                failed_connections.append(connection)

        # 移除失败的连接
        for failed_connection in failed_connections:
            self.disconnect(failed_connection, decision_id)

        logger.debug(
            f"📡 决策 {decision_id} 广播 {payload.get('type', 'unknown')}: "
            f"{success_count} 成功, {len(failed_connections)} 失败"
        )
        return success_count

# 使用全局通知器
_notifier = None

def get_notifier() -> DecisionNotifier:
    """获取全局通知器实例"""
    global _notifier
    if _notifier is None:
        _notifier = DecisionNotifier()
    return _notifier
