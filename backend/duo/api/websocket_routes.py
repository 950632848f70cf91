"""
WebSocket API路由
"""

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Depends
from sqlalchemy.orm import Session
from duo.core.database import get_db
from duo.core.exceptions import DecisionEngineError
from duo.core.logging_setup import get_logger
from duo.services.notification_service import get_notifier
from duo.services.voting_service import VotingService
import json

router = APIRouter()
logger = get_logger(__name__)

@router.websocket("/decision/{decision_id}")
async def websocket_decision_endpoint(
    websocket: WebSocket,
    decision_id: int,
    db: Session = Depends(get_db)
):
    """决策WebSocket连接端点：接收该决策的变更通知"""
    notifier = get_notifier()
    await notifier.connect(websocket, decision_id)

    try:
        # 发送欢迎消息
        await notifier.send_personal_message({
            "type": "connected",
            "message": f"已连接到决策 {decision_id}",
            "decision_id": decision_id
        }, websocket)

        # 监听消息
        while True:
            data = await websocket.receive_text()
            try:
                message_data = json.loads(data)
            except json.JSONDecodeError:
                logger.warning(f"收到无效JSON消息: {data}")
                continue

            message_type = message_data.get("type") if isinstance(message_data, dict) else None

            if message_type == "ping":
                await notifier.send_personal_message({
                    "type": "pong",
                    "timestamp": message_data.get("timestamp")
                }, websocket)

            elif message_type == "get_status":
                # 重新从数据库推导当前状态
                try:
                    status = await VotingService(db, notifier).get_round_status(decision_id)
                    await notifier.send_personal_message({
                        "type": "status",
                        "status": status.model_dump()
                    }, websocket)
                except DecisionEngineError as e:
                    await notifier.send_personal_message({
                        "type": "error",
                        "message": e.message
                    }, websocket)

    except WebSocketDisconnect:
        notifier.disconnect(websocket, decision_id)
