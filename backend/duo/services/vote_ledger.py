"""
投票记录服务（投票账本 + 轮次计票）
"""

from typing import Dict, List, Optional
from sqlalchemy.orm import Session
from duo.core.logging_setup import get_logger
from duo.core.store import DecisionStore
from duo.models.vote import Vote

logger = get_logger(__name__)

class VoteLedger:
    """投票账本：每个(决策, 用户, 轮次)只保留一条最新投票"""

    def __init__(self, db: Session, store: Optional[DecisionStore] = None):
        self.db = db
        self.store = store or DecisionStore(db)

    async def cast_vote(self, decision_id: int, option_id: int, user_id: str, round_number: int) -> Vote:
        """记录投票；同一轮重复投票会覆盖之前的选项

        不校验user_id是否为决策参与者，也不校验option_id是否属于该决策，
        这些由调用方负责。
        """
        vote = self.store.upsert(
            "votes",
            {
                "decision_id": decision_id,
                "user_id": user_id,
                "option_id": option_id,
                "round": round_number,
            },
            conflict_keys=("decision_id", "user_id", "round"),
            update_keys=("option_id",),
        )
        logger.info(f"🗳️ 决策 {decision_id} 第{round_number}轮: 用户 {user_id} 投给选项 {option_id}")
        return vote

    async def list_votes(self, decision_id: int, round_number: Optional[int] = None) -> List[Vote]:
        """获取决策的投票（可按轮次过滤），最新的在前"""
        filters = {"decision_id": decision_id}
        if round_number is not None:
            filters["round"] = round_number
        return self.store.find("votes", filters, order=["-created_at", "-id"])

    async def get_vote(self, decision_id: int, user_id: str, round_number: int) -> Optional[Vote]:
        """获取某个用户在某一轮的投票"""
        return self.store.find_one("votes", {
            "decision_id": decision_id,
            "user_id": user_id,
            "round": round_number,
        })

    async def tally(self, decision_id: int, round_number: int) -> Dict[int, int]:
        """统计某一轮各选项得票数（没有得票的选项不出现在结果中）"""
        counts: Dict[int, int] = {}
        for vote in await self.list_votes(decision_id, round_number):
            option_id = vote.option_id
            counts[option_id] = counts.get(option_id, 0) + 1
        return counts
