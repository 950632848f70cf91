"""
轮次服务：判断轮次是否结束，以及poll模式的淘汰与进入下一轮
"""

from typing import List, Optional
from sqlalchemy.orm import Session
from duo.core.config import settings
from duo.core.exceptions import NotFoundError, ValidationError
from duo.core.logging_setup import get_logger
from duo.core.store import DecisionStore
from duo.services.vote_ledger import VoteLedger

logger = get_logger(__name__)

class RoundService:
    """轮次判定与推进"""

    def __init__(self, db: Session, store: Optional[DecisionStore] = None):
        self.db = db
        self.store = store or DecisionStore(db)
        self.ledger = VoteLedger(db, self.store)

    async def is_round_complete(self, decision_id: int, round_number: int,
                                creator_id: str, partner_id: str) -> bool:
        """判断某一轮是否已经结束

        - 最后一轮（第3轮）：creator不能投票，只要有一票即结束，这里不检查是谁投的
        - 其他轮次（包括vote模式的唯一一轮）：creator和partner都必须投过票，
          按参与者ID判断而不是按票数判断
        """
        votes = await self.ledger.list_votes(decision_id, round_number)

        if round_number == settings.FINAL_POLL_ROUND:
            return len(votes) >= 1

        voters = {vote.user_id for vote in votes}
        return creator_id in voters and partner_id in voters

    async def progress_round(self, decision_id: int, current_round: int) -> bool:
        """淘汰未得票选项并进入下一轮

        用本轮两个得票选项的标题重建选项集合（旧选项全部删除，新选项ID全新），
        current_round加1，状态回到pending。本轮投票保留为历史记录。

        决策已不在current_round（被并发请求推进过或已完成）时不做任何修改，返回False。
        """
        with self.store.transaction():
            decision = self.store.find_one("decisions", {"id": decision_id})
            if not decision:
                raise NotFoundError("决策不存在")

            if decision.status == "completed" or decision.current_round != current_round:
                logger.info(
                    f"⏭️ 决策 {decision_id} 已不在第{current_round}轮"
                    f"（当前第{decision.current_round}轮, 状态 {decision.status}），跳过推进"
                )
                return False

            votes = await self.ledger.list_votes(decision_id, current_round)
            if len(votes) != 2:
                raise ValidationError("Expected exactly 2 votes for round progression")

            voted_option_ids = self._unique_option_ids(votes)
            if len(voted_option_ids) != 2:
                raise ValidationError(
                    f"Expected exactly 2 unique voted options, got {len(voted_option_ids)}"
                )

            voted_options = self.store.find(
                "decision_options",
                {"decision_id": decision_id, "id": voted_option_ids},
                order="id",
            )
            if len(voted_options) != 2:
                raise ValidationError("Voted options are no longer part of this decision")
            titles = [option.title for option in voted_options]

            # 先推进轮次：条件更新失败说明有并发请求抢先推进
            advanced = self.store.update(
                "decisions",
                {"id": decision_id, "current_round": current_round},
                {"current_round": current_round + 1, "status": "pending"},
            )
            if advanced is None:
                logger.info(f"⏭️ 决策 {decision_id} 第{current_round}轮已被并发推进，跳过")
                return False

            self.store.delete("decision_options", {"decision_id": decision_id})
            self.store.insert("decision_options", [
                {"decision_id": decision_id, "title": title, "votes": 0, "eliminated_in_round": None}
                for title in titles
            ])

        logger.info(f"➡️ 决策 {decision_id} 进入第{current_round + 1}轮，保留选项: {titles}")
        return True

    @staticmethod
    def _unique_option_ids(votes) -> List[int]:
        seen: List[int] = []
        for vote in votes:
            if vote.option_id not in seen:
                seen.append(vote.option_id)
        return seen
