"""
投票流程服务

把一次投票串起来：记录投票 -> 判断轮次是否结束 -> 最终裁定或进入下一轮。
两位参与者可能在不同设备上同时投票，每一步都只依赖数据库中的最新状态；
每次投票在一个事务内先锁住决策行，推进和裁定都带轮次条件，并发重复触发不会推进两次。
"""

from typing import Dict, List, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session
from duo.core.config import settings
from duo.core.exceptions import ValidationError
from duo.core.logging_setup import get_logger
from duo.core.store import DecisionStore
from duo.models.decision import Decision
from duo.schemas.decision_schemas import RoundStatus, VoteInfo, VoteOutcome
from duo.services.decision_service import DecisionService
from duo.services.notification_service import DecisionNotifier, get_notifier
from duo.services.round_service import RoundService
from duo.services.vote_ledger import VoteLedger

logger = get_logger(__name__)


class RoundVoteCache:
    """本轮"谁已经投票"的内存缓存：决策ID -> {用户ID: 选项ID}

    只用于快速展示，进入下一轮或决策完成时清空；权威数据始终是votes表。
    """

    def __init__(self):
        self._votes: Dict[int, Dict[str, int]] = {}

    def record(self, decision_id: int, user_id: str, option_id: int):
        self._votes.setdefault(decision_id, {})[user_id] = option_id

    def get(self, decision_id: int) -> Dict[str, int]:
        return dict(self._votes.get(decision_id, {}))

    def clear(self, decision_id: int):
        self._votes.pop(decision_id, None)


_round_vote_cache = None

def get_round_vote_cache() -> RoundVoteCache:
    """获取全局轮次投票缓存"""
    global _round_vote_cache
    if _round_vote_cache is None:
        _round_vote_cache = RoundVoteCache()
    return _round_vote_cache


class VotingService:
    """投票流程编排"""

    def __init__(self, db: Session, notifier: Optional[DecisionNotifier] = None,
                 cache: Optional[RoundVoteCache] = None):
        self.db = db
        self.store = DecisionStore(db)
        self.ledger = VoteLedger(db, self.store)
        self.rounds = RoundService(db, self.store)
        self.decisions = DecisionService(db, self.store)
        self.notifier = notifier or get_notifier()
        self.cache = cache or get_round_vote_cache()

    @staticmethod
    def voting_round(decision: Decision) -> int:
        """vote模式固定在第1轮，poll模式使用current_round"""
        if decision.type == "vote":
            return settings.VOTE_MODE_ROUND
        return decision.current_round

    async def cast_vote(self, decision_id: int, option_id: int, user_id: str) -> VoteOutcome:
        """参与者投票（或改票）

        校验、记录、判断轮次和裁定/推进在同一个事务内完成。事务开始时先用
        条件更新锁住决策行并确认轮次没有变化，另一方的并发投票会在这里排队，
        之后读到的都是对方已提交的状态。
        """
        snapshot = await self.decisions.get_decision_row(decision_id)
        expected_round = snapshot.current_round

        with self.store.transaction():
            decision = await self._claim_decision(decision_id, expected_round)
            round_number = self.voting_round(decision)
            self._check_can_vote(decision, option_id, user_id, round_number)

            # 1. 记录投票
            vote = await self.ledger.cast_vote(decision_id, option_id, user_id, round_number)
            vote_info = VoteInfo.model_validate(vote)

            # 2~4. 判断本轮是否结束，并据此等待、裁定或推进
            result = await self._resolve_round(decision, round_number, option_id, user_id)

        return await self._publish_outcome(decision_id, round_number, user_id, option_id, result, vote_info)

    async def _claim_decision(self, decision_id: int, expected_round: int) -> Decision:
        """锁定决策行，轮次已变化时拒绝本次投票"""
        claimed = self.store.update(
            "decisions",
            {"id": decision_id, "current_round": expected_round},
            {"updated_at": func.now()},
        )
        if claimed is None:
            await self.decisions.get_decision_row(decision_id)
            logger.info(f"⏭️ 决策 {decision_id} 已离开第{expected_round}轮，拒绝过期的投票")
            raise ValidationError("决策已进入下一轮，请刷新后重新投票")
        return claimed

    async def _resolve_round(self, decision: Decision, round_number: int, option_id: int, user_id: str) -> str:
        decision_id = decision.id
        decision_type = decision.type
        current_round = decision.current_round

        complete = await self.rounds.is_round_complete(
            decision_id, round_number, decision.creator_id, decision.partner_id
        )

        # 未结束：等待另一方
        if not complete:
            await self.decisions.mark_voted(decision_id, current_round)
            logger.info(f"⏳ 决策 {decision_id} 第{round_number}轮等待另一方投票")
            return "recorded"

        # vote模式直接以本次投票者的选项作为结果
        if decision_type == "vote":
            await self.decisions.complete_decision(decision_id, option_id, user_id, current_round)
            return "completed"

        counts = await self.ledger.tally(decision_id, round_number)
        voted_option_ids = list(counts)

        if round_number >= settings.FINAL_POLL_ROUND:
            # 最后一轮只有partner投票，按规则总是结束
            final_option_id = voted_option_ids[0] if len(voted_option_ids) == 1 else option_id
            await self.decisions.complete_decision(decision_id, final_option_id, user_id, current_round)
            return "completed"

        if len(voted_option_ids) == 1:
            # 双方选了同一个选项，提前结束
            await self.decisions.complete_decision(decision_id, voted_option_ids[0], user_id, current_round)
            return "completed"

        await self.rounds.progress_round(decision_id, round_number)
        return "progressed"

    async def get_round_status(self, decision_id: int) -> RoundStatus:
        """从投票记录推导当前轮次状态（不依赖内存缓存）"""
        decision = await self.decisions.get_decision_row(decision_id)
        round_number = self.voting_round(decision)
        votes = await self.ledger.list_votes(decision_id, round_number)
        voted = sorted({vote.user_id for vote in votes})

        if decision.status == "completed":
            waiting: List[str] = []
        elif decision.type == "poll" and round_number >= settings.FINAL_POLL_ROUND:
            waiting = [] if votes else [decision.partner_id]
        else:
            waiting = [uid for uid in (decision.creator_id, decision.partner_id) if uid not in voted]

        return RoundStatus(
            decision_id=decision_id,
            type=decision.type,
            status=decision.status,
            current_round=round_number,
            voted_user_ids=voted,
            waiting_for=waiting,
        )

    def _check_can_vote(self, decision: Decision, option_id: int, user_id: str, round_number: int):
        if decision.status == "completed":
            raise ValidationError("决策已完成，不能再投票")
        if user_id not in (decision.creator_id, decision.partner_id):
            raise ValidationError("只有决策的两位参与者可以投票")
        if option_id not in {option.id for option in decision.options}:
            raise ValidationError("选项不属于当前轮次")
        if (decision.type == "poll" and round_number >= settings.FINAL_POLL_ROUND
                and user_id == decision.creator_id):
            raise ValidationError(f"第{round_number}轮由伴侣做最终选择，发起人不能投票")

    async def _publish_outcome(self, decision_id: int, round_number: int, user_id: str, option_id: int,
                               result: str, vote_info: VoteInfo) -> VoteOutcome:
        """事务提交之后再更新缓存、发送通知"""
        await self.notifier.publish(decision_id, {
            "type": "vote_cast",
            "round": round_number,
            "user_id": user_id,
        })

        if result == "recorded":
            self.cache.record(decision_id, user_id, option_id)
            await self.notifier.publish(decision_id, {"type": "decision_voted", "round": round_number})
            return VoteOutcome(
                result="recorded",
                vote=vote_info,
                decision=await self.decisions.get_decision(decision_id),
                round_votes=self.cache.get(decision_id),
            )

        self.cache.clear(decision_id)
        # 重新加载决策（推进后选项已被替换）
        decision = await self.decisions.get_decision(decision_id)

        if result == "completed":
            await self.notifier.publish(decision_id, {
                "type": "decision_completed",
                "final_decision": decision.final_decision,
                "decided_by": decision.decided_by,
            })
        else:
            await self.notifier.publish(decision_id, {
                "type": "round_progressed",
                "round": decision.current_round,
                "options": [option.title for option in decision.options],
            })
        return VoteOutcome(result=result, vote=vote_info, decision=decision)
