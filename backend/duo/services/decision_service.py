"""
决策管理服务（创建、查询、修改、删除与最终裁定）
"""

from sqlalchemy import func
from sqlalchemy.orm import Session
from typing import List, Optional
from duo.core.exceptions import NotFoundError, ValidationError
from duo.core.logging_setup import get_logger
from duo.core.store import DecisionStore
from duo.models.decision import Decision
from duo.schemas.decision_schemas import DecisionCreate, DecisionResponse, DecisionUpdate

logger = get_logger(__name__)

class DecisionService:
    """决策管理服务"""

    def __init__(self, db: Session, store: Optional[DecisionStore] = None):
        self.db = db
        self.store = store or DecisionStore(db)

    async def create_decision(self, data: DecisionCreate) -> DecisionResponse:
        """创建决策及其选项（同一事务）"""
        if data.creator_id == data.partner_id:
            raise ValidationError("发起人和伴侣不能是同一个人")

        with self.store.transaction():
            decision = self.store.insert("decisions", {
                "title": data.title,
                "description": data.description,
                "deadline": data.deadline,
                "type": data.type,
                "status": "pending",
                "current_round": 1,
                "creator_id": data.creator_id,
                "partner_id": data.partner_id,
                "couple_id": data.couple_id,
            })
            self.store.insert("decision_options", [
                {"decision_id": decision.id, "title": title, "votes": 0}
                for title in data.options
            ])

        logger.info(f"📝 创建{data.type}决策 {decision.id}: {data.title}（{len(data.options)} 个选项）")
        return await self.get_decision(decision.id)

    async def get_decision_row(self, decision_id: int) -> Decision:
        """获取决策ORM对象，不存在时抛出NotFoundError"""
        decision = self.store.find_one("decisions", {"id": decision_id})
        if not decision:
            raise NotFoundError("决策不存在")
        return decision

    async def get_decision(self, decision_id: int) -> DecisionResponse:
        """获取决策及当前选项"""
        decision = await self.get_decision_row(decision_id)
        return self._to_response(decision)

    async def list_active_decisions(self, user_id: str) -> List[DecisionResponse]:
        """获取用户参与的未完成决策，最新的在前"""
        decisions = []
        for field in ("creator_id", "partner_id"):
            decisions.extend(self.store.find(
                "decisions",
                {field: user_id, "status": ("pending", "voted")},
            ))
        unique = {decision.id: decision for decision in decisions}
        ordered = sorted(unique.values(), key=lambda d: (d.created_at is not None, d.created_at, d.id), reverse=True)
        return [self._to_response(decision) for decision in ordered]

    async def delete_decision(self, decision_id: int) -> None:
        """删除决策及其选项和投票（同一事务）"""
        await self.get_decision_row(decision_id)

        with self.store.transaction():
            self.store.delete("votes", {"decision_id": decision_id})
            self.store.delete("decision_options", {"decision_id": decision_id})
            self.store.delete("decisions", {"id": decision_id})

        logger.info(f"🗑️ 决策 {decision_id} 已删除")

    async def update_decision(self, decision_id: int, data: DecisionUpdate) -> DecisionResponse:
        """修改标题/说明/截止时间/类型

        只允许在还没有人投票时修改（status为pending且没有任何投票记录）。
        """
        patch = data.model_dump(exclude_unset=True)
        if patch.get("title") is None:
            patch.pop("title", None)
        if patch.get("type") is None:
            patch.pop("type", None)
        if not patch:
            return await self.get_decision(decision_id)

        with self.store.transaction():
            updated = self.store.update("decisions", {"id": decision_id, "status": "pending"}, patch)
            if updated is None:
                await self.get_decision_row(decision_id)
                raise ValidationError("决策已有投票或已完成，不能再修改")
            if self.store.find_one("votes", {"decision_id": decision_id}):
                raise ValidationError("决策已有投票，不能再修改")

        logger.info(f"✏️ 决策 {decision_id} 已修改: {', '.join(sorted(patch))}")
        return await self.get_decision(decision_id)

    async def mark_voted(self, decision_id: int, expected_round: Optional[int] = None) -> Optional[Decision]:
        """只有一方投票时标记为voted

        已完成的决策不会被改回；传入expected_round时，决策已离开该轮则不做任何修改。
        """
        filters = {"id": decision_id, "status": ("pending", "voted")}
        if expected_round is not None:
            filters["current_round"] = expected_round
        return self.store.update("decisions", filters, {"status": "voted"})

    async def complete_decision(self, decision_id: int, final_option_id: int, decided_by: str,
                                expected_round: Optional[int] = None) -> Decision:
        """最终裁定：一次更新同时写入status/final_decision/decided_by/decided_at

        不校验选项是否得票、decided_by是否为参与者，调用时机和参数由投票流程决定。
        决策已完成时保持第一次的结果不变，重复调用直接返回当前决策；
        传入expected_round时，决策已离开该轮同样不做修改。
        """
        filters = {"id": decision_id, "status": ("pending", "voted")}
        if expected_round is not None:
            filters["current_round"] = expected_round
        completed = self.store.update(
            "decisions",
            filters,
            {
                "status": "completed",
                "final_decision": final_option_id,
                "decided_by": decided_by,
                "decided_at": func.now(),
            },
        )
        if completed is None:
            existing = await self.get_decision_row(decision_id)
            logger.info(f"⏭️ 决策 {decision_id} 不在可裁定状态（{existing.status}，第{existing.current_round}轮），忽略本次裁定")
            return existing

        logger.info(f"🏁 决策 {decision_id} 完成: 选项 {final_option_id}，由 {decided_by} 决定")
        return completed

    def _to_response(self, decision: Decision) -> DecisionResponse:
        response = DecisionResponse.model_validate(decision)
        response.options = sorted(response.options, key=lambda option: option.id)
        return response
