"""
投票数据模型
"""

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.sql import func
from duo.core.database import Base

class Vote(Base):
    """投票表：每个(决策, 用户, 轮次)最多一条"""
    __tablename__ = "votes"
    __table_args__ = (
        UniqueConstraint("decision_id", "user_id", "round", name="uq_votes_decision_user_round"),
    )

    id = Column(Integer, primary_key=True, index=True)
    decision_id = Column(Integer, ForeignKey("decisions.id"), nullable=False, index=True)
    user_id = Column(String(64), nullable=False)
    # 不加外键：进入下一轮时选项会被整体替换，历史投票仍保留旧选项ID
    option_id = Column(Integer, nullable=False)
    round = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
