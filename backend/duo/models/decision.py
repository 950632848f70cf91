"""
决策数据模型
"""

from sqlalchemy import Column, Integer, String, DateTime, Text
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from duo.core.database import Base

DECISION_TYPES = ("vote", "poll")
DECISION_STATUSES = ("pending", "voted", "completed")

class Decision(Base):
    """决策表"""
    __tablename__ = "decisions"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    deadline = Column(DateTime(timezone=True), nullable=True)
    type = Column(String(10), nullable=False, default="vote")         # vote, poll
    status = Column(String(20), nullable=False, default="pending")    # pending, voted, completed
    current_round = Column(Integer, nullable=False, default=1)         # 仅poll模式有意义
    creator_id = Column(String(64), nullable=False, index=True)
    partner_id = Column(String(64), nullable=False, index=True)
    couple_id = Column(String(64), nullable=True, index=True)
    final_decision = Column(Integer, nullable=True)                    # 最终选项ID，仅completed时非空
    decided_by = Column(String(64), nullable=True)
    decided_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # 关系
    options = relationship("DecisionOption", back_populates="decision", order_by="DecisionOption.id")
