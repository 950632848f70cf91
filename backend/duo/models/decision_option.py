"""
决策选项数据模型
"""

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from duo.core.database import Base

class DecisionOption(Base):
    """决策选项表"""
    __tablename__ = "decision_options"
    # 新一轮的选项必须使用全新ID，SQLite下禁止复用已删除的rowid
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, index=True)
    decision_id = Column(Integer, ForeignKey("decisions.id"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    votes = Column(Integer, nullable=False, default=0)       # 仅用于展示，真实票数以votes表为准
    eliminated_in_round = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # 关系
    decision = relationship("Decision", back_populates="options")
