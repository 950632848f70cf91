"""
决策相关的数据模式
"""

from pydantic import BaseModel, Field, field_serializer, field_validator
from typing import Dict, List, Literal, Optional
from datetime import datetime
from duo.core.utils import format_timestamp_with_timezone

DecisionType = Literal["vote", "poll"]
DecisionStatusValue = Literal["pending", "voted", "completed"]

class DecisionCreate(BaseModel):
    """创建决策的请求模式"""
    title: str = Field(min_length=1, max_length=200, description="决策标题")
    description: Optional[str] = Field(default=None, description="决策说明")
    deadline: Optional[datetime] = Field(default=None, description="截止时间")
    type: DecisionType = Field(default="vote", description="vote: 单轮投票, poll: 多轮淘汰")
    creator_id: str = Field(min_length=1, description="发起人")
    partner_id: str = Field(min_length=1, description="伴侣")
    couple_id: Optional[str] = Field(default=None, description="情侣分组ID")
    options: List[str] = Field(description="选项标题列表")

    @field_validator("options")
    @classmethod
    def strip_options(cls, options: List[str]) -> List[str]:
        cleaned = [title.strip() for title in options if title and title.strip()]
        if len(cleaned) < 2:
            raise ValueError("至少需要两个选项")
        return cleaned

class DecisionUpdate(BaseModel):
    """修改决策的请求模式，只修改传入的字段"""
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    deadline: Optional[datetime] = None
    type: Optional[DecisionType] = None

class DecisionOptionInfo(BaseModel):
    """选项信息"""
    id: int
    title: str
    votes: int = 0
    eliminated_in_round: Optional[int] = None

    class Config:
        from_attributes = True

class DecisionResponse(BaseModel):
    """决策响应模式"""
    id: int
    title: str
    description: Optional[str] = None
    deadline: Optional[datetime] = None
    type: DecisionType
    status: DecisionStatusValue
    current_round: int
    creator_id: str
    partner_id: str
    couple_id: Optional[str] = None
    final_decision: Optional[int] = None
    decided_by: Optional[str] = None
    decided_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    options: List[DecisionOptionInfo] = []

    @field_serializer('deadline', 'decided_at', 'created_at')
    def serialize_dt(self, dt: Optional[datetime]) -> Optional[str]:
        return format_timestamp_with_timezone(dt)

    class Config:
        from_attributes = True

class VoteCreate(BaseModel):
    """投票请求"""
    user_id: str = Field(min_length=1)
    option_id: int

class VoteInfo(BaseModel):
    """投票记录"""
    id: int
    decision_id: int
    user_id: str
    option_id: int
    round: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_serializer('created_at', 'updated_at')
    def serialize_dt(self, dt: Optional[datetime]) -> Optional[str]:
        return format_timestamp_with_timezone(dt)

    class Config:
        from_attributes = True

class RoundTally(BaseModel):
    """轮次计票结果"""
    decision_id: int
    round: int
    counts: Dict[int, int]

class RoundStatus(BaseModel):
    """当前轮次状态（从投票记录重新推导）"""
    decision_id: int
    type: DecisionType
    status: DecisionStatusValue
    current_round: int
    voted_user_ids: List[str]
    waiting_for: List[str]

class VoteOutcome(BaseModel):
    """一次投票之后发生了什么"""
    result: Literal["recorded", "progressed", "completed"]
    vote: VoteInfo
    decision: DecisionResponse
    round_votes: Dict[str, int] = Field(default_factory=dict, description="本轮已投票用户 -> 选项ID")
