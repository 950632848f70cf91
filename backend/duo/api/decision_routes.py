"""
决策管理API路由
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List, Optional
from duo.core.database import get_db
from duo.core.exceptions import DecisionEngineError, NotFoundError, StorageError, ValidationError
from duo.schemas.decision_schemas import (
    DecisionCreate, DecisionResponse, DecisionUpdate, RoundStatus, RoundTally, VoteCreate, VoteInfo, VoteOutcome
)
from duo.services.decision_service import DecisionService
from duo.services.notification_service import get_notifier
from duo.services.vote_ledger import VoteLedger
from duo.services.voting_service import VotingService

router = APIRouter()

def _http_error(e: DecisionEngineError) -> HTTPException:
    """把引擎异常转换为HTTP错误"""
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=e.message)
    if isinstance(e, StorageError):
        return HTTPException(status_code=503, detail=e.message)
    if isinstance(e, ValidationError):
        return HTTPException(status_code=400, detail=e.message)
    return HTTPException(status_code=500, detail=e.message)

@router.post("/", response_model=DecisionResponse)
async def create_decision(
    decision_data: DecisionCreate,
    db: Session = Depends(get_db)
):
    """创建新决策"""
    decision_service = DecisionService(db)
    try:
        decision = await decision_service.create_decision(decision_data)
    except DecisionEngineError as e:
        raise _http_error(e)
    await get_notifier().publish(decision.id, {"type": "decision_created"})
    return decision

@router.get("/", response_model=List[DecisionResponse])
async def list_active_decisions(
    user_id: str,
    db: Session = Depends(get_db)
):
    """获取用户参与的未完成决策"""
    decision_service = DecisionService(db)
    try:
        return await decision_service.list_active_decisions(user_id)
    except DecisionEngineError as e:
        raise _http_error(e)

@router.get("/{decision_id}", response_model=DecisionResponse)
async def get_decision(
    decision_id: int,
    db: Session = Depends(get_db)
):
    """获取决策信息"""
    decision_service = DecisionService(db)
    try:
        return await decision_service.get_decision(decision_id)
    except DecisionEngineError as e:
        raise _http_error(e)

@router.patch("/{decision_id}", response_model=DecisionResponse)
async def update_decision(
    decision_id: int,
    update_data: DecisionUpdate,
    db: Session = Depends(get_db)
):
    """修改决策（仅限尚未投票时）"""
    decision_service = DecisionService(db)
    try:
        decision = await decision_service.update_decision(decision_id, update_data)
    except DecisionEngineError as e:
        raise _http_error(e)
    await get_notifier().publish(decision_id, {"type": "decision_updated"})
    return decision

@router.delete("/{decision_id}")
async def delete_decision(
    decision_id: int,
    db: Session = Depends(get_db)
):
    """删除决策"""
    decision_service = DecisionService(db)
    try:
        await decision_service.delete_decision(decision_id)
    except DecisionEngineError as e:
        raise _http_error(e)
    await get_notifier().publish(decision_id, {"type": "decision_deleted"})
    return {"message": "决策已删除", "decision_id": decision_id}

@router.post("/{decision_id}/votes", response_model=VoteOutcome)
async def cast_vote(
    decision_id: int,
    vote_data: VoteCreate,
    db: Session = Depends(get_db)
):
    """投票（或改票）"""
    voting_service = VotingService(db)
    try:
        return await voting_service.cast_vote(decision_id, vote_data.option_id, vote_data.user_id)
    except DecisionEngineError as e:
        raise _http_error(e)

@router.get("/{decision_id}/votes", response_model=List[VoteInfo])
async def list_votes(
    decision_id: int,
    round: Optional[int] = None,
    db: Session = Depends(get_db)
):
    """获取投票记录（可按轮次过滤）"""
    try:
        await DecisionService(db).get_decision_row(decision_id)
        votes = await VoteLedger(db).list_votes(decision_id, round)
    except DecisionEngineError as e:
        raise _http_error(e)
    return [VoteInfo.model_validate(vote) for vote in votes]

@router.get("/{decision_id}/tally", response_model=RoundTally)
async def get_tally(
    decision_id: int,
    round: Optional[int] = None,
    db: Session = Depends(get_db)
):
    """获取某一轮的计票结果（默认当前轮）"""
    try:
        decision = await DecisionService(db).get_decision_row(decision_id)
        round_number = round or VotingService.voting_round(decision)
        counts = await VoteLedger(db).tally(decision_id, round_number)
    except DecisionEngineError as e:
        raise _http_error(e)
    return RoundTally(decision_id=decision_id, round=round_number, counts=counts)

@router.get("/{decision_id}/status", response_model=RoundStatus)
async def get_round_status(
    decision_id: int,
    db: Session = Depends(get_db)
):
    """获取当前轮次状态"""
    voting_service = VotingService(db)
    try:
        return await voting_service.get_round_status(decision_id)
    except DecisionEngineError as e:
        raise _http_error(e)
