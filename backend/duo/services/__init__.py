# 业务逻辑服务包
from .vote_ledger import VoteLedger
from .round_service import RoundService
from .decision_service import DecisionService
from .voting_service import VotingService, RoundVoteCache
from .notification_service import DecisionNotifier

__all__ = ["VoteLedger", "RoundService", "DecisionService", "VotingService", "RoundVoteCache", "DecisionNotifier"]
