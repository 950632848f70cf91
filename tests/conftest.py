import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from duo.core.database import init_db
from duo.schemas.decision_schemas import DecisionCreate
from duo.services.decision_service import DecisionService
from duo.services.notification_service import DecisionNotifier
from duo.services.voting_service import RoundVoteCache, VotingService

CREATOR = "user-creator"
PARTNER = "user-partner"


class FakeWebSocket:
    def __init__(self, fail=False):
        self.accepted = False
        self.sent = []
        self.fail = fail

    async def accept(self):
        self.accepted = True

    async def send_text(self, text):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(text)


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path}/test.db", connect_args={"check_same_thread": False}
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def other_db(session_factory):
    """另一位参与者的独立会话（模拟另一台设备）"""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def notifier():
    return DecisionNotifier()


@pytest.fixture
def cache():
    return RoundVoteCache()


@pytest.fixture
def voting(db, notifier, cache):
    return VotingService(db, notifier, cache)


@pytest.fixture
def create_decision(db):
    async def _create(type="vote", options=("Action", "Drama", "Comedy"), **overrides):
        payload = {
            "title": "Movie night",
            "type": type,
            "creator_id": CREATOR,
            "partner_id": PARTNER,
            "couple_id": "couple-1",
            "options": list(options),
        }
        payload.update(overrides)
        return await DecisionService(db).create_decision(DecisionCreate(**payload))

    return _create


def option_id(decision, title):
    return next(option.id for option in decision.options if option.title == title)
