import json

import pytest

from conftest import CREATOR, PARTNER, FakeWebSocket, option_id
from duo.core.exceptions import NotFoundError, ValidationError
from duo.services.decision_service import DecisionService
from duo.services.vote_ledger import VoteLedger


def _assert_terminal_fields_consistent(decision):
    terminal = (decision.final_decision, decision.decided_by, decision.decided_at)
    if decision.status == "completed":
        assert all(value is not None for value in terminal)
    else:
        assert all(value is None for value in terminal)


@pytest.mark.asyncio()
async def test_vote_mode_agreement_completes(voting, create_decision):
    decision = await create_decision(type="vote")
    action = option_id(decision, "Action")

    first = await voting.cast_vote(decision.id, action, CREATOR)
    assert first.result == "recorded"
    assert first.decision.status == "voted"
    _assert_terminal_fields_consistent(first.decision)

    second = await voting.cast_vote(decision.id, action, PARTNER)
    assert second.result == "completed"
    assert second.decision.status == "completed"
    assert second.decision.final_decision == action
    assert second.decision.decided_by == PARTNER
    _assert_terminal_fields_consistent(second.decision)


@pytest.mark.asyncio()
async def test_vote_mode_disagreement_records_second_voters_choice(voting, create_decision):
    # 当前行为：vote模式下以触发完成的一方所选选项为结果，即使双方各得一票
    decision = await create_decision(type="vote")
    action = option_id(decision, "Action")
    drama = option_id(decision, "Drama")

    await voting.cast_vote(decision.id, action, CREATOR)
    outcome = await voting.cast_vote(decision.id, drama, PARTNER)

    assert outcome.result == "completed"
    assert outcome.decision.final_decision == drama
    assert outcome.decision.decided_by == PARTNER


@pytest.mark.asyncio()
async def test_vote_mode_recast_before_partner_votes(db, voting, create_decision):
    decision = await create_decision(type="vote")

    await voting.cast_vote(decision.id, option_id(decision, "Action"), CREATOR)
    outcome = await voting.cast_vote(decision.id, option_id(decision, "Drama"), CREATOR)

    assert outcome.result == "recorded"
    votes = await VoteLedger(db).list_votes(decision.id, 1)
    assert len(votes) == 1
    assert votes[0].option_id == option_id(decision, "Drama")
    assert outcome.round_votes == {CREATOR: option_id(decision, "Drama")}


@pytest.mark.asyncio()
async def test_poll_three_rounds(db, voting, create_decision, cache):
    decision = await create_decision(type="poll", options=["Action", "Drama", "Comedy"])

    # 第1轮：意见不同 -> 进入第2轮
    await voting.cast_vote(decision.id, option_id(decision, "Action"), CREATOR)
    assert cache.get(decision.id) == {CREATOR: option_id(decision, "Action")}
    outcome = await voting.cast_vote(decision.id, option_id(decision, "Drama"), PARTNER)
    assert outcome.result == "progressed"
    assert outcome.decision.current_round == 2
    assert outcome.decision.status == "pending"
    assert sorted(option.title for option in outcome.decision.options) == ["Action", "Drama"]
    assert cache.get(decision.id) == {}

    # 第2轮：仍然不同 -> 进入第3轮
    round2 = outcome.decision
    await voting.cast_vote(decision.id, option_id(round2, "Action"), CREATOR)
    outcome = await voting.cast_vote(decision.id, option_id(round2, "Drama"), PARTNER)
    assert outcome.result == "progressed"
    assert outcome.decision.current_round == 3
    assert sorted(option.title for option in outcome.decision.options) == ["Action", "Drama"]

    # 第3轮：发起人不能投票，伴侣一票定音
    round3 = outcome.decision
    with pytest.raises(ValidationError):
        await voting.cast_vote(decision.id, option_id(round3, "Action"), CREATOR)

    outcome = await voting.cast_vote(decision.id, option_id(round3, "Action"), PARTNER)
    assert outcome.result == "completed"
    assert outcome.decision.final_decision == option_id(round3, "Action")
    assert outcome.decision.decided_by == PARTNER
    _assert_terminal_fields_consistent(outcome.decision)

    # 历史投票全部保留
    assert len(await VoteLedger(db).list_votes(decision.id)) == 5


@pytest.mark.asyncio()
async def test_poll_early_agreement_completes_without_progression(db, voting, create_decision):
    decision = await create_decision(type="poll")
    comedy = option_id(decision, "Comedy")

    await voting.cast_vote(decision.id, comedy, CREATOR)
    outcome = await voting.cast_vote(decision.id, comedy, PARTNER)

    assert outcome.result == "completed"
    assert outcome.decision.current_round == 1
    assert outcome.decision.final_decision == comedy
    assert len(outcome.decision.options) == 3


@pytest.mark.asyncio()
async def test_poll_agreement_in_round_two(voting, create_decision):
    decision = await create_decision(type="poll")
    await voting.cast_vote(decision.id, option_id(decision, "Action"), CREATOR)
    round2 = (await voting.cast_vote(decision.id, option_id(decision, "Drama"), PARTNER)).decision

    drama = option_id(round2, "Drama")
    await voting.cast_vote(decision.id, drama, CREATOR)
    outcome = await voting.cast_vote(decision.id, drama, PARTNER)

    assert outcome.result == "completed"
    assert outcome.decision.current_round == 2
    assert outcome.decision.final_decision == drama
    assert outcome.decision.decided_by == PARTNER


@pytest.mark.asyncio()
async def test_stale_option_from_previous_round_is_rejected(voting, create_decision):
    decision = await create_decision(type="poll")
    await voting.cast_vote(decision.id, option_id(decision, "Action"), CREATOR)
    await voting.cast_vote(decision.id, option_id(decision, "Drama"), PARTNER)

    with pytest.raises(ValidationError):
        await voting.cast_vote(decision.id, option_id(decision, "Action"), CREATOR)


@pytest.mark.asyncio()
async def test_outsider_cannot_vote(voting, create_decision):
    decision = await create_decision()
    with pytest.raises(ValidationError):
        await voting.cast_vote(decision.id, option_id(decision, "Action"), "stranger")


@pytest.mark.asyncio()
async def test_completed_decision_rejects_votes(voting, create_decision):
    decision = await create_decision()
    action = option_id(decision, "Action")
    await voting.cast_vote(decision.id, action, CREATOR)
    await voting.cast_vote(decision.id, action, PARTNER)

    with pytest.raises(ValidationError):
        await voting.cast_vote(decision.id, action, CREATOR)


@pytest.mark.asyncio()
async def test_unknown_decision(voting):
    with pytest.raises(NotFoundError):
        await voting.cast_vote(12345, 1, CREATOR)


@pytest.mark.asyncio()
async def test_round_status_is_derived_from_votes(voting, create_decision):
    decision = await create_decision(type="poll")

    status = await voting.get_round_status(decision.id)
    assert status.voted_user_ids == []
    assert status.waiting_for == [CREATOR, PARTNER]

    await voting.cast_vote(decision.id, option_id(decision, "Action"), CREATOR)
    status = await voting.get_round_status(decision.id)
    assert status.status == "voted"
    assert status.voted_user_ids == [CREATOR]
    assert status.waiting_for == [PARTNER]


@pytest.mark.asyncio()
async def test_final_round_status_waits_for_partner_only(voting, create_decision):
    decision = await create_decision(type="poll")
    for _ in range(2):
        current = await DecisionService(voting.db).get_decision(decision.id)
        await voting.cast_vote(decision.id, option_id(current, "Action"), CREATOR)
        await voting.cast_vote(decision.id, option_id(current, "Drama"), PARTNER)

    status = await voting.get_round_status(decision.id)
    assert status.current_round == 3
    assert status.waiting_for == [PARTNER]


@pytest.mark.asyncio()
async def test_transitions_are_published(voting, notifier, create_decision):
    decision = await create_decision(type="poll")
    watcher = FakeWebSocket()
    broken = FakeWebSocket(fail=True)
    await notifier.connect(watcher, decision.id)
    await notifier.connect(broken, decision.id)

    await voting.cast_vote(decision.id, option_id(decision, "Action"), CREATOR)
    await voting.cast_vote(decision.id, option_id(decision, "Drama"), PARTNER)

    types = [json.loads(text)["type"] for text in watcher.sent]
    assert types == ["vote_cast", "decision_voted", "vote_cast", "round_progressed"]
    assert json.loads(watcher.sent[-1])["round"] == 2
    # 发送失败的连接被移除，不影响投票流程
    assert notifier.decision_connections[decision.id] == [watcher]


@pytest.mark.asyncio()
async def test_final_round_with_two_tally_entries_uses_triggering_vote(db, voting, create_decision):
    decision = await create_decision(type="poll")
    for _ in range(2):
        current = await DecisionService(db).get_decision(decision.id)
        await voting.cast_vote(decision.id, option_id(current, "Action"), CREATOR)
        await voting.cast_vote(decision.id, option_id(current, "Drama"), PARTNER)

    round3 = await DecisionService(db).get_decision(decision.id)
    assert round3.current_round == 3
    # 绕过投票流程直接写入一条发起人的第3轮投票
    await VoteLedger(db).cast_vote(decision.id, option_id(round3, "Drama"), CREATOR, 3)

    outcome = await voting.cast_vote(decision.id, option_id(round3, "Action"), PARTNER)

    assert outcome.result == "completed"
    assert outcome.decision.final_decision == option_id(round3, "Action")
    assert outcome.decision.decided_by == PARTNER
    _assert_terminal_fields_consistent(outcome.decision)
