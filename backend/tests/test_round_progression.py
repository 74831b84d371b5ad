import pytest

from roundsync.exceptions import (
    IncompleteRoundError,
    LockContentionError,
    NotOnLatestRoundError,
    PairingEngineError,
    RoundNotFound,
    ScoresNotSavedError,
)
from roundsync.schemas import ScoringConfig, SessionMode
from roundsync.scoring import get_policy
from roundsync.services.advancement import RoundAdvancementGuard
from roundsync.services.commit import CommitPipeline
from roundsync.services.edit_cache import LocalEditCache, MatchKey
from roundsync.services.navigator import NavigationResult, RoundNavigator
from roundsync.services.network import NetworkStatus
from roundsync.services.offline_queue import OfflineQueue
from roundsync.services.pairing import MexicanoPairingEngine
from roundsync.services.retry import db_retry_policy, score_retry_policy
from roundsync.services.state import SessionState

from fakes import InMemoryBackend, make_session, no_sleep


def _navigator(rounds=3, mode=SessionMode.SEQUENTIAL):
    state = SessionState.from_session(make_session(rounds=rounds, mode=mode))
    cache = LocalEditCache()
    return RoundNavigator(state, cache, current_round=0), state, cache


def test_round_change_clears_edit_cache():
    navigator, _, cache = _navigator()
    seen = []
    navigator.subscribe(seen.append)
    cache.set_draft(MatchKey(0, 0), 1, "14")

    assert navigator.next() is NavigationResult.MOVED
    assert navigator.current_round_index == 1
    assert len(cache) == 0
    assert seen == [1]


def test_next_on_last_round_needs_generation():
    navigator, _, _ = _navigator(rounds=2)
    navigator.go_to(1)
    assert navigator.next() is NavigationResult.NEEDS_GENERATION
    assert navigator.current_round_index == 1


def test_previous_on_first_round_is_unchanged():
    navigator, _, _ = _navigator()
    assert navigator.previous() is NavigationResult.UNCHANGED
    with pytest.raises(RoundNotFound):
        navigator.go_to(7)


def test_court_paging_is_independent_and_keeps_cache():
    navigator, _, cache = _navigator(mode=SessionMode.PARALLEL)
    cache.set_draft(MatchKey(0, 1), 1, "9")

    assert navigator.page_court(2, +1) is NavigationResult.MOVED
    assert navigator.court_round_index(2) == 1
    assert navigator.court_round_index(1) == 0
    assert navigator.page_court(2, +5) is NavigationResult.MOVED
    assert navigator.court_round_index(2) == 2
    assert navigator.page_court(2, +1) is NavigationResult.UNCHANGED
    assert len(cache) == 1


def test_court_paging_ignored_in_sequential_mode():
    navigator, _, _ = _navigator()
    assert navigator.page_court(1, +1) is NavigationResult.UNCHANGED


def _guard(online=True, backend=None, scoring=None, players=8):
    session = make_session(players=players, scoring=scoring)
    state = SessionState.from_session(session)
    backend = backend or InMemoryBackend(session)
    cache = LocalEditCache()
    network = NetworkStatus(online=online)
    queue = OfflineQueue()
    policy = get_policy(state.scoring)
    navigator = RoundNavigator(state, cache)
    pairing = MexicanoPairingEngine(state.players, state.court_count)
    pipeline = CommitPipeline(
        state,
        policy,
        cache,
        backend,
        queue,
        network,
        pairing,
        retry_policy=score_retry_policy(sleep=no_sleep),
    )
    guard = RoundAdvancementGuard(
        state,
        policy,
        cache,
        navigator,
        pipeline,
        pairing,
        backend,
        queue,
        network,
        retry_policy=db_retry_policy(sleep=no_sleep),
    )
    return guard, state, cache, navigator, backend, pairing


@pytest.mark.anyio
async def test_advance_blocked_until_every_match_scored():
    guard, state, cache, navigator, backend, _ = _guard()
    cache.set_draft(MatchKey(0, 0), 1, "14")
    cache.set_draft(MatchKey(0, 0), 2, "10")

    with pytest.raises(IncompleteRoundError) as exc:
        await guard.advance()
    assert exc.value.detail == (
        "Please enter valid scores for all matches. Each match must total 24 points."
    )
    assert len(state.rounds) == 1
    assert backend.score_calls == []

    cache.set_draft(MatchKey(0, 1), 1, "12")
    cache.set_draft(MatchKey(0, 1), 2, "12")
    result = await guard.advance()

    assert result.round_index == 1
    assert result.round.number == 2
    assert navigator.current_round_index == 1
    assert sorted(backend.score_calls) == [(0, 0, 14, 10), (0, 1, 12, 12)]
    assert backend.saved == [(2, 1)]
    assert [e[0] for e in backend.events].count("round_generated") == 1
    assert len(cache) == 0


@pytest.mark.anyio
async def test_first_to_requirement_named_in_error():
    guard, *_ = _guard(scoring=ScoringConfig(mode="first_to", points_per_match=21))
    with pytest.raises(IncompleteRoundError) as exc:
        await guard.advance()
    assert exc.value.requirement == "One team must reach exactly 21 points."


@pytest.mark.anyio
async def test_failed_save_blocks_generation():
    guard, state, cache, _, backend, _ = _guard()
    backend.score_errors = [LockContentionError() for _ in range(6)]
    state.rounds[0].matches[1].team1_score = 12
    state.rounds[0].matches[1].team2_score = 12
    cache.set_draft(MatchKey(0, 0), 1, "14")
    cache.set_draft(MatchKey(0, 0), 2, "10")

    with pytest.raises(ScoresNotSavedError) as exc:
        await guard.advance()
    assert exc.value.detail == "Failed to save scores. Please try again."
    assert len(state.rounds) == 1
    assert backend.saved == []


@pytest.mark.anyio
async def test_already_saved_round_generates_without_score_writes():
    guard, state, _, _, backend, _ = _guard()
    for match in state.rounds[0].matches:
        match.team1_score, match.team2_score = 14, 10

    result = await guard.advance()

    assert backend.score_calls == []
    assert result.round.number == 2


@pytest.mark.anyio
async def test_offline_generation_enqueues_round_list():
    guard, state, _, navigator, backend, _ = _guard(online=False)
    for match in state.rounds[0].matches:
        match.team1_score, match.team2_score = 14, 10

    result = await guard.advance()

    assert result.queued is True
    assert backend.saved == []
    operations = await OfflineQueue().list_operations()
    assert [op.kind.value for op in operations] == ["GENERATE_ROUND"]
    assert len(operations[0].payload["rounds"]) == 2
    assert operations[0].payload["currentRound"] == 1
    assert navigator.current_round_index == 1


@pytest.mark.anyio
async def test_pairing_failure_keeps_retry_affordance():
    guard, state, _, _, backend, pairing = _guard()
    for match in state.rounds[0].matches:
        match.team1_score, match.team2_score = 14, 10
    for player in pairing.players[:5]:
        pairing.set_status(player.id, "departed")

    with pytest.raises(PairingEngineError):
        await guard.advance()
    assert guard.last_error is not None
    assert len(state.rounds) == 1

    pairing.set_status(pairing.players[0].id, "active")
    result = await guard.retry_generation()

    assert guard.last_error is None
    assert result.round.number == 2
    assert backend.saved == [(2, 1)]


def test_paged_court_keeps_its_round_when_a_round_is_added():
    navigator, state, _ = _navigator(rounds=2, mode=SessionMode.PARALLEL)
    navigator.go_to(1)
    assert navigator.page_court(2, -1) is NavigationResult.MOVED

    navigator.append_round(state.rounds[-1].model_copy(update={"number": 3}))

    assert navigator.current_round_index == 2
    assert navigator.court_round_index(2) == 0
    assert navigator.court_round_index(1) == 2


@pytest.mark.anyio
async def test_advance_refused_away_from_latest_round():
    session = make_session(rounds=2)
    state = SessionState.from_session(session)
    backend = InMemoryBackend(session)
    cache = LocalEditCache()
    network = NetworkStatus()
    queue = OfflineQueue()
    policy = get_policy(state.scoring)
    navigator = RoundNavigator(state, cache)
    pairing = MexicanoPairingEngine(state.players, state.court_count)
    pipeline = CommitPipeline(
        state, policy, cache, backend, queue, network, pairing,
        retry_policy=score_retry_policy(sleep=no_sleep),
    )
    guard = RoundAdvancementGuard(
        state, policy, cache, navigator, pipeline, pairing, backend, queue, network,
        retry_policy=db_retry_policy(sleep=no_sleep),
    )
    navigator.previous()
    for match in state.rounds[0].matches:
        match.team1_score, match.team2_score = 14, 10

    with pytest.raises(NotOnLatestRoundError):
        await guard.advance()
    with pytest.raises(NotOnLatestRoundError):
        await guard.retry_generation()

    assert len(state.rounds) == 2
    assert backend.saved == []
