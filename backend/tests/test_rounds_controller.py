import asyncio

import pytest

from roundsync.schemas import ScoringConfig, SessionMode
from roundsync.scoring import ScoreBorder
from roundsync.services.commit import CommitState
from roundsync.services.navigator import NavigationResult
from roundsync.services.network import NetworkStatus
from roundsync.services.offline_queue import OfflineQueue
from roundsync.services.retry import db_retry_policy, score_retry_policy
from roundsync.services.rounds import RoundsController

from fakes import InMemoryBackend, make_session, no_sleep


async def _controller(online=True, scoring=None, **session):
    backend = InMemoryBackend(make_session(scoring=scoring, **session))
    controller = await RoundsController.open(
        "s1",
        backend,
        OfflineQueue(),
        NetworkStatus(online=online),
        score_retry=score_retry_policy(sleep=no_sleep),
        rounds_retry=db_retry_policy(sleep=no_sleep),
    )
    notices = []
    controller.subscribe(notices.append)
    return controller, backend, notices


@pytest.mark.anyio
async def test_single_value_is_not_committed_and_blur_auto_fills():
    controller, backend, _ = await _controller()

    assert controller.edit_score(0, 1, "14") is False
    view = controller.match_view(0)
    assert view.team1_border is ScoreBorder.PENDING_VALID
    assert view.team2_border is ScoreBorder.UNSET

    assert controller.blur(0, 1) is None
    view = controller.match_view(0)
    assert view.team2_text == "10"
    assert view.auto_filled == 2
    assert backend.score_calls == []

    # Leaving the suggested field accepts it.
    task = controller.blur(0, 2)
    outcome = await task
    assert outcome.state is CommitState.COMMITTED
    assert backend.score_calls == [(0, 0, 14, 10)]
    view = controller.match_view(0)
    assert view.saved is True
    assert (view.team1_text, view.team2_text) == ("14", "10")
    assert view.team1_border is ScoreBorder.SAVED


@pytest.mark.anyio
async def test_typing_both_sides_confirms_and_blur_commits():
    controller, backend, notices = await _controller()

    assert controller.edit_score(1, 1, "12") is False
    assert controller.edit_score(1, 2, "12") is True
    assert controller.match_view(1).saving is True
    assert backend.score_calls == []

    task = controller.blur(1, 2)
    assert (await task).state is CommitState.COMMITTED
    assert backend.score_calls == [(0, 1, 12, 12)]
    assert notices[-1].title == "Score Saved"


@pytest.mark.anyio
async def test_invalid_pair_is_flagged_and_not_committed():
    controller, backend, _ = await _controller()

    controller.edit_score(0, 1, "14")
    assert controller.edit_score(0, 2, "11") is False
    assert controller.blur(0, 2) is None

    view = controller.match_view(0)
    assert view.team1_border is ScoreBorder.INVALID
    assert view.team2_border is ScoreBorder.INVALID
    assert backend.score_calls == []


@pytest.mark.anyio
async def test_blur_drops_unusable_text():
    controller, _, _ = await _controller()
    controller.edit_score(0, 1, "abc")
    assert controller.match_view(0).team1_border is ScoreBorder.INVALID

    controller.blur(0, 1)
    assert controller.match_view(0).team1_border is ScoreBorder.UNSET


@pytest.mark.anyio
async def test_first_to_mode_has_no_auto_fill():
    controller, backend, _ = await _controller(
        scoring=ScoringConfig(mode="first_to", points_per_match=21)
    )
    controller.edit_score(0, 1, "21")
    assert controller.blur(0, 1) is None
    assert controller.match_view(0).team2_text == ""

    controller.edit_score(0, 2, "19")
    task = controller.blur(0, 2)
    assert (await task).state is CommitState.COMMITTED
    assert backend.score_calls == [(0, 0, 21, 19)]


@pytest.mark.anyio
async def test_offline_edit_is_queued():
    controller, backend, notices = await _controller(online=False)

    controller.edit_score(0, 1, "14")
    controller.edit_score(0, 2, "10")
    outcome = await controller.blur(0, 2)

    assert outcome.state is CommitState.QUEUED
    assert backend.score_calls == []
    assert controller.match_view(0).queued is True
    assert await OfflineQueue().count() == 1
    assert notices[-1].title == "Saved offline"


@pytest.mark.anyio
async def test_next_round_requires_complete_round():
    controller, backend, notices = await _controller()
    controller.edit_score(0, 1, "14")
    controller.edit_score(0, 2, "10")

    assert await controller.next_round() is NavigationResult.UNCHANGED
    assert notices[-1].title == "Incomplete Round"
    assert notices[-1].message.endswith("Each match must total 24 points.")
    assert not controller.round_complete()

    controller.edit_score(1, 1, "20")
    controller.edit_score(1, 2, "4")
    assert controller.round_complete()

    assert await controller.next_round() is NavigationResult.MOVED
    assert controller.current_round_index == 1
    assert controller.current_round.number == 2
    assert notices[-1].title == "Round 2 Generated"
    assert controller.match_view(0).team1_border is ScoreBorder.UNSET

    assert controller.previous_round() is NavigationResult.MOVED
    view = controller.match_view(1)
    assert (view.team1_text, view.team2_text) == ("20", "4")
    await controller.close()


@pytest.mark.anyio
async def test_close_waits_for_commits_and_clears_cache():
    controller, backend, _ = await _controller()
    controller.edit_score(0, 1, "14")
    controller.edit_score(0, 2, "10")
    controller.blur(0, 2)

    await controller.close()

    assert backend.score_calls == [(0, 0, 14, 10)]
    assert len(controller.cache) == 0


@pytest.mark.anyio
async def test_intermediate_keystrokes_are_not_written():
    controller, backend, _ = await _controller(
        scoring=ScoringConfig(mode="first_to", points_per_match=21)
    )
    controller.edit_score(0, 1, "2")
    controller.edit_score(0, 1, "21")
    controller.blur(0, 1)
    # "1" alone already forms a valid 21-1 pair.
    assert controller.edit_score(0, 2, "1") is True
    assert controller.edit_score(0, 2, "19") is True
    await asyncio.sleep(0)
    assert backend.score_calls == []

    outcome = await controller.blur(0, 2)

    assert outcome.state is CommitState.COMMITTED
    assert backend.score_calls == [(0, 0, 21, 19)]
    assert [e[0] for e in backend.events] == ["score_updated"]


@pytest.mark.anyio
async def test_intermediate_keystrokes_offline_queue_one_operation():
    controller, backend, _ = await _controller(
        online=False, scoring=ScoringConfig(mode="first_to", points_per_match=21)
    )
    controller.edit_score(0, 1, "21")
    controller.edit_score(0, 2, "1")
    controller.edit_score(0, 2, "19")
    await controller.blur(0, 2)

    operations = await OfflineQueue().list_operations()
    assert len(operations) == 1
    assert (operations[0].payload["team1Score"], operations[0].payload["team2Score"]) == (21, 19)


@pytest.mark.anyio
async def test_retyping_saved_score_writes_nothing():
    controller, backend, _ = await _controller()
    controller.edit_score(0, 1, "14")
    controller.edit_score(0, 2, "10")
    await controller.blur(0, 2)

    assert controller.edit_score(0, 2, "10") is False
    assert controller.blur(0, 2) is None
    assert backend.score_calls == [(0, 0, 14, 10)]


@pytest.mark.anyio
async def test_cleared_field_reads_as_unset():
    controller, _, _ = await _controller()
    controller.edit_score(0, 1, "14")
    controller.edit_score(0, 1, "")

    assert controller.match_view(0).team1_border is ScoreBorder.UNSET


@pytest.mark.anyio
async def test_generating_from_an_earlier_round_is_refused():
    controller, backend, notices = await _controller(rounds=2)
    assert controller.previous_round() is NavigationResult.MOVED
    for match_index in (0, 1):
        controller.edit_score(match_index, 1, "14")
        controller.edit_score(match_index, 2, "10")

    assert await controller.generate_round() is None

    assert len(controller.state.rounds) == 2
    assert backend.saved == []
    assert notices[-1].title == "Not On Latest Round"
    await controller.close()


@pytest.mark.anyio
async def test_court_fields_resolve_match_by_court_number():
    controller, backend, _ = await _controller(rounds=3, mode=SessionMode.PARALLEL)
    assert controller.page_court(2, -1) is NavigationResult.MOVED

    view = controller.match_view(None, court=2)
    assert (view.round_index, view.match_index, view.court) == (1, 1, 2)

    controller.edit_score(None, 1, "14", court=2)
    controller.edit_score(None, 2, "10", court=2)
    outcome = await controller.blur(None, 2, court=2)

    assert outcome.state is CommitState.COMMITTED
    assert backend.score_calls == [(1, 1, 14, 10)]
