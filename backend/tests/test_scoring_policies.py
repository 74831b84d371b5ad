import pytest

from roundsync.exceptions import ScoreValidationError
from roundsync.schemas import GameScore, ScoringConfig, ScoringMode
from roundsync.scoring import (
    FirstToGamesPolicy,
    FirstToPolicy,
    FixedTotalPolicy,
    ScoreBorder,
    TotalGamesPolicy,
    classify_border,
    get_policy,
    parse_score,
    round_is_complete,
)


@pytest.mark.parametrize(
    "team1, team2, valid",
    [
        (14, 10, True),
        (24, 0, True),
        (12, 12, True),
        (14, 11, False),
        (25, -1, False),
        (None, 10, False),
        (14, None, False),
    ],
    ids=["normal", "shutout", "draw", "wrong-total", "over-target", "missing-1", "missing-2"],
)
def test_fixed_total(team1, team2, valid):
    assert FixedTotalPolicy(24).is_valid(team1, team2) is valid


def test_fixed_auto_fill_suggests_remainder():
    policy = FixedTotalPolicy(24)
    assert policy.auto_fill(14) == 10
    assert policy.auto_fill(24) == 0
    assert policy.auto_fill(25) is None
    assert policy.auto_fill(-1) is None
    assert policy.auto_fill(None) is None


def test_fixed_rejection_message_names_total():
    with pytest.raises(ScoreValidationError) as exc:
        FixedTotalPolicy(24).check(14, 11)
    assert exc.value.detail == "Scores must total 24 points (got 25)."
    assert exc.value.status_code == 422


@pytest.mark.parametrize(
    "team1, team2, valid",
    [
        (21, 19, True),
        (19, 21, True),
        (21, 0, True),
        (21, 21, False),
        (20, 19, False),
        (22, 10, False),
    ],
    ids=["team1-wins", "team2-wins", "shutout", "both-reach", "nobody-reaches", "over"],
)
def test_first_to(team1, team2, valid):
    assert FirstToPolicy(21).is_valid(team1, team2) is valid


def test_first_to_never_auto_fills():
    policy = FirstToPolicy(21)
    assert policy.auto_fills is False
    assert policy.auto_fill(19) is None


def test_total_games_uses_games_unit():
    policy = TotalGamesPolicy(9)
    assert policy.is_valid(5, 4)
    assert not policy.is_valid(5, 5)
    assert policy.auto_fill(6) == 3
    assert policy.requirement() == "Each match must total 9 games."


def test_first_to_games_accepts_consistent_game_scores():
    policy = FirstToGamesPolicy(2)
    games = [
        GameScore(game_number=1, team1_score=6, team2_score=3, completed=True),
        GameScore(game_number=2, team1_score=4, team2_score=6, completed=True),
        GameScore(game_number=3, team1_score=7, team2_score=5, completed=True),
    ]
    policy.check(2, 1, games)


@pytest.mark.parametrize(
    "games",
    [
        [GameScore(game_number=1, team1_score=6, team2_score=6, completed=True)],
        [
            GameScore(game_number=1, team1_score=6, team2_score=3, completed=True),
            GameScore(game_number=2, team1_score=3, team2_score=6, completed=True),
        ],
        [
            GameScore(game_number=1, team1_score=6, team2_score=3, completed=True),
            GameScore(game_number=2, team1_score=6, team2_score=2, completed=True),
            GameScore(game_number=3, team1_score=6, team2_score=1, completed=True),
        ],
    ],
    ids=["tied-game", "tally-mismatch", "game-after-decided"],
)
def test_first_to_games_rejects_inconsistent_game_scores(games):
    with pytest.raises(ScoreValidationError):
        FirstToGamesPolicy(2).check(2, 0, games)


def test_points_mode_rejects_game_scores():
    with pytest.raises(ScoreValidationError):
        FixedTotalPolicy(24).check(
            14, 10, [GameScore(game_number=1, team1_score=14, team2_score=10)]
        )


@pytest.mark.parametrize(
    "config, policy_type, target, requirement",
    [
        (
            {"mode": "points", "pointsPerMatch": 24},
            FixedTotalPolicy,
            24,
            "Each match must total 24 points.",
        ),
        (
            {"mode": "first_to", "pointsPerMatch": 21, "gamesToWin": 6},
            FirstToPolicy,
            6,
            "One team must reach exactly 6 points.",
        ),
        (
            {"mode": "first_to", "pointsPerMatch": 21},
            FirstToPolicy,
            21,
            "One team must reach exactly 21 points.",
        ),
        (
            {"mode": "total_games", "totalGames": 9},
            TotalGamesPolicy,
            9,
            "Each match must total 9 games.",
        ),
        (
            {"mode": "first_to_games", "gamesToWin": 2},
            FirstToGamesPolicy,
            2,
            "One team must win exactly 2 games.",
        ),
    ],
    ids=["points-alias", "first-to-games-to-win", "first-to-fallback", "total-games", "first-to-games"],
)
def test_get_policy_resolves_target(config, policy_type, target, requirement):
    policy = get_policy(ScoringConfig.model_validate(config))
    assert isinstance(policy, policy_type)
    assert policy.target == target
    assert policy.requirement() == requirement


def test_points_alias_maps_to_fixed():
    assert ScoringConfig.model_validate({"mode": "Points"}).mode == ScoringMode.FIXED


@pytest.mark.parametrize(
    "text, expected",
    [("14", 14), (" 7 ", 7), ("", None), ("abc", None), ("-3", -3), (None, None), (True, None)],
    ids=["digits", "padded", "blank", "letters", "negative", "none", "bool"],
)
def test_parse_score(text, expected):
    assert parse_score(text) == expected


def test_classify_border():
    policy = FixedTotalPolicy(24)
    assert classify_border(policy, None, None) is ScoreBorder.UNSET
    assert classify_border(policy, None, 10, committed_value=14) is ScoreBorder.SAVED
    assert classify_border(policy, "abc", None) is ScoreBorder.INVALID
    assert classify_border(policy, "30", None) is ScoreBorder.INVALID
    assert classify_border(policy, "14", 11) is ScoreBorder.INVALID
    assert classify_border(policy, "14", None) is ScoreBorder.PENDING_VALID
    assert classify_border(policy, "14", 10) is ScoreBorder.PENDING_VALID
    assert classify_border(policy, "14", 10, committed_value=14) is ScoreBorder.SAVED
    assert classify_border(policy, "", 10, committed_value=14) is ScoreBorder.UNSET
    assert classify_border(policy, "  ", None) is ScoreBorder.UNSET


def test_round_is_complete():
    policy = FixedTotalPolicy(24)
    assert round_is_complete(policy, [(14, 10), (12, 12)])
    assert not round_is_complete(policy, [(14, 10), (12, None)])
    assert not round_is_complete(policy, [])
