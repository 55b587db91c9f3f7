"""
Tests for the score and lives ledgers.
"""

from unittest.mock import Mock

from quizcore.core.errors import PersistenceError
from quizcore.core.event_types import ScoringEvent
from quizcore.core.schemas import LivesModeConfig, ScoreModeConfig, TeamConfig
from quizcore.core.scoring import ELIMINATED_KEY, LIVES_KEY, SCORES_KEY, ScoringManager, describe_scores
from quizcore.core.storage import MemoryStorage


def test_init_uses_starting_score(scoring):
    teams = [
        TeamConfig(id="t1", name="One", startingResources={"score": 15}),
        TeamConfig(id="t2", name="Two"),
    ]

    scoring.init(teams, ScoreModeConfig())

    assert scoring.get_all_scores() == {"t1": 15, "t2": 0}
    assert scoring.get_all_lives() == {}


def test_add_and_subtract_emit_updates(scoring, teams, event_log):
    scoring.init(teams, ScoreModeConfig())
    event_log.watch(ScoringEvent.SCORE_UPDATED)

    scoring.add_score("t1", 10)
    scoring.subtract_score("t1", 25)

    updates = event_log.of(ScoringEvent.SCORE_UPDATED)
    assert [(u.previous_score, u.current_score, u.delta) for u in updates] == [(0, 10, 10), (10, 0, -10)]
    assert scoring.get_score("t1") == 0


def test_non_positive_amounts_change_nothing(bus, teams, event_log):
    storage = Mock(wraps=MemoryStorage())
    scoring = ScoringManager(bus, storage)
    scoring.init(teams, ScoreModeConfig())
    storage.reset_mock()
    event_log.watch(ScoringEvent.SCORE_UPDATED)

    assert scoring.add_score("t1", 0) == 0
    assert scoring.subtract_score("t1", -5) == 0

    assert event_log.events == []
    storage.set.assert_not_called()


def test_set_score_rejects_negative(scoring, teams):
    scoring.init(teams, ScoreModeConfig())
    scoring.set_score("t1", 40)

    assert scoring.set_score("t1", -1) == 40
    assert scoring.get_score("t1") == 40


def test_reset_all(scoring, teams):
    scoring.init(teams, ScoreModeConfig())
    scoring.add_score("t1", 5)
    scoring.add_score("t2", 7)

    scoring.reset_all()

    assert scoring.get_all_scores() == {"t1": 0, "t2": 0}


def test_lives_mode_initialises_lives(scoring):
    teams = [TeamConfig(id="t1", name="One"), TeamConfig(id="t2", name="Two", initialLives=1)]

    scoring.init(teams, LivesModeConfig(initialLives=3, maxLives=4))

    assert scoring.get_all_lives() == {"t1": 3, "t2": 1}
    assert scoring.get_max_lives("t1") == 4


def test_losing_last_life_eliminates(scoring, teams, event_log):
    scoring.init(teams, LivesModeConfig(initialLives=2))
    event_log.watch(ScoringEvent.LIFE_LOST, ScoringEvent.TEAM_ELIMINATED)

    scoring.remove_lives("t1", 1)
    scoring.remove_lives("t1", 5)
    scoring.remove_lives("t1", 1)

    assert event_log.names() == [
        ScoringEvent.LIFE_LOST.value,
        ScoringEvent.LIFE_LOST.value,
        ScoringEvent.TEAM_ELIMINATED.value,
    ]
    assert [p.remaining_lives for p in event_log.of(ScoringEvent.LIFE_LOST)] == [1, 0]
    assert scoring.is_team_eliminated("t1")
    assert scoring.get_eliminated_teams() == ["t1"]
    assert scoring.is_game_over()
    assert scoring.is_game_over("t2") is False


def test_add_lives_is_capped_and_revives(scoring, teams):
    scoring.init(teams, LivesModeConfig(initialLives=1, maxLives=3))
    scoring.remove_lives("t1", 1)

    assert scoring.add_lives("t1", 10) == 3
    assert scoring.is_team_eliminated("t1") is False


def test_unchanged_lives_do_not_emit(scoring, teams, event_log):
    scoring.init(teams, LivesModeConfig(initialLives=3))
    event_log.watch(ScoringEvent.LIFE_LOST)

    scoring.set_lives("t1", 3)
    scoring.set_lives("t1", -2)

    assert event_log.events == []


def test_score_mode_is_never_game_over(scoring, teams):
    scoring.init(teams, ScoreModeConfig())

    assert scoring.is_game_over() is False
    assert scoring.is_game_over("t1") is False


def test_state_is_persisted(scoring, teams, storage):
    scoring.init(teams, LivesModeConfig(initialLives=1))
    scoring.add_score("t2", 30)
    scoring.remove_lives("t1", 1)

    assert storage.get(SCORES_KEY) == [["t1", 0], ["t2", 30]]
    assert storage.get(LIVES_KEY) == [["t1", 0], ["t2", 1]]
    assert storage.get(ELIMINATED_KEY) == ["t1"]


def test_integer_team_ids_survive_reload(bus, storage):
    teams = [TeamConfig(id=1, name="One"), TeamConfig(id="2", name="Two")]
    scoring = ScoringManager(bus, storage)
    scoring.init(teams, LivesModeConfig(initialLives=1))
    scoring.add_score(1, 10)
    scoring.remove_lives(1, 1)

    reloaded = ScoringManager(bus, storage)

    assert reloaded.get_score(1) == 10
    assert reloaded.get_score("1") == 0
    assert reloaded.get_all_scores() == {1: 10, "2": 0}
    assert reloaded.is_team_eliminated(1)
    assert reloaded.get_lives("2") == 1


def test_malformed_persisted_entries_are_skipped(bus, storage):
    storage.set(SCORES_KEY, [["t1", 5], ["t2"], [True, 3], ["t3", "many"], "junk"])
    storage.set(LIVES_KEY, {"t1": 2})

    scoring = ScoringManager(bus, storage)

    assert scoring.get_all_scores() == {"t1": 5}
    assert scoring.get_all_lives() == {}


def test_destroy_clears_storage(scoring, teams, storage):
    scoring.init(teams, ScoreModeConfig())
    scoring.add_score("t1", 5)

    scoring.destroy()

    assert storage.get(SCORES_KEY) is None
    assert scoring.get_all_scores() == {}


def test_persistence_failure_keeps_memory_state(bus, teams):
    storage = Mock()
    storage.get.return_value = None
    storage.set.side_effect = PersistenceError(SCORES_KEY, "quota exceeded")
    scoring = ScoringManager(bus, storage)
    scoring.init(teams, ScoreModeConfig())

    assert scoring.add_score("t1", 10) == 10
    assert scoring.get_score("t1") == 10


def test_team_data_views(scoring, teams):
    scoring.init(teams, LivesModeConfig(initialLives=2))
    scoring.add_score("t1", 12)

    data = scoring.get_team_data("t1")

    assert data.display_name == "Team One"
    assert data.color == "#FF0000"
    assert (data.score, data.lives, data.eliminated) == (12, 2, False)
    assert scoring.get_team_data("ghost") is None
    assert describe_scores(scoring) == {
        "t1": {"score": 12, "lives": 2, "eliminated": False},
        "t2": {"score": 0, "lives": 2, "eliminated": False},
    }
