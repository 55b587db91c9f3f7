"""
Tests for configuration parsing and the built-in defaults.
"""

import orjson
import pytest

from quizcore.config.defaults import default_rules, demo_game_config
from quizcore.config.powerup_catalog import STANDARD_SCORE_MODE_POWERUPS, default_powerup_config, get_powerup
from quizcore.core.errors import ConfigurationError
from quizcore.core.schemas import LivesModeConfig, ScoreModeConfig, load_game_config, parse_game_config


def test_parse_accepts_camel_case(game_config_data):
    config = parse_game_config(game_config_data)

    assert config.quiz_id == "quiz-1"
    assert isinstance(config.game_mode, ScoreModeConfig)
    assert config.powerups.powerups_enabled is True
    assert config.rules.rules[0].trigger_event == "game:answerSelected"
    assert config.question_handling.distribution_mode == "perTeam"


def test_lives_mode_is_discriminated(game_config_data):
    game_config_data["gameMode"] = {"type": "lives", "initialLives": 3}

    config = parse_game_config(game_config_data)

    assert isinstance(config.game_mode, LivesModeConfig)
    assert config.game_mode.max_lives == 5


@pytest.mark.parametrize(
    "mutate",
    [
        lambda data: data.update(teams=[]),
        lambda data: data["teams"].append({"id": "t1", "name": "Duplicate"}),
        lambda data: data.update(intensityTimeLimit=0),
        lambda data: data.update(gameMode={"type": "sudden-death"}),
        lambda data: data["teams"][0].update(color="red"),
        lambda data: data.pop("quizId"),
    ],
)
def test_invalid_configs_raise(game_config_data, mutate):
    mutate(game_config_data)

    with pytest.raises(ConfigurationError) as excinfo:
        parse_game_config(game_config_data)

    assert excinfo.value.errors


def test_null_rule_fields_take_defaults(game_config_data):
    game_config_data["rules"]["rules"][0].update(priority=None, enabled=None, conditions=None)

    rule = parse_game_config(game_config_data).rules.rules[0]

    assert (rule.priority, rule.enabled, rule.conditions) == (0, True, [])


def test_load_from_file(tmp_path, game_config_data):
    path = tmp_path / "game.json"
    path.write_bytes(orjson.dumps(game_config_data))

    assert load_game_config(path).game_slug == "multiple-choice"


@pytest.mark.parametrize("content", [b"[1, 2]", b"{oops"])
def test_load_rejects_bad_documents(tmp_path, content):
    path = tmp_path / "game.json"
    path.write_bytes(content)

    with pytest.raises(ConfigurationError):
        load_game_config(path)


def test_load_missing_file(tmp_path):
    with pytest.raises(ConfigurationError):
        load_game_config(tmp_path / "missing.json")


@pytest.mark.parametrize("lives_mode", [False, True])
def test_demo_config_is_valid(lives_mode):
    config = parse_game_config(demo_game_config(lives_mode=lives_mode))

    assert len(config.rules.rules) == len(default_rules(lives_mode=lives_mode))
    assert config.game_mode.type == ("lives" if lives_mode else "score")


def test_catalogue_returns_copies():
    definition = get_powerup("double_points")
    definition.effect_params["multiplier"] = 10

    assert STANDARD_SCORE_MODE_POWERUPS["double_points"].effect_params["multiplier"] == 2
    assert get_powerup("nope") is None
    assert default_powerup_config(enabled=False).powerups_enabled is False
