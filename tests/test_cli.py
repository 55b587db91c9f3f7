"""
Tests for the command line interface and the simulation driver.
"""

import orjson
import pytest
from typer.testing import CliRunner

from quizcore.config.defaults import demo_game_config
from quizcore.core.schemas import parse_game_config
from quizcore.core.session import QuizSession
from quizcore.core.storage import MemoryStorage
from quizcore.core.timers import ManualFrameScheduler
from quizcore.services import cli
from quizcore.utils.clock import ManualClock
from quizcore.utils.rng import build_rng

runner = CliRunner()


@pytest.fixture(autouse=True)
def quiet_cli(monkeypatch):
    """Keep the global structlog configuration untouched by CLI runs."""
    monkeypatch.setattr(cli, "_configured_logging", True)
    monkeypatch.delenv(cli.STORAGE_PATH_ENV, raising=False)


def test_simulation_is_deterministic_for_a_seed():
    config = parse_game_config(demo_game_config())

    first = cli.run_simulation(config, seed=11, question_count=6)
    second = cli.run_simulation(config, seed=11, question_count=6)

    assert first.questions_asked == 6
    assert first.session.scoring.get_all_scores() == second.session.scoring.get_all_scores()
    assert first.recorder.names() == second.recorder.names()


def test_play_question_uses_the_given_config():
    """The question loop reads the time limit from the config it is handed."""
    config = parse_game_config(dict(demo_game_config(), intensityTimeLimit=1))
    clock = ManualClock()
    scheduler = ManualFrameScheduler()
    session = QuizSession(storage=MemoryStorage(), clock=clock, scheduler=scheduler)
    session.init(config)
    rng = build_rng(seed=4)
    question = cli.build_questions(1, rng)[0]

    cli._play_question(session, config, question, clock, scheduler, rng)

    assert clock() <= 1_200
    assert session.game_state.get_active_team_id() == "blue"


def test_simulation_ends_the_game():
    config = parse_game_config(demo_game_config(lives_mode=True))

    result = cli.run_simulation(config, seed=3, question_count=8, storage=MemoryStorage())

    names = result.recorder.names()
    assert names.count("gameState:gameStarted") == 1
    assert names[-1] == "gameState:gameEnded"
    assert result.questions_asked <= 8


def test_simulate_command_writes_transcript(tmp_path):
    runs_dir = tmp_path / "runs"

    result = runner.invoke(cli.app, ["simulate", "--seed", "5", "--questions", "4", "--runs-dir", str(runs_dir)])

    assert result.exit_code == 0, result.output
    assert "Simulation complete: 4 questions asked." in result.output
    transcripts = list(runs_dir.glob("*_5.json"))
    assert len(transcripts) == 1
    data = orjson.loads(transcripts[0].read_bytes())
    assert data["seed"] == "5"
    assert set(data["final_scores"]) == {"red", "blue"}


def test_simulate_with_file_storage(tmp_path):
    storage_path = tmp_path / "storage.json"

    result = runner.invoke(
        cli.app,
        ["simulate", "--seed", "2", "--questions", "2", "--runs-dir", str(tmp_path), "--storage", str(storage_path)],
    )

    assert result.exit_code == 0, result.output
    assert storage_path.exists()


def test_simulate_rejects_invalid_config(tmp_path):
    path = tmp_path / "bad.json"
    path.write_bytes(orjson.dumps({"quizId": "x"}))

    result = runner.invoke(cli.app, ["simulate", "--config", str(path), "--runs-dir", str(tmp_path)])

    assert result.exit_code == 1
    assert "Invalid GameConfig" in result.output


def test_validate_command(tmp_path, game_config_data):
    path = tmp_path / "game.json"
    path.write_bytes(orjson.dumps(game_config_data))

    result = runner.invoke(cli.app, ["validate", str(path)])

    assert result.exit_code == 0
    assert "OK (quiz quiz-1, 2 teams, 1 rules, mode score)" in result.output


def test_validate_missing_file(tmp_path):
    result = runner.invoke(cli.app, ["validate", str(tmp_path / "missing.json")])

    assert result.exit_code == 1
    assert "Cannot read config" in result.output


def test_render_scores_lists_every_team():
    config = parse_game_config(demo_game_config())
    result = cli.run_simulation(config, seed=1, question_count=2)

    table = cli.render_scores(result.session)

    assert table.row_count == 2
