"""Typer CLI entry point for running and validating quiz sessions."""

from __future__ import annotations

import logging
import os
import random
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import structlog
import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from ..config.defaults import demo_game_config
from ..core.errors import ConfigurationError
from ..core.event_bus import EventBus
from ..core.powerups import DOUBLE_POINTS
from ..core.schemas import GameConfig, LivesModeConfig, Question, QuestionOption, load_game_config, parse_game_config
from ..core.scoring import describe_scores
from ..core.sequencer import QuestionSequencer
from ..core.session import QUESTION_TIMER_ID, QuizSession
from ..core.storage import JsonFileStorage, MemoryStorage, Storage
from ..core.timers import ManualFrameScheduler, TimerStatus
from ..core.transcript import RUNS_DIR, EventRecorder, TranscriptWriter
from ..utils.clock import ManualClock
from ..utils.rng import build_rng

LOGGER = structlog.get_logger(__name__)

LOG_LEVEL_ENV = "QUIZCORE_LOG_LEVEL"
STORAGE_PATH_ENV = "QUIZCORE_STORAGE_PATH"
FRAME_MS = 100.0
CORRECT_ANSWER_RATE = 0.6
POWERUP_RATE = 0.25

app = typer.Typer(help="Run quiz engine simulations.", invoke_without_command=False)
console = Console()
_configured_logging = False


def configure_logging(level: str = "INFO") -> None:
    global _configured_logging
    if _configured_logging:
        return
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level.upper(), logging.INFO)),
        cache_logger_on_first_use=True,
    )
    _configured_logging = True


@dataclass(slots=True)
class SimulationResult:
    session: QuizSession
    recorder: EventRecorder
    questions_asked: int
    transcript_path: Optional[Path] = None


def build_questions(count: int, rng: random.Random) -> List[Question]:
    """Generate ``count`` four-option questions with a random correct option."""

    questions = []
    for index in range(1, count + 1):
        options = [QuestionOption(id=f"q{index}-{letter}", text=f"Option {letter.upper()}") for letter in "abcd"]
        questions.append(
            Question(
                id=f"q{index}",
                text=f"Question {index}",
                options=options,
                correct_option_id=rng.choice(options).id,
            )
        )
    return questions


def _play_question(
    session: QuizSession,
    config: GameConfig,
    question: Question,
    clock: ManualClock,
    scheduler: ManualFrameScheduler,
    rng: random.Random,
) -> None:
    team_id = session.game_state.get_active_team_id()

    if session.powerups is not None and team_id is not None and rng.random() < POWERUP_RATE:
        if session.powerups.get_powerup_definition(DOUBLE_POINTS) is not None:
            session.powerups.activate_power_up(DOUBLE_POINTS, team_id)

    session.start_question(question.id)
    # Sometimes the team is too slow and the clock runs out.
    answer_after_ms = rng.uniform(0, config.intensity_time_limit * 1000 * 1.2)
    waited = 0.0
    while waited < answer_after_ms:
        step = min(FRAME_MS, answer_after_ms - waited)
        clock.advance(step)
        session.update(step)
        scheduler.run_pending()
        waited += step
        timer = session.timers.get_timer(QUESTION_TIMER_ID)
        if timer is None or timer.status == TimerStatus.COMPLETED:
            break

    timer = session.timers.get_timer(QUESTION_TIMER_ID)
    if timer is not None and timer.status != TimerStatus.COMPLETED:
        if rng.random() < CORRECT_ANSWER_RATE:
            option_id = question.correct_option_id
        else:
            option_id = rng.choice([o.id for o in question.options if o.id != question.correct_option_id])
        session.submit_answer(question.id, option_id, question.is_correct(option_id))
    session.finish_question()


def run_simulation(
    config: GameConfig,
    *,
    seed: Optional[int] = None,
    question_count: int = 10,
    storage: Optional[Storage] = None,
) -> SimulationResult:
    """Play a whole quiz against a manual clock; no wall-clock time passes."""

    rng = build_rng(seed=seed)
    clock = ManualClock()
    scheduler = ManualFrameScheduler()
    bus = EventBus()
    recorder = EventRecorder(bus)
    session = QuizSession(bus, storage if storage is not None else MemoryStorage(), clock=clock, scheduler=scheduler)
    session.init(config)
    session.start_game()

    sequencer = QuestionSequencer(build_questions(question_count, rng), len(config.teams), config.question_handling, rng=rng)
    asked = 0
    while not sequencer.is_finished():
        if isinstance(config.game_mode, LivesModeConfig) and session.scoring.is_game_over():
            LOGGER.info("simulation.team_out", eliminated=session.scoring.get_eliminated_teams())
            break
        question = sequencer.get_next_question()
        if question is None:
            break
        _play_question(session, config, question, clock, scheduler, rng)
        asked += 1

    session.end_game()
    return SimulationResult(session=session, recorder=recorder, questions_asked=asked)


def render_scores(session: QuizSession) -> Table:
    table = Table(title="Final standings", show_header=True, header_style="bold cyan")
    table.add_column("Team", style="dim", width=16)
    table.add_column("Score", justify="right")
    table.add_column("Lives", justify="right")
    table.add_column("Status")
    standings = sorted(session.scoring.get_all_team_data(), key=lambda data: data.score, reverse=True)
    for data in standings:
        status = "[red]ELIMINATED[/red]" if data.eliminated else "[green]IN[/green]"
        lives = "-" if data.lives is None else str(data.lives)
        table.add_row(data.display_name or str(data.team_id), str(data.score), lives, status)
    return table


def _resolve_storage(path: Optional[Path]) -> Storage:
    env_path = os.getenv(STORAGE_PATH_ENV)
    if path is None and env_path:
        path = Path(env_path)
    return JsonFileStorage(path) if path is not None else MemoryStorage()


@app.command("simulate")
def simulate(
    config: Optional[Path] = typer.Option(None, help="Path to a game configuration JSON (defaults to the demo game)"),
    seed: Optional[int] = typer.Option(None, help="Seed for deterministic simulation"),
    questions: int = typer.Option(10, min=1, help="Number of generated questions in the pool"),
    storage: Optional[Path] = typer.Option(None, help="JSON file used for timer/score persistence"),
    lives: bool = typer.Option(False, "--lives", help="Use lives mode for the demo game"),
    runs_dir: Path = typer.Option(RUNS_DIR, help="Directory for event transcripts"),
) -> None:
    """Run an automated quiz and store the event transcript under runs/."""

    load_dotenv()
    configure_logging(os.getenv(LOG_LEVEL_ENV, "INFO"))

    try:
        game_config = load_game_config(config) if config else parse_game_config(demo_game_config(lives_mode=lives))
    except ConfigurationError as exc:
        LOGGER.error("simulation.invalid_config", error=str(exc))
        typer.echo(str(exc))
        raise typer.Exit(code=1) from exc

    LOGGER.info("simulation.start", seed=seed, config=str(config) if config else "demo", questions=questions)
    result = run_simulation(game_config, seed=seed, question_count=questions, storage=_resolve_storage(storage))

    writer = TranscriptWriter(seed=str(seed) if seed is not None else "random", quiz_id=game_config.quiz_id, runs_dir=runs_dir)
    result.transcript_path = writer.flush(result.recorder, final_scores=describe_scores(result.session.scoring))

    console.print(render_scores(result.session))
    result.recorder.close()
    result.session.destroy()

    LOGGER.info("simulation.complete", questions=result.questions_asked, transcript=str(result.transcript_path))
    typer.echo(f"Simulation complete: {result.questions_asked} questions asked.\nTranscript saved to {result.transcript_path}")


@app.command("validate")
def validate(path: Path = typer.Argument(..., help="Game configuration JSON to check")) -> None:
    """Validate a game configuration file."""

    load_dotenv()
    configure_logging(os.getenv(LOG_LEVEL_ENV, "WARNING"))
    try:
        game_config = load_game_config(path)
    except ConfigurationError as exc:
        typer.echo(str(exc))
        raise typer.Exit(code=1) from exc

    typer.echo(
        f"{path}: OK (quiz {game_config.quiz_id}, {len(game_config.teams)} teams, "
        f"{len(game_config.rules.rules)} rules, mode {game_config.game_mode.type})"
    )


def main() -> None:  # pragma: no cover - CLI entry point
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
