"""Pydantic contracts for session configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

import orjson
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import ConfigurationError
from .event_types import TeamId


class ConfigModel(BaseModel):
    """Base for config sections: accepts both camelCase aliases and field names."""

    model_config = ConfigDict(populate_by_name=True)


class PlayerConfig(ConfigModel):
    id: TeamId
    name: str


class TeamConfig(ConfigModel):
    """A team taking part in the session."""

    id: TeamId
    name: str
    color: Optional[str] = Field(None, pattern=r"^#[0-9A-Fa-f]{6}$")
    players: List[PlayerConfig] = Field(default_factory=list)
    initial_lives: Optional[int] = Field(None, alias="initialLives", ge=0)
    max_players: Optional[int] = Field(None, alias="maxPlayers", ge=1)
    starting_resources: Dict[str, int] = Field(default_factory=dict, alias="startingResources")

    @field_validator("id")
    @classmethod
    def _id_not_blank(cls, value: TeamId) -> TeamId:
        if isinstance(value, str) and not value.strip():
            raise ValueError("team id must not be blank")
        return value


class ScoreModeConfig(ConfigModel):
    type: Literal["score"] = "score"
    name: str = "Score"
    target_score: Optional[int] = Field(None, alias="targetScore")
    time_limit_seconds: Optional[float] = Field(60, alias="timeLimitSeconds")


class LivesModeConfig(ConfigModel):
    type: Literal["lives"] = "lives"
    name: str = "Lives"
    initial_lives: int = Field(..., alias="initialLives", gt=0)
    max_lives: Optional[int] = Field(5, alias="maxLives", ge=0)


GameModeConfig = Annotated[Union[ScoreModeConfig, LivesModeConfig], Field(discriminator="type")]


class ConditionDefinition(ConfigModel):
    """One rule condition. ``type`` and ``operator`` stay free-form so unknown tags fail closed at runtime."""

    type: str
    property: str = ""
    operator: str = "eq"
    value: Any = None


class ActionDefinition(ConfigModel):
    """One rule action with its type-specific parameters."""

    type: str
    params: Dict[str, Any] = Field(default_factory=dict)


class RuleDefinition(ConfigModel):
    id: str = ""
    description: Optional[str] = None
    trigger_event: str = Field("", alias="triggerEvent")
    conditions: List[ConditionDefinition] = Field(default_factory=list)
    actions: List[ActionDefinition] = Field(default_factory=list)
    priority: int = 0
    enabled: bool = True

    @field_validator("conditions", "actions", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("priority", mode="before")
    @classmethod
    def _none_priority(cls, value: Any) -> Any:
        return 0 if value is None else value

    @field_validator("enabled", mode="before")
    @classmethod
    def _none_enabled(cls, value: Any) -> Any:
        return True if value is None else value


class RuleConfig(ConfigModel):
    rules: List[RuleDefinition] = Field(default_factory=list)


class PowerupDefinition(ConfigModel):
    """Static description of a power-up type."""

    id: str
    name: str = ""
    description: Optional[str] = None
    duration_seconds: Optional[float] = Field(None, alias="durationSeconds", ge=0)
    effect_type: str = Field("", alias="effectType")
    effect_params: Dict[str, Any] = Field(default_factory=dict, alias="effectParams")
    asset_key: Optional[str] = Field(None, alias="assetKey")


class PowerupConfig(ConfigModel):
    available_powerups: List[PowerupDefinition] = Field(default_factory=list, alias="availablePowerups")
    powerups_enabled: bool = Field(False, alias="powerupsEnabled")


class QuestionHandlingConfig(ConfigModel):
    distribution_mode: Literal["sharedPool", "perTeam"] = Field("perTeam", alias="distributionMode")
    randomize_order: bool = Field(True, alias="randomizeOrder")
    truncate_for_fairness: bool = Field(True, alias="truncateForFairness")


class QuestionOption(ConfigModel):
    id: str
    text: str


class Question(ConfigModel):
    """A multiple-choice question as delivered by the content layer."""

    id: str
    text: str
    options: List[QuestionOption] = Field(default_factory=list)
    correct_option_id: str = Field(..., alias="correctOptionId")

    def is_correct(self, option_id: Optional[str]) -> bool:
        return option_id is not None and option_id == self.correct_option_id


class GameConfig(ConfigModel):
    """Everything a session needs at ``init``."""

    quiz_id: str = Field(..., alias="quizId")
    game_slug: str = Field(..., alias="gameSlug")
    teams: List[TeamConfig]
    game_mode: GameModeConfig = Field(..., alias="gameMode")
    rules: RuleConfig = Field(default_factory=RuleConfig)
    powerups: PowerupConfig = Field(default_factory=PowerupConfig)
    intensity_time_limit: float = Field(30, alias="intensityTimeLimit", gt=0, description="Seconds per question")
    question_handling: QuestionHandlingConfig = Field(default_factory=QuestionHandlingConfig, alias="questionHandling")

    @model_validator(mode="after")
    def _check_teams(self) -> "GameConfig":
        if not self.teams:
            raise ValueError("teams must be a non-empty list")
        ids = [team.id for team in self.teams]
        if len(set(ids)) != len(ids):
            raise ValueError("teams contains duplicate ids")
        return self


def parse_game_config(data: Dict[str, Any]) -> GameConfig:
    """Validate a raw mapping or raise :class:`ConfigurationError`."""

    try:
        return GameConfig.model_validate(data)
    except ValidationError as exc:
        errors = exc.errors(include_url=False)
        lines = "\n- ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in errors)
        raise ConfigurationError(f"Invalid GameConfig:\n- {lines}", errors) from exc


def load_game_config(path: Path) -> GameConfig:
    """Load a JSON config file from disk."""

    try:
        data = orjson.loads(Path(path).read_bytes())
    except OSError as exc:
        raise ConfigurationError(f"Cannot read config {path}: {exc}") from exc
    except orjson.JSONDecodeError as exc:
        raise ConfigurationError(f"Config {path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config {path} must contain a JSON object")
    return parse_game_config(data)
