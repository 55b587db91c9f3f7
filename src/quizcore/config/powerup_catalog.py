"""
Built-in power-up catalogue.

Games list the power-ups they offer under ``powerups.availablePowerups``; the
entries here are the standard set for score-based modes and can be copied
into a config as-is.
"""

from typing import Dict, List, Optional

from ..core.powerups import COMEBACK, DOUBLE_POINTS, FIFTY_FIFTY, TIME_EXTENSION
from ..core.schemas import PowerupConfig, PowerupDefinition


# Untimed entries last until consumed or deactivated explicitly.
STANDARD_SCORE_MODE_POWERUPS: Dict[str, PowerupDefinition] = {
    DOUBLE_POINTS: PowerupDefinition(
        id=DOUBLE_POINTS,
        name="Double Points",
        description="Doubles points earned for this question.",
        effect_type="score_multiplier",
        effect_params={"multiplier": 2},
        asset_key="double-points-icon",
    ),
    TIME_EXTENSION: PowerupDefinition(
        id=TIME_EXTENSION,
        name="Time Extension",
        description="Adds extra time to the question timer.",
        duration_seconds=10,
        effect_type="timer_modifier",
        effect_params={"amount": 5},
        asset_key="time-extension-icon",
    ),
    FIFTY_FIFTY: PowerupDefinition(
        id=FIFTY_FIFTY,
        name="50/50",
        description="Removes half of the incorrect answer options.",
        duration_seconds=10,
        effect_type="answer_modifier",
        asset_key="fifty-fifty-icon",
    ),
    COMEBACK: PowerupDefinition(
        id=COMEBACK,
        name="Comeback",
        description="Gives bonus points for teams that are behind.",
        duration_seconds=30,
        effect_type="score_boost",
        effect_params={"multiplier": 1.5, "minPointsBehind": 20},
        asset_key="comeback-icon",
    ),
}


def get_standard_powerups() -> List[PowerupDefinition]:
    """Get copies of every standard power-up definition."""
    return [definition.model_copy(deep=True) for definition in STANDARD_SCORE_MODE_POWERUPS.values()]


def get_powerup(powerup_id: str) -> Optional[PowerupDefinition]:
    """Get a copy of one standard definition, or None if unknown."""
    definition = STANDARD_SCORE_MODE_POWERUPS.get(powerup_id)
    return definition.model_copy(deep=True) if definition else None


def default_powerup_config(enabled: bool = True) -> PowerupConfig:
    return PowerupConfig(available_powerups=get_standard_powerups(), powerups_enabled=enabled)
