"""Power-up definitions and their live, time-boxed instances."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, List, Optional, Union

import structlog
from pydantic import ValidationError

from .event_bus import EventBus
from .event_types import PowerUpEvent, PowerUpEventPayload, TeamId
from .schemas import PowerupDefinition
from ..utils.clock import Clock, system_clock

LOGGER = structlog.get_logger(__name__)

DOUBLE_POINTS = "double_points"
TIME_EXTENSION = "time_extension"
FIFTY_FIFTY = "fifty_fifty"
COMEBACK = "comeback"


@dataclass(slots=True)
class ActivePowerUp:
    """One activation of a power-up type on a target.

    ``remaining_duration_ms`` is ``None`` for untimed power-ups, which stay
    active until deactivated explicitly.
    """

    instance_id: str
    type_id: str
    target_id: TeamId
    activation_time: float
    remaining_duration_ms: Optional[float]
    definition: PowerupDefinition


class PowerUpManager:
    def __init__(
        self,
        event_bus: EventBus,
        definitions: Iterable[Union[PowerupDefinition, Dict[str, Any]]] = (),
        *,
        clock: Clock = system_clock,
    ) -> None:
        self._bus = event_bus
        self._clock = clock
        self._definitions: Dict[str, PowerupDefinition] = {}
        self._active: Dict[str, ActivePowerUp] = {}
        self._load_definitions(definitions)
        LOGGER.info("powerups.initialized", available=list(self._definitions))

    def _load_definitions(self, definitions: Iterable[Union[PowerupDefinition, Dict[str, Any]]]) -> None:
        for raw in definitions:
            if isinstance(raw, PowerupDefinition):
                definition = raw
            else:
                try:
                    definition = PowerupDefinition.model_validate(raw)
                except ValidationError as exc:
                    LOGGER.warning("powerups.invalid_definition", error=str(exc))
                    continue
            if not definition.id:
                LOGGER.warning("powerups.definition_without_id")
                continue
            self._definitions[definition.id] = definition

    # Queries

    def is_power_up_active_for_target(self, type_id: str, target_id: TeamId) -> bool:
        return any(p.type_id == type_id and p.target_id == target_id for p in self._active.values())

    def get_active_powerups_for_target(self, target_id: TeamId) -> List[ActivePowerUp]:
        return [replace(p) for p in self._active.values() if p.target_id == target_id]

    def get_active_powerups(self) -> List[ActivePowerUp]:
        return [replace(p) for p in self._active.values()]

    def get_powerup_definition(self, type_id: str) -> Optional[PowerupDefinition]:
        return self._definitions.get(type_id)

    def get_available_powerups(self) -> List[PowerupDefinition]:
        return list(self._definitions.values())

    # Lifecycle

    def activate_power_up(self, type_id: str, target_id: TeamId) -> Optional[ActivePowerUp]:
        """Start a new instance of ``type_id`` on ``target_id``.

        Several instances of the same type may be active on one target at once.
        Returns a copy of the instance, or ``None`` for an unknown type.
        """

        definition = self._definitions.get(type_id)
        if definition is None:
            LOGGER.warning("powerups.unknown_type", type_id=type_id, target_id=target_id)
            return None

        remaining = definition.duration_seconds * 1000 if definition.duration_seconds is not None else None
        instance = ActivePowerUp(
            instance_id=str(uuid.uuid4()),
            type_id=type_id,
            target_id=target_id,
            activation_time=self._clock(),
            remaining_duration_ms=remaining,
            definition=definition,
        )
        self._active[instance.instance_id] = instance
        LOGGER.info(
            "powerups.activated",
            type_id=type_id,
            instance_id=instance.instance_id,
            target_id=target_id,
            duration_ms=remaining,
        )
        self._bus.emit(
            PowerUpEvent.ACTIVATED,
            PowerUpEventPayload(
                power_up_id=instance.instance_id,
                type=type_id,
                target_id=target_id,
                duration=definition.duration_seconds,
            ),
        )
        return replace(instance)

    def deactivate_power_up(self, instance_id: str, expired: bool = False) -> bool:
        instance = self._active.pop(instance_id, None)
        if instance is None:
            return False

        LOGGER.info(
            "powerups.deactivated",
            type_id=instance.type_id,
            instance_id=instance_id,
            target_id=instance.target_id,
            reason="expired" if expired else "manual",
        )
        self._bus.emit(
            PowerUpEvent.EXPIRED if expired else PowerUpEvent.DEACTIVATED,
            PowerUpEventPayload(power_up_id=instance_id, type=instance.type_id, target_id=instance.target_id),
        )
        return True

    def deactivate_by_type_and_target(self, type_id: str, target_id: TeamId) -> bool:
        """Deactivate the oldest instance of ``type_id`` on ``target_id``, if any."""

        for instance_id, instance in list(self._active.items()):
            if instance.type_id == type_id and instance.target_id == target_id:
                return self.deactivate_power_up(instance_id)
        LOGGER.debug("powerups.nothing_to_deactivate", type_id=type_id, target_id=target_id)
        return False

    def update(self, delta_ms: float) -> None:
        """Count down every timed instance; expired ones are removed once, with ``EXPIRED``."""

        if delta_ms <= 0:
            return
        for instance_id in list(self._active):
            instance = self._active.get(instance_id)
            # Gone already: a listener of an earlier expiry may have removed it.
            if instance is None or instance.remaining_duration_ms is None:
                continue
            instance.remaining_duration_ms -= delta_ms
            if instance.remaining_duration_ms <= 0:
                self.deactivate_power_up(instance_id, expired=True)

    def destroy(self) -> None:
        self._definitions.clear()
        self._active.clear()
        LOGGER.info("powerups.destroyed")
