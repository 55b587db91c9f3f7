"""
Tests for power-up activation and expiry.
"""

from quizcore.core.event_types import PowerUpEvent
from quizcore.core.powerups import DOUBLE_POINTS, FIFTY_FIFTY, TIME_EXTENSION, PowerUpManager


def test_standard_catalogue_is_loaded(powerups):
    ids = [definition.id for definition in powerups.get_available_powerups()]

    assert ids == ["double_points", "time_extension", "fifty_fifty", "comeback"]
    assert powerups.get_powerup_definition(TIME_EXTENSION).duration_seconds == 10


def test_invalid_definitions_are_skipped(bus, clock):
    manager = PowerUpManager(
        bus,
        [{"name": "no id"}, {"id": ""}, {"id": "shield", "durationSeconds": 5}],
        clock=clock,
    )

    assert [d.id for d in manager.get_available_powerups()] == ["shield"]


def test_activate_unknown_type(powerups, event_log):
    event_log.watch(PowerUpEvent.ACTIVATED)

    assert powerups.activate_power_up("mystery", "t1") is None
    assert event_log.events == []


def test_activate_emits_instance_id(powerups, event_log, clock):
    event_log.watch(PowerUpEvent.ACTIVATED)

    instance = powerups.activate_power_up(FIFTY_FIFTY, "t1")

    payload = event_log.of(PowerUpEvent.ACTIVATED)[0]
    assert payload.power_up_id == instance.instance_id
    assert payload.type == FIFTY_FIFTY
    assert payload.target_id == "t1"
    assert payload.duration == 10
    assert instance.activation_time == clock()
    assert instance.remaining_duration_ms == 10_000
    assert powerups.is_power_up_active_for_target(FIFTY_FIFTY, "t1")


def test_timed_instance_expires_exactly_once(powerups, event_log):
    """10s instance updated in 4s steps: gone after the third step, EXPIRED once."""
    event_log.watch(PowerUpEvent.EXPIRED, PowerUpEvent.DEACTIVATED)
    powerups.activate_power_up(TIME_EXTENSION, "t1")

    powerups.update(4_000)
    powerups.update(4_000)
    assert powerups.is_power_up_active_for_target(TIME_EXTENSION, "t1")
    powerups.update(4_000)
    powerups.update(4_000)

    assert len(event_log.of(PowerUpEvent.EXPIRED)) == 1
    assert event_log.of(PowerUpEvent.DEACTIVATED) == []
    assert powerups.get_active_powerups() == []


def test_update_ignores_non_positive_delta(powerups):
    powerups.activate_power_up(FIFTY_FIFTY, "t1")

    powerups.update(0)
    powerups.update(-500)

    assert powerups.get_active_powerups()[0].remaining_duration_ms == 10_000


def test_untimed_instance_never_expires(powerups):
    powerups.activate_power_up(DOUBLE_POINTS, "t1")

    powerups.update(10_000_000)

    assert powerups.is_power_up_active_for_target(DOUBLE_POINTS, "t1")
    assert powerups.get_active_powerups()[0].remaining_duration_ms is None


def test_deactivate_is_idempotent(powerups, event_log):
    event_log.watch(PowerUpEvent.DEACTIVATED)
    instance = powerups.activate_power_up(DOUBLE_POINTS, "t1")

    assert powerups.deactivate_power_up(instance.instance_id) is True
    assert powerups.deactivate_power_up(instance.instance_id) is False
    assert len(event_log.of(PowerUpEvent.DEACTIVATED)) == 1


def test_stacked_instances_are_independent(powerups):
    first = powerups.activate_power_up(DOUBLE_POINTS, "t1")
    second = powerups.activate_power_up(DOUBLE_POINTS, "t1")
    powerups.activate_power_up(DOUBLE_POINTS, "t2")

    assert first.instance_id != second.instance_id
    assert len(powerups.get_active_powerups_for_target("t1")) == 2

    assert powerups.deactivate_by_type_and_target(DOUBLE_POINTS, "t1") is True
    remaining = powerups.get_active_powerups_for_target("t1")
    assert [p.instance_id for p in remaining] == [second.instance_id]
    assert powerups.deactivate_by_type_and_target(FIFTY_FIFTY, "t1") is False


def test_listener_removing_instance_during_update(powerups, bus):
    """An expiry listener may deactivate other instances mid-update."""
    powerups.activate_power_up(FIFTY_FIFTY, "t1")
    other = powerups.activate_power_up(FIFTY_FIFTY, "t2")
    bus.on(PowerUpEvent.EXPIRED, lambda payload: powerups.deactivate_power_up(other.instance_id))

    powerups.update(20_000)

    assert powerups.get_active_powerups() == []


def test_returned_instances_are_copies(powerups):
    powerups.activate_power_up(FIFTY_FIFTY, "t1")
    powerups.get_active_powerups()[0].remaining_duration_ms = 1

    assert powerups.get_active_powerups()[0].remaining_duration_ms == 10_000


def test_destroy_forgets_everything(powerups):
    powerups.activate_power_up(FIFTY_FIFTY, "t1")

    powerups.destroy()

    assert powerups.get_active_powerups() == []
    assert powerups.get_available_powerups() == []
