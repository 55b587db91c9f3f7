"""Event recording and transcript persistence."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import orjson
import structlog
from pydantic import BaseModel

from .event_bus import EventBus, Subscription
from .event_types import ALL_EVENT_NAMES, TimerEvent

LOGGER = structlog.get_logger(__name__)

RUNS_DIR = Path("runs")
TIMESTAMP_FMT = "%Y%m%d-%H%M%S"


@dataclass(slots=True)
class EventRecord:
    """Single event entry in the transcript."""

    sequence: int
    name: str
    payload: Optional[Dict[str, Any]] = None


@dataclass(slots=True)
class Transcript:
    """Complete transcript structure before serialization."""

    seed: str
    quiz_id: Optional[str]
    events: List[EventRecord] = field(default_factory=list)
    final_scores: Dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> bytes:
        """Serialize the transcript using orjson."""
        return orjson.dumps(self, default=_dataclass_to_dict, option=orjson.OPT_INDENT_2)


def _payload_dict(payload: Any) -> Optional[Dict[str, Any]]:
    if payload is None:
        return None
    if isinstance(payload, BaseModel):
        return payload.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(payload, dict):
        return dict(payload)
    return {"value": repr(payload)}


class EventRecorder:
    """Subscribes to engine events and keeps them in delivery order.

    Ticks are left out by default; a single question produces one per frame.
    """

    def __init__(
        self,
        event_bus: EventBus,
        *,
        event_names: Optional[Iterable[str]] = None,
        include_ticks: bool = False,
    ) -> None:
        self._bus = event_bus
        self.records: List[EventRecord] = []
        self._subscriptions: List[Subscription] = []
        for name in event_names if event_names is not None else ALL_EVENT_NAMES:
            if name == TimerEvent.TICK.value and not include_ticks:
                continue
            self._subscriptions.append(event_bus.on(name, lambda payload, name=name: self._record(name, payload)))

    def _record(self, name: str, payload: Any) -> None:
        self.records.append(EventRecord(sequence=len(self.records) + 1, name=name, payload=_payload_dict(payload)))

    def names(self) -> List[str]:
        return [record.name for record in self.records]

    def of(self, name: Any) -> List[EventRecord]:
        key = name.value if hasattr(name, "value") else name
        return [record for record in self.records if record.name == key]

    def close(self) -> None:
        for subscription in self._subscriptions:
            self._bus.off(subscription)
        self._subscriptions.clear()


@dataclass
class TranscriptWriter:
    """Writes recorded events to ``runs/<timestamp>_<seed>.json``."""

    seed: str
    quiz_id: Optional[str] = None
    runs_dir: Path = RUNS_DIR

    def __post_init__(self) -> None:
        self.runs_dir.mkdir(parents=True, exist_ok=True)

    def flush(self, recorder: EventRecorder, *, final_scores: Optional[Dict[str, Any]] = None) -> Path:
        transcript = Transcript(
            seed=self.seed,
            quiz_id=self.quiz_id,
            events=list(recorder.records),
            final_scores=dict(final_scores or {}),
        )
        timestamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
        file_path = self.runs_dir / f"{timestamp}_{self.seed}.json"
        file_path.write_bytes(transcript.to_json())
        LOGGER.info("transcript.written", path=str(file_path), events=len(transcript.events))
        return file_path


def _dataclass_to_dict(obj: Any) -> Any:
    if hasattr(obj, "__dataclass_fields__"):
        return {name: getattr(obj, name) for name in obj.__dataclass_fields__}
    raise TypeError(f"Type {type(obj).__name__} is not JSON serializable")
