"""
Live feed event types for PitGuard.

Closed, tagged union of everything the broadcast channel carries.
``type`` is the discriminator so consumers dispatch without guessing
at payload shapes.
"""

from typing import Annotated, List, Literal, Union
from pydantic import BaseModel, Field, TypeAdapter

from pitguard.core.models import (
    AlertItem, PredictionOutput, SensorHealthSnapshot, SensorReading,
    WorkerTag, Zone, ZoneOccupancy,
)

class ZonesEvent(BaseModel):
    type: Literal["zones"] = "zones"
    payload: List[Zone]

class SensorEvent(BaseModel):
    type: Literal["sensor"] = "sensor"
    payload: SensorReading

class PredictionEvent(BaseModel):
    type: Literal["prediction"] = "prediction"
    payload: PredictionOutput

class AlertEvent(BaseModel):
    type: Literal["alert"] = "alert"
    payload: AlertItem

class WorkerEvent(BaseModel):
    type: Literal["worker"] = "worker"
    payload: WorkerTag

class OccupancyEvent(BaseModel):
    type: Literal["occupancy"] = "occupancy"
    payload: List[ZoneOccupancy]

class SensorHealthEvent(BaseModel):
    type: Literal["sensor_health"] = "sensor_health"
    payload: SensorHealthSnapshot

StreamEvent = Annotated[
    Union[ZonesEvent, SensorEvent, PredictionEvent, AlertEvent,
          WorkerEvent, OccupancyEvent, SensorHealthEvent],
    Field(discriminator="type"),
]

_adapter = TypeAdapter(StreamEvent)

def encode(event: StreamEvent) -> str:
    """이벤트를 전송용 JSON 문자열로 변환합니다."""
    return event.model_dump_json(by_alias=True)

def decode(raw: Union[str, bytes]) -> StreamEvent:
    """전송용 JSON 을 타입이 지정된 이벤트로 복원합니다."""
    return _adapter.validate_json(raw)
