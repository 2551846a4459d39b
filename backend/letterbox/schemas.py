from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import InvalidReading
from .status import BoxStatus, validate_level
from .utils import parse_timestamp, validate_device_id


def _whole_number(value: Any) -> Any:
    # digit strings are fine, JSON true/false and fractional numbers are not
    if isinstance(value, (bool, float)):
        raise ValueError(f"must be a whole number, got {value!r}")
    return value


class DecodedPayload(BaseModel):
    model_config = ConfigDict(extra="allow")
    box: Optional[str] = None
    sensor: Optional[int] = None
    threshold: Optional[int] = None
    temp: Optional[float] = None
    voltage: Optional[float] = None

    @field_validator("sensor", "threshold", mode="before")
    @classmethod
    def check_whole_numbers(cls, value: Any) -> Any:
        return _whole_number(value)


class EndDeviceIds(BaseModel):
    model_config = ConfigDict(extra="ignore")
    device_id: str


class UplinkMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")
    f_cnt: Optional[int] = None
    decoded_payload: Optional[DecodedPayload] = None

    @field_validator("f_cnt", mode="before")
    @classmethod
    def check_counter(cls, value: Any) -> Any:
        return _whole_number(value)


class UplinkMetadata(BaseModel):
    model_config = ConfigDict(extra="ignore")
    time: Optional[str] = None


class Uplink(BaseModel):
    """A TTN uplink, v3 layout with the legacy v2 fields as fallback."""

    model_config = ConfigDict(extra="ignore")
    end_device_ids: Optional[EndDeviceIds] = None
    dev_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("dev_id", "device_id"))
    received_at: Optional[str] = None
    uplink_message: Optional[UplinkMessage] = None
    counter: Optional[int] = None
    payload_fields: Optional[DecodedPayload] = None
    metadata: Optional[UplinkMetadata] = None

    @field_validator("counter", mode="before")
    @classmethod
    def check_counter(cls, value: Any) -> Any:
        return _whole_number(value)

    @property
    def device_id(self) -> Optional[str]:
        if self.end_device_ids is not None:
            return self.end_device_ids.device_id
        return self.dev_id

    @property
    def payload(self) -> Optional[DecodedPayload]:
        if self.uplink_message is not None and self.uplink_message.decoded_payload is not None:
            return self.uplink_message.decoded_payload
        return self.payload_fields

    @property
    def frame_counter(self) -> Optional[int]:
        if self.uplink_message is not None and self.uplink_message.f_cnt is not None:
            return self.uplink_message.f_cnt
        return self.counter

    @property
    def time(self) -> Optional[str]:
        if self.received_at:
            return self.received_at
        if self.metadata is not None:
            return self.metadata.time
        return None


@dataclass(frozen=True)
class StatusSample:
    device_id: str
    received_at: datetime
    sensor: int
    box: BoxStatus
    counter: Optional[int] = None
    threshold: Optional[int] = None


def parse_uplink(content: Any) -> Uplink:
    if not isinstance(content, dict):
        raise InvalidReading("uplink must be a JSON object")
    try:
        return Uplink.model_validate(content)
    except ValidationError as exc:
        raise InvalidReading(f"malformed uplink: {exc.errors()[0].get('msg', 'invalid')}") from exc


def to_sample(uplink: Uplink, *, received_at: datetime | None = None, threshold: int | None = None) -> StatusSample:
    """Validate *uplink* fully and return the immutable sample it describes."""

    device_id = validate_device_id(uplink.device_id)
    payload = uplink.payload
    if payload is None or payload.box is None:
        raise InvalidReading("uplink does not contain 'box'")
    if payload.sensor is None:
        raise InvalidReading("uplink does not contain 'sensor'")
    box = BoxStatus.parse(payload.box)
    sensor = validate_level(payload.sensor)
    counter = uplink.frame_counter
    if counter is not None:
        counter = validate_level(counter, "counter")
    if threshold is not None:
        threshold = validate_level(threshold, "threshold")

    if received_at is None:
        received_at = parse_timestamp(uplink.time) if uplink.time else datetime.now(timezone.utc)

    return StatusSample(
        device_id=device_id,
        received_at=received_at,
        sensor=sensor,
        box=box,
        counter=counter,
        threshold=threshold,
    )
