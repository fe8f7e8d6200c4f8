"""
Pydantic models for the KohakuNet wire formats.

This module defines the documents exchanged between allocator agents,
lease registries and operators, and the converters between them and the
lease dataclasses.

Model Categories:
    - Config Document: network config as written by the operator
    - Lease Models: lease and lease attributes
    - Watch Models: events and watch results

Wire shapes:
    event:         {"type": "added"|"removed", "lease": {...}}
    lease:         {"subnet": "10.5.1.0/24", "attrs": {...},
                    "expiration": "2026-01-01T00:00:00Z", "asof": 42}
    watch result:  {"events": [...], "snapshot": [...], "cursor": <any>}
"""

import json
from datetime import datetime, timezone
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    IPvAnyAddress,
    IPvAnyNetwork,
    ValidationError,
    field_validator,
    model_validator,
)

from kohakunet.models.enums import EventType
from kohakunet.subnet.errors import WireDecodeError
from kohakunet.subnet.lease import Event, Lease, LeaseAttrs, LeaseWatchResult


# =============================================================================
# Config Document
# =============================================================================


class NetworkConfigDocument(BaseModel):
    """
    Network config document as supplied by the operator.

    Field names follow the document format (Network, SubnetLen, ...).
    Unknown fields are ignored.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    network: str = Field(
        ...,
        alias="Network",
        description="Shared network range in CIDR notation",
    )
    subnet_min: str | None = Field(
        default=None,
        alias="SubnetMin",
        description="First allocatable subnet address (default: second subnet)",
    )
    subnet_max: str | None = Field(
        default=None,
        alias="SubnetMax",
        description="Last allocatable subnet address (default: last subnet)",
    )
    subnet_len: int | None = Field(
        default=None,
        ge=0,
        alias="SubnetLen",
        description="Prefix length of per-host subnets (0 or absent = derive)",
    )
    backend: Any = Field(
        default=None,
        alias="Backend",
        description="Opaque data-plane backend config with a Type field",
    )


# =============================================================================
# Lease Models
# =============================================================================


class LeaseAttrsModel(BaseModel):
    """Wire form of LeaseAttrs."""

    public_ip: IPvAnyAddress
    backend_type: str = ""
    backend_data: Any = None


class LeaseModel(BaseModel):
    """Wire form of a Lease."""

    subnet: IPvAnyNetwork
    attrs: LeaseAttrsModel
    expiration: datetime
    asof: int = 0

    @field_validator("expiration")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


# =============================================================================
# Watch Models
# =============================================================================


class EventModel(BaseModel):
    """Wire form of an Event. Unknown type values fail validation."""

    type: EventType
    lease: LeaseModel


class LeaseWatchResultModel(BaseModel):
    """Wire form of a LeaseWatchResult."""

    events: list[EventModel] = Field(default_factory=list)
    snapshot: list[LeaseModel] = Field(default_factory=list)
    cursor: Any = None

    @field_validator("events", "snapshot", mode="before")
    @classmethod
    def _null_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @model_validator(mode="after")
    def _events_or_snapshot(self) -> "LeaseWatchResultModel":
        if self.events and self.snapshot:
            raise ValueError("watch result carries both events and a snapshot")
        return self


# =============================================================================
# Converters
# =============================================================================


def _backend_data_to_wire(data: bytes | None) -> Any:
    if data is None:
        return None
    try:
        return json.loads(data)
    except ValueError as e:
        raise WireDecodeError(f"backend_data is not valid JSON: {e}") from e


def _backend_data_from_wire(value: Any) -> bytes | None:
    if value is None:
        return None
    return json.dumps(value, separators=(",", ":")).encode()


def lease_to_model(lease: Lease) -> LeaseModel:
    return LeaseModel(
        subnet=lease.subnet,
        attrs=LeaseAttrsModel(
            public_ip=lease.attrs.public_ip,
            backend_type=lease.attrs.backend_type,
            backend_data=_backend_data_to_wire(lease.attrs.backend_data),
        ),
        expiration=lease.expiration,
        asof=lease.asof,
    )


def model_to_lease(model: LeaseModel) -> Lease:
    return Lease(
        subnet=model.subnet,
        attrs=LeaseAttrs(
            public_ip=model.attrs.public_ip,
            backend_type=model.attrs.backend_type,
            backend_data=_backend_data_from_wire(model.attrs.backend_data),
        ),
        expiration=model.expiration,
        asof=model.asof,
    )


def event_to_model(event: Event) -> EventModel:
    return EventModel(type=event.type, lease=lease_to_model(event.lease))


def model_to_event(model: EventModel) -> Event:
    return Event(type=model.type, lease=model_to_lease(model.lease))


# =============================================================================
# JSON Encoding / Decoding
# =============================================================================


def _describe(error: ValidationError) -> str:
    # Location and message only; the offending input is never echoed
    parts = []
    for err in error.errors():
        loc = ".".join(str(p) for p in err["loc"])
        parts.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(parts)


def _validate(model_cls: type[BaseModel], text: str | bytes, what: str):
    try:
        return model_cls.model_validate_json(text)
    except ValidationError as e:
        raise WireDecodeError(f"invalid {what}: {_describe(e)}") from e


def encode_lease(lease: Lease) -> str:
    return lease_to_model(lease).model_dump_json()


def decode_lease(text: str | bytes) -> Lease:
    return model_to_lease(_validate(LeaseModel, text, "lease"))


def encode_event(event: Event) -> str:
    return event_to_model(event).model_dump_json()


def decode_event(text: str | bytes) -> Event:
    """
    Decode an event.

    Raises:
        WireDecodeError: On malformed JSON, unknown event type or bad lease.
    """
    return model_to_event(_validate(EventModel, text, "event"))


def encode_watch_result(result: LeaseWatchResult) -> str:
    model = LeaseWatchResultModel(
        events=[event_to_model(e) for e in result.events],
        snapshot=[lease_to_model(lease) for lease in result.snapshot],
        cursor=result.cursor,
    )
    return model.model_dump_json()


def decode_watch_result(text: str | bytes) -> LeaseWatchResult:
    model = _validate(LeaseWatchResultModel, text, "watch result")
    if model.events:
        return LeaseWatchResult.from_events(
            [model_to_event(e) for e in model.events], model.cursor
        )
    return LeaseWatchResult.from_snapshot(
        [model_to_lease(m) for m in model.snapshot], model.cursor
    )
