"""
Data model for the commute engine.

Static configuration (locations, segment and route descriptors) and the
per-request results (resolved segments, route results, the response envelope).
All models are frozen; results are built once and replaced, never mutated.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Direction(str, Enum):
    TO_OFFICE = "toOffice"
    TO_HOME = "toHome"


class TransitMode(str, Enum):
    TRAIN = "train"
    PATH = "path"


class BusDirection(str, Enum):
    EASTBOUND = "eastbound"
    WESTBOUND = "westbound"


class SegmentMode(str, Enum):
    DRIVE = "drive"
    WALK = "walk"
    TRAIN = "train"
    PATH = "path"
    BUS = "bus"


class AnchorKind(str, Enum):
    DEPART_AFTER = "depart_after"
    ARRIVE_BY = "arrive_by"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class _Wire(BaseModel):
    """Frozen model serialised with camelCase keys."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# --- STATIC CONFIGURATION ---

class Location(_Frozen):
    key: str
    name: str
    short_name: str
    address: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @property
    def has_coords(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class DriveSegment(_Frozen):
    type: Literal["drive"] = "drive"
    origin: str
    destination: str
    from_label: str
    to_label: str


class WalkSegment(_Frozen):
    type: Literal["walk"] = "walk"
    from_label: str
    to_label: str
    duration_seconds: int = Field(ge=0)


class TransitSegment(_Frozen):
    type: Literal["transit"] = "transit"
    origin: str
    destination: str
    from_label: str
    to_label: str
    mode: TransitMode


class BusSegment(_Frozen):
    type: Literal["bus"] = "bus"
    direction: BusDirection
    origin: str
    destination: str
    from_label: str
    to_label: str


SegmentDescriptor = Annotated[
    Union[DriveSegment, WalkSegment, TransitSegment, BusSegment],
    Field(discriminator="type"),
]


class RouteDescriptor(_Frozen):
    name: str
    segments: Tuple[SegmentDescriptor, ...]
    # Minutes subtracted from the raw lead time when telling the rider when to leave
    leave_buffer_minutes: int = 2


class Anchor(_Frozen):
    """Temporal reference for one segment resolution."""

    instant: datetime
    kind: AnchorKind = AnchorKind.DEPART_AFTER

    @classmethod
    def depart_after(cls, instant: datetime) -> "Anchor":
        return cls(instant=instant, kind=AnchorKind.DEPART_AFTER)

    @classmethod
    def arrive_by(cls, instant: datetime) -> "Anchor":
        return cls(instant=instant, kind=AnchorKind.ARRIVE_BY)

    @property
    def is_backward(self) -> bool:
        return self.kind == AnchorKind.ARRIVE_BY


# --- RUNTIME RESULTS ---

class ResolvedSegment(_Wire):
    mode: SegmentMode
    from_label: str
    to_label: str
    duration_seconds: int = Field(default=0, ge=0)
    departure_time: Optional[datetime] = None
    arrival_time: Optional[datetime] = None
    distance_meters: Optional[int] = None
    traffic_note: Optional[str] = None
    line_label: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def with_error(self, message: str) -> "ResolvedSegment":
        return self.model_copy(update={"error": message})


class RouteResult(_Wire):
    name: str
    segments: List[ResolvedSegment] = Field(default_factory=list)
    total_duration_seconds: Optional[int] = None
    start_time: Optional[datetime] = None
    eta: Optional[datetime] = None
    leave_in_minutes: Optional[int] = None
    has_error: bool = False
    is_best: bool = False


class CommuteResponse(_Wire):
    direction: Direction
    as_of: datetime
    last_updated: datetime
    routes: List[RouteResult]
