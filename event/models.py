from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, confloat, conint, constr

from event.constants import RsvpStatus


class EventCreate(BaseModel):
    hub_id: Optional[UUID] = Field(default=None, alias="hubId")
    title: constr(strip_whitespace=True, min_length=1, max_length=255)
    description: Optional[str] = None
    location: constr(min_length=1, max_length=255)
    latitude: Optional[confloat(ge=-90, le=90)] = None
    longitude: Optional[confloat(ge=-180, le=180)] = None
    start_time: datetime = Field(alias="startTime")
    end_time: datetime = Field(alias="endTime")
    is_fire_event: bool = Field(default=False, alias="isFireEvent")
    max_attendees: Optional[conint(ge=1)] = Field(default=None, alias="maxAttendees")

    class Config:
        populate_by_name = True

    def validate_window(self):
        try:
            inverted = self.end_time <= self.start_time
        except TypeError:
            raise ValueError("Start and end time must both carry a timezone or neither")
        if inverted:
            raise ValueError("End time must be after start time")


class EventUpdate(EventCreate):
    """Full replacement of an event's editable fields."""


class EventResponse(BaseModel):
    class Config:
        from_attributes = True

    id: UUID
    hub_id: Optional[UUID] = None
    created_by: UUID
    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    start_time: datetime
    end_time: datetime
    max_attendees: Optional[int] = None
    is_fire_event: bool = False
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Instructor(BaseModel):
    user_id: UUID = Field(alias="userId")
    role: Optional[str] = None
    username: Optional[str] = None
    display_name: Optional[str] = Field(default=None, alias="displayName")

    class Config:
        populate_by_name = True


class EventSummary(EventResponse):
    hub_name: Optional[str] = None
    instructors: List[Instructor] = []
    going_count: int = 0
    user_rsvp_status: Optional[str] = None


class EventEnvelope(BaseModel):
    event: EventResponse


class EventSummaryEnvelope(BaseModel):
    event: EventSummary


class EventListEnvelope(BaseModel):
    events: List[EventSummary]


class RsvpRequest(BaseModel):
    status: str

    def validate_status(self):
        if self.status not in RsvpStatus.values():
            raise ValueError(
                f"Invalid status. Must be one of: {', '.join(RsvpStatus.values())}"
            )


class MessageResponse(BaseModel):
    message: str
