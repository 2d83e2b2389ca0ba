from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from common.auth_utils import optional_verify_token, principal_id, verify_token
from common.helpers import db_connection_handler
from event import models, scheduling
from event.crud import EventStore, get_event_store

event = APIRouter()


@event.get("", response_model=models.EventListEnvelope)
@db_connection_handler("fetch events")
def read_events(
    hub_id: Optional[UUID] = Query(default=None, alias="hubId"),
    start_date: Optional[datetime] = Query(default=None, alias="startDate"),
    end_date: Optional[datetime] = Query(default=None, alias="endDate"),
    user: Optional[dict] = Depends(optional_verify_token),
    store: EventStore = Depends(get_event_store),
):
    """List scheduled events, soonest first, capped at 50."""
    events = scheduling.list_events(
        store,
        hub_id=hub_id,
        start_date=start_date,
        end_date=end_date,
        principal=principal_id(user),
    )
    return {"events": events}


@event.post("", response_model=models.EventEnvelope, status_code=status.HTTP_201_CREATED)
@db_connection_handler("create event")
def create_event(
    event: models.EventCreate,
    user: dict = Depends(verify_token),
    store: EventStore = Depends(get_event_store),
):
    """Create an event, refusing windows that clash with the hub's schedule."""
    created = scheduling.create_event(store, event, principal_id(user))
    return {"event": created}


@event.get("/{event_id}", response_model=models.EventSummaryEnvelope)
@db_connection_handler("fetch event")
def read_event(
    event_id: UUID,
    user: Optional[dict] = Depends(optional_verify_token),
    store: EventStore = Depends(get_event_store),
):
    return {"event": scheduling.get_event(store, event_id, principal=principal_id(user))}


@event.put("/{event_id}", response_model=models.EventEnvelope)
@db_connection_handler("update event")
def update_event(
    event_id: UUID,
    event: models.EventUpdate,
    user: dict = Depends(verify_token),
    store: EventStore = Depends(get_event_store),
):
    """Replace an event's details; only its creator may do this."""
    updated = scheduling.update_event(store, event_id, event, principal_id(user))
    return {"event": updated}


@event.delete("/{event_id}", response_model=models.MessageResponse)
@db_connection_handler("delete event")
def delete_event(
    event_id: UUID,
    user: dict = Depends(verify_token),
    store: EventStore = Depends(get_event_store),
):
    scheduling.delete_event(store, event_id, principal_id(user))
    return {"message": "Event deleted successfully"}


@event.post("/{event_id}/rsvp", response_model=models.MessageResponse)
@db_connection_handler("update RSVP")
def submit_rsvp(
    event_id: UUID,
    rsvp: models.RsvpRequest,
    user: dict = Depends(verify_token),
    store: EventStore = Depends(get_event_store),
):
    scheduling.submit_rsvp(store, event_id, principal_id(user), rsvp)
    return {"message": "RSVP updated successfully"}


@event.delete("/{event_id}/rsvp", response_model=models.MessageResponse)
@db_connection_handler("remove RSVP")
def clear_rsvp(
    event_id: UUID,
    user: dict = Depends(verify_token),
    store: EventStore = Depends(get_event_store),
):
    scheduling.clear_rsvp(store, event_id, principal_id(user))
    return {"message": "RSVP removed successfully"}
