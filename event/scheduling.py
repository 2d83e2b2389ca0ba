"""Event scheduling: conflict detection, owner-only mutation and RSVPs.

Every operation runs inside one store transaction. Conflict checks take the
hub's advisory lock first, so two writers racing for overlapping windows in
the same hub are serialized and the second one sees the first one's event.

Events without a hub are personal and never conflict with anything.
"""

import logging

from common.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from event.constants import MAX_LISTED_EVENTS
from event.models import EventCreate, EventUpdate, RsvpRequest

logger = logging.getLogger(__name__)


def intervals_overlap(start_a, end_a, start_b, end_b) -> bool:
    """Half-open overlap: back-to-back windows do not overlap."""
    return start_a < end_b and start_b < end_a


def _check_window(payload: EventCreate):
    try:
        payload.validate_window()
    except ValueError as e:
        raise ValidationError(str(e))


def _reject_conflicts(store, payload: EventCreate, exclude_event_id=None):
    if payload.hub_id is None:
        return
    store.lock_hub(payload.hub_id)
    conflicts = store.find_conflicts(
        payload.hub_id, payload.start_time, payload.end_time, exclude_event_id=exclude_event_id
    )
    if conflicts:
        logger.warning(
            f"Rejected window {payload.start_time} - {payload.end_time} in hub {payload.hub_id}: "
            f"{len(conflicts)} conflicting event(s)"
        )
        raise ConflictError(
            "Event time conflicts with existing event",
            conflicts=[{"id": c["id"], "title": c["title"]} for c in conflicts],
        )


def _load_owned_event(store, event_id, principal: str, action: str):
    existing = store.get_event(event_id, for_update=True)
    if existing is None:
        raise NotFoundError("Event not found")
    if str(existing["created_by"]) != str(principal):
        logger.warning(f"User {principal} tried to {action} event {event_id} owned by someone else")
        raise AuthorizationError(f"You can only {action} your own events")
    return existing


def list_events(store, hub_id=None, start_date=None, end_date=None, principal=None):
    with store.transaction():
        return store.list_events(
            hub_id=hub_id,
            start_date=start_date,
            end_date=end_date,
            principal_id=principal,
            limit=MAX_LISTED_EVENTS,
        )


def get_event(store, event_id, principal=None):
    with store.transaction():
        event = store.get_event_summary(event_id, principal_id=principal)
    if event is None:
        raise NotFoundError("Event not found")
    return event


def create_event(store, payload: EventCreate, principal: str):
    _check_window(payload)
    with store.transaction():
        _reject_conflicts(store, payload)
        event = store.insert_event(payload.model_dump(), created_by=principal)
    logger.info(f"User {principal} created event {event['id']} ({payload.title!r})")
    return event


def update_event(store, event_id, payload: EventUpdate, principal: str):
    with store.transaction():
        _load_owned_event(store, event_id, principal, "edit")
        _check_window(payload)
        _reject_conflicts(store, payload, exclude_event_id=event_id)
        event = store.update_event(event_id, payload.model_dump())
    logger.info(f"User {principal} updated event {event_id}")
    return event


def delete_event(store, event_id, principal: str):
    with store.transaction():
        _load_owned_event(store, event_id, principal, "delete")
        removed_rsvps = store.delete_event(event_id)
    logger.info(f"User {principal} deleted event {event_id} and {removed_rsvps} RSVP(s)")


def submit_rsvp(store, event_id, principal: str, rsvp: RsvpRequest):
    # Capacity (max_attendees) is advisory: a "going" RSVP is never refused for being over it
    try:
        rsvp.validate_status()
    except ValueError as e:
        raise ValidationError(str(e))

    with store.transaction():
        if store.get_event(event_id) is None:
            raise NotFoundError("Event not found")
        return store.upsert_rsvp(event_id, principal, rsvp.status)


def clear_rsvp(store, event_id, principal: str) -> bool:
    with store.transaction():
        return store.delete_rsvp(event_id, principal)
