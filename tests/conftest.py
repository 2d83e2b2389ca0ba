import copy
import os
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ENVIRONMENT"] = "development"

import jwt
import pytest
from fastapi.testclient import TestClient

from event.constants import EventStatus, RsvpStatus
from event.crud import EVENT_COLUMNS, get_event_store
from event.scheduling import intervals_overlap
from main import app


class InMemoryEventStore:
    """EventStore double keeping rows in dicts; transactions roll back on error."""

    def __init__(self):
        self.events = {}
        self.rsvps = {}
        self.hub_names = {}
        self.instructors = {}
        self.locked_hubs = []

    @contextmanager
    def transaction(self):
        snapshot = copy.deepcopy((self.events, self.rsvps))
        try:
            yield self
        except Exception:
            self.events, self.rsvps = snapshot
            raise

    def lock_hub(self, hub_id):
        self.locked_hubs.append(str(hub_id))

    def find_conflicts(self, hub_id, start_time, end_time, exclude_event_id=None):
        return [
            {"id": e["id"], "title": e["title"]}
            for e in sorted(self.events.values(), key=lambda e: e["start_time"])
            if e["hub_id"] == hub_id
            and e["status"] == EventStatus.SCHEDULED
            and e["id"] != exclude_event_id
            and intervals_overlap(e["start_time"], e["end_time"], start_time, end_time)
        ]

    def insert_event(self, fields, created_by):
        now = datetime.now(timezone.utc)
        row = {column: fields.get(column) for column in EVENT_COLUMNS}
        row.update(
            id=uuid.uuid4(),
            created_by=created_by,
            status=EventStatus.SCHEDULED,
            created_at=now,
            updated_at=now,
        )
        self.events[row["id"]] = row
        return dict(row)

    def get_event(self, event_id, for_update=False):
        row = self.events.get(event_id)
        return dict(row) if row else None

    def update_event(self, event_id, fields):
        row = self.events[event_id]
        row.update({column: fields.get(column) for column in EVENT_COLUMNS})
        row["updated_at"] = datetime.now(timezone.utc) + timedelta(microseconds=1)
        return dict(row)

    def delete_event(self, event_id):
        doomed = [key for key in self.rsvps if key[0] == event_id]
        for key in doomed:
            del self.rsvps[key]
        self.instructors.pop(event_id, None)
        del self.events[event_id]
        return len(doomed)

    def _summary(self, row, principal_id):
        event_rsvps = [r for (eid, _), r in self.rsvps.items() if eid == row["id"]]
        own = self.rsvps.get((row["id"], principal_id)) if principal_id else None
        return dict(
            row,
            hub_name=self.hub_names.get(row["hub_id"]),
            instructors=list(self.instructors.get(row["id"], [])),
            going_count=sum(1 for r in event_rsvps if r["status"] == RsvpStatus.GOING),
            user_rsvp_status=own["status"] if own else None,
        )

    def list_events(self, hub_id=None, start_date=None, end_date=None, principal_id=None, limit=50):
        rows = [
            e
            for e in self.events.values()
            if e["status"] == EventStatus.SCHEDULED
            and (hub_id is None or e["hub_id"] == hub_id)
            and (start_date is None or e["start_time"] >= start_date)
            and (end_date is None or e["start_time"] <= end_date)
        ]
        rows.sort(key=lambda e: e["start_time"])
        return [self._summary(row, principal_id) for row in rows[:limit]]

    def get_event_summary(self, event_id, principal_id=None):
        row = self.events.get(event_id)
        return self._summary(row, principal_id) if row else None

    def upsert_rsvp(self, event_id, user_id, status):
        row = {
            "event_id": event_id,
            "user_id": user_id,
            "status": status,
            "updated_at": datetime.now(timezone.utc),
        }
        self.rsvps[(event_id, user_id)] = row
        return dict(row)

    def delete_rsvp(self, event_id, user_id):
        return self.rsvps.pop((event_id, user_id), None) is not None

    def rsvps_for(self, event_id):
        return [r for (eid, _), r in self.rsvps.items() if eid == event_id]


def make_token(user_id, expires_in=timedelta(minutes=30), secret="test-secret-key", **claims):
    now = datetime.now(timezone.utc)
    payload = {"user_id": str(user_id), "iat": now, "exp": now + expires_in, **claims}
    return jwt.encode(payload, secret, algorithm="HS256")


def at(hour, minute=0, day=1):
    return datetime(2030, 6, day, hour, minute, tzinfo=timezone.utc)


@pytest.fixture
def store():
    return InMemoryEventStore()


@pytest.fixture
def alice():
    return str(uuid.uuid4())


@pytest.fixture
def bob():
    return str(uuid.uuid4())


@pytest.fixture
def hub_id():
    return uuid.uuid4()


@pytest.fixture
def client(store):
    app.dependency_overrides[get_event_store] = lambda: store
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_header():
    def _header(user_id):
        return {"Authorization": f"Bearer {make_token(user_id)}"}

    return _header
