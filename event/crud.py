"""SQL layer for events and RSVPs.

``EventStore`` wraps one borrowed psycopg2 connection. It never commits on its
own: callers group statements with ``transaction()`` so multi-statement writes
(conflict check + insert, RSVP purge + event delete) succeed or fail together.
"""

from contextlib import contextmanager

from fastapi import Depends
from psycopg2 import sql
from psycopg2.extras import RealDictCursor

from common.database import get_postgresql_db
from event.constants import EventStatus

EVENT_COLUMNS = (
    "hub_id",
    "title",
    "description",
    "location",
    "latitude",
    "longitude",
    "start_time",
    "end_time",
    "is_fire_event",
    "max_attendees",
)

SUMMARY_QUERY = """
    SELECT e.*, h.name AS hub_name,
           COALESCE(
               json_agg(DISTINCT jsonb_build_object(
                   'userId', ei.user_id,
                   'role', ei.role,
                   'username', u.username,
                   'displayName', u.display_name
               )) FILTER (WHERE ei.id IS NOT NULL),
               '[]'::json
           ) AS instructors,
           (SELECT COUNT(*) FROM event_rsvps r
             WHERE r.event_id = e.id AND r.status = 'going') AS going_count,
           (SELECT r.status FROM event_rsvps r
             WHERE r.event_id = e.id AND r.user_id = %(principal_id)s) AS user_rsvp_status
    FROM events e
    LEFT JOIN hubs h ON e.hub_id = h.id
    LEFT JOIN event_instructors ei ON e.id = ei.event_id
    LEFT JOIN users u ON ei.user_id = u.id
    WHERE {conditions}
    GROUP BY e.id, h.name
    ORDER BY e.start_time ASC
    LIMIT %(limit)s
"""


def execute_query(cursor, query, params=None):
    """Helper function to execute a query and fetch one row."""
    cursor.execute(query, params or ())
    return cursor.fetchone()


def execute_query_fetchall(cursor, query, params=None):
    """Helper function to execute a query and fetch all rows."""
    cursor.execute(query, params or ())
    return cursor.fetchall()


class EventStore:
    def __init__(self, connection):
        self.connection = connection

    def _cursor(self):
        return self.connection.cursor(cursor_factory=RealDictCursor)

    @contextmanager
    def transaction(self):
        try:
            yield self
            self.connection.commit()
        except Exception:
            self.connection.rollback()
            raise

    def lock_hub(self, hub_id):
        """Serialize schedule writers for one hub until the transaction ends."""
        with self._cursor() as cursor:
            cursor.execute("SELECT pg_advisory_xact_lock(hashtext(%s))", (str(hub_id),))

    def find_conflicts(self, hub_id, start_time, end_time, exclude_event_id=None):
        """Scheduled events in the hub whose [start, end) window overlaps the given one."""
        query = """
            SELECT id, title FROM events
            WHERE hub_id = %(hub_id)s
              AND status = %(status)s
              AND start_time < %(end_time)s
              AND %(start_time)s < end_time
        """
        params = {
            "hub_id": hub_id,
            "status": EventStatus.SCHEDULED,
            "start_time": start_time,
            "end_time": end_time,
        }
        if exclude_event_id is not None:
            query += " AND id <> %(exclude_event_id)s"
            params["exclude_event_id"] = exclude_event_id
        query += " ORDER BY start_time"
        with self._cursor() as cursor:
            return execute_query_fetchall(cursor, query, params)

    def insert_event(self, fields: dict, created_by):
        query = sql.SQL(
            """
            INSERT INTO events ({columns}, created_by, status)
            VALUES ({values}, %(created_by)s, %(status)s)
            RETURNING *
            """
        ).format(
            columns=sql.SQL(", ").join(map(sql.Identifier, EVENT_COLUMNS)),
            values=sql.SQL(", ").join(map(sql.Placeholder, EVENT_COLUMNS)),
        )
        params = {column: fields.get(column) for column in EVENT_COLUMNS}
        params.update(created_by=created_by, status=EventStatus.SCHEDULED)
        with self._cursor() as cursor:
            return execute_query(cursor, query, params)

    def get_event(self, event_id, for_update=False):
        query = "SELECT * FROM events WHERE id = %s"
        if for_update:
            query += " FOR UPDATE"
        with self._cursor() as cursor:
            return execute_query(cursor, query, (event_id,))

    def update_event(self, event_id, fields: dict):
        query = sql.SQL(
            """
            UPDATE events
            SET {assignments}, updated_at = CURRENT_TIMESTAMP
            WHERE id = %(event_id)s
            RETURNING *
            """
        ).format(
            assignments=sql.SQL(", ").join(
                sql.SQL("{} = {}").format(sql.Identifier(column), sql.Placeholder(column))
                for column in EVENT_COLUMNS
            )
        )
        params = {column: fields.get(column) for column in EVENT_COLUMNS}
        params["event_id"] = event_id
        with self._cursor() as cursor:
            return execute_query(cursor, query, params)

    def delete_event(self, event_id) -> int:
        """Delete the event and everything hanging off it; returns the RSVP count removed."""
        with self._cursor() as cursor:
            cursor.execute("DELETE FROM event_rsvps WHERE event_id = %s", (event_id,))
            removed_rsvps = cursor.rowcount
            cursor.execute("DELETE FROM event_instructors WHERE event_id = %s", (event_id,))
            cursor.execute("DELETE FROM events WHERE id = %s", (event_id,))
        return removed_rsvps

    def list_events(self, hub_id=None, start_date=None, end_date=None, principal_id=None, limit=50):
        conditions = [sql.SQL("e.status = %(status)s")]
        params = {"status": EventStatus.SCHEDULED, "principal_id": principal_id, "limit": limit}
        if hub_id is not None:
            conditions.append(sql.SQL("e.hub_id = %(hub_id)s"))
            params["hub_id"] = hub_id
        if start_date is not None:
            conditions.append(sql.SQL("e.start_time >= %(start_date)s"))
            params["start_date"] = start_date
        if end_date is not None:
            conditions.append(sql.SQL("e.start_time <= %(end_date)s"))
            params["end_date"] = end_date

        query = sql.SQL(SUMMARY_QUERY).format(conditions=sql.SQL(" AND ").join(conditions))
        with self._cursor() as cursor:
            return execute_query_fetchall(cursor, query, params)

    def get_event_summary(self, event_id, principal_id=None):
        query = sql.SQL(SUMMARY_QUERY).format(conditions=sql.SQL("e.id = %(event_id)s"))
        params = {"event_id": event_id, "principal_id": principal_id, "limit": 1}
        with self._cursor() as cursor:
            return execute_query(cursor, query, params)

    def upsert_rsvp(self, event_id, user_id, status: str):
        query = """
            INSERT INTO event_rsvps (event_id, user_id, status)
            VALUES (%(event_id)s, %(user_id)s, %(status)s)
            ON CONFLICT (event_id, user_id)
            DO UPDATE SET status = EXCLUDED.status, updated_at = CURRENT_TIMESTAMP
            RETURNING event_id, user_id, status, updated_at
        """
        params = {"event_id": event_id, "user_id": user_id, "status": status}
        with self._cursor() as cursor:
            return execute_query(cursor, query, params)

    def delete_rsvp(self, event_id, user_id) -> bool:
        with self._cursor() as cursor:
            cursor.execute(
                "DELETE FROM event_rsvps WHERE event_id = %s AND user_id = %s",
                (event_id, user_id),
            )
            return cursor.rowcount > 0


def get_event_store(connection=Depends(get_postgresql_db)) -> EventStore:
    return EventStore(connection)
