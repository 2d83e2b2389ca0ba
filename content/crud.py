import logging

from psycopg2 import errors
from psycopg2.extras import RealDictCursor

logger = logging.getLogger(__name__)

UPDATE_TEMPLATE_QUERY = """
    UPDATE content_templates
    SET content = %s, updated_at = CURRENT_TIMESTAMP
    WHERE key = %s
    RETURNING *
"""


def list_templates(connection):
    """All template rows ordered by category, key; None if the table is not there yet."""
    try:
        with connection.cursor(cursor_factory=RealDictCursor) as cursor:
            cursor.execute("SELECT * FROM content_templates ORDER BY category, key")
            rows = cursor.fetchall()
        connection.commit()
        return rows
    except errors.UndefinedTable:
        connection.rollback()
        logger.warning("content_templates table does not exist yet, serving no templates")
        return None


def get_template(connection, key: str):
    with connection.cursor(cursor_factory=RealDictCursor) as cursor:
        cursor.execute("SELECT * FROM content_templates WHERE key = %s", (key,))
        row = cursor.fetchone()
    connection.commit()
    return row


def update_template(connection, key: str, content: str):
    try:
        with connection.cursor(cursor_factory=RealDictCursor) as cursor:
            cursor.execute(UPDATE_TEMPLATE_QUERY, (content, key))
            row = cursor.fetchone()
        connection.commit()
        return row
    except Exception:
        connection.rollback()
        raise


def bulk_update_templates(connection, updates) -> list:
    """Apply every {key, content} pair in one transaction; unknown keys are skipped."""
    updated = []
    try:
        with connection.cursor(cursor_factory=RealDictCursor) as cursor:
            for item in updates:
                cursor.execute(UPDATE_TEMPLATE_QUERY, (item.content, item.key))
                row = cursor.fetchone()
                if row:
                    updated.append(row)
        connection.commit()
    except Exception:
        connection.rollback()
        raise
    return updated
