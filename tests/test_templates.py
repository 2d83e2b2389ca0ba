import json
import uuid
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
import psycopg2
import redis
from fastapi.testclient import TestClient
from psycopg2 import errors

from common.database import get_postgresql_db
from content import crud
from content.cache import TemplateCache, get_template_cache
from main import app


class DictRedis:
    """Just enough of the redis client surface for TemplateCache."""

    def __init__(self):
        self.data = {}
        self.expiries = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value, ex=None):
        self.data[key] = value
        self.expiries[key] = ex

    def delete(self, key):
        self.data.pop(key, None)


def template_row(key, content, category="home"):
    now = datetime(2030, 1, 1, tzinfo=timezone.utc)
    return {
        "id": uuid.uuid4(),
        "key": key,
        "category": category,
        "content": content,
        "description": None,
        "created_at": now,
        "updated_at": now,
    }


class TestTemplateCache:
    def test_miss_populates_then_hits(self):
        cache = TemplateCache(DictRedis(), ttl=60)
        loader = MagicMock(return_value={"hero.title": "Welcome"})

        assert cache.get_or_populate(loader) == {"hero.title": "Welcome"}
        assert cache.get_or_populate(loader) == {"hero.title": "Welcome"}

        loader.assert_called_once()
        assert cache.client.expiries[cache.key] == 60

    def test_invalidate_forces_reload(self):
        cache = TemplateCache(DictRedis())
        loader = MagicMock(side_effect=[{"a": "1"}, {"a": "2"}])

        cache.get_or_populate(loader)
        cache.invalidate()

        assert cache.get_or_populate(loader) == {"a": "2"}

    def test_none_is_not_cached(self):
        cache = TemplateCache(DictRedis())
        loader = MagicMock(side_effect=[None, {"a": "1"}])

        assert cache.get_or_populate(loader) is None
        assert cache.key not in cache.client.data
        assert cache.get_or_populate(loader) == {"a": "1"}

    def test_redis_failure_propagates(self):
        client = MagicMock()
        client.get.side_effect = redis.ConnectionError("down")

        with pytest.raises(redis.ConnectionError):
            TemplateCache(client).get_or_populate(dict)


@pytest.fixture
def connection():
    connection = MagicMock()
    connection.cursor.return_value.__enter__.return_value = MagicMock()
    return connection


@pytest.fixture
def cursor(connection):
    return connection.cursor.return_value.__enter__.return_value


@pytest.fixture
def fake_redis():
    return DictRedis()


@pytest.fixture
def client(connection, fake_redis):
    app.dependency_overrides[get_postgresql_db] = lambda: connection
    app.dependency_overrides[get_template_cache] = lambda: TemplateCache(fake_redis)
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


class TestTemplateRoutes:
    def test_list_is_cached(self, client, cursor, fake_redis):
        cursor.fetchall.return_value = [template_row("hero.title", "Welcome home")]

        first = client.get("/api/templates")
        second = client.get("/api/templates")

        assert first.status_code == 200
        assert first.json()["templates"] == {"hero.title": "Welcome home"}
        assert second.json()["templates"] == first.json()["templates"]
        cursor.fetchall.assert_called_once()
        assert json.loads(fake_redis.data["content_templates:v1"])["templates"] == {
            "hero.title": "Welcome home"
        }

    def test_missing_table_serves_empty(self, client, cursor, connection, fake_redis):
        cursor.execute.side_effect = errors.UndefinedTable('relation "content_templates" does not exist')

        response = client.get("/api/templates")

        assert response.status_code == 200
        assert response.json() == {"templates": {}, "details": []}
        connection.rollback.assert_called_once()
        assert "content_templates:v1" not in fake_redis.data

    def test_templates_appear_once_the_table_exists(self, client, cursor):
        cursor.execute.side_effect = [errors.UndefinedTable("relation does not exist"), None]
        cursor.fetchall.return_value = [template_row("hero.title", "Welcome home")]

        before = client.get("/api/templates")
        after = client.get("/api/templates")

        assert before.json()["templates"] == {}
        assert after.json()["templates"] == {"hero.title": "Welcome home"}

    def test_get_unknown_key(self, client, cursor):
        cursor.fetchone.return_value = None

        response = client.get("/api/templates/nope")

        assert response.status_code == 404
        assert response.json() == {"error": {"message": "Template not found"}}

    def test_update_invalidates_cache(self, client, cursor, fake_redis, auth_header):
        fake_redis.data["content_templates:v1"] = "{}"
        cursor.fetchone.return_value = template_row("hero.title", "Hello")

        response = client.put(
            "/api/templates/hero.title", json={"content": "Hello"}, headers=auth_header(uuid.uuid4())
        )

        assert response.status_code == 200
        assert response.json()["template"]["content"] == "Hello"
        assert "content_templates:v1" not in fake_redis.data

    def test_update_requires_authentication(self, client):
        response = client.put("/api/templates/hero.title", json={"content": "Hello"})

        assert response.status_code == 401

    def test_bulk_update_skips_unknown_keys(self, client, cursor, connection, auth_header):
        cursor.fetchone.side_effect = [template_row("a", "1"), None]

        response = client.post(
            "/api/templates/bulk-update",
            json={"updates": [{"key": "a", "content": "1"}, {"key": "ghost", "content": "2"}]},
            headers=auth_header(uuid.uuid4()),
        )

        assert response.status_code == 200
        assert response.json()["count"] == 1
        connection.commit.assert_called_once()

    def test_cache_outage_is_generic_500(self, client, fake_redis, monkeypatch):
        def broken_get(key):
            raise redis.ConnectionError("Error 111 connecting to redis:6379")

        monkeypatch.setattr(fake_redis, "get", broken_get)

        response = client.get("/api/templates")

        assert response.status_code == 500
        assert response.json() == {"error": {"message": "Failed to fetch templates"}}


def test_bulk_update_rolls_back_on_failure(connection, cursor):
    cursor.execute.side_effect = [None, psycopg2.OperationalError("lost")]
    cursor.fetchone.return_value = template_row("a", "1")
    items = [MagicMock(key="a", content="1"), MagicMock(key="b", content="2")]

    with pytest.raises(psycopg2.OperationalError):
        crud.bulk_update_templates(connection, items)

    connection.rollback.assert_called_once()
    connection.commit.assert_not_called()
