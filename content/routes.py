from fastapi import APIRouter, Depends

from common.auth_utils import verify_token
from common.database import get_postgresql_db
from common.exceptions import NotFoundError
from common.helpers import db_connection_handler

from . import crud, models
from .cache import TemplateCache, get_template_cache

template = APIRouter()


@template.get("", response_model=models.TemplateMapResponse)
@db_connection_handler("fetch templates")
def read_templates(
    db_conn=Depends(get_postgresql_db),
    cache: TemplateCache = Depends(get_template_cache),
):
    """All templates as a key -> content map plus the full rows."""

    def load():
        rows = crud.list_templates(db_conn)
        if rows is None:
            return None
        return {"templates": {row["key"]: row["content"] for row in rows}, "details": rows}

    return cache.get_or_populate(load) or {"templates": {}, "details": []}


@template.get("/{key}", response_model=models.TemplateEnvelope)
@db_connection_handler("fetch template")
def read_template(key: str, db_conn=Depends(get_postgresql_db)):
    row = crud.get_template(db_conn, key)
    if not row:
        raise NotFoundError("Template not found")
    return {"template": row}


@template.put("/{key}", response_model=models.TemplateEnvelope)
@db_connection_handler("update template")
def update_template(
    key: str,
    update: models.TemplateUpdate,
    user: dict = Depends(verify_token),
    db_conn=Depends(get_postgresql_db),
    cache: TemplateCache = Depends(get_template_cache),
):
    row = crud.update_template(db_conn, key, update.content)
    if not row:
        raise NotFoundError("Template not found")
    cache.invalidate()
    return {"template": row}


@template.post("/bulk-update", response_model=models.TemplateBulkResponse)
@db_connection_handler("update templates")
def bulk_update_templates(
    bulk: models.TemplateBulkUpdate,
    user: dict = Depends(verify_token),
    db_conn=Depends(get_postgresql_db),
    cache: TemplateCache = Depends(get_template_cache),
):
    rows = crud.bulk_update_templates(db_conn, bulk.updates)
    if rows:
        cache.invalidate()
    return {"templates": rows, "count": len(rows)}
