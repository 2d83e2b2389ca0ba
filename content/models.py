from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, constr


class TemplateResponse(BaseModel):
    class Config:
        from_attributes = True

    id: UUID
    key: str
    category: str
    content: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TemplateUpdate(BaseModel):
    content: str


class TemplateBulkItem(BaseModel):
    key: constr(min_length=1, max_length=100)
    content: str


class TemplateBulkUpdate(BaseModel):
    updates: List[TemplateBulkItem]


class TemplateMapResponse(BaseModel):
    templates: Dict[str, str]
    details: List[TemplateResponse]


class TemplateEnvelope(BaseModel):
    template: TemplateResponse


class TemplateBulkResponse(BaseModel):
    templates: List[TemplateResponse]
    count: int
