"""Pydantic schemas for typeahead lookups."""

from uuid import UUID

from pydantic import BaseModel


class ProjectOption(BaseModel):
    id: str
    name: str
    company_name: str | None
    status: str | None


class PersonOption(BaseModel):
    id: UUID
    display_name: str
    primary_email: str | None
    source_type: str
    is_internal: bool


class LocationOption(BaseModel):
    id: int
    name: str
    type: str
    path: str | None
    depth: int


class CostGroupOption(BaseModel):
    id: int
    code: int
    name: str | None
    path: str | None
    search_text: str | None


class TagOption(BaseModel):
    id: str
    name: str
    source: str
