"""Group schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class GroupBase(BaseModel):
    name: Optional[str] = Field(default=None, max_length=255)
    parent_id: Optional[int] = None
    apps_ids: List[int] = Field(default_factory=list)
    company_code: Optional[str] = Field(default=None, max_length=64)
    company_email: Optional[str] = Field(default=None, max_length=255)
    company_phone: Optional[str] = Field(default=None, max_length=64)

    @field_validator("company_code", "name", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class GroupCreate(GroupBase):
    pass


class GroupUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    parent_id: Optional[int] = None
    apps_ids: Optional[List[int]] = None
    company_code: Optional[str] = Field(default=None, max_length=64)
    company_email: Optional[str] = Field(default=None, max_length=255)
    company_phone: Optional[str] = Field(default=None, max_length=64)


class CompanyAttributes(BaseModel):
    name: Optional[str] = Field(default=None, max_length=255)
    company_email: Optional[str] = Field(default=None, max_length=255)
    company_phone: Optional[str] = Field(default=None, max_length=64)
    apps_ids: Optional[List[int]] = None


class CompanyUpsert(CompanyAttributes):
    company_code: str = Field(..., min_length=1, max_length=64)


class GroupResponse(BaseModel):
    id: int
    name: str
    parent_id: Optional[int]
    apps_ids: List[int]
    company_code: Optional[str]
    company_email: Optional[str]
    company_phone: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class GroupTreeResponse(BaseModel):
    id: int
    name: str
    parent_id: Optional[int]
    apps_ids: List[int]
    children: List["GroupTreeResponse"] = Field(default_factory=list)


class GroupDetailResponse(GroupResponse):
    inherited_apps_ids: List[int] = Field(default_factory=list)
    children: List[GroupTreeResponse] = Field(default_factory=list)
    users_count: int = 0


class ToggleAppRequest(BaseModel):
    app_id: int
    append: bool = True


class ToggleAppResponse(BaseModel):
    changed: bool


GroupTreeResponse.model_rebuild()
