"""Visibility schemas."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel


class VisibleIdsResponse(BaseModel):
    actor_id: Optional[int]
    app_id: int
    edit: bool
    ids: List[int]
