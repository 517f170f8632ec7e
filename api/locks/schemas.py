"""
Pydantic schemas for advisory lock endpoints.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class AcquireLockRequest(BaseModel):
    entity: str = Field(..., min_length=1, max_length=100)
    item_id: str = Field(..., min_length=1, max_length=100)
    owner: str = Field(..., min_length=1, max_length=200)


class LockResponse(BaseModel):
    entity: str
    item_id: str
    owner: str
    token: str
    expires_at: float


class LockStatusResponse(BaseModel):
    entity: str
    item_id: str
    locked: bool
    owner: str | None = None
    expires_at: float | None = None
