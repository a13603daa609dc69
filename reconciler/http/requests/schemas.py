"""
Pydantic schemas for operator request validation (Http/Requests).
"""
from typing import List, Optional

from pydantic import BaseModel, Field


class TrackingSyncRequest(BaseModel):
    limit: Optional[int] = Field(default=None, ge=1, description="Sync at most this many active shipments")


class PaymentReconcileRequest(BaseModel):
    execute: bool = Field(default=False, description="Settle transactions; default is a dry run")
    limit: Optional[int] = Field(default=None, ge=1)
    transaction_ids: Optional[List[str]] = Field(default=None, description="Restrict to these internal transaction ids")
