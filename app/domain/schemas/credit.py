"""Pydantic schemas for credits and usage."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class CreditCheck(BaseModel):
    has_credits: bool
    available: int
    required: int
    primary_grant_id: Optional[int] = None


class Reservation(BaseModel):
    """Pages held on specific grants between the credit check and the carrier call."""

    user_id: str
    allocations: list[tuple[int, int]] = []  # (grant_id, pages)

    @property
    def pages(self) -> int:
        return sum(pages for _, pages in self.allocations)


class CreditGrantRead(BaseModel):
    id: int
    product_id: str
    kind: str
    page_limit: int
    pages_used: int
    pages_available: int
    expires_at: Optional[datetime] = None
    is_active: bool

    model_config = {"from_attributes": True}


class CreditSummary(BaseModel):
    user_id: str
    available: int
    primary_grant_id: Optional[int] = None
    grants: list[CreditGrantRead]
