"""Pydantic schemas for webhook ingestion and account transfers."""

from typing import Any, Optional

from pydantic import BaseModel


class WebhookAck(BaseModel):
    received: bool = True
    duplicate: bool = False
    event_id: Optional[str] = None
    result: dict[str, Any] = {}


class TransferResult(BaseModel):
    success: bool
    message: str
    transfer_id: Optional[int] = None
    transferred_grants: int = 0
    transferred_usage: int = 0
    transferred_faxes: int = 0
    old_user_deleted: bool = False
