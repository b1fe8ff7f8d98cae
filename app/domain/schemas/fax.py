"""Pydantic schemas for the Fax domain."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field

MAX_ATTACHMENT_BYTES = 100 * 1024 * 1024


class FaxFile(BaseModel):
    """One attachment as sent by API clients (base64 body)."""

    data: str
    filename: Optional[str] = None
    mime_type: Optional[str] = Field(None, alias="mimeType")

    model_config = {"populate_by_name": True}


class FaxSendRequest(BaseModel):
    recipients: list[str] = []
    recipient: Optional[str] = None
    files: list[FaxFile] = []
    pages: Optional[int] = None
    sender_id: Optional[str] = Field(None, alias="senderId")
    subject: Optional[str] = None
    message: Optional[str] = None
    cover_page: bool = Field(False, alias="coverPage")
    client_reference: Optional[str] = Field(None, alias="clientReference")
    provider: Optional[str] = None
    api_provider: Optional[str] = Field(None, alias="apiProvider")

    model_config = {"populate_by_name": True}


class Attachment(BaseModel):
    content: bytes
    filename: str
    content_type: str = "application/pdf"


class FaxRequest(BaseModel):
    """Transient, validated fax request handed to the send saga. Never persisted."""

    recipients: list[str]
    attachments: list[Attachment] = []
    pages: int
    sender_id: Optional[str] = None
    subject: Optional[str] = None
    message: Optional[str] = None
    cover_page: bool = False
    client_reference: str = "SendFaxPro"


class FaxRead(BaseModel):
    id: int
    user_id: Optional[str] = None
    provider: str
    status: str
    original_status: Optional[str] = None
    recipients: list[str] = []
    sender_id: Optional[str] = None
    subject: Optional[str] = None
    pages: int = 0
    cost: Optional[Decimal] = None
    client_reference: Optional[str] = None
    provider_fax_id: Optional[str] = None
    storage_urls: Optional[list[str]] = None
    error_message: Optional[str] = None
    sent_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class FaxFilter(BaseModel):
    status: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    limit: int = 50
    offset: int = 0


class FaxList(BaseModel):
    items: list[FaxRead]
    total: int
    limit: int
    offset: int


class CarrierStatusUpdate(BaseModel):
    """A carrier's view of one fax, from a webhook or a status poll."""

    external_id: str
    raw_status: Optional[str] = None
    pages: Optional[int] = None
    cost: Optional[Decimal] = None
    error_message: Optional[str] = None
    completed_at: Optional[datetime] = None
    details: dict[str, Any] = {}
