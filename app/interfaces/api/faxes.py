"""Faxes API routes — send, list, detail, carrier refresh."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from app.application.services.fax_service import get_fax, list_faxes, refresh_fax, send_fax
from app.application.services.provider_dispatcher import ProviderDispatcher
from app.config import Settings, get_settings
from app.domain.repositories.credit_repository import CreditRepository
from app.domain.repositories.fax_repository import FaxRepository
from app.domain.schemas.fax import FaxFilter, FaxList, FaxRead, FaxSendRequest
from app.interfaces.api.deps import Principal, get_current_principal, get_optional_principal
from app.interfaces.deps import get_credit_repository, get_dispatcher, get_fax_repository

router = APIRouter(prefix="/api/faxes", tags=["Faxes"])


@router.post("", response_model=FaxRead, status_code=status.HTTP_201_CREATED)
async def create_fax(
    body: FaxSendRequest,
    provider: Optional[str] = Query(None, description="Carrier override"),
    principal: Optional[Principal] = Depends(get_optional_principal),
    dispatcher: ProviderDispatcher = Depends(get_dispatcher),
    fax_repo: FaxRepository = Depends(get_fax_repository),
    credit_repo: CreditRepository = Depends(get_credit_repository),
    settings: Settings = Depends(get_settings),
):
    record = await send_fax(
        body,
        principal.user_id if principal else None,
        dispatcher,
        fax_repo,
        credit_repo,
        query_provider=provider,
        allow_anonymous=settings.ALLOW_ANONYMOUS_SEND,
    )
    return FaxRead.model_validate(record)


@router.get("", response_model=FaxList)
def get_faxes(
    status_filter: Optional[str] = Query(None, alias="status"),
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    principal: Principal = Depends(get_current_principal),
    fax_repo: FaxRepository = Depends(get_fax_repository),
):
    filters = FaxFilter(status=status_filter, date_from=date_from, date_to=date_to, limit=limit, offset=offset)
    result = list_faxes(fax_repo, principal.user_id, filters)
    result["items"] = [FaxRead.model_validate(r) for r in result["items"]]
    return result


@router.get("/{fax_id}", response_model=FaxRead)
def get_fax_detail(
    fax_id: int,
    principal: Principal = Depends(get_current_principal),
    fax_repo: FaxRepository = Depends(get_fax_repository),
):
    return FaxRead.model_validate(get_fax(fax_repo, principal.user_id, fax_id))


@router.post("/{fax_id}/refresh", response_model=FaxRead)
async def refresh_fax_status(
    fax_id: int,
    principal: Principal = Depends(get_current_principal),
    dispatcher: ProviderDispatcher = Depends(get_dispatcher),
    fax_repo: FaxRepository = Depends(get_fax_repository),
):
    """Ask the carrier for the latest status of a fax that hasn't settled."""
    record = await refresh_fax(fax_repo, dispatcher, principal.user_id, fax_id)
    return FaxRead.model_validate(record)
