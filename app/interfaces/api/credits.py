"""Credits API routes."""

from fastapi import APIRouter, Depends

from app.application.services.credit_ledger import credit_summary
from app.domain.repositories.credit_repository import CreditRepository
from app.domain.schemas.credit import CreditSummary
from app.interfaces.api.deps import Principal, get_current_principal
from app.interfaces.deps import get_credit_repository

router = APIRouter(prefix="/api/credits", tags=["Credits"])


@router.get("", response_model=CreditSummary)
def get_credits(
    principal: Principal = Depends(get_current_principal),
    repo: CreditRepository = Depends(get_credit_repository),
):
    return credit_summary(repo, principal.user_id)
