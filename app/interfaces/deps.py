"""
API Dependencies.
"""

from typing import Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from app.application.services.provider_dispatcher import ProviderDispatcher
from app.application.services.webhook_ingester import WebhookIngester
from app.config import Settings, get_settings
from app.domain.models.credit_grant import CreditGrant
from app.domain.models.fax_record import FaxRecord
from app.domain.repositories.credit_repository import CreditRepository
from app.domain.repositories.fax_repository import FaxRepository
from app.domain.repositories.user_repository import UserRepository
from app.domain.repositories.webhook_repository import WebhookRepository
from app.infrastructure.database import get_db
from app.infrastructure.repositories.credit_repository import SQLAlchemyCreditRepository
from app.infrastructure.repositories.fax_repository import SQLAlchemyFaxRepository
from app.infrastructure.repositories.product_repository import SQLAlchemyProductRepository
from app.infrastructure.repositories.transfer_repository import SQLAlchemyTransferRepository
from app.infrastructure.repositories.user_repository import SQLAlchemyUserRepository
from app.infrastructure.repositories.webhook_repository import SQLAlchemyWebhookRepository
from app.infrastructure.storage import ObjectStorage, build_storage


def get_fax_repository(db: Session = Depends(get_db)) -> FaxRepository:
    """Get fax repository instance."""
    return SQLAlchemyFaxRepository(db, FaxRecord)


def get_credit_repository(db: Session = Depends(get_db)) -> CreditRepository:
    """Get credit repository instance."""
    return SQLAlchemyCreditRepository(db, CreditGrant)


def get_webhook_repository(db: Session = Depends(get_db)) -> WebhookRepository:
    return SQLAlchemyWebhookRepository(db)


def get_user_repository(db: Session = Depends(get_db)) -> UserRepository:
    return SQLAlchemyUserRepository(db)


def get_storage(settings: Settings = Depends(get_settings)) -> Optional[ObjectStorage]:
    return build_storage(settings)


def get_dispatcher(
    settings: Settings = Depends(get_settings),
    storage: Optional[ObjectStorage] = Depends(get_storage),
) -> ProviderDispatcher:
    return ProviderDispatcher(settings, storage)


def get_webhook_ingester(db: Session = Depends(get_db)) -> WebhookIngester:
    """All repositories share the request's session."""
    return WebhookIngester(
        webhook_repo=SQLAlchemyWebhookRepository(db),
        fax_repo=SQLAlchemyFaxRepository(db, FaxRecord),
        credit_repo=SQLAlchemyCreditRepository(db, CreditGrant),
        product_repo=SQLAlchemyProductRepository(db),
        transfer_repo=SQLAlchemyTransferRepository(db),
        user_repo=SQLAlchemyUserRepository(db),
    )
