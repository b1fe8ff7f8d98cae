import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["FAX_PROVIDER"] = "notifyre"
os.environ["NOTIFYRE_API_KEY"] = "notifyre-key"
os.environ["NOTIFYRE_API_URL"] = "https://notifyre.test"
os.environ["NOTIFYRE_WEBHOOK_SECRET"] = "notifyre-hook-secret"
os.environ["TELNYX_API_KEY"] = "telnyx-key"
os.environ["TELNYX_API_URL"] = "https://telnyx.test"
os.environ["TELNYX_CONNECTION_ID"] = "conn-1"
os.environ["TELNYX_WEBHOOK_SECRET"] = "telnyx-hook-secret"
os.environ["REVENUECAT_WEBHOOK_SECRET"] = "rc-secret"
os.environ["STORAGE_PUBLIC_URL"] = "https://files.example.com"

import httpx
import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.config import get_settings
from app.application.services.provider_dispatcher import ProviderDispatcher
from app.domain.models.credit_grant import CreditGrant
from app.domain.models.fax_record import FaxRecord
from app.domain.models.user import User
from app.infrastructure.database import Base, get_db
from app.infrastructure.repositories.credit_repository import SQLAlchemyCreditRepository
from app.infrastructure.repositories.fax_repository import SQLAlchemyFaxRepository
from app.infrastructure.repositories.product_repository import SQLAlchemyProductRepository
from app.infrastructure.repositories.transfer_repository import SQLAlchemyTransferRepository
from app.infrastructure.repositories.user_repository import SQLAlchemyUserRepository
from app.infrastructure.repositories.webhook_repository import SQLAlchemyWebhookRepository
from app.infrastructure.storage import LocalObjectStorage
from app.interfaces.deps import get_dispatcher, get_storage


class FakeCarrier:
    """Records carrier calls and answers from canned (method, path) routes."""

    def __init__(self):
        self.requests = []
        self.routes = {}

    def reply(self, method, path, status_code=200, json=None):
        self.routes[(method, path)] = (status_code, json if json is not None else {})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status_code, body = self.routes.get(
            (request.method, request.url.path), (404, {"message": "not found"})
        )
        return httpx.Response(status_code, json=body)

    @property
    def transport(self):
        return httpx.MockTransport(self)


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def settings():
    return get_settings()


@pytest.fixture()
def carrier():
    return FakeCarrier()


@pytest.fixture()
def storage(tmp_path):
    return LocalObjectStorage(str(tmp_path / "files"), "https://files.example.com")


@pytest.fixture()
def dispatcher(settings, storage, carrier):
    return ProviderDispatcher(settings, storage, transport=carrier.transport)


@pytest.fixture()
def fax_repo(db):
    return SQLAlchemyFaxRepository(db, FaxRecord)


@pytest.fixture()
def credit_repo(db):
    return SQLAlchemyCreditRepository(db, CreditGrant)


@pytest.fixture()
def webhook_repo(db):
    return SQLAlchemyWebhookRepository(db)


@pytest.fixture()
def transfer_repo(db):
    return SQLAlchemyTransferRepository(db)


@pytest.fixture()
def user_repo(db):
    return SQLAlchemyUserRepository(db)


@pytest.fixture()
def product_repo(db):
    return SQLAlchemyProductRepository(db)


@pytest.fixture()
def client(session_factory, storage, dispatcher):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def make_token(user_id, **claims):
    return jwt.encode({"sub": user_id, **claims}, "test-secret", algorithm="HS256")


def auth_headers(user_id, **claims):
    return {"Authorization": f"Bearer {make_token(user_id, **claims)}"}


def add_user(db, user_id, is_anonymous=False):
    user = User(id=user_id, is_anonymous=is_anonymous)
    db.add(user)
    db.commit()
    return user


def add_grant(db, user_id, page_limit, pages_used=0, kind="subscription", **fields):
    grant = CreditGrant(
        user_id=user_id,
        product_id=fields.pop("product_id", f"{kind}_product"),
        kind=kind,
        page_limit=page_limit,
        pages_used=pages_used,
        is_active=fields.pop("is_active", True),
        **fields,
    )
    db.add(grant)
    db.commit()
    db.refresh(grant)
    return grant
