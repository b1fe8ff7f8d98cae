import asyncio

import pytest

from app.application.services.fax_saga import (
    STEP_RECORD,
    STEP_SUBMIT,
    STEP_UPLOAD,
    FaxSagaError,
    FaxSendSaga,
)
from app.application.services.provider_dispatcher import ProviderDispatcher
from app.core.exceptions import CarrierError, DatabaseError, StorageError
from app.domain.models.fax_record import FaxRecord
from app.domain.schemas.fax import Attachment, FaxRequest


def _request(**fields):
    defaults = {
        "recipients": ["+61255501234"],
        "attachments": [Attachment(content=b"%PDF-1.4 test", filename="doc.pdf")],
        "pages": 2,
        "sender_id": "+61255509999",
        "subject": "Invoice",
    }
    defaults.update(fields)
    return FaxRequest(**defaults)


class FailingStorage:
    async def put(self, key, data, content_type="application/pdf"):
        raise StorageError("bucket unavailable", {"key": key})


def test_direct_send_records_accepted_fax(db, dispatcher, carrier, fax_repo):
    carrier.reply("POST", "/fax/send", json={"success": True, "payload": {"faxID": "nf-1", "friendlyID": "F1"}})

    saga = FaxSendSaga(dispatcher.resolve("notifyre"), fax_repo)
    record = asyncio.run(saga.execute(_request(), "user-1"))

    assert record.provider == "notifyre"
    assert record.provider_fax_id == "nf-1"
    assert record.status == "queued"
    assert record.original_status == "Submitted"
    assert record.pages == 2
    assert record.metadata_["friendly_id"] == "F1"

    sent = carrier.requests[0]
    assert sent.headers["x-api-token"] == "notifyre-key"


def test_direct_carrier_failure_persists_nothing(db, dispatcher, carrier, fax_repo):
    carrier.reply("POST", "/fax/send", status_code=500, json={"message": "down"})

    saga = FaxSendSaga(dispatcher.resolve("notifyre"), fax_repo)
    with pytest.raises(FaxSagaError) as exc:
        asyncio.run(saga.execute(_request(), "user-1"))

    assert exc.value.step == STEP_SUBMIT
    assert exc.value.carrier_accepted is False
    assert isinstance(exc.value.cause, CarrierError)
    assert exc.value.cause.carrier_status == 500
    assert db.query(FaxRecord).count() == 0


def test_direct_record_failure_after_acceptance(db, dispatcher, carrier, fax_repo, monkeypatch):
    carrier.reply("POST", "/fax/send", json={"payload": {"faxID": "nf-2"}})
    def broken_create(data):
        raise DatabaseError("gone")

    monkeypatch.setattr(fax_repo, "create", broken_create)

    saga = FaxSendSaga(dispatcher.resolve("notifyre"), fax_repo)
    with pytest.raises(FaxSagaError) as exc:
        asyncio.run(saga.execute(_request(), "user-1"))

    assert exc.value.step == STEP_RECORD
    assert exc.value.carrier_accepted is True


def test_staged_send_uploads_then_submits(db, dispatcher, carrier, fax_repo, tmp_path):
    carrier.reply("POST", "/v2/faxes", json={"data": {"id": "tx-1", "status": "queued"}})

    saga = FaxSendSaga(dispatcher.resolve("telnyx"), fax_repo, dispatcher.storage)
    record = asyncio.run(saga.execute(_request(), "user-1"))

    assert record.status == "queued"
    assert record.provider_fax_id == "tx-1"
    assert len(record.storage_urls) == 1
    url = record.storage_urls[0]
    assert url.startswith(f"https://files.example.com/fax/{record.id}/document_1_")

    stored = list((tmp_path / "files" / "fax" / str(record.id)).iterdir())
    assert [p.read_bytes() for p in stored] == [b"%PDF-1.4 test"]

    body = carrier.requests[0].content
    assert url.encode() in body
    assert b'"connection_id":"conn-1"' in body.replace(b" ", b"")


def test_staged_upload_failure_keeps_placeholder(db, settings, carrier, fax_repo):
    dispatcher = ProviderDispatcher(settings, FailingStorage(), transport=carrier.transport)
    saga = FaxSendSaga(dispatcher.resolve("telnyx"), fax_repo, dispatcher.storage)

    with pytest.raises(FaxSagaError) as exc:
        asyncio.run(saga.execute(_request(), "user-1"))

    assert exc.value.step == STEP_UPLOAD
    assert exc.value.carrier_accepted is False
    record = db.get(FaxRecord, exc.value.fax_id)
    db.refresh(record)
    assert record.status == "preparing"
    assert record.provider_fax_id is None
    assert record.error_message == "bucket unavailable"
    assert carrier.requests == []


def test_staged_submit_failure_keeps_processing(db, dispatcher, carrier, fax_repo):
    carrier.reply("POST", "/v2/faxes", status_code=422, json={"errors": [{"detail": "bad number"}]})

    saga = FaxSendSaga(dispatcher.resolve("telnyx"), fax_repo, dispatcher.storage)
    with pytest.raises(FaxSagaError) as exc:
        asyncio.run(saga.execute(_request(), "user-1"))

    assert exc.value.step == STEP_SUBMIT
    record = db.get(FaxRecord, exc.value.fax_id)
    db.refresh(record)
    assert record.status == "processing"
    assert len(record.storage_urls) == 1
    assert record.provider_fax_id is None
    assert exc.value.cause.details["fax_id"] == record.id


def test_direct_non_object_response_is_a_carrier_error(db, dispatcher, carrier, fax_repo):
    carrier.reply("POST", "/fax/send", json=["unexpected"])

    saga = FaxSendSaga(dispatcher.resolve("notifyre"), fax_repo)
    with pytest.raises(FaxSagaError) as exc:
        asyncio.run(saga.execute(_request(), "user-1"))

    assert exc.value.step == STEP_SUBMIT
    assert exc.value.carrier_accepted is False
    assert isinstance(exc.value.cause, CarrierError)
    assert db.query(FaxRecord).count() == 0


def test_unexpected_submit_failure_keeps_processing_with_reason(db, dispatcher, carrier, fax_repo, monkeypatch):
    provider = dispatcher.resolve("telnyx")

    async def broken_submit(payload):
        raise KeyError("data")

    monkeypatch.setattr(provider, "submit", broken_submit)
    saga = FaxSendSaga(provider, fax_repo, dispatcher.storage)
    with pytest.raises(FaxSagaError) as exc:
        asyncio.run(saga.execute(_request(), "user-1"))

    assert exc.value.step == STEP_SUBMIT
    assert exc.value.carrier_accepted is False
    assert isinstance(exc.value.cause, CarrierError)
    record = db.get(FaxRecord, exc.value.fax_id)
    db.refresh(record)
    assert record.status == "processing"
    assert record.error_message.startswith("telnyx submission failed")
