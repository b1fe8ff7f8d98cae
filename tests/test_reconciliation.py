import asyncio
from datetime import datetime, timedelta, timezone

from app.application.services.fax_service import reconcile_unsettled
from app.domain.models.fax_record import FaxRecord


def _fax(db, external_id, status="queued", provider="notifyre", created_at=None):
    record = FaxRecord(
        user_id="user-1",
        provider=provider,
        status=status,
        recipients=["+61255501234"],
        pages=1,
        provider_fax_id=external_id,
    )
    if created_at is not None:
        record.created_at = created_at
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def test_sweep_settles_pending_faxes(db, fax_repo, dispatcher, carrier):
    delivered = _fax(db, "nf-1")
    still_sending = _fax(db, "nf-2", status="sending")
    carrier.reply("GET", "/fax/sent/nf-1", json={"payload": {"id": "nf-1", "status": "Successful"}})
    carrier.reply("GET", "/fax/sent/nf-2", json={"payload": {"id": "nf-2", "status": "Sending"}})

    summary = asyncio.run(reconcile_unsettled(fax_repo, dispatcher, lookback_hours=12))

    assert summary == {"checked": 2, "updated": 1, "orphaned": 0, "errors": 0}
    db.refresh(delivered)
    db.refresh(still_sending)
    assert delivered.status == "delivered"
    assert delivered.completed_at is not None
    assert delivered.metadata_["last_update_source"] == "reconcile"
    assert still_sending.completed_at is None


def test_sweep_skips_terminal_and_old_faxes(db, fax_repo, dispatcher, carrier):
    _fax(db, "nf-done", status="delivered")
    _fax(db, "nf-old", created_at=datetime.now(timezone.utc) - timedelta(days=3))

    summary = asyncio.run(reconcile_unsettled(fax_repo, dispatcher, lookback_hours=12))

    assert summary["checked"] == 0
    assert carrier.requests == []


def test_sweep_reports_orphans_and_continues_past_errors(db, fax_repo, dispatcher, carrier):
    _fax(db, None, status="processing", provider="telnyx")
    _fax(db, "nf-missing")
    ok = _fax(db, "nf-ok")
    carrier.reply("GET", "/fax/sent/nf-ok", json={"payload": {"id": "nf-ok", "status": "Failed - No Answer"}})

    summary = asyncio.run(reconcile_unsettled(fax_repo, dispatcher, lookback_hours=12))

    assert summary == {"checked": 2, "updated": 1, "orphaned": 1, "errors": 1}
    db.refresh(ok)
    assert ok.status == "no-answer"


def test_malformed_status_reply_does_not_stop_the_sweep(db, fax_repo, dispatcher, carrier):
    odd = _fax(db, "nf-bad")
    ok = _fax(db, "nf-fine")
    carrier.reply("GET", "/fax/sent/nf-bad", json={"payload": {"id": "nf-bad", "status": "Sending", "pages": "two"}})
    carrier.reply("GET", "/fax/sent/nf-fine", json={"payload": {"id": "nf-fine", "status": "Successful"}})

    summary = asyncio.run(reconcile_unsettled(fax_repo, dispatcher, lookback_hours=12))

    assert summary["checked"] == 2
    assert summary["errors"] == 0
    db.refresh(odd)
    db.refresh(ok)
    assert odd.status == "sending"
    assert "carrier_pages" not in odd.metadata_
    assert ok.status == "delivered"


def test_unexpected_poll_failure_is_counted(db, fax_repo, dispatcher, carrier, monkeypatch):
    _fax(db, "nf-crash")
    ok = _fax(db, "nf-after")
    carrier.reply("GET", "/fax/sent/nf-after", json={"payload": {"id": "nf-after", "status": "Successful"}})
    provider = dispatcher.get("notifyre")
    real_get_status = provider.get_status

    async def flaky_get_status(external_id):
        if external_id == "nf-crash":
            raise RuntimeError("boom")
        return await real_get_status(external_id)

    monkeypatch.setattr(provider, "get_status", flaky_get_status)
    monkeypatch.setattr(dispatcher, "get", lambda tag: provider)

    summary = asyncio.run(reconcile_unsettled(fax_repo, dispatcher, lookback_hours=12))

    assert summary["errors"] == 1
    db.refresh(ok)
    assert ok.status == "delivered"
