import json
from datetime import datetime, timezone

from app.application.services.webhook_auth import compute_signature
from app.domain.models.credit_grant import CreditGrant
from app.domain.models.fax_record import FaxRecord
from app.domain.models.product import Product
from app.domain.models.webhook_event import WebhookEvent
from conftest import add_grant, add_user


def _fax(db, provider="notifyre", external_id="nf-100", status="queued", user_id="user-1"):
    record = FaxRecord(
        user_id=user_id,
        provider=provider,
        status=status,
        original_status="Submitted",
        recipients=["+61255501234"],
        pages=3,
        client_reference="SendFaxPro",
        provider_fax_id=external_id,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def _product(db, product_id, kind="subscription", page_limit=100, expire_period="month"):
    product = Product(
        product_id=product_id,
        display_name=product_id,
        kind=kind,
        page_limit=page_limit,
        expire_days=0,
        expire_period=expire_period,
        is_active=True,
    )
    db.add(product)
    db.commit()
    return product


def _post_signed(client, path, header, secret, body):
    raw = json.dumps(body).encode()
    return client.post(
        path,
        content=raw,
        headers={header: compute_signature(raw, secret), "Content-Type": "application/json"},
    )


def _notifyre_event(event_id, status, external_id="nf-100", **payload):
    return {"Event": "fax.sent", "EventID": event_id, "Payload": {"ID": external_id, "Status": status, **payload}}


def _post_notifyre(client, body):
    return _post_signed(client, "/webhooks/notifyre", "X-Notifyre-Signature", "notifyre-hook-secret", body)


def _revenuecat(client, event, secret="rc-secret"):
    return client.post("/webhooks/revenuecat", json={"api_version": "1.0", "event": event}, headers={"Authorization": secret})


# Carriers


def test_delivery_sets_completed_at_once(client, db):
    record = _fax(db)

    first = _post_notifyre(
        client,
        _notifyre_event("evt-1", "Successful", Pages=3, Cost="0.30", CompletedAt="2025-03-01T10:00:00Z"),
    )
    assert first.status_code == 200
    assert first.json()["result"]["status"] == "delivered"

    db.expire_all()
    record = db.get(FaxRecord, record.id)
    assert record.status == "delivered"
    assert record.original_status == "Successful"
    completed_at = record.completed_at
    assert completed_at is not None

    second = _post_notifyre(
        client,
        _notifyre_event("evt-2", "Successful", CompletedAt="2025-03-02T10:00:00Z"),
    )
    assert second.status_code == 200

    db.expire_all()
    record = db.get(FaxRecord, record.id)
    assert record.completed_at == completed_at
    assert record.pages == 3
    assert record.metadata_["carrier_pages"] == 3


def test_terminal_status_then_other_terminal_keeps_first_completion(client, db):
    record = _fax(db, status="sending")

    _post_notifyre(client, _notifyre_event("evt-busy", "Failed - Busy", CompletedAt="2025-03-01T10:00:00Z"))

    db.expire_all()
    record = db.get(FaxRecord, record.id)
    assert record.status == "busy"
    assert record.completed_at is not None
    completed_at = record.completed_at

    _post_notifyre(client, _notifyre_event("evt-late", "Successful", CompletedAt="2025-03-05T10:00:00Z"))

    db.expire_all()
    record = db.get(FaxRecord, record.id)
    assert record.status == "delivered"
    assert record.completed_at == completed_at


def test_unparseable_page_count_is_still_audited(client, db):
    record = _fax(db)

    response = _post_notifyre(client, _notifyre_event("evt-pages", "Sending", Pages="two", Cost="NaN"))

    assert response.status_code == 200
    assert db.query(WebhookEvent).filter(WebhookEvent.event_id == "evt-pages").one().status == "processed"
    db.expire_all()
    record = db.get(FaxRecord, record.id)
    assert record.status == "sending"
    assert record.cost is None
    assert "carrier_pages" not in record.metadata_


def test_duplicate_event_id_is_processed_once(client, db):
    record = _fax(db)
    body = _notifyre_event("evt-dup", "Failed - Busy")

    first = _post_notifyre(client, body)
    second = _post_notifyre(client, body)

    assert first.json()["duplicate"] is False
    assert second.status_code == 200
    assert second.json()["duplicate"] is True
    assert second.json()["result"] == first.json()["result"]
    assert db.query(WebhookEvent).filter(WebhookEvent.event_id == "evt-dup").count() == 1

    db.expire_all()
    assert db.get(FaxRecord, record.id).status == "busy"


def test_unknown_fax_is_acknowledged_and_audited(client, db):
    response = _post_notifyre(client, _notifyre_event("evt-x", "Successful", external_id="nf-unknown"))

    assert response.status_code == 200
    assert response.json()["result"]["action"] == "ignored"
    event = db.query(WebhookEvent).filter(WebhookEvent.event_id == "evt-x").one()
    assert event.status == "ignored"
    assert event.processed_at is not None


def test_unrecognized_carrier_status_fails_closed(client, db):
    record = _fax(db)
    _post_notifyre(client, _notifyre_event("evt-odd", "Teleported"))

    db.expire_all()
    record = db.get(FaxRecord, record.id)
    assert record.status == "failed"
    assert record.original_status == "Teleported"


def test_telnyx_failure_reason_becomes_status(client, db):
    record = _fax(db, provider="telnyx", external_id="tx-9", status="sending")
    body = {
        "data": {
            "id": "tx-evt-1",
            "event_type": "fax.failed",
            "payload": {"fax_id": "tx-9", "status": "failed", "failure_reason": "user_busy"},
        }
    }

    response = _post_signed(client, "/webhooks/telnyx", "X-Telnyx-Signature", "telnyx-hook-secret", body)

    assert response.status_code == 200
    db.expire_all()
    record = db.get(FaxRecord, record.id)
    assert record.status == "busy"
    assert record.error_message == "user_busy"


def test_bad_signature_is_rejected_without_audit(client, db):
    raw = json.dumps(_notifyre_event("evt-bad", "Successful")).encode()
    response = client.post(
        "/webhooks/notifyre",
        content=raw,
        headers={"X-Notifyre-Signature": compute_signature(raw, "wrong-secret")},
    )

    assert response.status_code == 401
    assert db.query(WebhookEvent).count() == 0


def test_missing_signature_is_rejected(client):
    response = client.post("/webhooks/notifyre", json=_notifyre_event("evt-none", "Successful"))
    assert response.status_code == 401


def test_signed_garbage_is_a_client_error(client):
    raw = b"not json"
    response = client.post(
        "/webhooks/notifyre",
        content=raw,
        headers={"X-Notifyre-Signature": compute_signature(raw, "notifyre-hook-secret")},
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "invalid_json"


# Billing


def test_purchase_creates_grant(client, db):
    _product(db, "pro_monthly", page_limit=250)
    purchased_ms = int(datetime(2025, 1, 31, tzinfo=timezone.utc).timestamp() * 1000)

    response = _revenuecat(
        client,
        {
            "id": "rc-1",
            "type": "INITIAL_PURCHASE",
            "app_user_id": "user-rc",
            "product_id": "pro_monthly",
            "purchased_at_ms": purchased_ms,
            "original_transaction_id": "txn-1",
            "entitlement_ids": ["pro"],
        },
    )

    assert response.status_code == 200
    assert response.json()["result"]["action"] == "grant_applied"
    grant = db.query(CreditGrant).filter(CreditGrant.user_id == "user-rc").one()
    assert grant.page_limit == 250
    assert grant.pages_used == 0
    assert grant.subscription_id == "txn-1"
    assert grant.entitlement_id == "pro"
    assert grant.expires_at.replace(tzinfo=None) == datetime(2025, 2, 28)


def test_renewal_resets_usage_on_the_same_grant(client, db):
    _product(db, "pro_monthly", page_limit=250)
    grant = add_grant(db, "user-rn", page_limit=250, pages_used=200, product_id="pro_monthly")

    response = _revenuecat(
        client,
        {"id": "rc-2", "type": "RENEWAL", "app_user_id": "user-rn", "product_id": "pro_monthly"},
    )

    assert response.status_code == 200
    db.expire_all()
    grants = db.query(CreditGrant).filter(CreditGrant.user_id == "user-rn").all()
    assert [g.id for g in grants] == [grant.id]
    assert grants[0].pages_used == 0


def test_unknown_product_is_recorded_as_failed(client, db):
    response = _revenuecat(
        client,
        {"id": "rc-3", "type": "INITIAL_PURCHASE", "app_user_id": "user-x", "product_id": "nope"},
    )

    assert response.status_code == 200
    event = db.query(WebhookEvent).filter(WebhookEvent.event_id == "rc-3").one()
    assert event.status == "failed"
    assert db.query(CreditGrant).count() == 0


def test_cancellation_deactivates_grants(client, db):
    add_grant(db, "user-c", page_limit=100, product_id="pro_monthly")

    response = _revenuecat(
        client,
        {"id": "rc-4", "type": "CANCELLATION", "app_user_id": "user-c", "product_id": "pro_monthly"},
    )

    assert response.json()["result"]["count"] == 1
    db.expire_all()
    assert db.query(CreditGrant).filter(CreditGrant.is_active.is_(True)).count() == 0


def test_billing_issue_is_only_recorded(client, db):
    add_grant(db, "user-b", page_limit=100)

    response = _revenuecat(client, {"id": "rc-5", "type": "BILLING_ISSUE", "app_user_id": "user-b"})

    assert response.json()["result"] == {"action": "recorded"}
    assert db.query(CreditGrant).filter(CreditGrant.is_active.is_(True)).count() == 1


def test_duplicate_purchase_grants_once(client, db):
    _product(db, "pack_10", kind="consumable", page_limit=10)
    event = {"id": "rc-6", "type": "NON_RENEWING_PURCHASE", "app_user_id": "user-p", "product_id": "pack_10"}

    _revenuecat(client, event)
    second = _revenuecat(client, event)

    assert second.json()["duplicate"] is True
    grant = db.query(CreditGrant).filter(CreditGrant.user_id == "user-p").one()
    assert grant.page_limit == 10


def test_transfer_event_merges_accounts(client, db):
    add_user(db, "$RCAnonymousID:abc", is_anonymous=True)
    add_user(db, "user-real")
    add_grant(db, "$RCAnonymousID:abc", page_limit=20)

    response = _revenuecat(
        client,
        {
            "id": "rc-7",
            "type": "TRANSFER",
            "transferred_from": ["$RCAnonymousID:abc"],
            "transferred_to": ["user-real"],
        },
    )

    result = response.json()["result"]
    assert result["action"] == "transfer"
    assert result["transfers"][0]["success"] is True
    assert result["transfers"][0]["transferred_grants"] == 1
    assert db.query(CreditGrant).filter(CreditGrant.user_id == "user-real").count() == 1


def test_bad_shared_secret(client, db):
    response = _revenuecat(client, {"id": "rc-8", "type": "RENEWAL", "app_user_id": "u"}, secret="nope")
    assert response.status_code == 401
    assert db.query(WebhookEvent).count() == 0


def test_event_without_type(client):
    response = _revenuecat(client, {"id": "rc-9"})
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "invalid_event"
