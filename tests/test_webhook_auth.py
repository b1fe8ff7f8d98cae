import pytest

from app.application.services.webhook_auth import (
    compute_signature,
    verify_shared_secret,
    verify_signature,
)
from app.core.exceptions import ConfigurationError, UnauthorizedError

BODY = b'{"Event":"fax.sent"}'


def test_valid_signature_passes():
    verify_signature(BODY, compute_signature(BODY, "s3cret"), "s3cret", "notifyre")


def test_signature_covers_exact_bytes():
    signature = compute_signature(BODY, "s3cret")
    with pytest.raises(UnauthorizedError):
        verify_signature(BODY + b" ", signature, "s3cret", "notifyre")


@pytest.mark.parametrize("signature", [None, "", "bm90LWEtc2lnbmF0dXJl"])
def test_bad_signatures(signature):
    with pytest.raises(UnauthorizedError):
        verify_signature(BODY, signature, "s3cret", "notifyre")


def test_unconfigured_secret_fails_closed():
    with pytest.raises(ConfigurationError):
        verify_signature(BODY, compute_signature(BODY, ""), "", "telnyx")
    with pytest.raises(ConfigurationError):
        verify_shared_secret("anything", "", "revenuecat")


def test_shared_secret():
    verify_shared_secret("rc-secret", "rc-secret", "revenuecat")
    with pytest.raises(UnauthorizedError):
        verify_shared_secret("Bearer rc-secret", "rc-secret", "revenuecat")
    with pytest.raises(UnauthorizedError):
        verify_shared_secret(None, "rc-secret", "revenuecat")
