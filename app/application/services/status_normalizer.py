"""Status normalizer — carrier status vocabularies to canonical FaxStatus.

Each carrier gets one table keyed by the lower-cased raw status. Lookups are
total: an unrecognized, empty or missing status maps to FAILED so that a
record is never left looking healthy because a carrier invented a new word.
"""

from types import MappingProxyType
from typing import Mapping, Optional

import structlog

from app.domain.fax_status import CANONICAL_STATUSES, FaxStatus

logger = structlog.get_logger(__name__)

DEFAULT_STATUS = FaxStatus.FAILED

NOTIFYRE_STATUSES: Mapping[str, FaxStatus] = MappingProxyType(
    {
        # Initial / in flight
        "preparing": FaxStatus.QUEUED,
        "submitted": FaxStatus.QUEUED,
        "queued": FaxStatus.QUEUED,
        "in progress": FaxStatus.PROCESSING,
        "processing": FaxStatus.PROCESSING,
        "sending": FaxStatus.SENDING,
        # Success
        "successful": FaxStatus.DELIVERED,
        "delivered": FaxStatus.DELIVERED,
        "sent": FaxStatus.DELIVERED,
        "completed": FaxStatus.DELIVERED,
        # Inbound
        "receiving": FaxStatus.RECEIVING,
        "received": FaxStatus.DELIVERED,
        # Failure sub-reasons
        "failed": FaxStatus.FAILED,
        "failed - busy": FaxStatus.BUSY,
        "failed - no answer": FaxStatus.NO_ANSWER,
        "failed - check number and try again": FaxStatus.FAILED,
        "failed - connection not a fax machine": FaxStatus.FAILED,
        "error": FaxStatus.FAILED,
        "timeout": FaxStatus.FAILED,
        "rejected": FaxStatus.FAILED,
        # Cancellation
        "cancelled": FaxStatus.CANCELLED,
        "aborted": FaxStatus.CANCELLED,
    }
)

TELNYX_STATUSES: Mapping[str, FaxStatus] = MappingProxyType(
    {
        "queued": FaxStatus.QUEUED,
        "initiated": FaxStatus.QUEUED,
        "media.processing": FaxStatus.PROCESSING,
        "media.processed": FaxStatus.PROCESSING,
        "originated": FaxStatus.SENDING,
        "sending": FaxStatus.SENDING,
        "delivered": FaxStatus.DELIVERED,
        "receiving": FaxStatus.RECEIVING,
        "received": FaxStatus.DELIVERED,
        "failed": FaxStatus.FAILED,
        # failure_reason values carried on fax.failed events
        "user_busy": FaxStatus.BUSY,
        "no_answer": FaxStatus.NO_ANSWER,
        "receiver_no_answer": FaxStatus.NO_ANSWER,
        "canceled": FaxStatus.CANCELLED,
        "cancelled": FaxStatus.CANCELLED,
    }
)


class StatusNormalizer:
    """Maps one carrier's raw status strings onto FaxStatus."""

    def __init__(self, provider: str, table: Mapping[str, FaxStatus]):
        unknown = [value for value in table.values() if value not in CANONICAL_STATUSES]
        if unknown:
            raise ValueError(f"{provider} status table maps to non-canonical values: {unknown}")
        self.provider = provider
        self.table = table

    def normalize(self, raw_status: Optional[str]) -> FaxStatus:
        key = (raw_status or "").strip().lower()
        if not key:
            logger.warning("Empty carrier status", provider=self.provider)
            return DEFAULT_STATUS

        status = self.table.get(key)
        if status is None:
            logger.warning("Unknown carrier status", provider=self.provider, raw_status=raw_status)
            return DEFAULT_STATUS
        return status


NORMALIZERS = {
    "notifyre": StatusNormalizer("notifyre", NOTIFYRE_STATUSES),
    "telnyx": StatusNormalizer("telnyx", TELNYX_STATUSES),
}


def normalize_status(raw_status: Optional[str], provider: str) -> FaxStatus:
    """Total, deterministic mapping; unknown providers fall back to the default status."""
    normalizer = NORMALIZERS.get((provider or "").lower())
    if normalizer is None:
        logger.warning("No status table for provider", provider=provider)
        return DEFAULT_STATUS
    return normalizer.normalize(raw_status)
