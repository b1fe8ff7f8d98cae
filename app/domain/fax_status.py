"""Canonical, carrier-agnostic fax lifecycle states."""

import enum


class FaxStatus(str, enum.Enum):
    # Internal saga state, stored before a staged carrier has the document.
    # Never produced by a status normalizer.
    PREPARING = "preparing"

    QUEUED = "queued"
    PROCESSING = "processing"
    SENDING = "sending"
    DELIVERED = "delivered"
    RECEIVING = "receiving"
    BUSY = "busy"
    NO_ANSWER = "no-answer"
    FAILED = "failed"
    CANCELLED = "cancelled"


CANONICAL_STATUSES = frozenset(s for s in FaxStatus if s is not FaxStatus.PREPARING)

TERMINAL_STATUSES = frozenset(
    {
        FaxStatus.DELIVERED,
        FaxStatus.FAILED,
        FaxStatus.BUSY,
        FaxStatus.NO_ANSWER,
        FaxStatus.CANCELLED,
    }
)


def is_terminal(status: "FaxStatus | str | None") -> bool:
    if status is None:
        return False
    try:
        return FaxStatus(status) in TERMINAL_STATUSES
    except ValueError:
        return False
