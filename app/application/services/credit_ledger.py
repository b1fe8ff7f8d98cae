"""Credit ledger — page credits across subscriptions and consumable packs.

Credit checks are plain reads. Every deduction is a conditional update
(pages_used + n <= page_limit) so concurrent sends can never overdraw a
grant, whatever the earlier check said. Usage events are analytics: a failed
append is logged and never undoes the grant mutation before it.
"""

import calendar
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import structlog

from app.core.exceptions import CreditError, DatabaseError, ValidationError
from app.domain.models.credit_grant import CreditGrant
from app.domain.models.product import KIND_CONSUMABLE, KIND_SUBSCRIPTION, Product
from app.domain.models.usage_event import UsageEvent
from app.domain.repositories.credit_repository import CreditRepository
from app.domain.schemas.credit import CreditCheck, CreditGrantRead, CreditSummary, Reservation

logger = structlog.get_logger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def add_months(moment: datetime, months: int) -> datetime:
    """Calendar month arithmetic, clamping to the last day of shorter months."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def grant_expiration(product: Optional[Product], purchased_at: Optional[datetime]) -> Optional[datetime]:
    """Expiry for a purchase: explicit day count first, then the coarse period (month by default)."""
    if product is None or purchased_at is None:
        return None

    if product.expire_days and product.expire_days > 0:
        return purchased_at + timedelta(days=product.expire_days)

    period = (product.expire_period or "").lower()
    if period == "day":
        return purchased_at + timedelta(days=1)
    if period == "week":
        return purchased_at + timedelta(days=7)
    if period == "year":
        return add_months(purchased_at, 12)
    if period != "month":
        logger.warning(
            "No usable expire period, using one month",
            product_id=product.product_id,
            expire_period=product.expire_period,
        )
    return add_months(purchased_at, 1)


def check_credits(
    repo: CreditRepository,
    user_id: str,
    pages_required: int,
    now: Optional[datetime] = None,
) -> CreditCheck:
    if not user_id:
        raise ValidationError("User is required for credit checks", code="missing_user")
    if pages_required < 0:
        raise ValidationError("Pages must not be negative", code="invalid_pages")

    grants = repo.list_eligible(user_id, now or _now())
    available = sum(grant.pages_available for grant in grants)
    primary = next((grant for grant in grants if grant.pages_available > 0), None)

    check = CreditCheck(
        has_credits=available >= pages_required,
        available=available,
        required=pages_required,
        primary_grant_id=primary.id if primary else None,
    )
    logger.debug(
        "Credit check",
        user_id=user_id,
        required=pages_required,
        available=available,
        primary_grant_id=check.primary_grant_id,
    )
    return check


def reserve_pages(
    repo: CreditRepository,
    user_id: str,
    pages: int,
    now: Optional[datetime] = None,
) -> Reservation:
    """Hold `pages` before the carrier call, spilling across grants in check order.

    Raises CreditError when the balance (as seen by the conditional updates)
    cannot cover the request; nothing stays reserved in that case.
    """
    check = check_credits(repo, user_id, pages, now)
    if not check.has_credits:
        raise CreditError(
            "Insufficient credits",
            {"required": pages, "available": check.available},
        )

    reservation = Reservation(user_id=user_id)
    remaining = pages
    for grant in repo.list_eligible(user_id, now or _now()):
        if remaining == 0:
            break
        take = min(remaining, grant.pages_available)
        if take <= 0:
            continue
        if repo.try_deduct(grant.id, take):
            reservation.allocations.append((grant.id, take))
            remaining -= take
        else:
            logger.info("Grant changed under reservation, trying next", grant_id=grant.id)

    if remaining > 0:
        release_reservation(repo, reservation)
        raise CreditError(
            "Insufficient credits",
            {"required": pages, "available": pages - remaining},
        )

    logger.info("Pages reserved", user_id=user_id, pages=pages, allocations=reservation.allocations)
    return reservation


def release_reservation(repo: CreditRepository, reservation: Reservation) -> None:
    for grant_id, pages in reservation.allocations:
        if not repo.release(grant_id, pages):
            logger.error("Could not release reserved pages", grant_id=grant_id, pages=pages)
    if reservation.allocations:
        logger.info("Reservation released", user_id=reservation.user_id, pages=reservation.pages)
    reservation.allocations = []


def record_usage(
    repo: CreditRepository,
    user_id: str,
    pages: int,
    metadata: Optional[Dict[str, Any]] = None,
) -> Optional[UsageEvent]:
    """Append the usage row. Best effort: failures are logged, never raised."""
    try:
        return repo.add_usage_event(user_id, pages, metadata or {})
    except DatabaseError as e:
        logger.error("Usage event not recorded", user_id=user_id, pages=pages, error=e.message)
        return None


def apply_usage(
    repo: CreditRepository,
    user_id: str,
    pages_used: int,
    grant_id: int,
    metadata: Optional[Dict[str, Any]] = None,
) -> Optional[UsageEvent]:
    """Deduct from one named grant and append a usage event.

    Used for out-of-band deduction retries: the carrier already accepted the
    fax, only the bookkeeping is missing.
    """
    if pages_used <= 0:
        raise ValidationError("Pages must be at least 1", code="invalid_pages")
    if not repo.try_deduct(grant_id, pages_used):
        raise CreditError(
            "Grant cannot cover the deduction",
            {"grant_id": grant_id, "pages": pages_used},
        )
    return record_usage(repo, user_id, pages_used, {**(metadata or {}), "grant_id": grant_id})


def apply_purchase(
    repo: CreditRepository,
    user_id: str,
    product: Product,
    purchased_at: datetime,
    subscription_id: Optional[str] = None,
    entitlement_id: Optional[str] = None,
    fallback_expires_at: Optional[datetime] = None,
) -> CreditGrant:
    """Create or extend a grant for a purchase or renewal."""
    expires_at = grant_expiration(product, purchased_at) or fallback_expires_at

    if product.kind == KIND_CONSUMABLE:
        latest = repo.get_latest_active(user_id)
        if latest is not None:
            grant = repo.update(latest, {"page_limit": latest.page_limit + product.page_limit})
            logger.info(
                "Consumable pages added to grant",
                user_id=user_id,
                grant_id=grant.id,
                pages=product.page_limit,
            )
            return grant

    elif product.kind == KIND_SUBSCRIPTION:
        # One active subscription per user; renewals reset the period's usage
        current = repo.get_active_subscription(user_id)
        if current is not None:
            grant = repo.update(
                current,
                {
                    "product_id": product.product_id,
                    "subscription_id": subscription_id,
                    "entitlement_id": entitlement_id,
                    "purchased_at": purchased_at,
                    "expires_at": expires_at,
                    "page_limit": product.page_limit,
                    "pages_used": 0,
                },
            )
            logger.info("Subscription renewed", user_id=user_id, grant_id=grant.id, product_id=product.product_id)
            return grant

    grant = repo.create(
        {
            "user_id": user_id,
            "product_id": product.product_id,
            "kind": product.kind,
            "subscription_id": subscription_id,
            "entitlement_id": entitlement_id,
            "purchased_at": purchased_at,
            "expires_at": expires_at,
            "page_limit": product.page_limit,
            "pages_used": 0,
            "is_active": True,
        }
    )
    logger.info("Credit grant created", user_id=user_id, grant_id=grant.id, kind=grant.kind, pages=grant.page_limit)
    return grant


def deactivate_grants(repo: CreditRepository, user_id: str, product_id: Optional[str] = None) -> int:
    count = repo.deactivate(user_id, product_id)
    logger.info("Credit grants deactivated", user_id=user_id, product_id=product_id, count=count)
    return count


def credit_summary(repo: CreditRepository, user_id: str) -> CreditSummary:
    check = check_credits(repo, user_id, 0)
    grants = repo.list_eligible(user_id, _now())
    return CreditSummary(
        user_id=user_id,
        available=check.available,
        primary_grant_id=check.primary_grant_id,
        grants=[CreditGrantRead.model_validate(grant) for grant in grants],
    )
