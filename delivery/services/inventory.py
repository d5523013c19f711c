"""
Inventory pool queries and the atomic capacity claim.
"""
import logging
from typing import List, Optional

from django.db.models import F, Q, QuerySet, Sum
from django.utils import timezone

from delivery.models import CredentialRecord, Order, OrderItem, Product

logger = logging.getLogger(__name__)


class InsufficientInventoryError(Exception):
    """Raised when a product cannot cover the required quantity."""

    def __init__(self, required: int, available: int, found_in_query: Optional[int] = None):
        self.required = required
        self.available = available
        self.found_in_query = available if found_in_query is None else found_in_query
        super().__init__(f"Insufficient inventory: need {required}, have {available}")


class CredentialUpdateNotAllowed(Exception):
    """Raised when an expired credential record refuses edits."""


def eligible_credentials(product) -> QuerySet:
    """
    Credential records of a product that can take one more assignment,
    oldest first so stale stock drains before fresh stock.
    """
    now = timezone.now()
    return (
        CredentialRecord.objects
        .filter(
            product=product,
            status=CredentialRecord.Status.AVAILABLE,
            active_assignment_count__lt=F('max_assignments'),
        )
        .filter(Q(expiration_date__isnull=True) | Q(expiration_date__gt=now))
        .order_by('created_at', 'id')
    )


def available_credential_count(product) -> int:
    return eligible_credentials(product).count()


def claim_credential(record: CredentialRecord) -> bool:
    """
    Take one unit of capacity from a credential record.

    The increment and the capacity check are a single conditional UPDATE, so
    two allocators racing for the last slot cannot both win. Returns False
    when the record is no longer eligible.
    """
    now = timezone.now()
    updated = (
        CredentialRecord.objects
        .filter(
            pk=record.pk,
            status=CredentialRecord.Status.AVAILABLE,
            active_assignment_count__lt=F('max_assignments'),
        )
        .update(
            active_assignment_count=F('active_assignment_count') + 1,
            delivered_at=now,
            updated_at=now,
        )
    )
    if not updated:
        logger.debug(f"Credential {record.pk} claim lost, record no longer eligible")
        return False

    # Full records leave the pool
    CredentialRecord.objects.filter(
        pk=record.pk,
        active_assignment_count__gte=F('max_assignments'),
    ).update(status=CredentialRecord.Status.DELIVERED)

    record.refresh_from_db(fields=['active_assignment_count', 'status', 'delivered_at', 'updated_at'])
    return True


def claim_credentials(product, quantity: int) -> List[CredentialRecord]:
    """
    Claim ``quantity`` units for a product, one record per unit.

    Must run inside a transaction: when the pool runs dry part-way through,
    InsufficientInventoryError is raised and the caller's savepoint rolls
    back the claims already made, so nothing is partially allocated.
    """
    claimed: List[CredentialRecord] = []
    skipped = set()

    while len(claimed) < quantity:
        excluded = skipped | {record.pk for record in claimed}
        candidates = list(
            eligible_credentials(product).exclude(pk__in=excluded)[:quantity - len(claimed)]
        )
        if not candidates:
            raise InsufficientInventoryError(
                required=quantity,
                available=available_credential_count(product),
                found_in_query=len(claimed),
            )

        for record in candidates:
            if claim_credential(record):
                claimed.append(record)
            else:
                skipped.add(record.pk)

    return claimed


def pending_demand(product) -> int:
    """Units of a product still waiting for delivery on paid orders."""
    result = OrderItem.objects.filter(
        product=product,
        order__payment_status__in=Order.PAID_STATUSES,
        delivery_status=OrderItem.DeliveryStatus.PENDING,
    ).aggregate(total=Sum('quantity'))
    return result['total'] or 0


def inventory_levels(product: Product) -> dict:
    """Stock figures for one product, as used by the stock sweep and overview."""
    eligible = list(eligible_credentials(product))
    return {
        'product_id': product.id,
        'product_title': product.title,
        'total_count': CredentialRecord.objects.filter(product=product).count(),
        'available_count': len(eligible),
        'reserved_count': CredentialRecord.objects.filter(
            product=product, status=CredentialRecord.Status.RESERVED
        ).count(),
        'assigned_count': CredentialRecord.objects.filter(
            product=product, active_assignment_count__gt=0
        ).count(),
        'total_remaining_assignments': sum(record.remaining_assignments for record in eligible),
    }


def expire_credentials() -> int:
    """Flip available records past their expiration date to expired."""
    expired = CredentialRecord.objects.filter(
        status=CredentialRecord.Status.AVAILABLE,
        expiration_date__isnull=False,
        expiration_date__lte=timezone.now(),
    ).update(status=CredentialRecord.Status.EXPIRED, updated_at=timezone.now())

    if expired:
        logger.info(f"Marked {expired} credential records as expired")
    return expired
