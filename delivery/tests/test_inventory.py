"""
Unit tests for the inventory pool and the capacity claim.
"""
import pytest
from datetime import timedelta
from django.db import IntegrityError, transaction
from django.utils import timezone

from delivery.models import CredentialRecord, OrderItem
from delivery.services.inventory import (
    CredentialUpdateNotAllowed,
    InsufficientInventoryError,
    available_credential_count,
    claim_credential,
    claim_credentials,
    eligible_credentials,
    expire_credentials,
    inventory_levels,
    pending_demand,
)


@pytest.mark.django_db
class TestClaimCredential:
    """Tests for the single-record conditional claim."""

    def test_claims_until_capacity_then_refuses(self, product, make_credentials):
        [record] = make_credentials(product, max_assignments=2)

        assert claim_credential(record) is True
        assert record.active_assignment_count == 1
        assert record.status == CredentialRecord.Status.AVAILABLE

        assert claim_credential(record) is True
        assert record.active_assignment_count == 2
        assert record.status == CredentialRecord.Status.DELIVERED

        assert claim_credential(record) is False
        record.refresh_from_db()
        assert record.active_assignment_count == 2

    def test_stale_copy_cannot_take_last_slot(self, product, make_credentials):
        """Two workers holding the same row: only one wins the last slot."""
        [record] = make_credentials(product, max_assignments=1)
        first_view = CredentialRecord.objects.get(pk=record.pk)
        second_view = CredentialRecord.objects.get(pk=record.pk)

        assert claim_credential(first_view) is True
        assert claim_credential(second_view) is False

        record.refresh_from_db()
        assert record.active_assignment_count == 1

    def test_reserved_record_cannot_be_claimed(self, product, make_credentials):
        [record] = make_credentials(product, status=CredentialRecord.Status.RESERVED)

        assert claim_credential(record) is False

    def test_capacity_constraint_is_enforced_by_storage(self, product, make_credentials):
        [record] = make_credentials(product, max_assignments=1)

        with pytest.raises(IntegrityError), transaction.atomic():
            CredentialRecord.objects.filter(pk=record.pk).update(active_assignment_count=2)


@pytest.mark.django_db
class TestClaimCredentials:
    """Tests for multi-unit claims."""

    def test_claims_distinct_records(self, product, make_credentials):
        make_credentials(product, count=3, max_assignments=5)

        claimed = claim_credentials(product, 3)

        assert len({record.pk for record in claimed}) == 3

    def test_shortage_rolls_back_with_the_transaction(self, product, make_credentials):
        make_credentials(product, count=2)

        with pytest.raises(InsufficientInventoryError) as exc_info:
            with transaction.atomic():
                claim_credentials(product, 3)

        assert exc_info.value.required == 3
        assert exc_info.value.available == 0
        assert not CredentialRecord.objects.filter(active_assignment_count__gt=0).exists()

    def test_skips_records_lost_to_another_worker(self, product, make_credentials):
        first, second, third = make_credentials(product, count=3)
        # Another worker fills the first record after it was listed
        CredentialRecord.objects.filter(pk=first.pk).update(status=CredentialRecord.Status.DELIVERED)

        claimed = claim_credentials(product, 2)

        assert sorted(record.pk for record in claimed) == sorted([second.pk, third.pk])


@pytest.mark.django_db
class TestEligibility:
    """Tests for pool membership."""

    def test_eligible_excludes_full_expired_and_reserved(self, product, make_credentials):
        now = timezone.now()
        [usable] = make_credentials(product)
        [future] = make_credentials(product, expiration_date=now + timedelta(days=3))
        make_credentials(product, expiration_date=now - timedelta(minutes=1))
        make_credentials(product, status=CredentialRecord.Status.RESERVED)
        [full] = make_credentials(product, max_assignments=1)
        claim_credential(full)

        eligible = list(eligible_credentials(product))

        assert [record.pk for record in eligible] == [usable.pk, future.pk]
        assert available_credential_count(product) == 2

    def test_eligible_is_scoped_to_product(self, make_product, make_credentials):
        netflix = make_product(title='Netflix Premium')
        spotify = make_product(title='Spotify Family')
        make_credentials(netflix, count=2)
        make_credentials(spotify, count=1)

        assert available_credential_count(netflix) == 2
        assert available_credential_count(spotify) == 1

    def test_record_properties(self, product, make_credentials):
        [record] = make_credentials(product, max_assignments=3)
        assert record.is_available is True
        assert record.remaining_assignments == 3
        assert record.is_expired is False

        record.expiration_date = timezone.now() - timedelta(seconds=1)
        assert record.is_expired is True
        assert record.is_available is False


@pytest.mark.django_db
class TestExpiry:
    """Tests for expiry and the edit policy of expired records."""

    def test_expire_credentials_flips_only_past_records(self, product, make_credentials):
        now = timezone.now()
        [past] = make_credentials(product, expiration_date=now - timedelta(hours=1))
        [future] = make_credentials(product, expiration_date=now + timedelta(hours=1))
        [forever] = make_credentials(product)

        assert expire_credentials() == 1

        past.refresh_from_db()
        future.refresh_from_db()
        forever.refresh_from_db()
        assert past.status == CredentialRecord.Status.EXPIRED
        assert future.status == CredentialRecord.Status.AVAILABLE
        assert forever.status == CredentialRecord.Status.AVAILABLE

    def test_expired_record_accepts_updates_by_default(self, product, make_credentials):
        [record] = make_credentials(product, expiration_date=timezone.now() - timedelta(days=1))

        record.update_credentials('Email: renewed@mail.test\nPassword: new')

        record.refresh_from_db()
        assert record.credentials == 'Email: renewed@mail.test\nPassword: new'

    def test_expired_record_can_refuse_updates(self, product, make_credentials):
        [record] = make_credentials(
            product,
            expiration_date=timezone.now() - timedelta(days=1),
            allow_updates_after_expiry=False,
        )
        original = record.credentials

        with pytest.raises(CredentialUpdateNotAllowed):
            record.update_credentials('Email: renewed@mail.test')

        record.refresh_from_db()
        assert record.credentials == original

    def test_live_record_always_accepts_updates(self, product, make_credentials):
        [record] = make_credentials(product, allow_updates_after_expiry=False)

        record.update_credentials('Email: rotated@mail.test')

        assert record.can_receive_updates is True
        record.refresh_from_db()
        assert record.credentials == 'Email: rotated@mail.test'


@pytest.mark.django_db
class TestInventoryLevels:
    """Tests for stock and demand figures."""

    def test_pending_demand_counts_paid_pending_items_only(self, product, make_order):
        make_order(items=[(product, 2)])
        make_order(items=[(product, 3)], payment_status='confirmed')
        make_order(items=[(product, 7)], payment_status='pending')
        delivered = make_order(items=[(product, 4)])
        delivered.items.update(delivery_status=OrderItem.DeliveryStatus.DELIVERED)

        assert pending_demand(product) == 5

    def test_pending_demand_is_zero_without_orders(self, product):
        assert pending_demand(product) == 0

    def test_inventory_levels(self, product, make_credentials):
        make_credentials(product, count=2, max_assignments=3)
        [used] = make_credentials(product, max_assignments=2)
        claim_credential(used)
        make_credentials(product, status=CredentialRecord.Status.RESERVED)

        levels = inventory_levels(product)

        assert levels == {
            'product_id': product.id,
            'product_title': product.title,
            'total_count': 4,
            'available_count': 3,
            'reserved_count': 1,
            'assigned_count': 1,
            'total_remaining_assignments': 7,
        }
